"""ISO week identifiers (``YYYY-Www``) and the date ranges they cover.

``week_id_of`` is the only place a calendar date is turned into a week; every
other module (snapshot filtering, read-only checks, navigation) goes through it.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from mealweek.utilities.constants import WEEK_ID_PATTERN
from mealweek.utilities.errors import InvalidDateError, InvalidWeekIdError

DateLike = Union[date, datetime, str]

_WEEK_ID_RE = re.compile(WEEK_ID_PATTERN)


def to_date(value: DateLike) -> date:
    """Coerce a date, datetime or ISO string (``YYYY-MM-DD`` or full timestamp) to a ``date``."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidDateError(value, "expected a date or ISO date string")
    text = value.strip()
    if not text:
        raise InvalidDateError(value, "empty string")
    # Timestamps: only the calendar date part matters
    candidate = text[:10] if len(text) > 10 and text[10] in "T " else text
    try:
        return date.fromisoformat(candidate)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError as e:
        raise InvalidDateError(value, str(e)) from None


def week_id_of(value: DateLike) -> str:
    """Return the ISO week identifier for a date, e.g. ``2026-W04``."""
    d = to_date(value)
    iso = d.isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def parse_week_id(week_id: str) -> tuple[int, int]:
    """Split a week identifier into (iso_year, week_number), validating that the week exists."""
    if not isinstance(week_id, str):
        raise InvalidWeekIdError(week_id)
    match = _WEEK_ID_RE.match(week_id.strip())
    if not match:
        raise InvalidWeekIdError(week_id)
    year, week = int(match.group(1)), int(match.group(2))
    try:
        date.fromisocalendar(year, week, 1)
    except ValueError:
        raise InvalidWeekIdError(week_id, f"week {week} does not exist in {year}") from None
    return year, week


def start_date_of(week_id: str) -> date:
    """Monday of the week: the Monday on/before January 4 plus (week - 1) * 7 days."""
    year, week = parse_week_id(week_id)
    jan4 = date(year, 1, 4)
    week1_monday = jan4 - timedelta(days=jan4.isoweekday() - 1)
    return week1_monday + timedelta(days=(week - 1) * 7)


def end_date_of(week_id: str) -> date:
    return start_date_of(week_id) + timedelta(days=6)


def adjacent(week_id: str, direction: int = 1) -> str:
    """Week identifier ``direction`` weeks away (negative goes back)."""
    return week_id_of(start_date_of(week_id) + timedelta(days=7 * direction))


def in_range(date_str: DateLike, week_id: str) -> bool:
    return week_id_of(date_str) == week_id


def current_week_id(today: Optional[date] = None) -> str:
    return week_id_of(today or date.today())


def format_range(week_id: str) -> str:
    """Human readable label: ``Jan 20 - 26, 2026`` or ``Dec 29 - Jan 4, 2026``."""
    start = start_date_of(week_id)
    end = start + timedelta(days=6)
    start_month = start.strftime("%b")
    end_month = end.strftime("%b")
    if start_month == end_month:
        return f"{start_month} {start.day} - {end.day}, {end.year}"
    return f"{start_month} {start.day} - {end_month} {end.day}, {end.year}"


def past_week_ids(count: int = 4, today: Optional[date] = None) -> List[str]:
    """Current week plus the previous ``count - 1`` weeks, newest first."""
    today = today or date.today()
    weeks: List[str] = []
    for i in range(count):
        wid = week_id_of(today - timedelta(days=i * 7))
        if wid not in weeks:
            weeks.append(wid)
    return weeks


__all__ = [
    'to_date', 'week_id_of', 'parse_week_id', 'start_date_of', 'end_date_of',
    'adjacent', 'in_range', 'current_week_id', 'format_range', 'past_week_ids',
]
