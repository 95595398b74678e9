import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from mealweek.domain.AppState import AppState
from mealweek.domain.Week import WeekRecord
from mealweek.logic.weeks.week_identity import parse_week_id
from mealweek.utilities.errors import InvalidWeekIdError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WeekRepository:
    """Week records keyed by week id, stored in the application state tree."""

    def __init__(self, state: AppState, clock: Optional[Callable[[], datetime]] = None):
        self._state = state
        self._clock = clock or _utcnow

    def get(self, week_id: str) -> Optional[WeekRecord]:
        parse_week_id(week_id)
        raw = self._state.get_week(week_id)
        if raw is None:
            return None
        return WeekRecord.from_dict({**raw, "id": raw.get("id") or raw.get("weekId") or week_id})

    def get_or_create(self, week_id: str) -> WeekRecord:
        """Return the record for week_id, creating a draft on first access."""
        record = self.get(week_id)
        if record is not None:
            return record
        record = WeekRecord.new(week_id, self._clock())
        self._state.put_week(week_id, record.to_dict(), reason="week.created")
        logger.info(f"Created draft week {week_id}")
        return record

    def save(self, record: WeekRecord, reason: str = "week") -> None:
        self._state.put_week(record.id, record.to_dict(), reason=reason)

    def ids(self) -> List[str]:
        return self._state.week_ids()

    def all(self) -> List[WeekRecord]:
        records = []
        for week_id in self.ids():
            try:
                record = self.get(week_id)
            except InvalidWeekIdError:
                logger.warning(f"Ignoring week stored under malformed id {week_id!r}")
                continue
            if record is not None:
                records.append(record)
        return records
