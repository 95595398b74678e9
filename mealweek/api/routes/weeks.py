from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from mealweek.domain.Week import WeekRecord
from mealweek.infra.Runtime import Runtime
from mealweek.logic.weeks.week_identity import (
    adjacent, current_week_id, end_date_of, format_range, parse_week_id, start_date_of, week_id_of,
)
from mealweek.utilities.constants import ISO_DATE_FORMAT
from mealweek.utilities.errors import InvalidDateError, LockStateError

router = APIRouter()

READ_ONLY_DETAIL = "Working from the read-only local copy; reconnect before editing"


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def _week_json(record: WeekRecord) -> dict:
    data = record.to_dict()
    data["label"] = format_range(record.id)
    return data


def _valid_week_id(week_id: str) -> str:
    try:
        parse_week_id(week_id)
    except InvalidDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return week_id


@router.get('/api/weeks')
def list_weeks(runtime: Runtime = Depends(get_runtime)):
    records = runtime.weeks.repository.all()
    return {"weeks": [_week_json(r) for r in records], "count": len(records)}


def _ensure_writable(runtime: Runtime):
    if runtime.sync.status.is_read_only:
        raise HTTPException(status_code=409, detail=READ_ONLY_DETAIL)


def _view_week(runtime: Runtime, week_id: str) -> WeekRecord:
    # in the read-only fallback an unknown week is shown as a draft without storing it
    if runtime.sync.status.is_read_only:
        return runtime.weeks.repository.get(week_id) or WeekRecord.new(week_id, datetime.now(timezone.utc))
    return runtime.weeks.get_or_create_week(week_id)


@router.get('/api/weeks/current')
def current_week(runtime: Runtime = Depends(get_runtime)):
    return _week_json(_view_week(runtime, current_week_id()))


@router.get('/api/weeks/{week_id}')
def get_week(week_id: str, runtime: Runtime = Depends(get_runtime)):
    return _week_json(_view_week(runtime, _valid_week_id(week_id)))


@router.post('/api/weeks/{week_id}/lock')
def lock_week(week_id: str, runtime: Runtime = Depends(get_runtime)):
    """Freeze the week's approved menu, stops and subscription terms."""
    week_id = _valid_week_id(week_id)
    _ensure_writable(runtime)
    return _week_json(runtime.weeks.lock(week_id))


@router.post('/api/weeks/{week_id}/unlock')
def unlock_week(week_id: str, runtime: Runtime = Depends(get_runtime)):
    week_id = _valid_week_id(week_id)
    _ensure_writable(runtime)
    try:
        record = runtime.weeks.unlock(week_id)
    except LockStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _week_json(record)


@router.get('/api/weeks/{week_id}/read-only')
def week_read_only(week_id: str, runtime: Runtime = Depends(get_runtime)):
    return {"weekId": week_id, "readOnly": runtime.weeks.is_read_only(_valid_week_id(week_id))}


@router.get('/api/weeks/{week_id}/adjacent')
def adjacent_week(week_id: str, direction: int = Query(default=1, ge=-1, le=1)):
    target = adjacent(_valid_week_id(week_id), direction)
    return {"weekId": target, "label": format_range(target)}


@router.get('/api/week-id')
def week_id_for_date(date: Optional[str] = Query(default=None, description="YYYY-MM-DD")):
    if not date:
        raise HTTPException(status_code=400, detail="'date' is required")
    try:
        week_id = week_id_of(date)
    except InvalidDateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "weekId": week_id,
        "label": format_range(week_id),
        "startDate": start_date_of(week_id).strftime(ISO_DATE_FORMAT),
        "endDate": end_date_of(week_id).strftime(ISO_DATE_FORMAT),
    }
