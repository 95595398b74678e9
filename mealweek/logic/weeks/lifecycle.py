"""Week lifecycle controller: draft -> locked -> draft.

Only this controller writes a week's ``status``, ``snapshot`` and lock
timestamps. Lock is idempotent; unlocking a week that is not locked raises
``LockStateError`` and leaves the record untouched.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, timezone
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from mealweek.domain.AppState import AppState
from mealweek.domain.Week import WeekRecord
from mealweek.events.event_helpers import publish_week_locked, publish_week_unlocked
from mealweek.infra.Week_Repository import WeekRepository
from mealweek.logic.weeks.snapshot_builder import build_snapshot
from mealweek.logic.weeks.week_identity import current_week_id, start_date_of
from mealweek.utilities.constants import STATUS_DRAFT, STATUS_LOCKED
from mealweek.utilities.errors import LockStateError

logger = logging.getLogger(__name__)


class WeekLifecycle:
    def __init__(self, state: AppState, repository: Optional[WeekRepository] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self._state = state
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._repo = repository or WeekRepository(state, clock=self._clock)
        self._guard = Lock()
        self._week_locks: Dict[str, Lock] = defaultdict(Lock)

    @property
    def repository(self) -> WeekRepository:
        return self._repo

    def _lock_for(self, week_id: str) -> Lock:
        with self._guard:
            return self._week_locks[week_id]

    def get_or_create_week(self, week_id: str) -> WeekRecord:
        return self._repo.get_or_create(week_id)

    def lock(self, week_id: str, menu_items: Optional[List[Dict[str, Any]]] = None,
             clients: Optional[List[Dict[str, Any]]] = None) -> WeekRecord:
        """Freeze the week's approved menu and delivery data into a snapshot.

        ``menu_items`` and ``clients`` default to the full live collections in
        the state tree. Locking an already locked week returns it unchanged.
        """
        with self._lock_for(week_id):
            record = self._repo.get_or_create(week_id)
            if record.status == STATUS_LOCKED:
                logger.info(f"Week {week_id} already locked at {record.locked_at}; nothing to do")
                return record

            if menu_items is None:
                menu_items = self._state.get("menuItems", [])
            if clients is None:
                clients = self._state.get("clients", [])

            record.snapshot = build_snapshot(week_id, menu_items, clients)
            record.status = STATUS_LOCKED
            record.locked_at = self._clock().isoformat()
            self._repo.save(record, reason="week.locked")

        logger.info(f"Locked week {week_id}: {len(record.snapshot.menu)} clients, {len(record.snapshot.stops)} stops")
        publish_week_locked(self._state.bus, week_id, record.locked_at)
        return record

    def unlock(self, week_id: str) -> WeekRecord:
        """Return a locked week to draft; the prior snapshot is kept as ``last_snapshot``."""
        with self._lock_for(week_id):
            record = self._repo.get(week_id)
            if record is None or record.status != STATUS_LOCKED:
                raise LockStateError(week_id, record.status if record else None)

            record.status = STATUS_DRAFT
            record.unlocked_at = self._clock().isoformat()
            record.last_snapshot = record.snapshot
            record.snapshot = None
            self._repo.save(record, reason="week.unlocked")

        logger.info(f"Unlocked week {week_id}")
        publish_week_unlocked(self._state.bus, week_id, record.unlocked_at)
        return record

    def is_read_only(self, week_id: str, today: Optional[date] = None) -> bool:
        """True for a locked week that ended before the current week began (advisory)."""
        record = self._repo.get(week_id)
        if record is None or record.status != STATUS_LOCKED:
            return False
        today = today or self._clock().date()
        return record.end_date < start_date_of(current_week_id(today))
