"""Web-facing observers for week and sync events.

``NotificationFeed`` subscribes to an event bus for:
  - sync.failed / sync.succeeded
  - week.locked / week.unlocked
  - migration.completed

and stores a lightweight in-memory ring buffer of recent notifications that
the web layer polls (``/api/events?since=<cursor>``) so a failed save is
shown to the user right away.

Design:
  * Each notification gets an auto-increment integer id (cursor) so clients
    can request only newer ones.
  * Thread-safety with a simple Lock (FastAPI sync endpoints run in a thread
    pool).
  * MAX_EVENTS caps memory.
"""
from __future__ import annotations
from typing import List, Dict, Any, Optional
from threading import Lock
from datetime import datetime, timezone

from .Event_Bus import (
    EventBus, SYNC_FAILED, SYNC_SUCCEEDED, WEEK_LOCKED, WEEK_UNLOCKED, MIGRATION_COMPLETED
)

MAX_EVENTS = 300

_LEVELS = {
    SYNC_FAILED: 'error',
    SYNC_SUCCEEDED: 'info',
    WEEK_LOCKED: 'info',
    WEEK_UNLOCKED: 'warning',
    MIGRATION_COMPLETED: 'info',
}


class NotificationFeed:
    def __init__(self, max_events: int = MAX_EVENTS):
        self._lock = Lock()
        self._events: List[Dict[str, Any]] = []
        self._next_id = 1
        self._max_events = max_events
        self._bus: Optional[EventBus] = None

    def _record(self, event_name: str, payload: Any):  # signature expected by EventBus
        with self._lock:
            evt = {
                'id': self._next_id,
                'type': event_name,
                'level': _LEVELS.get(event_name, 'info'),
                'ts': datetime.now(timezone.utc).isoformat()
            }
            if isinstance(payload, dict):
                for k in ('week_id', 'message', 'error', 'trigger', 'synced_at', 'success'):
                    if k in payload:
                        evt[k] = payload[k]
            if event_name == MIGRATION_COMPLETED and isinstance(payload, dict) and payload.get('success') is False:
                evt['level'] = 'error'
            self._events.append(evt)
            self._next_id += 1
            # Trim buffer
            if len(self._events) > self._max_events:
                del self._events[: len(self._events) - self._max_events]

    def start(self, bus: EventBus):
        """Idempotent start: subscribe observers once."""
        if self._bus is bus:
            return
        self._bus = bus
        for name in _LEVELS:
            bus.subscribe(name, self._record)

    def stop(self):
        if self._bus is None:
            return
        for name in _LEVELS:
            self._bus.unsubscribe(name, self._record)
        self._bus = None

    def get_events(self, since: int | None = None) -> Dict[str, Any]:
        """Return notifications newer than 'since' (exclusive).

        If since is None, returns the whole buffer. ``next_cursor`` is the
        largest id so the client can poll with since=next_cursor.
        """
        with self._lock:
            if since is None:
                data = list(self._events)
            else:
                data = [e for e in self._events if e['id'] > since]
            next_cursor = self._events[-1]['id'] if self._events else since or 0
        return {'events': data, 'next_cursor': next_cursor}


__all__ = ['NotificationFeed', 'MAX_EVENTS']
