"""Simple Event Bus / Observer implementation for state, week and sync events.

Event names:
  state.changed       -> payload {"keys": [str, ...], "reason": str}
  week.locked         -> payload {"week_id": str, "locked_at": str}
  week.unlocked       -> payload {"week_id": str, "unlocked_at": str}
  sync.succeeded      -> payload {"synced_at": str, "trigger": str}
  sync.failed         -> payload {"error": str, "trigger": str, "message": str}
  migration.completed -> payload {"success": bool, "summary": dict}

Subscribers are callables taking (event_name, payload).
"""
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Callable, Any, Dict, List

logger = logging.getLogger(__name__)

# --- Event name constants (used across modules) ---
STATE_CHANGED = "state.changed"
WEEK_LOCKED = "week.locked"
WEEK_UNLOCKED = "week.unlocked"
SYNC_SUCCEEDED = "sync.succeeded"
SYNC_FAILED = "sync.failed"
MIGRATION_COMPLETED = "migration.completed"


class EventBus:
	def __init__(self):
		self._subscribers: Dict[str, List[Callable[[str, Any], None]]] = defaultdict(list)

	def subscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		if callback not in self._subscribers[event_name]:
			self._subscribers[event_name].append(callback)

	def unsubscribe(self, event_name: str, callback: Callable[[str, Any], None]):
		try:
			self._subscribers[event_name].remove(callback)
		except (ValueError, KeyError):
			pass

	def subscriber_count(self, event_name: str) -> int:
		return len(self._subscribers.get(event_name, []))

	def clear(self):
		"""Drop every subscriber (application teardown)."""
		self._subscribers.clear()

	def publish(self, event_name: str, payload: Any = None):
		for cb in list(self._subscribers.get(event_name, [])):
			try:
				cb(event_name, payload)
			except Exception:
				# one broken subscriber must not starve the others
				logger.exception("[EventBus] Error delivering %s to %r", event_name, cb)


__all__ = [
	'EventBus',
	'STATE_CHANGED', 'WEEK_LOCKED', 'WEEK_UNLOCKED',
	'SYNC_SUCCEEDED', 'SYNC_FAILED', 'MIGRATION_COMPLETED',
]
