"""Event helper utilities.

Publishing helpers for week and sync events. Every helper takes the bus
explicitly so each runtime can own its own bus.

Quick import:
    from mealweek.events.event_helpers import (
        publish_state_changed, publish_week_locked, publish_sync_failed
    )
"""
from __future__ import annotations
from typing import Iterable, Any, Optional
from .Event_Bus import (
    EventBus,
    STATE_CHANGED, WEEK_LOCKED, WEEK_UNLOCKED,
    SYNC_SUCCEEDED, SYNC_FAILED, MIGRATION_COMPLETED,
)

__all__ = [
    'publish_state_changed', 'publish_week_locked', 'publish_week_unlocked',
    'publish_sync_succeeded', 'publish_sync_failed', 'publish_migration_completed',
    'NOT_SAVED_MESSAGE',
]

NOT_SAVED_MESSAGE = "Your changes were NOT saved to the server. Edit again or use Force Sync to retry."


def publish_state_changed(bus: EventBus, keys: Iterable[str], reason: str = "edit"):
    """Publish a state.changed event."""
    bus.publish(STATE_CHANGED, {
        'keys': list(keys),
        'reason': reason
    })


def publish_week_locked(bus: EventBus, week_id: str, locked_at: Optional[str]):
    bus.publish(WEEK_LOCKED, {
        'week_id': week_id,
        'locked_at': locked_at
    })


def publish_week_unlocked(bus: EventBus, week_id: str, unlocked_at: Optional[str]):
    bus.publish(WEEK_UNLOCKED, {
        'week_id': week_id,
        'unlocked_at': unlocked_at
    })


def publish_sync_succeeded(bus: EventBus, synced_at: str, trigger: str):
    bus.publish(SYNC_SUCCEEDED, {
        'synced_at': synced_at,
        'trigger': trigger
    })


def publish_sync_failed(bus: EventBus, error: str, trigger: str):
    """Publish a sync.failed event carrying the user-facing 'not saved' message."""
    bus.publish(SYNC_FAILED, {
        'error': error,
        'trigger': trigger,
        'message': NOT_SAVED_MESSAGE
    })


def publish_migration_completed(bus: EventBus, success: bool, summary: Any):
    bus.publish(MIGRATION_COMPLETED, {
        'success': success,
        'summary': summary
    })
