"""Application state tree: the JSON-shaped payload every collaborator reads and mutates.

The container is created at application start and torn down at the end. Each
mutation publishes ``state.changed`` so the sync engine can persist it.
"""
from __future__ import annotations

import copy
from threading import RLock
from typing import Any, Dict, Iterable, Optional

from mealweek.events.Event_Bus import EventBus
from mealweek.events.event_helpers import publish_state_changed
from mealweek.utilities.constants import RECIPE_CATEGORIES


def default_payload() -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "clients": [],
        "recipes": {c: [] for c in RECIPE_CATEGORIES},
        "masterIngredients": [],
        "menuItems": [],
        "weeks": {},
        "drivers": [],
        "clientPortalData": {},
        "orderHistory": [],
        "weeklyTasks": {},
        "deliveryLog": [],
        "bagReminders": {},
        "readyForDelivery": [],
        "blockedDates": [],
        "adminSettings": {"routeStartAddress": ""},
        "customTasks": [],
        "groceryBills": [],
        "units": None,
    }
    return payload


def merge_with_defaults(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill missing top-level keys so older payloads stay loadable."""
    merged = default_payload()
    if isinstance(payload, dict):
        for key, value in payload.items():
            if value is not None:
                merged[key] = copy.deepcopy(value)
    return merged


class AppState:
    def __init__(self, bus: EventBus, payload: Optional[Dict[str, Any]] = None):
        self._bus = bus
        self._lock = RLock()
        self._data = merge_with_defaults(payload)
        self._closed = False

    @property
    def bus(self) -> EventBus:
        return self._bus

    def get(self, key: str, default: Any = None) -> Any:
        """Deep copy of one top-level collection."""
        with self._lock:
            return copy.deepcopy(self._data.get(key, default))

    def snapshot(self) -> Dict[str, Any]:
        """Deep copy of the whole tree (what gets persisted)."""
        with self._lock:
            return copy.deepcopy(self._data)

    def set(self, key: str, value: Any, reason: str = "edit"):
        with self._lock:
            self._data[key] = copy.deepcopy(value)
        self._notify([key], reason)

    def update(self, changes: Dict[str, Any], reason: str = "edit"):
        with self._lock:
            for key, value in changes.items():
                self._data[key] = copy.deepcopy(value)
        self._notify(changes.keys(), reason)

    def replace(self, payload: Optional[Dict[str, Any]], reason: str = "load"):
        """Swap the entire tree, e.g. after the initial load."""
        with self._lock:
            self._data = merge_with_defaults(payload)
            keys = list(self._data.keys())
        self._notify(keys, reason)

    def get_week(self, week_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            week = self._data["weeks"].get(week_id)
            return copy.deepcopy(week) if week is not None else None

    def put_week(self, week_id: str, record: Dict[str, Any], reason: str = "week"):
        with self._lock:
            weeks = self._data.setdefault("weeks", {})
            weeks[week_id] = copy.deepcopy(record)
        self._notify(["weeks"], reason)

    def week_ids(self):
        with self._lock:
            return sorted(self._data["weeks"].keys())

    def close(self):
        self._closed = True

    def _notify(self, keys: Iterable[str], reason: str):
        if self._closed:
            return
        publish_state_changed(self._bus, keys, reason)
