"""Snapshot value object: the frozen menu, stops and subscriptions of a locked week."""
from __future__ import annotations

import json
from types import MappingProxyType
from typing import Any, Mapping, Optional


def freeze(value: Any) -> Any:
    """Recursively turn dicts into read-only mappings and lists into tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of ``freeze``: fresh, mutable JSON-shaped copies."""
    if isinstance(value, Mapping):
        return {k: thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [thaw(v) for v in value]
    return value


class Snapshot:
    __slots__ = ("_menu", "_stops", "_subscriptions")

    def __init__(self, menu: Optional[Mapping] = None, stops=None, subscriptions: Optional[Mapping] = None):
        object.__setattr__(self, "_menu", freeze(menu or {}))
        object.__setattr__(self, "_stops", freeze(stops or []))
        object.__setattr__(self, "_subscriptions", freeze(subscriptions or {}))

    def __setattr__(self, name, value):
        raise AttributeError("Snapshot is immutable; lock the week again to replace it")

    def __delattr__(self, name):
        raise AttributeError("Snapshot is immutable")

    @property
    def menu(self) -> Mapping:
        return self._menu

    @property
    def stops(self) -> tuple:
        return self._stops

    @property
    def subscriptions(self) -> Mapping:
        return self._subscriptions

    def __eq__(self, other) -> bool:
        if not isinstance(other, Snapshot):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.to_json())

    def __repr__(self) -> str:
        return f"Snapshot(clients={len(self._menu)}, stops={len(self._stops)})"

    def to_dict(self) -> dict:
        return {
            "menu": thaw(self._menu),
            "stops": thaw(self._stops),
            "subscriptions": thaw(self._subscriptions),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)

    @staticmethod
    def from_dict(data) -> Optional["Snapshot"]:
        if not isinstance(data, Mapping):
            return None
        return Snapshot(
            menu=data.get("menu") or {},
            stops=data.get("stops") or [],
            subscriptions=data.get("subscriptions") or {},
        )
