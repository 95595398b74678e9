"""Client shapes: legacy flat records and subscription-with-contacts records.

Both shapes are valid inputs. ``normalize_client`` turns either into a fresh
``Subscription`` without touching the raw record, and is called wherever client
data is read (snapshot building, migration).
"""
from __future__ import annotations

import copy
from typing import Any, Dict, List, Optional, Union


class Contact:
    def __init__(self, full_name: str = "", display_name: str = "", email: str = "",
                 phone: str = "", address: str = ""):
        self.full_name = full_name
        self.display_name = display_name
        self.email = email
        self.phone = phone
        self.address = address

    def __repr__(self) -> str:
        return f"Contact({self.full_name!r}, address={self.address!r})"

    @staticmethod
    def from_dict(data) -> "Contact":
        d = data if isinstance(data, dict) else {}
        return Contact(
            full_name=d.get("fullName") or d.get("name") or "",
            display_name=d.get("displayName") or "",
            email=d.get("email") or "",
            phone=d.get("phone") or "",
            address=d.get("address") or "",
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "fullName": self.full_name,
            "displayName": self.display_name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
        }

    def normalized_address(self) -> str:
        return (self.address or "").strip().lower()


class Subscription:
    """Subscription terms as snapshotted at lock time."""

    def __init__(self, subscription_id: str, name: str = "", display_name: str = "",
                 portions: int = 1, meals_per_week: int = 0, frequency: str = "weekly",
                 status: str = "active", zone: str = "", delivery_day: str = "",
                 pickup: bool = False, contacts: Optional[List[Contact]] = None):
        self.subscription_id = subscription_id
        self.name = name
        self.display_name = display_name
        self.portions = portions
        self.meals_per_week = meals_per_week
        self.frequency = frequency
        self.status = status
        self.zone = zone
        self.delivery_day = delivery_day
        self.pickup = pickup
        self.contacts = contacts[:] if contacts else []

    def __repr__(self) -> str:
        return f"Subscription({self.subscription_id!r}, {self.display_name!r}, contacts={len(self.contacts)})"

    @staticmethod
    def from_dict(data) -> "Subscription":
        d = data if isinstance(data, dict) else {}
        return Subscription(
            subscription_id=str(d.get("subscriptionId") or d.get("id") or d.get("name") or ""),
            name=d.get("name") or "",
            display_name=d.get("displayName") or d.get("name") or "",
            portions=d.get("portions") or d.get("persons") or 1,
            meals_per_week=d.get("mealsPerWeek") or 0,
            frequency=d.get("frequency") or "weekly",
            status=d.get("status") or "active",
            zone=d.get("zone") or "",
            delivery_day=d.get("deliveryDay") or "",
            pickup=bool(d.get("pickup", False)),
            contacts=[Contact.from_dict(c) for c in (d.get("contacts") or [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subscriptionId": self.subscription_id,
            "name": self.name,
            "displayName": self.display_name,
            "portions": self.portions,
            "mealsPerWeek": self.meals_per_week,
            "frequency": self.frequency,
            "status": self.status,
            "zone": self.zone,
            "deliveryDay": self.delivery_day,
            "pickup": self.pickup,
            "contacts": [c.to_dict() for c in self.contacts],
        }


class LegacyClient:
    """Flat client record with contact details stored directly on the client."""

    def __init__(self, raw: Dict[str, Any]):
        self.raw = copy.deepcopy(raw)

    @property
    def name(self) -> str:
        return self.raw.get("name") or ""

    def to_subscription(self) -> Subscription:
        r = self.raw
        contacts_raw = r.get("contacts") or []
        if contacts_raw:
            contacts = [Contact.from_dict(c) for c in contacts_raw]
        else:
            contacts = [Contact(
                full_name=r.get("name") or "",
                email=r.get("email") or "",
                phone=r.get("phone") or "",
                address=r.get("address") or "",
            )]
        return Subscription(
            # deterministic fallback so re-locking yields identical snapshots
            subscription_id=str(r.get("id") or r.get("name") or ""),
            name=r.get("name") or "",
            display_name=r.get("displayName") or r.get("name") or "",
            portions=r.get("portions") or r.get("persons") or 1,
            meals_per_week=r.get("mealsPerWeek") or 0,
            frequency=r.get("frequency") or "weekly",
            status=r.get("status") or "active",
            zone=r.get("zone") or "",
            delivery_day=r.get("deliveryDay") or "",
            pickup=bool(r.get("pickup", False)),
            contacts=contacts,
        )


ClientShape = Union[LegacyClient, Subscription]


def parse_client(raw: Dict[str, Any]) -> ClientShape:
    """Pick the variant for a raw client record; ``subscriptionId`` marks the new shape."""
    if isinstance(raw, dict) and raw.get("subscriptionId"):
        return Subscription.from_dict(raw)
    return LegacyClient(raw if isinstance(raw, dict) else {})


def normalize_client(raw: Dict[str, Any]) -> Subscription:
    shape = parse_client(raw)
    if isinstance(shape, LegacyClient):
        return shape.to_subscription()
    return shape


def client_matches(raw: Dict[str, Any], client_name: str) -> bool:
    """Exact match on either ``name`` or ``displayName``; empty names never match."""
    if not client_name or not isinstance(raw, dict):
        return False
    return raw.get("name") == client_name or raw.get("displayName") == client_name


def resolve_client(clients: List[Dict[str, Any]], client_name: str) -> Optional[Dict[str, Any]]:
    for raw in clients or []:
        if client_matches(raw, client_name):
            return raw
    return None
