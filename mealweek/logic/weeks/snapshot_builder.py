"""Snapshot builder.

Provides build_snapshot(week_id, menu_items, clients): the frozen menu, delivery
stops and subscription terms of a week at the moment it is locked.
"""
import logging
from typing import Any, Dict, List

from mealweek.domain.Client import Subscription, normalize_client, resolve_client
from mealweek.domain.Snapshot import Snapshot
from mealweek.logic.weeks.week_identity import in_range
from mealweek.utilities.errors import InvalidDateError, UnresolvedClientWarning

logger = logging.getLogger(__name__)


def _menu_entry(item: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": item.get("id"),
        "date": item.get("date"),
        "protein": item.get("protein"),
        "veg": item.get("veg"),
        "starch": item.get("starch"),
        "extras": list(item.get("extras") or []),
        "portions": item.get("portions"),
    }


def _approved_in_week(item: Dict[str, Any], week_id: str) -> bool:
    if item.get("approved") is not True:
        return False
    try:
        return in_range(item.get("date"), week_id)
    except InvalidDateError as e:
        logger.warning(f"Menu item {item.get('id')!r} excluded from {week_id}: {e}")
        return False


def group_menu(week_id: str, menu_items: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Approved items dated inside the week, grouped by client name in insertion order."""
    menu: Dict[str, List[Dict[str, Any]]] = {}
    for item in menu_items or []:
        if not isinstance(item, dict) or not _approved_in_week(item, week_id):
            continue
        menu.setdefault(item.get("clientName") or "", []).append(_menu_entry(item))
    return menu


def build_stops(client_name: str, subscription: Subscription) -> List[Dict[str, Any]]:
    """One stop per distinct normalized contact address, in first-seen order."""
    if subscription.pickup:
        return []
    groups: Dict[str, Dict[str, Any]] = {}
    for contact in subscription.contacts:
        key = contact.normalized_address()
        if not key:
            continue
        group = groups.setdefault(key, {"address": contact.address, "contacts": []})
        group["contacts"].append({
            "fullName": contact.full_name,
            "displayName": contact.display_name,
            "phone": contact.phone,
            "email": contact.email,
        })
    stops = []
    for idx, group in enumerate(groups.values()):
        stops.append({
            "subscriptionId": subscription.subscription_id,
            "clientName": client_name,
            "displayName": subscription.display_name,
            "portions": subscription.portions,
            "zone": subscription.zone,
            "deliveryDay": subscription.delivery_day,
            "address": group["address"],
            "contacts": group["contacts"],
            "stopIndex": idx,
        })
    return stops


def build_snapshot(week_id: str, menu_items: List[Dict[str, Any]], clients: List[Dict[str, Any]]) -> Snapshot:
    """Derive the snapshot for a week from the full live menu and client collections.

    Args:
        week_id: week being locked (``YYYY-Www``).
        menu_items: every menu item; filtering to the week happens here.
        clients: every client record, legacy or subscription shaped.

    Returns:
        Snapshot with ``menu`` (client -> entries), ``stops`` and
        ``subscriptions`` (client -> terms at lock time). A client whose record
        cannot be resolved keeps its menu entries but gets no stops or terms.
    """
    menu = group_menu(week_id, menu_items)
    stops: List[Dict[str, Any]] = []
    subscriptions: Dict[str, Dict[str, Any]] = {}

    for client_name in menu:
        raw = resolve_client(clients, client_name)
        if raw is None:
            logger.warning(str(UnresolvedClientWarning(client_name, f"no stops or terms in {week_id}")))
            continue
        subscription = normalize_client(raw)
        subscriptions[client_name] = subscription.to_dict()
        stops.extend(build_stops(client_name, subscription))

    return Snapshot(menu=menu, stops=stops, subscriptions=subscriptions)


__all__ = ['build_snapshot', 'group_menu', 'build_stops']
