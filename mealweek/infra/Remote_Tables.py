"""Row transforms between the camelCase payload and the remote snake_case tables.

Also the two state gateways the sync engine persists through:
``RemoteStateGateway`` (remote tables) and ``LocalStateGateway`` (local store
only). The single-entity writers below are shared with the migration engine so
both paths use the same upsert keys and the same child replace strategy.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from mealweek.domain.AppState import default_payload
from mealweek.domain.Client import normalize_client
from mealweek.infra.Local_Store import LocalStore
from mealweek.utilities.constants import RECIPE_CATEGORIES, SETTINGS_KEYS, STATUS_DRAFT

logger = logging.getLogger(__name__)

# Natural upsert keys per table
UNIQUE_KEYS: Dict[str, str] = {
    "clients": "name",
    "drivers": "name",
    "ingredients": "name",
    "recipes": "name,category",
    "weeks": "id",
    "menus": "local_id",
    "client_portal_data": "client_name",
    "app_settings": "key",
}


def _num(value) -> Optional[float]:
    if value in (None, ""):
        return None
    return float(value)


def _str_num(value) -> str:
    return "" if value in (None, "") else str(value)


def menu_local_id(item: Dict[str, Any]) -> str:
    """Stable identity of a menu item: its own id, else a key built from its content."""
    if item.get("id"):
        return str(item["id"])
    parts = [item.get(k) or "" for k in ("clientName", "date", "protein", "veg", "starch")]
    return "|".join(str(p) for p in parts)


# --- clients / contacts ---
def client_to_row(client: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": client.get("name"),
        "subscription_id": client.get("subscriptionId") or None,
        "display_name": client.get("displayName") or None,
        "persons": client.get("persons") or 2,
        "portions": client.get("portions") or 4,
        "address": client.get("address") or None,
        "email": client.get("email") or None,
        "phone": client.get("phone") or None,
        "notes": client.get("notes") or None,
        "meals_per_week": client.get("mealsPerWeek") or 3,
        "frequency": client.get("frequency") or "weekly",
        "status": client.get("status") or "active",
        "paused_date": client.get("pausedDate") or None,
        "billing_notes": client.get("billingNotes") or None,
        "delivery_day": client.get("deliveryDay") or None,
        "zone": client.get("zone") or None,
        "pickup": bool(client.get("pickup", False)),
        "chef_choice": client.get("chefChoice") is not False,
        "dietary_restrictions": client.get("dietaryRestrictions") or None,
        "access_code": client.get("accessCode") or None,
        "delivery_dates": client.get("deliveryDates") or [],
    }


def contact_rows(client_id: str, client: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Contact rows for a client; legacy clients contribute their synthesized contact."""
    rows = []
    for contact in normalize_client(client).contacts:
        if not (contact.full_name or contact.email or contact.phone):
            continue
        rows.append({
            "client_id": client_id,
            "full_name": contact.full_name or None,
            "display_name": contact.display_name or None,
            "email": contact.email or None,
            "phone": contact.phone or None,
            "address": contact.address or None,
            "is_primary": not rows,
        })
    return rows


def client_from_row(row: Dict[str, Any], contacts: List[Dict[str, Any]]) -> Dict[str, Any]:
    client = {
        "id": row.get("id"),
        "name": row.get("name"),
        "displayName": row.get("display_name") or "",
        "persons": row.get("persons") or 2,
        "portions": row.get("portions") or 4,
        "address": row.get("address") or "",
        "email": row.get("email") or "",
        "phone": row.get("phone") or "",
        "notes": row.get("notes") or "",
        "mealsPerWeek": row.get("meals_per_week") or 3,
        "frequency": row.get("frequency") or "weekly",
        "status": row.get("status") or "active",
        "pausedDate": row.get("paused_date") or "",
        "billingNotes": row.get("billing_notes") or "",
        "deliveryDay": row.get("delivery_day") or "",
        "zone": row.get("zone") or "",
        "pickup": bool(row.get("pickup")),
        "chefChoice": row.get("chef_choice") is not False,
        "dietaryRestrictions": row.get("dietary_restrictions") or "",
        "accessCode": row.get("access_code") or "",
        "deliveryDates": row.get("delivery_dates") or [],
        "contacts": [{
            "fullName": c.get("full_name") or "",
            "displayName": c.get("display_name") or "",
            "email": c.get("email") or "",
            "phone": c.get("phone") or "",
            "address": c.get("address") or "",
        } for c in sorted(contacts, key=lambda c: not c.get("is_primary"))],
    }
    if row.get("subscription_id"):
        client["subscriptionId"] = row["subscription_id"]
    return client


# --- recipes / ingredients ---
def recipe_to_row(recipe: Dict[str, Any], category: str) -> Dict[str, Any]:
    return {
        "name": recipe.get("name"),
        "category": category,
        "instructions": recipe.get("instructions") or None,
    }


def recipe_ingredient_rows(recipe_id: str, recipe: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{
        "recipe_id": recipe_id,
        "ingredient_name": ing["name"],
        "quantity": _num(ing.get("quantity")),
        "unit": ing.get("unit") or "oz",
        "cost": _num(ing.get("cost")),
        "source": ing.get("source") or None,
        "section": ing.get("section") or "Other",
    } for ing in recipe.get("ingredients") or [] if isinstance(ing, dict) and ing.get("name")]


def recipe_from_row(row: Dict[str, Any], ingredients: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "name": row.get("name"),
        "instructions": row.get("instructions") or "",
        "ingredients": [{
            "name": ri.get("ingredient_name"),
            "quantity": _str_num(ri.get("quantity")),
            "unit": ri.get("unit") or "oz",
            "cost": _str_num(ri.get("cost")),
            "source": ri.get("source") or "",
            "section": ri.get("section") or "Other",
        } for ri in ingredients],
    }


def ingredient_to_row(ing: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": ing.get("name"),
        "cost": _num(ing.get("cost")),
        "unit": ing.get("unit") or "oz",
        "source": ing.get("source") or None,
        "section": ing.get("section") or "Other",
    }


def ingredient_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "cost": _str_num(row.get("cost")),
        "unit": row.get("unit") or "oz",
        "source": row.get("source") or "",
        "section": row.get("section") or "Other",
    }


# --- menus ---
def menu_to_row(item: Dict[str, Any], client_id: Optional[str]) -> Dict[str, Any]:
    return {
        "local_id": menu_local_id(item),
        "client_id": client_id,
        "client_name": item.get("clientName"),
        "date": item.get("date"),
        "protein": item.get("protein") or None,
        "veg": item.get("veg") or None,
        "starch": item.get("starch") or None,
        "extras": item.get("extras") or [],
        "portions": item.get("portions") or 1,
        "approved": item.get("approved") is True,
    }


def menu_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("local_id") or row.get("id"),
        "clientName": row.get("client_name"),
        "date": row.get("date"),
        "protein": row.get("protein") or "",
        "veg": row.get("veg") or "",
        "starch": row.get("starch") or "",
        "extras": row.get("extras") or [],
        "portions": row.get("portions") or 1,
        "approved": bool(row.get("approved")),
    }


# --- weeks ---
def week_to_row(week: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": week.get("id") or week.get("weekId"),
        "start_date": week.get("startDate"),
        "end_date": week.get("endDate"),
        "status": week.get("status") or STATUS_DRAFT,
        "created_at": week.get("createdAt"),
        "snapshot": week.get("snapshot") or None,
        "last_snapshot": week.get("lastSnapshot") or None,
        "kds_status": week.get("kdsStatus") or {},
        "ready_for_delivery": week.get("readyForDelivery") or [],
        "delivery_log": week.get("deliveryLog") or [],
        "grocery_bills": week.get("groceryBills") or [],
        "locked_at": week.get("lockedAt") or None,
        "unlocked_at": week.get("unlockedAt") or None,
    }


def week_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "startDate": row.get("start_date"),
        "endDate": row.get("end_date"),
        "status": row.get("status") or STATUS_DRAFT,
        "createdAt": row.get("created_at"),
        "snapshot": row.get("snapshot") or None,
        "lastSnapshot": row.get("last_snapshot") or None,
        "kdsStatus": row.get("kds_status") or {},
        "readyForDelivery": row.get("ready_for_delivery") or [],
        "deliveryLog": row.get("delivery_log") or [],
        "groceryBills": row.get("grocery_bills") or [],
        "lockedAt": row.get("locked_at"),
        "unlockedAt": row.get("unlocked_at"),
    }


# --- drivers / portal / settings ---
def driver_to_row(driver: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "name": driver.get("name"),
        "phone": driver.get("phone") or None,
        "zone": driver.get("zone") or None,
        "access_code": driver.get("accessCode") or None,
    }


def driver_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "name": row.get("name"),
        "phone": row.get("phone") or "",
        "zone": row.get("zone") or "",
        "accessCode": row.get("access_code") or "",
    }


def portal_to_row(client_name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    data = data if isinstance(data, dict) else {}
    return {
        "client_name": client_name,
        "selected_dates": data.get("selectedDates") or [],
        "ingredient_picks": data.get("ingredientPicks") or {},
        "notes": data.get("notes") or None,
    }


def portal_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "selectedDates": row.get("selected_dates") or [],
        "ingredientPicks": row.get("ingredient_picks") or {},
        "notes": row.get("notes") or "",
    }


# --- single-entity writers (shared with migration) ---
async def write_client(remote, client: Dict[str, Any]) -> Dict[str, Any]:
    """Upsert a client by name, then replace its contacts."""
    row = await remote.upsert_by_key("clients", client_to_row(client), UNIQUE_KEYS["clients"])
    contacts = contact_rows(row["id"], client)
    await remote.delete("contacts", {"client_id": row["id"]})
    if contacts:
        await remote.insert("contacts", contacts)
    return row


async def write_recipe(remote, recipe: Dict[str, Any], category: str) -> Dict[str, Any]:
    """Upsert a recipe by (name, category), then replace its ingredients."""
    row = await remote.upsert_by_key("recipes", recipe_to_row(recipe, category), UNIQUE_KEYS["recipes"])
    ingredients = recipe_ingredient_rows(row["id"], recipe)
    await remote.delete("recipe_ingredients", {"recipe_id": row["id"]})
    if ingredients:
        await remote.insert("recipe_ingredients", ingredients)
    return row


class RemoteStateGateway:
    """Reads and writes the whole application payload against the remote tables."""

    name = "remote"

    def __init__(self, remote):
        self.remote = remote

    @property
    def is_configured(self) -> bool:
        return self.remote.is_configured

    async def probe_connectivity(self) -> bool:
        return await self.remote.probe_connectivity()

    async def fetch_state(self) -> Dict[str, Any]:
        r = self.remote
        client_rows = await r.get("clients", order="name.asc")
        contacts_by_client = defaultdict(list)
        for c in await r.get("contacts"):
            contacts_by_client[c.get("client_id")].append(c)

        recipe_rows = await r.get("recipes", order="name.asc")
        ingredients_by_recipe = defaultdict(list)
        for ri in await r.get("recipe_ingredients"):
            ingredients_by_recipe[ri.get("recipe_id")].append(ri)

        recipes: Dict[str, List[Dict[str, Any]]] = {c: [] for c in RECIPE_CATEGORIES}
        for row in recipe_rows:
            category = row.get("category") or "protein"
            recipes.setdefault(category, []).append(recipe_from_row(row, ingredients_by_recipe[row.get("id")]))

        settings = {s.get("key"): s.get("value") for s in await r.get("app_settings")}
        defaults = default_payload()

        payload = {
            "clients": [client_from_row(row, contacts_by_client[row.get("id")]) for row in client_rows],
            "recipes": recipes,
            "masterIngredients": [ingredient_from_row(row) for row in await r.get("ingredients", order="name.asc")],
            "menuItems": [menu_from_row(row) for row in await r.get("menus", order="date.desc")],
            "weeks": {row["id"]: week_from_row(row) for row in await r.get("weeks", order="id.desc") if row.get("id")},
            "drivers": [driver_from_row(row) for row in await r.get("drivers", order="name.asc")],
            "clientPortalData": {row["client_name"]: portal_from_row(row)
                                 for row in await r.get("client_portal_data") if row.get("client_name")},
        }
        for key in SETTINGS_KEYS:
            value = settings.get(key)
            payload[key] = value if value is not None else defaults[key]
        return payload

    async def save_state(self, payload: Dict[str, Any]) -> None:
        """Write every entity; the first failing write aborts the save and propagates."""
        r = self.remote
        client_ids = {}
        clients = [c for c in payload.get("clients") or [] if c.get("name")]
        for client in clients:
            row = await write_client(r, client)
            client_ids[client["name"]] = row["id"]
        for client in clients:
            if client.get("displayName"):
                client_ids.setdefault(client["displayName"], client_ids[client["name"]])

        for driver in payload.get("drivers") or []:
            if driver.get("name"):
                await r.upsert_by_key("drivers", driver_to_row(driver), UNIQUE_KEYS["drivers"])

        for ing in payload.get("masterIngredients") or []:
            if ing.get("name"):
                await r.upsert_by_key("ingredients", ingredient_to_row(ing), UNIQUE_KEYS["ingredients"])

        for category, items in (payload.get("recipes") or {}).items():
            for recipe in items or []:
                if recipe.get("name"):
                    await write_recipe(r, recipe, category)

        for week in (payload.get("weeks") or {}).values():
            if week.get("id") or week.get("weekId"):
                await r.upsert_by_key("weeks", week_to_row(week), UNIQUE_KEYS["weeks"])

        for item in payload.get("menuItems") or []:
            client_id = client_ids.get(item.get("clientName"))
            if client_id is None:
                # kept by client_name so the next load still returns it
                logger.warning(f"Menu item {menu_local_id(item)!r} names no known client; saving it unlinked")
            await r.upsert_by_key("menus", menu_to_row(item, client_id), UNIQUE_KEYS["menus"])

        for client_name, data in (payload.get("clientPortalData") or {}).items():
            await r.upsert_by_key("client_portal_data", portal_to_row(client_name, data),
                                  UNIQUE_KEYS["client_portal_data"])

        for key in SETTINGS_KEYS:
            value = payload.get(key)
            if value is not None:
                await r.upsert_by_key("app_settings", {"key": key, "value": value}, UNIQUE_KEYS["app_settings"])


class LocalStateGateway:
    """Local data mode: the payload never leaves this machine."""

    name = "local"
    is_configured = True

    def __init__(self, local_store: LocalStore):
        self.local_store = local_store

    async def probe_connectivity(self) -> bool:
        return True

    async def fetch_state(self) -> Optional[Dict[str, Any]]:
        return self.local_store.load_payload()

    async def save_state(self, payload: Dict[str, Any]) -> None:
        self.local_store.save_payload(payload)
