"""One-time bulk transfer of the local payload into the remote tables.

Safe to re-run: every entity is upserted by its natural key and child rows
(contacts, recipe ingredients) are replaced, so a second run updates rows
instead of duplicating them. ``run`` always returns a report and never raises.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from mealweek.events.Event_Bus import EventBus
from mealweek.events.event_helpers import publish_migration_completed
from mealweek.infra.Local_Store import LocalStore
from mealweek.infra.Remote_Tables import (
    UNIQUE_KEYS, client_to_row, driver_to_row, ingredient_to_row, menu_to_row, portal_to_row,
    recipe_to_row, week_to_row, write_client, write_recipe,
)
from mealweek.logic.migration.report import MigrationReport, MigrationStatus, TableStats
from mealweek.utilities.constants import SETTINGS_KEYS
from mealweek.utilities.errors import MealWeekError, MigrationRecordError, UnresolvedClientWarning

logger = logging.getLogger(__name__)

# Failures that belong to a single record; anything else aborts the run
RECORD_ERRORS = (MealWeekError, ValueError, TypeError, KeyError)


class MigrationEngine:
    def __init__(self, remote, local_store: LocalStore, clock: Optional[Callable[[], datetime]] = None,
                 bus: Optional[EventBus] = None):
        self.remote = remote
        self.local_store = local_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._bus = bus

    async def run(self, local_payload: Optional[Dict[str, Any]] = None) -> MigrationReport:
        started = self._clock()
        report = MigrationReport(started_at=started.isoformat())
        logger.info("=" * 60)
        logger.info("Starting local -> remote migration")
        logger.info("=" * 60)

        if not self.remote.is_configured:
            report.errors.append("Remote store not configured. Set MEALWEEK_REMOTE_URL and MEALWEEK_REMOTE_KEY in .env")
            return self._finish(report, started)
        if not await self.remote.probe_connectivity():
            report.errors.append("Remote store not reachable; nothing was migrated")
            return self._finish(report, started)

        payload = local_payload if local_payload is not None else self.local_store.load_payload()
        if payload is None:
            report.warnings.append("No local data found to migrate")
            report.success = True
            return self._finish(report, started)
        if not isinstance(payload, dict):
            report.errors.append(f"Local data is not an object: {type(payload).__name__}")
            return self._finish(report, started)

        try:
            await self._migrate_clients(payload, report)
            await self._migrate_named(payload.get("drivers"), "drivers", driver_to_row, report)
            await self._migrate_named(payload.get("masterIngredients"), "ingredients", ingredient_to_row, report)
            await self._migrate_recipes(payload, report)
            await self._migrate_weeks(payload, report)
            await self._migrate_menus(payload, report)
            await self._migrate_portal(payload, report)
            await self._migrate_settings(payload, report)
            report.success = report.summary.failed == 0
        except Exception as e:
            logger.exception("Migration aborted")
            report.errors.append(f"Migration error: {e}")
            report.success = False

        return self._finish(report, started)

    def _finish(self, report: MigrationReport, started: datetime) -> MigrationReport:
        completed = self._clock()
        report.completed_at = completed.isoformat()
        if report.success and report.tables:
            status = self.local_store.load_sync_status()
            status.update({"migrationComplete": True, "lastSyncedAt": report.completed_at})
            self.local_store.save_sync_status(status)
        self._log_summary(report, completed - started)
        if self._bus is not None:
            publish_migration_completed(self._bus, report.success, report.summary.model_dump(by_alias=True))
        return report

    async def _upsert(self, table: str, record: Dict[str, Any], stats: TableStats, report: MigrationReport):
        try:
            await self.remote.upsert_by_key(table, record, UNIQUE_KEYS[table])
        except RECORD_ERRORS as e:
            stats.failed += 1
            report.errors.append(str(MigrationRecordError(table, str(e), record)))
        else:
            stats.inserted += 1

    async def _migrate_clients(self, payload: Dict[str, Any], report: MigrationReport):
        clients = payload.get("clients") or []
        stats = TableStats(total=len(clients))
        logger.info(f"Migrating {len(clients)} clients...")
        for client in clients:
            if not isinstance(client, dict) or not client.get("name"):
                stats.skipped += 1
                report.warnings.append("Skipped client with no name")
                continue
            try:
                await write_client(self.remote, client)
            except RECORD_ERRORS as e:
                stats.failed += 1
                report.errors.append(str(MigrationRecordError("clients", str(e), client_to_row(client))))
            else:
                stats.inserted += 1
        report.add_table("clients", stats)

    async def _migrate_named(self, items, table: str, to_row, report: MigrationReport):
        items = items or []
        stats = TableStats(total=len(items))
        logger.info(f"Migrating {len(items)} {table}...")
        for item in items:
            if not isinstance(item, dict) or not item.get("name"):
                stats.skipped += 1
                report.warnings.append(f"Skipped {table} record with no name")
                continue
            try:
                row = to_row(item)
            except RECORD_ERRORS as e:
                stats.failed += 1
                report.errors.append(str(MigrationRecordError(table, str(e), item)))
                continue
            await self._upsert(table, row, stats, report)
        report.add_table(table, stats)

    @staticmethod
    def _mapping(payload: Dict[str, Any], key: str, table: str, report: MigrationReport) -> Dict[str, Any]:
        value = payload.get(key) or {}
        if isinstance(value, dict):
            return value
        logger.warning(f"'{key}' is a {type(value).__name__}, not an object; no {table} migrated")
        report.warnings.append(f"Skipped {table}: '{key}' is not an object")
        return {}

    async def _migrate_recipes(self, payload: Dict[str, Any], report: MigrationReport):
        recipes = self._mapping(payload, "recipes", "recipes", report)
        stats = TableStats(total=sum(len(items or []) for items in recipes.values()))
        logger.info(f"Migrating {stats.total} recipes...")
        for category, items in recipes.items():
            for recipe in items or []:
                if not isinstance(recipe, dict) or not recipe.get("name"):
                    stats.skipped += 1
                    report.warnings.append(f"Skipped recipe with no name in category {category}")
                    continue
                try:
                    await write_recipe(self.remote, recipe, category)
                except RECORD_ERRORS as e:
                    stats.failed += 1
                    report.errors.append(str(MigrationRecordError("recipes", str(e), recipe_to_row(recipe, category))))
                else:
                    stats.inserted += 1
        report.add_table("recipes", stats)

    async def _migrate_weeks(self, payload: Dict[str, Any], report: MigrationReport):
        weeks = list(self._mapping(payload, "weeks", "weeks", report).values())
        stats = TableStats(total=len(weeks))
        logger.info(f"Migrating {len(weeks)} weeks...")
        for week in weeks:
            if not isinstance(week, dict) or not (week.get("id") or week.get("weekId")):
                stats.skipped += 1
                report.warnings.append("Skipped week with no id")
                continue
            await self._upsert("weeks", week_to_row(week), stats, report)
        report.add_table("weeks", stats)

    async def _migrate_menus(self, payload: Dict[str, Any], report: MigrationReport):
        items = payload.get("menuItems") or []
        stats = TableStats(total=len(items))
        logger.info(f"Migrating {len(items)} menu items...")

        try:
            client_rows = await self.remote.get("clients")
        except MealWeekError as e:
            report.errors.append(f"menus: Failed to fetch clients for lookup: {e}")
            stats.failed = len(items)
            report.add_table("menus", stats)
            return

        lookup: Dict[str, str] = {}
        for row in client_rows:
            if row.get("name"):
                lookup[row["name"]] = row["id"]
        for row in client_rows:
            if row.get("display_name"):
                lookup.setdefault(row["display_name"], row["id"])

        for item in items:
            if not isinstance(item, dict) or not item.get("clientName") or not item.get("date"):
                stats.skipped += 1
                report.warnings.append("Skipped menu item with missing clientName or date")
                continue
            client_id = lookup.get(item["clientName"])
            if not client_id:
                stats.skipped += 1
                report.warnings.append(str(UnresolvedClientWarning(item["clientName"], "menu skipped, client not found in remote store")))
                continue
            await self._upsert("menus", menu_to_row(item, client_id), stats, report)
        report.add_table("menus", stats)

    async def _migrate_portal(self, payload: Dict[str, Any], report: MigrationReport):
        entries = list(self._mapping(payload, "clientPortalData", "client_portal_data", report).items())
        stats = TableStats(total=len(entries))
        logger.info(f"Migrating {len(entries)} client portal entries...")
        for client_name, data in entries:
            if not client_name:
                stats.skipped += 1
                report.warnings.append("Skipped client portal entry with no client name")
                continue
            await self._upsert("client_portal_data", portal_to_row(client_name, data), stats, report)
        report.add_table("client_portal_data", stats)

    async def _migrate_settings(self, payload: Dict[str, Any], report: MigrationReport):
        stats = TableStats(total=len(SETTINGS_KEYS))
        logger.info("Migrating app settings...")
        for key in SETTINGS_KEYS:
            if key not in payload:
                stats.skipped += 1
                continue
            await self._upsert("app_settings", {"key": key, "value": payload[key]}, stats, report)
        report.add_table("app_settings", stats)

    def _log_summary(self, report: MigrationReport, duration):
        logger.info("=" * 60)
        logger.info("Migration Complete")
        logger.info("=" * 60)
        logger.info(f"Status: {'SUCCESS' if report.success else 'COMPLETED WITH ERRORS'}")
        logger.info(f"Duration: {int(duration.total_seconds() * 1000)}ms")
        s = report.summary
        logger.info(f"Summary: total={s.total_records} inserted/updated={s.inserted} skipped={s.skipped} failed={s.failed}")
        for table, stats in report.tables.items():
            logger.info(f"  {table}: {stats.inserted} ok, {stats.skipped} skipped, {stats.failed} failed")
        for err in report.errors:
            logger.error(f"  - {err}")
        for warn in report.warnings:
            logger.warning(f"  - {warn}")
        logger.info("=" * 60)

    async def status(self) -> MigrationStatus:
        has_local = self.local_store.has_payload()
        complete = bool(self.local_store.load_sync_status().get("migrationComplete"))
        if not self.remote.is_configured:
            return MigrationStatus(configured=False, has_local_data=has_local, migration_complete=complete)
        try:
            count = await self.remote.count("clients")
        except MealWeekError as e:
            return MigrationStatus(configured=True, has_local_data=has_local,
                                   migration_complete=complete, error=str(e))
        return MigrationStatus(configured=True, has_data=count > 0, has_local_data=has_local,
                               remote_record_count=count, migration_complete=complete)
