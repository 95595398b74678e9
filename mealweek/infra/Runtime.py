"""Application runtime: owns the state container and every engine built on it.

Created at application start, torn down at the end (timers cancelled, bus
subscribers dropped). Tests build their own runtime with an in-memory remote
store and a temporary local store.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from mealweek.domain.AppState import AppState
from mealweek.events.Event_Bus import EventBus
from mealweek.events.web_observers import NotificationFeed
from mealweek.infra.Local_Store import LocalStore
from mealweek.infra.Remote_Store import build_remote_store
from mealweek.infra.Remote_Tables import RemoteStateGateway
from mealweek.infra.paths import LOCAL_STORE_FILE
from mealweek.logic.migration.engine import MigrationEngine
from mealweek.logic.migration.report import MigrationReport, MigrationStatus
from mealweek.logic.sync.engine import SyncEngine
from mealweek.logic.weeks.lifecycle import WeekLifecycle
from mealweek.utilities.backup import BackupManager
from mealweek.utilities.config import (
    CONNECTIVITY_PROBE_SECONDS, REMOTE_BACKEND, REMOTE_KEY, REMOTE_TIMEOUT_SECONDS, REMOTE_URL,
    SYNC_DEBOUNCE_SECONDS,
)

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(self, remote=None, local_store: Optional[LocalStore] = None, bus: Optional[EventBus] = None,
                 scheduler=None, clock: Optional[Callable[[], datetime]] = None,
                 data_mode: Optional[str] = None, local_store_path: Optional[Path] = None,
                 debounce_seconds: float = SYNC_DEBOUNCE_SECONDS,
                 probe_interval: float = CONNECTIVITY_PROBE_SECONDS):
        self.bus = bus or EventBus()
        self.state = AppState(self.bus)
        self.local_store = local_store or LocalStore(local_store_path or LOCAL_STORE_FILE)
        self.remote = remote or build_remote_store(REMOTE_BACKEND, REMOTE_URL, REMOTE_KEY, REMOTE_TIMEOUT_SECONDS)
        self.feed = NotificationFeed()
        self.backups = BackupManager(self.local_store.path.parent)
        self.weeks = WeekLifecycle(self.state, clock=clock)
        self.sync = SyncEngine(
            self.state, RemoteStateGateway(self.remote), self.local_store,
            scheduler=scheduler, debounce_seconds=debounce_seconds, probe_interval=probe_interval,
            clock=clock, data_mode=data_mode, backup_manager=self.backups,
        )
        self.migration = MigrationEngine(self.remote, self.local_store, clock=clock, bus=self.bus)
        self._migration_lock = asyncio.Lock()
        self.started = False

    async def start(self):
        if self.started:
            return
        self.feed.start(self.bus)
        result = await self.sync.start()
        self.started = True
        logger.info(f"Runtime started (mode={self.sync.status.data_mode}, source={result.data_source})")

    async def stop(self):
        if not self.started:
            return
        self.sync.stop()
        self.state.close()
        self.feed.stop()
        self.bus.clear()
        self.started = False
        logger.info("Runtime stopped")

    async def run_migration(self, use_current_state: bool = False) -> MigrationReport:
        """Run a migration with change-triggered pushes held back until it finishes."""
        async with self._migration_lock:
            with self.sync.paused():
                payload = self.state.snapshot() if use_current_state else None
                return await self.migration.run(payload)

    async def migration_status(self) -> MigrationStatus:
        return await self.migration.status()
