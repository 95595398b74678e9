"""Sync engine: load on start, debounced persist on change, force sync, connectivity probing.

Persist state machine::

    idle --change--> pending --timer--> in_flight --done--> idle
                      ^   |                 |
                      +---+ change          +--> pending (change arrived in flight)

Each change cancels and re-arms the debounce timer, so only the last state of a
burst is sent. There is no retry queue: a failed push is recorded in
``syncError`` and announced with ``sync.failed``; the next edit or an explicit
force sync retries.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from mealweek.domain.AppState import AppState
from mealweek.events.Event_Bus import STATE_CHANGED
from mealweek.events.event_helpers import publish_sync_failed, publish_sync_succeeded
from mealweek.infra.Local_Store import LocalStore
from mealweek.infra.Remote_Tables import LocalStateGateway
from mealweek.logic.sync.scheduler import LoopScheduler
from mealweek.logic.sync.state import SyncPhase, SyncResult, SyncState
from mealweek.utilities.backup import BackupManager
from mealweek.utilities.config import CONNECTIVITY_PROBE_SECONDS, SYNC_DEBOUNCE_SECONDS
from mealweek.utilities.constants import DATA_MODE_LOCAL, DATA_MODE_REMOTE, SOURCE_LOADING, SOURCE_LOCAL, SOURCE_REMOTE
from mealweek.utilities.errors import RemoteUnreachableError

logger = logging.getLogger(__name__)

READ_ONLY_MESSAGE = "Working from the local copy in read-only mode; reconnect before syncing."


class SyncEngine:
    def __init__(self, state: AppState, gateway, local_store: LocalStore, scheduler=None,
                 debounce_seconds: float = SYNC_DEBOUNCE_SECONDS,
                 probe_interval: float = CONNECTIVITY_PROBE_SECONDS,
                 clock: Optional[Callable[[], datetime]] = None,
                 data_mode: Optional[str] = None,
                 backup_manager: Optional[BackupManager] = None):
        self._state = state
        self._bus = state.bus
        self._local_store = local_store
        self._gateways = {DATA_MODE_REMOTE: gateway, DATA_MODE_LOCAL: LocalStateGateway(local_store)}
        self._scheduler = scheduler or LoopScheduler()
        self._debounce = debounce_seconds
        self._probe_interval = probe_interval
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._backups = backup_manager

        self.status = SyncState(data_mode=data_mode or local_store.get_data_mode())
        self._timer = None
        self._probe_handle = None
        self._push_lock = asyncio.Lock()
        self._past_first_load = False
        self._paused = 0
        self._dirty = False
        self._started = False

    # --- lifecycle ---
    async def start(self) -> SyncResult:
        self._scheduler.bind(asyncio.get_running_loop())
        self._bus.subscribe(STATE_CHANGED, self._on_state_changed)
        self._started = True
        result = await self.initial_load()
        if self._probe_interval > 0:
            self._probe_handle = self._scheduler.call_later(self._probe_interval, self._probe_tick)
        return result

    def stop(self):
        self._cancel_timer()
        if self._probe_handle is not None:
            self._probe_handle.cancel()
            self._probe_handle = None
        self._bus.unsubscribe(STATE_CHANGED, self._on_state_changed)
        self._started = False
        logger.info("Sync engine stopped")

    @property
    def gateway(self):
        return self._gateways[self.status.data_mode]

    @property
    def phase(self) -> SyncPhase:
        return self.status.phase

    def _now(self) -> str:
        return self._clock().isoformat()

    # --- loading ---
    async def initial_load(self) -> SyncResult:
        """Load the payload into the state tree. Never raises."""
        self.status.data_source = SOURCE_LOADING

        if self.status.data_mode == DATA_MODE_LOCAL:
            payload = self._local_store.load_payload()
            self.status.data_source = SOURCE_LOCAL
            self.status.is_read_only = False
            self.status.sync_error = None
            logger.info(f"Local data mode: loaded {'stored' if payload else 'empty'} payload")
            result = SyncResult(True, "load", data_source=SOURCE_LOCAL)
        else:
            payload, result = await self._load_remote()

        self._past_first_load = False
        self._state.replace(payload, reason="load")
        return result

    async def _load_remote(self):
        gateway = self._gateways[DATA_MODE_REMOTE]
        try:
            if not gateway.is_configured:
                raise RemoteUnreachableError("Remote store not configured")
            payload = await gateway.fetch_state()
        except Exception as e:
            payload = self._local_store.load_payload()
            self.status.is_online = False
            self.status.data_source = SOURCE_LOCAL
            self.status.is_read_only = True
            self.status.sync_error = str(e)
            logger.warning(f"Remote load failed ({e}); using {'cached' if payload else 'empty'} local data read-only")
            return payload, SyncResult(False, "load", error=str(e), data_source=SOURCE_LOCAL)

        synced_at = self._now()
        self.status.is_online = True
        self.status.data_source = SOURCE_REMOTE
        self.status.is_read_only = False
        self.status.sync_error = None
        self.status.last_synced_at = synced_at
        self._refresh_cache(payload, synced_at)
        logger.info(f"Loaded {len(payload.get('clients', []))} clients and {len(payload.get('weeks', {}))} weeks from remote")
        return payload, SyncResult(True, "load", synced_at=synced_at, data_source=SOURCE_REMOTE)

    def _refresh_cache(self, payload, synced_at: str, backup: bool = True):
        if self._local_store.holds_unmigrated_data():
            # local-only data stays put until the migration has copied it
            logger.warning("Local data has not been migrated yet; keeping it instead of caching the remote copy")
            self._save_sync_status(synced_at)
            return
        if backup and self._backups is not None and self._local_store.exists():
            self._backups.create_backup(self._local_store.path.name)
        self._local_store.save_payload(payload)
        self._save_sync_status(synced_at, cached_from_remote=True)

    def _save_sync_status(self, synced_at: str, cached_from_remote: Optional[bool] = None):
        stored = self._local_store.load_sync_status()
        stored.update({"lastSyncedAt": synced_at, "isOnline": self.status.is_online})
        if cached_from_remote is not None:
            stored["cachedFromRemote"] = cached_from_remote
        self._local_store.save_sync_status(stored)

    async def reconnect(self) -> SyncResult:
        """Re-run the load, e.g. to leave the read-only fallback once the remote is back."""
        self._cancel_timer()
        return await self.initial_load()

    async def set_data_mode(self, mode: str) -> SyncResult:
        if mode not in self._gateways:
            raise ValueError(f"Unknown data mode: {mode!r}")
        self._local_store.set_data_mode(mode)
        self.status.data_mode = mode
        logger.info(f"Data mode switched to {mode}")
        return await self.reconnect()

    # --- change-triggered persist ---
    def _on_state_changed(self, event_name: str, payload: Any):
        if not self._past_first_load:
            # the load itself, not a user edit
            self._past_first_load = True
            return
        if not self._started:
            return
        if self.status.is_read_only:
            self._record_failure(RemoteUnreachableError(READ_ONLY_MESSAGE), "change")
            return
        if self._paused:
            self._dirty = True
            return
        self._scheduler.call_soon(self._schedule_persist)

    def _schedule_persist(self):
        self._cancel_timer()
        self._timer = self._scheduler.call_later(self._debounce, self._on_timer)
        if self.status.phase != SyncPhase.IN_FLIGHT:
            self.status.phase = SyncPhase.PENDING

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            if self.status.phase == SyncPhase.PENDING:
                self.status.phase = SyncPhase.IDLE

    def _on_timer(self):
        self._timer = None
        self._scheduler.spawn(self._push("change"))

    async def force_sync(self) -> SyncResult:
        """Push the whole state now and report the outcome."""
        if self.status.is_read_only:
            logger.warning("Force sync refused: read-only local fallback")
            return SyncResult(False, "force", error=READ_ONLY_MESSAGE, data_source=self.status.data_source)
        self._cancel_timer()
        return await self._push("force")

    async def _push(self, trigger: str) -> SyncResult:
        async with self._push_lock:
            self.status.phase = SyncPhase.IN_FLIGHT
            self.status.is_syncing = True
            try:
                gateway = self.gateway
                online = await gateway.probe_connectivity()
                self.status.is_online = online
                if not online:
                    raise RemoteUnreachableError("Remote store unreachable")
                payload = self._state.snapshot()
                await gateway.save_state(payload)
            except Exception as e:
                return self._record_failure(e, trigger)
            finally:
                self.status.is_syncing = False
                self.status.phase = SyncPhase.PENDING if self._timer is not None else SyncPhase.IDLE
            return self._record_success(payload, trigger)

    def _record_failure(self, error: Exception, trigger: str) -> SyncResult:
        message = str(error) or error.__class__.__name__
        self.status.sync_error = message
        logger.error(f"Sync ({trigger}) failed, changes NOT saved: {message}")
        publish_sync_failed(self._bus, message, trigger)
        return SyncResult(False, trigger, error=message, data_source=self.status.data_source)

    def _record_success(self, payload, trigger: str) -> SyncResult:
        synced_at = self._now()
        self.status.sync_error = None
        self.status.last_synced_at = synced_at
        if self.status.data_mode == DATA_MODE_REMOTE:
            self._refresh_cache(payload, synced_at, backup=False)
        else:
            self._save_sync_status(synced_at, cached_from_remote=False)
        logger.info(f"Sync ({trigger}) succeeded at {synced_at}")
        publish_sync_succeeded(self._bus, synced_at, trigger)
        return SyncResult(True, trigger, synced_at=synced_at, data_source=self.status.data_source)

    @contextmanager
    def paused(self):
        """Hold back change-triggered pushes (used while a migration runs)."""
        self._paused += 1
        if self._timer is not None:
            self._dirty = True
        self._cancel_timer()
        try:
            yield self
        finally:
            self._paused -= 1
            if not self._paused and self._dirty:
                self._dirty = False
                if self._started and not self.status.is_read_only:
                    self._scheduler.call_soon(self._schedule_persist)

    # --- connectivity ---
    async def probe(self) -> bool:
        online = await self.gateway.probe_connectivity()
        if online != self.status.is_online:
            logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        self.status.is_online = online
        return online

    def _probe_tick(self):
        self._probe_handle = self._scheduler.call_later(self._probe_interval, self._probe_tick)
        self._scheduler.spawn(self.probe())
