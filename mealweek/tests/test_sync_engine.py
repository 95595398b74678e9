import asyncio
import logging
from datetime import datetime, timezone

import pytest

from mealweek.domain.AppState import AppState
from mealweek.events.Event_Bus import EventBus, SYNC_FAILED, SYNC_SUCCEEDED
from mealweek.events.event_helpers import NOT_SAVED_MESSAGE
from mealweek.infra.Local_Store import LocalStore
from mealweek.infra.Remote_Store import MemoryRemoteStore
from mealweek.infra.Remote_Tables import RemoteStateGateway
from mealweek.logic.sync.engine import SyncEngine
from mealweek.logic.sync.scheduler import LoopScheduler, ManualScheduler
from mealweek.logic.sync.state import SyncPhase
from mealweek.utilities.backup import BackupManager

NOW = datetime(2026, 1, 21, 12, 0, tzinfo=timezone.utc)

REMOTE_PAYLOAD = {
    "clients": [{"name": "Alice", "address": "12 Main St", "email": "alice@example.com"}],
    "menuItems": [{"id": "m1", "clientName": "Alice", "date": "2026-01-20", "protein": "Beef", "approved": True}],
    "weeks": {},
    "blockedDates": ["2026-12-25"],
}

LOCAL_PAYLOAD = {
    "clients": [{"name": "Cached Carol"}],
    "menuItems": [],
}


class Harness:
    def __init__(self, tmp_path, remote=None, data_mode="remote", with_backups=False, gateway=None):
        self.bus = EventBus()
        self.state = AppState(self.bus)
        self.local = LocalStore(tmp_path / "local_store.json")
        self.remote = remote or MemoryRemoteStore()
        self.scheduler = ManualScheduler()
        self.events = []
        self.bus.subscribe(SYNC_FAILED, lambda n, p: self.events.append((n, p)))
        self.bus.subscribe(SYNC_SUCCEEDED, lambda n, p: self.events.append((n, p)))
        gateway = gateway or (lambda remote, state: RemoteStateGateway(remote))
        self.engine = SyncEngine(
            self.state, gateway(self.remote, self.state), self.local,
            scheduler=self.scheduler, debounce_seconds=1.5, probe_interval=30,
            clock=lambda: NOW, data_mode=data_mode,
            backup_manager=BackupManager(tmp_path) if with_backups else None,
        )

    def count(self, name):
        return sum(1 for n, _ in self.events if n == name)

    def remote_writes(self):
        return [c for c in self.remote.calls if c[0] in ("upsert", "insert", "delete")]


async def _seed(remote, payload=REMOTE_PAYLOAD):
    await RemoteStateGateway(remote).save_state(payload)
    remote.calls.clear()


@pytest.mark.asyncio
async def test_initial_load_from_remote(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)

    result = await h.engine.start()

    assert result.success
    status = h.engine.status
    assert status.data_source == "remote"
    assert status.is_read_only is False
    assert status.is_online is True
    assert status.last_synced_at == NOW.isoformat()
    assert [c["name"] for c in h.state.get("clients")] == ["Alice"]
    assert h.state.get("blockedDates") == ["2026-12-25"]
    # local cache refreshed for the next offline start
    assert h.local.load_payload()["clients"][0]["name"] == "Alice"
    assert h.local.load_sync_status()["lastSyncedAt"] == NOW.isoformat()


@pytest.mark.asyncio
async def test_no_push_scheduled_by_the_load_itself(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    assert h.engine.phase == SyncPhase.IDLE
    await h.scheduler.advance(10)
    assert h.remote_writes() == []
    assert h.count(SYNC_SUCCEEDED) == 0


@pytest.mark.asyncio
async def test_fallback_to_local_copy_is_read_only(tmp_path):
    h = Harness(tmp_path, remote=MemoryRemoteStore(online=False))
    h.local.save_payload(LOCAL_PAYLOAD)

    result = await h.engine.start()

    assert not result.success
    assert h.engine.status.data_source == "local"
    assert h.engine.status.is_read_only is True
    assert h.engine.status.sync_error
    assert [c["name"] for c in h.state.get("clients")] == ["Cached Carol"]

    h.state.set("clients", [{"name": "Edited"}])
    assert h.engine.phase == SyncPhase.IDLE
    await h.scheduler.advance(5)
    assert h.remote_writes() == []
    # the edit cannot be saved, and that is announced rather than dropped
    assert h.count(SYNC_FAILED) == 1
    assert [p for n, p in h.events if n == SYNC_FAILED][0]["trigger"] == "change"


@pytest.mark.asyncio
async def test_nothing_anywhere_degrades_to_empty_defaults(tmp_path):
    h = Harness(tmp_path, remote=MemoryRemoteStore(configured=False))

    result = await h.engine.start()

    assert not result.success
    assert h.engine.status.is_read_only is True
    assert h.state.get("clients") == []
    assert h.state.get("adminSettings") == {"routeStartAddress": ""}


@pytest.mark.asyncio
async def test_debounce_sends_only_the_last_state_of_a_burst(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    h.state.set("drivers", [{"name": "D1"}])
    assert h.engine.phase == SyncPhase.PENDING
    await h.scheduler.advance(1.0)
    h.state.set("drivers", [{"name": "D2"}])
    await h.scheduler.advance(1.0)
    h.state.set("drivers", [{"name": "D3"}])
    await h.scheduler.advance(1.4)
    assert h.count(SYNC_SUCCEEDED) == 0

    await h.scheduler.advance(0.2)
    assert h.count(SYNC_SUCCEEDED) == 1
    assert [r["name"] for r in h.remote.rows("drivers")] == ["D3"]
    assert h.engine.phase == SyncPhase.IDLE


@pytest.mark.asyncio
async def test_offline_push_is_reported_and_not_retried(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    h.remote.set_online(False)
    h.state.set("drivers", [{"name": "Late Driver"}])
    await h.scheduler.advance(2)

    assert h.count(SYNC_FAILED) == 1
    failure = [p for n, p in h.events if n == SYNC_FAILED][0]
    assert failure["message"] == NOT_SAVED_MESSAGE
    assert failure["trigger"] == "change"
    assert h.engine.status.sync_error
    assert h.engine.status.is_online is False
    assert h.remote_writes() == []

    # no queue: coming back online does not resend on its own
    h.remote.set_online(True)
    await h.scheduler.advance(10)
    assert h.count(SYNC_SUCCEEDED) == 0

    result = await h.engine.force_sync()
    assert result.success
    assert h.engine.status.sync_error is None
    assert [r["name"] for r in h.remote.rows("drivers")] == ["Late Driver"]


@pytest.mark.asyncio
async def test_remote_rejection_is_recorded(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()
    h.remote.fail_when("drivers", lambda r: r.get("name") == "Bad", message="permission denied")

    h.state.set("drivers", [{"name": "Bad"}])
    await h.scheduler.advance(2)

    assert h.count(SYNC_FAILED) == 1
    assert "permission denied" in h.engine.status.sync_error


@pytest.mark.asyncio
async def test_force_sync_covers_pending_change(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    h.state.set("drivers", [{"name": "Now"}])
    assert h.engine.phase == SyncPhase.PENDING
    result = await h.engine.force_sync()

    assert result.success
    assert result.trigger == "force"
    assert h.engine.phase == SyncPhase.IDLE
    await h.scheduler.advance(5)
    assert h.count(SYNC_SUCCEEDED) == 1


@pytest.mark.asyncio
async def test_force_sync_reports_failure(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()
    h.remote.set_online(False)

    result = await h.engine.force_sync()

    assert not result.success
    assert result.error
    assert h.count(SYNC_FAILED) == 1


@pytest.mark.asyncio
async def test_force_sync_refused_while_read_only(tmp_path):
    h = Harness(tmp_path, remote=MemoryRemoteStore(online=False))
    h.local.save_payload(LOCAL_PAYLOAD)
    await h.engine.start()
    h.remote.set_online(True)

    result = await h.engine.force_sync()

    assert not result.success
    assert h.remote_writes() == []


@pytest.mark.asyncio
async def test_reconnect_leaves_read_only_fallback(tmp_path):
    remote = MemoryRemoteStore()
    await _seed(remote)
    remote.set_online(False)
    h = Harness(tmp_path, remote=remote)
    h.local.save_payload(LOCAL_PAYLOAD)
    await h.engine.start()
    assert h.engine.status.is_read_only

    remote.set_online(True)
    result = await h.engine.reconnect()

    assert result.success
    assert h.engine.status.is_read_only is False
    assert h.engine.status.data_source == "remote"
    assert [c["name"] for c in h.state.get("clients")] == ["Alice"]
    # the reload itself is not an edit
    await h.scheduler.advance(5)
    assert h.remote_writes() == []


@pytest.mark.asyncio
async def test_local_mode_never_touches_remote(tmp_path):
    h = Harness(tmp_path, data_mode="local")
    h.local.save_payload(LOCAL_PAYLOAD)

    await h.engine.start()
    assert h.engine.status.data_source == "local"
    assert h.engine.status.is_read_only is False

    h.state.set("drivers", [{"name": "Local Driver"}])
    await h.scheduler.advance(2)

    assert h.count(SYNC_SUCCEEDED) == 1
    assert h.local.load_payload()["drivers"] == [{"name": "Local Driver"}]
    assert h.remote.calls == []


@pytest.mark.asyncio
async def test_switching_data_mode_reloads(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    await h.engine.set_data_mode("local")

    assert h.local.get_data_mode() == "local"
    assert h.engine.status.data_mode == "local"
    assert h.engine.status.data_source == "local"
    # the remote load cached Alice locally, so the local mode starts from it
    assert [c["name"] for c in h.state.get("clients")] == ["Alice"]


@pytest.mark.asyncio
async def test_paused_holds_back_change_pushes(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    with h.engine.paused():
        h.state.set("drivers", [{"name": "During Migration"}])
        await h.scheduler.advance(5)
        assert h.count(SYNC_SUCCEEDED) == 0

    # the held-back edit goes out once the pause ends
    assert h.engine.phase == SyncPhase.PENDING
    await h.scheduler.advance(2)
    assert h.count(SYNC_SUCCEEDED) == 1
    assert [r["name"] for r in h.remote.rows("drivers")] == ["During Migration"]

    h.state.set("drivers", [{"name": "After"}])
    await h.scheduler.advance(2)
    assert h.count(SYNC_SUCCEEDED) == 2


@pytest.mark.asyncio
async def test_pause_keeps_a_change_that_was_already_pending(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    h.state.set("drivers", [{"name": "Before Pause"}])
    assert h.engine.phase == SyncPhase.PENDING
    with h.engine.paused():
        assert h.engine.phase == SyncPhase.IDLE
        await h.scheduler.advance(5)

    await h.scheduler.advance(2)
    assert h.count(SYNC_SUCCEEDED) == 1
    assert [r["name"] for r in h.remote.rows("drivers")] == ["Before Pause"]


@pytest.mark.asyncio
async def test_pause_without_changes_schedules_nothing(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()

    with h.engine.paused():
        pass

    assert h.engine.phase == SyncPhase.IDLE
    await h.scheduler.advance(5)
    assert h.remote_writes() == []


@pytest.mark.asyncio
async def test_probe_tracks_connectivity(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()
    assert h.engine.status.is_online

    h.remote.set_online(False)
    await h.scheduler.advance(30)
    assert h.engine.status.is_online is False

    h.remote.set_online(True)
    await h.scheduler.advance(30)
    assert h.engine.status.is_online is True
    assert h.remote_writes() == []


@pytest.mark.asyncio
async def test_stop_cancels_timers(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()
    h.state.set("drivers", [{"name": "Pending"}])

    h.engine.stop()

    assert h.scheduler.pending_timers == 0
    await h.scheduler.advance(60)
    assert h.count(SYNC_SUCCEEDED) == 0


@pytest.mark.asyncio
async def test_remote_load_backs_up_previous_cache(tmp_path):
    h = Harness(tmp_path, with_backups=True)
    await _seed(h.remote)
    h.local.save_payload(LOCAL_PAYLOAD)
    h.local.save_sync_status({"migrationComplete": True})

    await h.engine.start()

    backups = BackupManager(tmp_path).list_backups("local_store.json")
    assert len(backups) == 1
    assert h.local.load_payload()["clients"][0]["name"] == "Alice"


@pytest.mark.asyncio
async def test_remote_load_keeps_unmigrated_local_data(tmp_path):
    h = Harness(tmp_path, with_backups=True)
    h.local.save_payload({"clients": [{"name": "Local Only"}]})

    result = await h.engine.start()

    assert result.success
    assert h.engine.status.data_source == "remote"
    assert h.state.get("clients") == []
    assert h.local.load_payload() == {"clients": [{"name": "Local Only"}]}
    assert BackupManager(tmp_path).list_backups("local_store.json") == []

    # a successful push does not replace it either
    h.state.set("drivers", [{"name": "Dan"}])
    await h.scheduler.advance(2)
    assert h.count(SYNC_SUCCEEDED) == 1
    assert h.local.load_payload() == {"clients": [{"name": "Local Only"}]}


@pytest.mark.asyncio
async def test_cache_written_from_remote_keeps_refreshing(tmp_path):
    h = Harness(tmp_path)
    await _seed(h.remote)
    await h.engine.start()
    assert h.local.load_sync_status()["cachedFromRemote"] is True

    h.state.set("drivers", [{"name": "Dan"}])
    await h.scheduler.advance(2)

    assert h.local.load_payload()["drivers"] == [{"name": "Dan"}]


@pytest.mark.asyncio
async def test_menu_items_round_trip_by_display_name_and_unknown_client(tmp_path):
    h = Harness(tmp_path)
    await h.engine.start()

    h.state.set("clients", [{"name": "Alice Smith", "displayName": "Alice"}])
    h.state.set("menuItems", [
        {"id": "m-alice", "clientName": "Alice", "date": "2026-01-20", "protein": "Beef"},
        {"id": "m-ghost", "clientName": "Ghost", "date": "2026-01-21", "protein": "Fish"},
    ])
    result = await h.engine.force_sync()
    assert result.success

    rows = {r["local_id"]: r for r in h.remote.rows("menus")}
    alice_id = h.remote.rows("clients")[0]["id"]
    assert rows["m-alice"]["client_id"] == alice_id
    assert rows["m-ghost"]["client_id"] is None

    await h.engine.reconnect()

    menu = {m["id"]: m for m in h.state.get("menuItems")}
    assert set(menu) == {"m-alice", "m-ghost"}
    assert menu["m-alice"]["clientName"] == "Alice"
    assert menu["m-ghost"]["clientName"] == "Ghost"
    assert menu["m-ghost"]["protein"] == "Fish"


class EditDuringFetch(RemoteStateGateway):
    """Gateway whose fetch lets an edit land before the load replaces the state."""

    def __init__(self, remote, state):
        super().__init__(remote)
        self.state = state

    async def fetch_state(self):
        payload = await super().fetch_state()
        self.state.set("drivers", [{"name": "Mid Load"}])
        return payload


@pytest.mark.asyncio
async def test_edit_during_fetch_does_not_turn_the_load_into_a_push(tmp_path):
    h = Harness(tmp_path, gateway=lambda remote, state: EditDuringFetch(remote, state))
    await _seed(h.remote)

    await h.engine.start()

    assert h.engine.phase == SyncPhase.IDLE
    await h.scheduler.advance(5)
    assert h.remote_writes() == []
    assert [c["name"] for c in h.state.get("clients")] == ["Alice"]

    # later edits still go out
    h.state.set("drivers", [{"name": "Real Edit"}])
    await h.scheduler.advance(2)
    assert h.count(SYNC_SUCCEEDED) == 1


@pytest.mark.asyncio
async def test_loop_scheduler_holds_tasks_and_logs_their_errors(caplog):
    scheduler = LoopScheduler()
    scheduler.bind(asyncio.get_running_loop())

    async def broken():
        raise ValueError("connectivity check exploded")

    with caplog.at_level(logging.ERROR, logger="mealweek.logic.sync.scheduler"):
        task = scheduler.spawn(broken())
        assert scheduler.active_tasks == 1
        await asyncio.wait([task])
        await asyncio.sleep(0)

    assert scheduler.active_tasks == 0
    assert "connectivity check exploded" in caplog.text


@pytest.mark.asyncio
async def test_loop_scheduler_forgets_finished_tasks_quietly(caplog):
    scheduler = LoopScheduler()
    scheduler.bind(asyncio.get_running_loop())

    async def fine():
        return "ok"

    with caplog.at_level(logging.ERROR, logger="mealweek.logic.sync.scheduler"):
        assert await scheduler.spawn(fine()) == "ok"
        await asyncio.sleep(0)

    assert scheduler.active_tasks == 0
    assert caplog.text == ""
