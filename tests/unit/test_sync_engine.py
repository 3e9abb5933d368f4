"""Tests for the SyncEngine orchestrator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any
from unittest.mock import patch

import pytest

from zync.config import SyncConfig
from zync.core.models import (
    ConflictResolutionStrategy,
    MissingRemoteRecordStrategy,
    SyncAction,
    SyncStatus,
)
from zync.core.records import LOCAL_ID, Record
from zync.errors import MissingApiError
from zync.integration.memory_api import InMemoryCollectionApi
from zync.server.table import RecordTable
from zync.storage.memory_store import InMemoryStateStorage
from zync.sync.lifecycle import ManualLifecycle
from zync.sync.sync_engine import SyncEngine, create_with_sync

# ── Helpers ───────────────────────────────────────────────────────────────────


class GatedApi(InMemoryCollectionApi):
    """Collaborator whose ``list`` blocks until the gate opens."""

    def __init__(self, table: RecordTable) -> None:
        super().__init__(table)
        self.gate = asyncio.Event()
        self.list_calls = 0

    async def list(self, since: datetime) -> list[dict[str, Any]]:
        self.list_calls += 1
        await self.gate.wait()
        return await super().list(since)


class FailingAddApi(InMemoryCollectionApi):
    def __init__(self, table: RecordTable) -> None:
        super().__init__(table)
        self.fail = True

    async def add(self, item: dict[str, Any]) -> dict[str, Any] | None:
        if self.fail:
            raise ConnectionError("offline")
        return await super().add(item)


async def _wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


def _add_todo(title: str) -> Callable[[list[Record]], list[Record]]:
    return lambda items: [*items, {"title": title}]


# ── Construction and hydration ────────────────────────────────────────────────


class TestConstruction:
    def test_rejects_incomplete_api(self) -> None:
        class NoRemove:
            async def add(self, item: Any) -> None: ...
            async def update(self, id: Any, changes: Any, item: Any) -> bool: ...
            async def list(self, since: Any) -> list[Any]: ...

        with pytest.raises(MissingApiError) as exc_info:
            SyncEngine({"todos": NoRemove()})
        assert exc_info.value.missing == ("remove",)

    async def test_hydrating_until_hydrate(self, api: InMemoryCollectionApi) -> None:
        engine = SyncEngine({"todos": api})
        assert engine.status == SyncStatus.HYDRATING
        assert await engine.sync_once() is False

        await engine.hydrate()
        assert engine.status == SyncStatus.IDLE
        await engine.close()

    async def test_fresh_engine_defaults(self, engine: SyncEngine) -> None:
        assert engine.enabled is False
        assert engine.first_load_done is False
        assert engine.pending_count == 0
        assert engine.conflicts == {}
        assert engine.last_pulled == {}
        assert engine.collections == ["todos"]

    async def test_applies_min_log_level(self, api: InMemoryCollectionApi) -> None:
        zync_logger = logging.getLogger("zync")
        previous = zync_logger.level
        try:
            engine = await create_with_sync(
                {"todos": api}, config=SyncConfig(min_log_level="error")
            )
            assert zync_logger.getEffectiveLevel() == logging.ERROR
            await engine.close()
        finally:
            zync_logger.setLevel(previous)


# ── Local mutations ───────────────────────────────────────────────────────────


class TestSetAndQueue:
    async def test_assigns_local_ids_and_queues_create(self, engine: SyncEngine) -> None:
        engine.set_and_queue("todos", _add_todo("buy milk"))

        items = engine.records("todos")
        assert items[0][LOCAL_ID]
        assert engine.pending_changes[0].action == SyncAction.CREATE
        assert engine.pending_changes[0].local_id == items[0][LOCAL_ID]

    async def test_accepts_a_list(self, engine: SyncEngine) -> None:
        engine.set_and_queue("todos", [{LOCAL_ID: "a", "title": "x"}])
        assert engine.records("todos") == [{LOCAL_ID: "a", "title": "x"}]
        assert engine.pending_count == 1

    async def test_unknown_collection(self, engine: SyncEngine) -> None:
        with pytest.raises(MissingApiError):
            engine.set_and_queue("notes", [])

    async def test_single_transition(self, engine: SyncEngine) -> None:
        seen: list[tuple[int, int]] = []
        engine.container.subscribe(
            lambda state, previous: seen.append(
                (len(state.get("todos", [])), len(state["sync_state"].pending_changes))
            )
        )
        engine.set_and_queue("todos", _add_todo("x"))
        assert seen == [(1, 1)]

    async def test_set_and_sync_pushes(self, engine: SyncEngine, table: RecordTable) -> None:
        ran = await engine.set_and_sync("todos", _add_todo("x"))

        assert ran is True
        assert engine.pending_count == 0
        assert engine.records("todos")[0]["id"] == 1
        assert table.get(1)["title"] == "x"


# ── Cycles ────────────────────────────────────────────────────────────────────


class TestSyncOnce:
    async def test_pull_then_push(self, engine: SyncEngine, table: RecordTable) -> None:
        table.add({"title": "from server"})
        engine.set_and_queue("todos", _add_todo("from client"))

        await engine.sync_once()

        titles = sorted(item["title"] for item in engine.records("todos"))
        assert titles == ["from client", "from server"]
        assert len(table.live_records()) == 2
        assert "todos" in engine.last_pulled

    async def test_overlapping_trigger_dropped(self, table: RecordTable) -> None:
        api = GatedApi(table)
        engine = await create_with_sync({"todos": api})

        first = asyncio.create_task(engine.sync_once())
        await _wait_for(lambda: api.list_calls == 1)
        assert engine.is_syncing
        assert engine.status == SyncStatus.SYNCING
        assert await engine.sync_once() is False

        api.gate.set()
        assert await first is True
        assert api.list_calls == 1
        assert engine.status == SyncStatus.IDLE
        await engine.close()

    async def test_failure_recorded_and_retried(self, table: RecordTable) -> None:
        api = FailingAddApi(table)
        engine = await create_with_sync({"todos": api})
        engine.set_and_queue("todos", _add_todo("x"))

        await engine.sync_once()
        assert isinstance(engine.error, ConnectionError)
        assert engine.pending_count == 1
        assert engine.status == SyncStatus.IDLE

        api.fail = False
        await engine.sync_once()
        assert engine.error is None
        assert engine.pending_count == 0
        await engine.close()

    async def test_one_failing_collection_does_not_block_others(self) -> None:
        broken = FailingAddApi(RecordTable("notes"))
        todos_table = RecordTable("todos")
        engine = await create_with_sync(
            {"notes": broken, "todos": InMemoryCollectionApi(todos_table)}
        )
        engine.set_and_queue("notes", _add_todo("n"))
        engine.set_and_queue("todos", _add_todo("t"))

        await engine.sync_once()

        assert len(todos_table) == 1
        assert [p.collection for p in engine.pending_changes] == ["notes"]
        await engine.close()

    async def test_pull_interval_throttles(self, table: RecordTable) -> None:
        api = GatedApi(table)
        api.gate.set()
        engine = await create_with_sync(
            {"todos": api}, config=SyncConfig(pull_intervals={"todos": 3600})
        )

        await engine.sync_once()
        await engine.sync_once()

        assert api.list_calls == 1
        await engine.close()

    async def test_conflict_strategy_from_config(self, table: RecordTable) -> None:
        engine = await create_with_sync(
            {"todos": InMemoryCollectionApi(table)},
            config=SyncConfig(
                conflict_resolution_strategy=ConflictResolutionStrategy.TRY_SHALLOW_MERGE
            ),
        )
        await engine.set_and_sync("todos", _add_todo("base"))
        record = engine.records("todos")[0]
        table.update(record["id"], {"title": "theirs"})
        engine.set_and_queue("todos", [{**record, "title": "mine"}])

        await engine.sync_once()

        assert record[LOCAL_ID] in engine.conflicts
        assert table.get(record["id"])["title"] == "theirs"

        assert engine.resolve_conflict(record[LOCAL_ID], keep_local=True) is True
        await engine.sync_once()
        assert table.get(record["id"])["title"] == "mine"
        assert engine.conflicts == {}
        await engine.close()

    async def test_resolve_unknown_conflict(self, engine: SyncEngine) -> None:
        assert engine.resolve_conflict("nope", keep_local=False) is False


class TestFirstLoad:
    async def test_loads_and_sets_flag(self, engine: SyncEngine, table: RecordTable) -> None:
        for i in range(5):
            table.add({"title": str(i)})

        assert await engine.start_first_load() is True

        assert engine.first_load_done is True
        assert len(engine.records("todos")) == 5
        assert engine.error is None
        assert engine.status == SyncStatus.IDLE

    async def test_missing_first_load_recorded(self) -> None:
        class NoFirstLoad:
            async def add(self, item: Any) -> None: ...
            async def update(self, id: Any, changes: Any, item: Any) -> bool:
                return True

            async def remove(self, id: Any) -> None: ...
            async def list(self, since: Any) -> list[Any]:
                return []

        engine = await create_with_sync({"todos": NoFirstLoad()})

        await engine.start_first_load()

        assert isinstance(engine.error, MissingApiError)
        assert engine.first_load_done is True
        await engine.close()


# ── Control surface ───────────────────────────────────────────────────────────


class TestEnable:
    async def test_enable_starts_and_syncs(self, engine: SyncEngine, table: RecordTable) -> None:
        engine.set_and_queue("todos", _add_todo("x"))

        engine.enable(True)

        assert engine.enabled is True
        assert engine._scheduler.running
        await _wait_for(lambda: engine.pending_count == 0)
        assert len(table) == 1

    async def test_interval_keeps_syncing(self, engine: SyncEngine, table: RecordTable) -> None:
        engine.enable(True)
        await _wait_for(lambda: engine.status == SyncStatus.IDLE and not engine.is_syncing)

        table.add({"title": "later"})
        await _wait_for(lambda: len(engine.records("todos")) == 1)

    async def test_disable(self, engine: SyncEngine) -> None:
        engine.enable(True)
        engine.enable(False)

        assert engine.enabled is False
        assert not engine._scheduler.running
        await _wait_for(lambda: not engine.is_syncing)
        assert engine.status == SyncStatus.DISABLED

    async def test_manual_cycle_when_never_enabled_stays_idle(self, engine: SyncEngine) -> None:
        await engine.sync_once()
        assert engine.status == SyncStatus.IDLE

    async def test_triggers_dropped_while_disabled(
        self, engine: SyncEngine, api: InMemoryCollectionApi, table: RecordTable
    ) -> None:
        engine.enable(True)
        engine.enable(False)
        await _wait_for(lambda: not engine.is_syncing)

        with (
            patch.object(api, "list", wraps=api.list) as list_spy,
            patch.object(api, "add", wraps=api.add) as add_spy,
        ):
            assert await engine.set_and_sync("todos", _add_todo("offline")) is False
            assert await engine.sync_once() is False

        list_spy.assert_not_called()
        add_spy.assert_not_called()
        assert len(table) == 0
        assert engine.pending_count == 1
        assert engine.status == SyncStatus.DISABLED

    async def test_forced_cycle_when_disabled(
        self, engine: SyncEngine, table: RecordTable
    ) -> None:
        engine.enable(True)
        engine.enable(False)
        await _wait_for(lambda: not engine.is_syncing)
        engine.set_and_queue("todos", _add_todo("queued offline"))

        assert await engine.sync_once(force=True) is True
        assert len(table) == 1
        assert engine.status == SyncStatus.DISABLED


class TestLifecycle:
    async def test_background_pauses_foreground_resumes(
        self, api: InMemoryCollectionApi, table: RecordTable
    ) -> None:
        lifecycle = ManualLifecycle()
        engine = await create_with_sync({"todos": api}, lifecycle=lifecycle)
        engine.enable(True)
        assert lifecycle.listener_count == 1

        lifecycle.set_foreground(False)
        assert not engine._scheduler.running

        await _wait_for(lambda: not engine.is_syncing)
        engine.set_and_queue("todos", _add_todo("offline edit"))
        lifecycle.set_foreground(True)
        assert engine._scheduler.running
        await _wait_for(lambda: engine.pending_count == 0)
        assert len(table) == 1

        engine.enable(False)
        assert lifecycle.listener_count == 0
        await engine.close()

    async def test_ignored_while_disabled(self, api: InMemoryCollectionApi) -> None:
        lifecycle = ManualLifecycle(foreground=False)
        engine = await create_with_sync({"todos": api}, lifecycle=lifecycle)

        lifecycle.set_foreground(True)

        assert not engine._scheduler.running
        await engine.close()


class TestHooks:
    async def test_after_remote_add_receives_engine(self, api: InMemoryCollectionApi) -> None:
        calls: list[tuple[SyncEngine, str, Record]] = []
        engine = await create_with_sync(
            {"todos": api},
            on_after_remote_add=lambda eng, collection, record: calls.append(
                (eng, collection, record)
            ),
        )

        await engine.set_and_sync("todos", _add_todo("x"))

        assert calls[0][0] is engine
        assert calls[0][1] == "todos"
        assert calls[0][2]["id"] == 1
        await engine.close()

    async def test_missing_remote_strategy_from_config(self, table: RecordTable) -> None:
        handled: list[MissingRemoteRecordStrategy] = []
        engine = await create_with_sync(
            {"todos": InMemoryCollectionApi(table)},
            config=SyncConfig(
                missing_remote_record_strategy=MissingRemoteRecordStrategy.DELETE_LOCAL_RECORD
            ),
            on_missing_remote_record=lambda strategy, record: handled.append(strategy),
        )
        await engine.set_and_sync("todos", _add_todo("x"))
        record = engine.records("todos")[0]
        table.clear()

        engine.set_and_queue("todos", [{**record, "title": "y"}])
        await engine.sync_once()

        assert engine.records("todos") == []
        assert handled == [MissingRemoteRecordStrategy.DELETE_LOCAL_RECORD]
        await engine.close()


# ── Persistence ───────────────────────────────────────────────────────────────


class TestPersistence:
    async def test_state_survives_reload(self, api: InMemoryCollectionApi) -> None:
        storage = InMemoryStateStorage()
        engine = await create_with_sync({"todos": api}, storage=storage)
        engine.set_and_queue("todos", _add_todo("offline"))
        await engine.flush()

        stored = await storage.get_item("zync-store")
        assert stored is not None
        assert len(stored["sync_state"]["pending_changes"]) == 1
        assert "status" not in stored["sync_state"]

        restored_storage = InMemoryStateStorage()
        await restored_storage.set_item("zync-store", stored)
        restored = await create_with_sync({"todos": api}, storage=restored_storage)

        assert restored.records("todos")[0]["title"] == "offline"
        assert restored.pending_count == 1
        assert restored.enabled is False
        assert restored.status == SyncStatus.IDLE
        await restored.close()
        await engine.close()

    async def test_writes_coalesced_in_background(self, api: InMemoryCollectionApi) -> None:
        storage = InMemoryStateStorage()
        engine = await create_with_sync({"todos": api}, storage=storage)

        for i in range(10):
            engine.set_and_queue("todos", _add_todo(str(i)))
        await _wait_for(lambda: storage.names() == ["zync-store"])
        await engine.flush()

        stored = await storage.get_item("zync-store")
        assert stored is not None
        assert len(stored["collections"]["todos"]) == 10
        await engine.close()

    async def test_status_changes_not_persisted(self, api: InMemoryCollectionApi) -> None:
        storage = InMemoryStateStorage()
        engine = await create_with_sync({"todos": api}, storage=storage)

        engine.enable(True)
        engine.enable(False)
        await asyncio.sleep(0.01)

        assert storage.names() == []
        await engine.close()

    async def test_close_flushes(self, api: InMemoryCollectionApi) -> None:
        storage = InMemoryStateStorage()
        engine = await create_with_sync({"todos": api}, storage=storage)
        engine.set_and_queue("todos", _add_todo("x"))

        await engine.close()

        stored = await storage.get_item("zync-store")
        assert stored is not None
        assert stored["collections"]["todos"][0]["title"] == "x"
