"""Sync orchestrator: owns status, runs pull-then-push cycles.

One engine per state container. A cycle pulls every due collection, then
drains the pending queue in create/update/remove order. Only one cycle (or
first load) runs at a time; a trigger arriving while one is active is
dropped, not queued. Failures are isolated per collection and per change;
the first one of a cycle is kept in ``SyncState.error``.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from zync.api import find_api, validate_api, validate_apis
from zync.config import SyncConfig, configure_logging
from zync.core.container import StateContainer
from zync.core.models import (
    Conflict,
    MissingRemoteRecordStrategy,
    PendingChange,
    SyncState,
    SyncStatus,
)
from zync.core.records import LOCAL_ID, Record, next_local_id
from zync.core.state import SYNC_STATE_KEY, records_of, sync_state_of, sync_state_patch
from zync.engine.conflicts import resolve_conflict_patch
from zync.engine.diff import find_changes
from zync.engine.first_load import first_load_collection
from zync.engine.pending import record_changes
from zync.engine.pull import pull_collection
from zync.engine.push import PushDispatcher, dispatch_order
from zync.storage.base import StateStorage, partialize, restore_state
from zync.sync.lifecycle import HostLifecycle, NullLifecycle
from zync.sync.scheduler import IntervalScheduler

logger = logging.getLogger(__name__)

AfterRemoteAddHook = Callable[["SyncEngine", str, Record], Any]
MissingRemoteRecordHook = Callable[[MissingRemoteRecordStrategy, Record], Any]
RecordsUpdate = Iterable[Record] | Callable[[list[Record]], Iterable[Record]]


class SyncEngine:
    """
    Offline-first sync engine for one state container.

    Args:
        apis: Collaborator per synchronized collection (state key)
        container: State container holding the collections; a new one is
            created when omitted
        storage: Where persisted state is loaded from and written to
        config: Engine settings
        lifecycle: Foreground/background signal followed while enabled
        on_after_remote_add: ``(engine, collection, record)`` called after a
            successful create; may be a coroutine function
        on_missing_remote_record: ``(strategy, record)`` called after an
            update found the server record gone

    Raises:
        MissingApiError: a collaborator lacks a required operation
    """

    def __init__(
        self,
        apis: Mapping[str, Any],
        *,
        container: StateContainer | None = None,
        storage: StateStorage | None = None,
        config: SyncConfig | None = None,
        lifecycle: HostLifecycle | None = None,
        on_after_remote_add: AfterRemoteAddHook | None = None,
        on_missing_remote_record: MissingRemoteRecordHook | None = None,
    ) -> None:
        validate_apis(apis)
        self._apis: dict[str, Any] = dict(apis)
        self._config = config or SyncConfig()
        configure_logging(self._config.min_log_level)
        self._container = container or StateContainer()
        self._storage = storage
        self._lifecycle: HostLifecycle = lifecycle or NullLifecycle()

        if not isinstance(self._container.get_state().get(SYNC_STATE_KEY), SyncState):
            self._container.set_state({SYNC_STATE_KEY: SyncState()})

        self._dispatcher = PushDispatcher(
            self._container,
            self._apis,
            missing_remote_record_strategy=self._config.missing_remote_record_strategy,
            on_after_remote_add=(
                functools.partial(on_after_remote_add, self) if on_after_remote_add else None
            ),
            on_missing_remote_record=on_missing_remote_record,
        )
        self._scheduler = IntervalScheduler(
            self.sync_once, self._config.sync_interval, name="sync"
        )

        self._cycle_running = False
        self._disabled = False
        self._last_pull_at: dict[str, float] = {}
        self._unsubscribe_lifecycle: Callable[[], None] | None = None
        self._unsubscribe_persist: Callable[[], None] | None = None
        self._persist_task: asyncio.Task[None] | None = None
        self._persist_dirty = False
        self._background: set[asyncio.Task[Any]] = set()

    # ── Observable state ──

    @property
    def container(self) -> StateContainer:
        return self._container

    @property
    def config(self) -> SyncConfig:
        return self._config

    @property
    def collections(self) -> list[str]:
        return list(self._apis)

    @property
    def sync_state(self) -> SyncState:
        return sync_state_of(self._container.get_state())

    @property
    def status(self) -> SyncStatus:
        return self.sync_state.status

    @property
    def error(self) -> BaseException | None:
        return self.sync_state.error

    @property
    def enabled(self) -> bool:
        return self.sync_state.enabled

    @property
    def first_load_done(self) -> bool:
        return self.sync_state.first_load_done

    @property
    def last_pulled(self) -> dict[str, str]:
        return dict(self.sync_state.last_pulled)

    @property
    def pending_changes(self) -> tuple[PendingChange, ...]:
        return self.sync_state.pending_changes

    @property
    def pending_count(self) -> int:
        return len(self.sync_state.pending_changes)

    @property
    def conflicts(self) -> dict[str, Conflict]:
        return dict(self.sync_state.conflicts)

    @property
    def is_syncing(self) -> bool:
        return self._cycle_running

    def records(self, collection: str) -> list[Record]:
        return records_of(self._container.get_state(), collection)

    def _set_sync_state(self, **changes: Any) -> None:
        self._container.set_state(lambda state: sync_state_patch(state, **changes))

    def _resting_status(self) -> SyncStatus:
        return SyncStatus.DISABLED if self._disabled else SyncStatus.IDLE

    # ── Hydration and persistence ──

    async def hydrate(self) -> None:
        """Load persisted state (if any), mark the engine idle, start persisting."""
        if self._storage is not None:
            data = await self._storage.get_item(self._config.storage_name)
            if data:
                patch = restore_state(data)
                self._container.set_state(patch)
                logger.info(
                    "Hydrated %s: %d pending changes",
                    self._config.storage_name,
                    len(patch[SYNC_STATE_KEY].pending_changes),
                )

        self._set_sync_state(status=SyncStatus.IDLE)

        if self._storage is not None and self._unsubscribe_persist is None:
            self._unsubscribe_persist = self._container.subscribe(self._on_state_change)

    def _on_state_change(self, state: dict[str, Any], previous: dict[str, Any]) -> None:
        if not self._persisted_parts_changed(state, previous):
            return
        self._persist_dirty = True
        if self._persist_task is not None and not self._persist_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, state will be written on flush()")
            return
        self._persist_task = loop.create_task(self._persist_loop())
        self._persist_task.add_done_callback(_log_task_exception)

    def _persisted_parts_changed(self, state: dict[str, Any], previous: dict[str, Any]) -> bool:
        for collection in self._apis:
            if state.get(collection) is not previous.get(collection):
                return True
        current, before = sync_state_of(state), sync_state_of(previous)
        return (
            current.pending_changes is not before.pending_changes
            or current.last_pulled is not before.last_pulled
            or current.conflicts is not before.conflicts
            or current.first_load_done != before.first_load_done
        )

    async def _persist_loop(self) -> None:
        # Coalesces bursts of transitions into one write per loop pass.
        while self._persist_dirty:
            self._persist_dirty = False
            await self._write_snapshot()

    async def _write_snapshot(self) -> None:
        if self._storage is None:
            return
        snapshot = partialize(self._container.get_state(), self._apis)
        await self._storage.set_item(self._config.storage_name, snapshot)

    async def flush(self) -> None:
        """Write the current state to storage now and wait for pending writes."""
        if self._persist_task is not None and not self._persist_task.done():
            await self._persist_task
        self._persist_dirty = False
        await self._write_snapshot()

    # ── Local mutations ──

    def set_and_queue(self, collection: str, update: RecordsUpdate) -> None:
        """Replace a collection's records and queue the resulting changes.

        ``update`` is the new record list, or a function receiving the
        current list and returning the new one. New records without a
        ``_local_id`` get a fresh one. State and queue change in one
        transition.

        Raises:
            MissingApiError: no collaborator registered for ``collection``
            InvalidChangeSequenceError: a record was re-added while its
                removal is still queued
        """
        find_api(collection, self._apis)

        def apply(state: dict[str, Any]) -> dict[str, Any]:
            current = records_of(state, collection)
            new_items = update(list(current)) if callable(update) else update
            updated = [
                item if item.get(LOCAL_ID) else {**item, LOCAL_ID: next_local_id()}
                for item in new_items
            ]
            diffs = find_changes(current, updated)
            pending = record_changes(sync_state_of(state).pending_changes, collection, diffs)
            return {collection: updated, **sync_state_patch(state, pending_changes=pending)}

        self._container.set_state(apply)

    async def set_and_sync(self, collection: str, update: RecordsUpdate) -> bool:
        """:meth:`set_and_queue`, then trigger a cycle.

        Returns:
            Whether a cycle ran (False when sync is disabled or one was
            already in progress)
        """
        self.set_and_queue(collection, update)
        return await self.sync_once()

    # ── Cycles ──

    def _collections_due(self) -> list[str]:
        now = time.monotonic()
        due: list[str] = []
        for collection in self._apis:
            interval = self._config.pull_intervals.get(collection)
            last = self._last_pull_at.get(collection)
            if interval is None or last is None or now - last >= interval:
                due.append(collection)
            else:
                logger.debug("Pull %s not due (interval %.1fs)", collection, interval)
        return due

    async def sync_once(self, *, force: bool = False) -> bool:
        """Run one pull-then-push cycle.

        Args:
            force: Run even though sync was disabled with ``enable(False)``

        Returns:
            False when the trigger was dropped (sync disabled, cycle already
            running or state not hydrated yet), True otherwise
        """
        if self._disabled and not force:
            logger.debug("Sync disabled, trigger dropped")
            return False
        if self._cycle_running:
            logger.debug("Sync cycle already running, trigger dropped")
            return False
        if self.status == SyncStatus.HYDRATING:
            logger.debug("Sync trigger before hydration, dropped")
            return False

        self._cycle_running = True
        self._set_sync_state(status=SyncStatus.SYNCING, error=None)
        first_error: BaseException | None = None
        strategy = self._config.conflict_resolution_strategy

        try:
            for collection in self._collections_due():
                try:
                    api = find_api(collection, self._apis)
                    await pull_collection(self._container, collection, api, strategy)
                    self._last_pull_at[collection] = time.monotonic()
                except Exception as e:
                    logger.error("Pull failed for %s: %s", collection, e, exc_info=True)
                    first_error = first_error or e

            for change in dispatch_order(self.sync_state.pending_changes):
                try:
                    await self._dispatcher.dispatch(change)
                except Exception as e:
                    logger.error(
                        "Push failed for %s %s/%s: %s",
                        change.action,
                        change.collection,
                        change.local_id,
                        e,
                        exc_info=True,
                    )
                    first_error = first_error or e
        finally:
            self._cycle_running = False
            self._set_sync_state(
                status=self._resting_status(),
                error=first_error,
            )

        logger.debug("Sync cycle done: %d pending", self.pending_count)
        return True

    async def start_first_load(self) -> bool:
        """Bootstrap every collection from its ``first_load`` pages.

        A failing collection does not stop the others; the first failure is
        kept in ``error``. ``first_load_done`` is set either way.

        Returns:
            False when a cycle was running and the request was dropped
        """
        if self._cycle_running:
            logger.debug("Sync cycle running, first load dropped")
            return False

        self._cycle_running = True
        self._set_sync_state(status=SyncStatus.SYNCING, error=None)
        first_error: BaseException | None = None
        try:
            for collection in self._apis:
                try:
                    api = find_api(collection, self._apis, require_first_load=True)
                    await first_load_collection(self._container, collection, api)
                except Exception as e:
                    logger.error("First load failed for %s: %s", collection, e, exc_info=True)
                    first_error = first_error or e
        finally:
            self._cycle_running = False
            self._set_sync_state(
                status=self._resting_status(),
                first_load_done=True,
                error=first_error,
            )
        return True

    # ── Control surface ──

    def enable(self, enabled: bool) -> None:
        """Start or stop interval syncing and the lifecycle listener.

        Enabling triggers an immediate cycle. Disabling never interrupts a
        cycle in progress; the engine reports ``disabled`` once it ends.
        """
        if enabled:
            status = self.status
            if status == SyncStatus.DISABLED:
                status = SyncStatus.IDLE
            self._disabled = False
            self._set_sync_state(enabled=True, status=status)
            self._scheduler.start()
            if self._unsubscribe_lifecycle is None:
                self._unsubscribe_lifecycle = self._lifecycle.subscribe(self._on_visibility)
            self._spawn(self.sync_once())
        else:
            self._disabled = True
            self._scheduler.stop()
            if self._unsubscribe_lifecycle is not None:
                self._unsubscribe_lifecycle()
                self._unsubscribe_lifecycle = None
            if self._cycle_running or self.status == SyncStatus.HYDRATING:
                self._set_sync_state(enabled=False)
            else:
                self._set_sync_state(enabled=False, status=SyncStatus.DISABLED)
        logger.info("Sync %s", "enabled" if enabled else "disabled")

    def _on_visibility(self, foreground: bool) -> None:
        if not self.enabled:
            return
        if foreground:
            logger.debug("Host in foreground, resuming sync")
            self._scheduler.start()
            self._spawn(self.sync_once())
        else:
            logger.debug("Host in background, pausing sync")
            self._scheduler.stop()

    def _spawn(self, coro: Any) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_log_task_exception)

    def resolve_conflict(self, local_id: str, keep_local: bool) -> bool:
        """Resolve the conflict tracked for ``local_id``.

        keep_local: the pending edit stays and is pushed next cycle.
        Otherwise the remote values are adopted locally and dropped from
        the pending edit.

        Returns:
            False when no conflict is tracked for ``local_id``
        """
        resolved: list[bool] = []

        def apply(state: dict[str, Any]) -> dict[str, Any] | None:
            patch = resolve_conflict_patch(state, local_id, keep_local)
            resolved.append(patch is not None)
            return patch

        self._container.set_state(apply)
        return resolved[0]

    def add_collection(self, collection: str, api: Any) -> None:
        """Register another collection's collaborator."""
        validate_api(collection, api)
        self._apis[collection] = api

    async def close(self) -> None:
        """Stop syncing, wait for background work, write state, close storage."""
        self.enable(False)
        await self._scheduler.aclose()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._unsubscribe_persist is not None:
            await self.flush()
            self._unsubscribe_persist()
            self._unsubscribe_persist = None
        if self._storage is not None:
            await self._storage.close()


def _log_task_exception(task: asyncio.Task[Any]) -> None:
    """Log unhandled exceptions from engine background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Sync background task raised unhandled exception: %s", exc)


async def create_with_sync(
    apis: Mapping[str, Any],
    *,
    container: StateContainer | None = None,
    storage: StateStorage | None = None,
    config: SyncConfig | None = None,
    lifecycle: HostLifecycle | None = None,
    on_after_remote_add: AfterRemoteAddHook | None = None,
    on_missing_remote_record: MissingRemoteRecordHook | None = None,
) -> SyncEngine:
    """Build a :class:`SyncEngine` and wait for hydration."""
    engine = SyncEngine(
        apis,
        container=container,
        storage=storage,
        config=config,
        lifecycle=lifecycle,
        on_after_remote_add=on_after_remote_add,
        on_missing_remote_record=on_missing_remote_record,
    )
    await engine.hydrate()
    return engine
