"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncGenerator, Callable
from datetime import datetime
from typing import Any

import pytest
import pytest_asyncio

from zync.config import SyncConfig
from zync.core.container import StateContainer
from zync.integration.memory_api import InMemoryCollectionApi
from zync.server.table import RecordTable
from zync.storage.memory_store import InMemoryStateStorage
from zync.sync.sync_engine import SyncEngine, create_with_sync


class TransientApiError(Exception):
    """Injected collaborator failure."""


class FlakyApi:
    """Collaborator wrapper that adds random latency and random failures.

    Failures are raised either before the call reaches the table or after
    it was applied, so both "request lost" and "response lost" are covered.
    """

    def __init__(
        self,
        inner: InMemoryCollectionApi,
        *,
        max_latency: float = 0.0,
        failure_rate: float = 0.0,
        seed: int = 0,
    ) -> None:
        self.inner = inner
        self.max_latency = max_latency
        self.failure_rate = failure_rate
        self.calls: dict[str, int] = {}
        self._rng = random.Random(seed)

    @property
    def table(self) -> RecordTable:
        return self.inner.table

    async def _maybe_fail_and_wait(self, op: str) -> bool:
        self.calls[op] = self.calls.get(op, 0) + 1
        if self.max_latency:
            await asyncio.sleep(self._rng.uniform(0, self.max_latency))
        if self.failure_rate and self._rng.random() < self.failure_rate:
            if self._rng.random() < 0.5:
                raise TransientApiError(f"{op} failed before reaching the server")
            return True
        return False

    async def _call(self, op: str, *args: Any) -> Any:
        lose_response = await self._maybe_fail_and_wait(op)
        result = await getattr(self.inner, op)(*args)
        if lose_response:
            raise TransientApiError(f"{op} response lost")
        return result

    async def add(self, item: dict[str, Any]) -> dict[str, Any] | None:
        return await self._call("add", item)

    async def update(self, id: Any, changes: dict[str, Any], item: dict[str, Any]) -> bool:
        return await self._call("update", id, changes, item)

    async def remove(self, id: Any) -> None:
        await self._call("remove", id)

    async def list(self, since: datetime) -> list[dict[str, Any]]:
        return await self._call("list", since)

    async def first_load(self, last_id: Any) -> list[dict[str, Any]]:
        return await self._call("first_load", last_id)


@pytest.fixture
def table() -> RecordTable:
    return RecordTable("todos")


@pytest.fixture
def api(table: RecordTable) -> InMemoryCollectionApi:
    return InMemoryCollectionApi(table, page_size=2)


@pytest.fixture
def make_flaky_api(table: RecordTable) -> Callable[..., FlakyApi]:
    """Factory for FlakyApi wrappers over the shared ``table``."""

    def _make(**kwargs: Any) -> FlakyApi:
        return FlakyApi(InMemoryCollectionApi(table), **kwargs)

    return _make


@pytest.fixture
def container() -> StateContainer:
    return StateContainer()


@pytest.fixture
def sync_config() -> SyncConfig:
    return SyncConfig(sync_interval=0.05, storage_backend="memory")


@pytest_asyncio.fixture
async def engine(
    api: InMemoryCollectionApi, container: StateContainer, sync_config: SyncConfig
) -> AsyncGenerator[SyncEngine, None]:
    """Hydrated engine syncing the ``todos`` collection against ``table``."""
    eng = await create_with_sync(
        {"todos": api},
        container=container,
        storage=InMemoryStateStorage(),
        config=sync_config,
    )
    yield eng
    await eng.close()
