"""Shared CLI helpers for configuration, storage, and output formatting."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

import typer

from zync.config import ZyncConfig
from zync.core.models import SyncState
from zync.core.state import SYNC_STATE_KEY
from zync.storage.base import StateStorage
from zync.storage.factory import create_storage

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Storages opened during a CLI command, closed before the event loop shuts
# down so aiosqlite's worker thread does not outlive the loop.
_active_storages: list[StateStorage] = []


def get_config() -> ZyncConfig:
    """Get zync configuration."""
    return ZyncConfig.load()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async CLI command, closing any storage it opened."""

    async def _with_cleanup() -> T:
        try:
            return await coro
        finally:
            for storage in _active_storages:
                try:
                    await storage.close()
                except Exception:
                    logger.debug("Failed to close storage during cleanup", exc_info=True)
            _active_storages.clear()
            # Let pending aiosqlite callbacks drain before the loop closes.
            await asyncio.sleep(0)

    return asyncio.run(_with_cleanup())


async def get_storage(config: ZyncConfig) -> StateStorage:
    """Open the configured storage and track it for cleanup."""
    storage = await create_storage(config)
    _active_storages.append(storage)
    return storage


async def load_snapshot(config: ZyncConfig) -> tuple[dict[str, Any] | None, SyncState]:
    """Persisted snapshot (raw) and its SyncState, or (None, empty state)."""
    storage = await get_storage(config)
    data = await storage.get_item(config.sync.storage_name)
    if not data:
        return None, SyncState()
    return data, SyncState.from_persisted(data.get(SYNC_STATE_KEY) or {})


def output_result(data: dict[str, Any], as_json: bool = False) -> None:
    """Output result in appropriate format."""
    if as_json:
        typer.echo(json.dumps(data, indent=2, default=str))
    elif "error" in data:
        typer.secho(f"Error: {data['error']}", fg=typer.colors.RED)
    elif "message" in data:
        typer.secho(data["message"], fg=typer.colors.GREEN)
        if data.get("warnings"):
            for warning in data["warnings"]:
                typer.secho(warning, fg=typer.colors.YELLOW)
    else:
        typer.echo(str(data))
