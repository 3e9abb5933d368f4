"""Storage factory for creating storage based on configuration."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from zync.storage.json_store import JsonFileStorage
from zync.storage.memory_store import InMemoryStateStorage
from zync.storage.sqlite_store import SQLiteStateStorage

if TYPE_CHECKING:
    from zync.config import ZyncConfig
    from zync.storage.base import StateStorage

logger = logging.getLogger(__name__)


async def create_storage(config: ZyncConfig) -> StateStorage:
    """
    Create a storage instance for ``config.sync.storage_backend``.

    Returns:
        Ready-to-use storage (SQLite storage is already initialized)

    Raises:
        ValueError: unknown backend name
    """
    backend = config.sync.storage_backend
    if backend == "memory":
        return InMemoryStateStorage()

    if backend == "json":
        return JsonFileStorage(config.state_dir)

    if backend == "sqlite":
        storage = SQLiteStateStorage(config.db_path)
        await storage.initialize()
        logger.debug("Opened SQLite state storage at %s", config.db_path)
        return storage

    raise ValueError(f"Unknown storage backend: {backend}")
