"""Storage backends for persisted engine state."""

from zync.storage.base import StateStorage, partialize, restore_state
from zync.storage.factory import create_storage
from zync.storage.json_store import JsonFileStorage
from zync.storage.memory_store import InMemoryStateStorage
from zync.storage.sqlite_store import SQLiteStateStorage

__all__ = [
    "StateStorage",
    "InMemoryStateStorage",
    "JsonFileStorage",
    "SQLiteStateStorage",
    "create_storage",
    "partialize",
    "restore_state",
]
