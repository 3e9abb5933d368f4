"""Abstract base class for persisted state storage, plus the persisted layout."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import Any

from zync.core.models import SyncState
from zync.core.state import SYNC_STATE_KEY, records_of, sync_state_of


class StateStorage(ABC):
    """
    Abstract key-value store for the engine's persisted snapshot.

    Values are JSON-compatible dicts. Implementations may be backed by
    memory, a file, or a database; every method is async so blocking
    backends can run off the event loop.
    """

    @abstractmethod
    async def get_item(self, name: str) -> dict[str, Any] | None:
        """Return the stored value, or None if nothing is stored under ``name``."""
        ...

    @abstractmethod
    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        """Store ``value`` under ``name``, replacing any previous value."""
        ...

    @abstractmethod
    async def remove_item(self, name: str) -> None:
        """Delete the value stored under ``name``; missing names are ignored."""
        ...

    async def close(self) -> None:  # noqa: B027
        """Release resources. No-op by default."""


def partialize(state: Mapping[str, Any], collections: Iterable[str]) -> dict[str, Any]:
    """Reduce container state to what survives a storage round-trip.

    Synced collections are kept as is; SyncState keeps only
    ``first_load_done``, ``pending_changes``, ``last_pulled`` and ``conflicts``.
    """
    return {
        "collections": {name: records_of(state, name) for name in collections},
        SYNC_STATE_KEY: sync_state_of(state).to_persisted(),
    }


def restore_state(data: Mapping[str, Any]) -> dict[str, Any]:
    """Container patch rebuilt from a persisted snapshot.

    Transient SyncState fields get their reload defaults (status ``idle``,
    disabled, no error).
    """
    patch: dict[str, Any] = {
        name: [dict(item) for item in items]
        for name, items in (data.get("collections") or {}).items()
    }
    patch[SYNC_STATE_KEY] = SyncState.from_persisted(data.get(SYNC_STATE_KEY) or {})
    return patch
