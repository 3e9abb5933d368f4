"""In-memory state storage for tests and ephemeral hosts."""

from __future__ import annotations

import copy
from typing import Any

from zync.storage.base import StateStorage


class InMemoryStateStorage(StateStorage):
    """Dict-backed storage. Values are deep-copied on the way in and out."""

    def __init__(self) -> None:
        self._items: dict[str, dict[str, Any]] = {}

    async def get_item(self, name: str) -> dict[str, Any] | None:
        value = self._items.get(name)
        return copy.deepcopy(value) if value is not None else None

    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        self._items[name] = copy.deepcopy(value)

    async def remove_item(self, name: str) -> None:
        self._items.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._items)
