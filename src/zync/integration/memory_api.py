"""In-process collaborator over a :class:`RecordTable`."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from zync.server.table import RecordTable


class InMemoryCollectionApi:
    """Implements the collaborator contract against a local table.

    Useful for tests and for hosts that keep the authoritative copy in
    the same process.
    """

    def __init__(self, table: RecordTable | None = None, *, page_size: int = 100) -> None:
        self.table = table if table is not None else RecordTable()
        self._page_size = page_size

    async def add(self, item: dict[str, Any]) -> dict[str, Any] | None:
        return self.table.add(item)

    async def update(self, id: Any, changes: dict[str, Any], item: dict[str, Any]) -> bool:
        return self.table.update(id, changes)

    async def remove(self, id: Any) -> None:
        self.table.remove(id)

    async def list(self, since: datetime) -> list[dict[str, Any]]:
        return self.table.list_since(since)

    async def first_load(self, last_id: Any) -> list[dict[str, Any]]:
        return self.table.first_load(last_id, self._page_size)
