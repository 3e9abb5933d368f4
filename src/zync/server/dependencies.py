"""Shared dependencies for API routes."""

from __future__ import annotations

import re

from fastapi import HTTPException

from zync.server.table import RecordTable

# Valid collection name: alphanumeric, hyphens, underscores
_COLLECTION_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]{1,64}$")


class RecordStore:
    """Tables of the reference backend, created on first use."""

    def __init__(self) -> None:
        self._tables: dict[str, RecordTable] = {}

    def table(self, collection: str) -> RecordTable:
        if collection not in self._tables:
            self._tables[collection] = RecordTable(collection)
        return self._tables[collection]

    def tables(self) -> dict[str, RecordTable]:
        return dict(self._tables)


async def get_store() -> RecordStore:
    """Get the record store. Overridden by the app factory."""
    raise NotImplementedError("Store dependency not configured")


def validate_collection(collection: str) -> str:
    if not _COLLECTION_PATTERN.match(collection):
        raise HTTPException(status_code=400, detail=f"Invalid collection name: {collection}")
    return collection
