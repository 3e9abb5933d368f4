"""SQLite state storage (aiosqlite): one key/value table, JSON values."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import aiosqlite

from zync.storage.base import StateStorage

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sync_store (
    name TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""


class SQLiteStateStorage(StateStorage):
    """Persist engine snapshots in a SQLite database.

    Call :meth:`initialize` before use and :meth:`close` when done.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open the connection and create the table if needed."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.executescript(SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _ensure_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("SQLiteStateStorage not initialized; call initialize() first")
        return self._conn

    async def get_item(self, name: str) -> dict[str, Any] | None:
        conn = self._ensure_conn()
        async with conn.execute("SELECT value FROM sync_store WHERE name = ?", (name,)) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        try:
            data = json.loads(row["value"])
        except (json.JSONDecodeError, TypeError):
            logger.warning("Corrupt JSON in sync_store for %s, ignoring stored state", name)
            return None
        return data if isinstance(data, dict) else None

    async def set_item(self, name: str, value: dict[str, Any]) -> None:
        """Upsert the value for ``name`` (INSERT OR REPLACE)."""
        conn = self._ensure_conn()
        await conn.execute(
            """INSERT OR REPLACE INTO sync_store (name, value, updated_at)
               VALUES (?, ?, strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))""",
            (name, json.dumps(value, default=str)),
        )
        await conn.commit()

    async def remove_item(self, name: str) -> None:
        conn = self._ensure_conn()
        await conn.execute("DELETE FROM sync_store WHERE name = ?", (name,))
        await conn.commit()
