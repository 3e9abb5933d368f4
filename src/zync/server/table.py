"""In-process record table: the authoritative copy of one collection.

Backs both the reference HTTP server and :class:`InMemoryCollectionApi`.
Ids are server-assigned integers. Every write stamps ``updated_at`` with a
strictly increasing millisecond timestamp, so "updated after X" queries
never lose a write that shares a millisecond with the previous one.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from zync.core.records import DELETED, SERVER_ID, SYNC_FIELDS, UPDATED_AT, Record
from zync.utils.timeutils import EPOCH, parse_timestamp, to_iso, utcnow

_TICK = timedelta(milliseconds=1)


class RecordTable:
    """Soft-deleting record store with ``since`` and id-cursor queries."""

    def __init__(self, name: str = "", *, clock: Callable[[], datetime] = utcnow) -> None:
        self.name = name
        self._clock = clock
        self._rows: dict[int, Record] = {}
        self._next_id = 1
        self._last_stamp = EPOCH

    def _stamp(self) -> str:
        now = self._clock()
        now = now.replace(microsecond=now.microsecond // 1000 * 1000)
        if now <= self._last_stamp:
            now = self._last_stamp + _TICK
        self._last_stamp = now
        return to_iso(now)

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, data: Mapping[str, Any]) -> Record:
        """Insert a record; returns the server-assigned fields."""
        row_id = self._next_id
        self._next_id += 1
        fields = {k: v for k, v in data.items() if k not in SYNC_FIELDS}
        row: Record = {
            **copy.deepcopy(fields),
            SERVER_ID: row_id,
            UPDATED_AT: self._stamp(),
            DELETED: False,
        }
        self._rows[row_id] = row
        return {SERVER_ID: row_id, UPDATED_AT: row[UPDATED_AT]}

    def update(self, row_id: Any, changes: Mapping[str, Any]) -> bool:
        """Apply field changes; False when the row is missing or soft-deleted."""
        row = self._rows.get(row_id)
        if row is None or row[DELETED]:
            return False
        fields = {k: v for k, v in changes.items() if k not in SYNC_FIELDS}
        row.update(copy.deepcopy(fields))
        row[UPDATED_AT] = self._stamp()
        return True

    def remove(self, row_id: Any) -> bool:
        """Soft-delete a row; False when it does not exist or is already deleted."""
        row = self._rows.get(row_id)
        if row is None or row[DELETED]:
            return False
        row[DELETED] = True
        row[UPDATED_AT] = self._stamp()
        return True

    def get(self, row_id: Any) -> Record | None:
        row = self._rows.get(row_id)
        return copy.deepcopy(row) if row is not None else None

    def list_since(self, since: datetime | str | None) -> list[Record]:
        """Rows (deleted ones included) updated strictly after ``since``."""
        threshold = parse_timestamp(since)
        rows = [r for r in self._rows.values() if parse_timestamp(r[UPDATED_AT]) > threshold]
        rows.sort(key=lambda r: r[UPDATED_AT])
        return copy.deepcopy(rows)

    def first_load(self, after_id: Any = None, limit: int = 100) -> list[Record]:
        """Up to ``limit`` rows with id greater than ``after_id``, ascending."""
        start = int(after_id) if after_id is not None else 0
        ids = sorted(i for i in self._rows if i > start)[:limit]
        return [copy.deepcopy(self._rows[i]) for i in ids]

    def live_records(self) -> list[Record]:
        return [copy.deepcopy(r) for _, r in sorted(self._rows.items()) if not r[DELETED]]

    def all_records(self) -> list[Record]:
        return [copy.deepcopy(r) for _, r in sorted(self._rows.items())]

    def clear(self) -> None:
        self._rows.clear()
        self._next_id = 1
