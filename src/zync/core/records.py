"""Helpers for records: plain dicts carrying the sync bookkeeping fields."""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from typing import Any, overload

LOCAL_ID = "_local_id"
SERVER_ID = "id"
UPDATED_AT = "updated_at"
DELETED = "deleted"

SYNC_FIELDS: tuple[str, ...] = (SERVER_ID, LOCAL_ID, UPDATED_AT, DELETED)

Record = dict[str, Any]


def next_local_id() -> str:
    """Generate a new local identity."""
    return str(uuid.uuid4())


def omit_sync_fields(item: Mapping[str, Any], fields: Iterable[str] = SYNC_FIELDS) -> Record:
    """Return a copy of ``item`` without the given sync fields."""
    excluded = set(fields)
    return {k: v for k, v in item.items() if k not in excluded}


def find_by_local_id(items: Iterable[Record], local_id: str) -> Record | None:
    for item in items:
        if item.get(LOCAL_ID) == local_id:
            return item
    return None


def _rename(item: Mapping[str, Any], mapping: Mapping[str, str]) -> Record:
    renamed: Record = {}
    for key, value in item.items():
        renamed[mapping.get(key, key)] = value
    return renamed


@overload
def change_keys_to(data: None, id_key: str, updated_at_key: str, deleted_key: str) -> None: ...


@overload
def change_keys_to(
    data: Mapping[str, Any], id_key: str, updated_at_key: str, deleted_key: str
) -> Record: ...


@overload
def change_keys_to(
    data: list[Mapping[str, Any]], id_key: str, updated_at_key: str, deleted_key: str
) -> list[Record]: ...


def change_keys_to(data: Any, id_key: str, updated_at_key: str, deleted_key: str) -> Any:
    """Rename local sync keys to a backend's field names.

    Works on a single record or a list of records; falsy input is returned as is.
    """
    if not data:
        return data
    mapping = {SERVER_ID: id_key, UPDATED_AT: updated_at_key, DELETED: deleted_key}
    if isinstance(data, list):
        return [_rename(item, mapping) for item in data]
    return _rename(data, mapping)


def change_keys_from(data: Any, id_key: str, updated_at_key: str, deleted_key: str) -> Any:
    """Inverse of :func:`change_keys_to`: map backend field names to local sync keys."""
    if not data:
        return data
    mapping = {id_key: SERVER_ID, updated_at_key: UPDATED_AT, deleted_key: DELETED}
    if isinstance(data, list):
        return [_rename(item, mapping) for item in data]
    return _rename(data, mapping)
