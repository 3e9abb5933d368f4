"""Change-diff engine: classify records between two snapshots of a collection.

Comparison is shallow. Scalars compare by equality, anything else by
identity, so a nested list mutated in place is not detected. Callers that
edit nested values must replace them.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from zync.core.records import LOCAL_ID, SERVER_ID, SYNC_FIELDS, Record, omit_sync_fields

_SCALARS = (str, int, float, bool, bytes, type(None))


class ChangeKind(StrEnum):
    """Classification of a record between two snapshots."""

    ADDITION = "addition"
    REMOVAL = "removal"
    UPDATE = "update"


@dataclass(frozen=True)
class RecordDiff:
    """Neutral description of what happened to one local identity."""

    kind: ChangeKind
    local_id: str
    id: Any = None
    current: Record | None = None
    updated: Record | None = None
    changes: dict[str, Any] = field(default_factory=dict)


def _differs(old: Any, new: Any) -> bool:
    if old is new:
        return False
    if isinstance(old, _SCALARS) and isinstance(new, _SCALARS):
        return bool(old != new)
    return True


def field_changes(current: Mapping[str, Any], updated: Mapping[str, Any]) -> dict[str, Any]:
    """Top-level fields whose value differs, ignoring sync bookkeeping fields.

    A field present before and missing after is reported as ``None``.
    """
    changes: dict[str, Any] = {}
    for key, value in updated.items():
        if key in SYNC_FIELDS:
            continue
        if key not in current or _differs(current[key], value):
            changes[key] = value
    for key in current:
        if key not in SYNC_FIELDS and key not in updated:
            changes[key] = None
    return changes


def _by_local_id(items: Iterable[Mapping[str, Any]]) -> dict[str, Record]:
    indexed: dict[str, Record] = {}
    for item in items:
        local_id = item.get(LOCAL_ID)
        if local_id:
            indexed[local_id] = dict(item)
    return indexed


def find_changes(
    current: Iterable[Mapping[str, Any]] | None,
    updated: Iterable[Mapping[str, Any]] | None,
) -> dict[str, RecordDiff]:
    """Diff two snapshots of a collection.

    Args:
        current: Records before the mutation
        updated: Records after the mutation

    Returns:
        One RecordDiff per local id that was added, removed or changed.
        Records without a local id are ignored.
    """
    before = _by_local_id(current or [])
    after = _by_local_id(updated or [])
    diffs: dict[str, RecordDiff] = {}

    for local_id, new_item in after.items():
        old_item = before.get(local_id)
        if old_item is None:
            diffs[local_id] = RecordDiff(
                kind=ChangeKind.ADDITION,
                local_id=local_id,
                id=new_item.get(SERVER_ID),
                current=None,
                updated=new_item,
                changes=omit_sync_fields(new_item),
            )
            continue

        changes = field_changes(old_item, new_item)
        if changes:
            diffs[local_id] = RecordDiff(
                kind=ChangeKind.UPDATE,
                local_id=local_id,
                id=new_item.get(SERVER_ID, old_item.get(SERVER_ID)),
                current=old_item,
                updated=new_item,
                changes=changes,
            )

    for local_id, old_item in before.items():
        if local_id not in after:
            diffs[local_id] = RecordDiff(
                kind=ChangeKind.REMOVAL,
                local_id=local_id,
                id=old_item.get(SERVER_ID),
                current=old_item,
                updated=None,
            )

    return diffs
