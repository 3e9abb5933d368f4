"""Pending-change queue with coalescing inserts.

The queue is an immutable tuple held in SyncState. Every function here is
pure and returns a new tuple, so callers apply the result inside a single
container transition.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from zync.core.models import PendingChange, SyncAction
from zync.core.records import omit_sync_fields
from zync.engine.diff import ChangeKind, RecordDiff
from zync.errors import InvalidChangeSequenceError

logger = logging.getLogger(__name__)

PendingQueue = tuple[PendingChange, ...]


def find_pending(
    pending: Iterable[PendingChange], collection: str, local_id: str
) -> PendingChange | None:
    for change in pending:
        if change.matches(collection, local_id):
            return change
    return None


def same_pending_version(
    pending: Iterable[PendingChange], collection: str, local_id: str, version: int
) -> bool:
    """True when the queued entry still carries ``version`` (no re-mutation in flight)."""
    change = find_pending(pending, collection, local_id)
    return change is not None and change.version == version


def remove_pending(
    pending: Iterable[PendingChange], collection: str, local_id: str
) -> PendingQueue:
    return tuple(p for p in pending if not p.matches(collection, local_id))


def replace_pending(pending: Iterable[PendingChange], updated: PendingChange) -> PendingQueue:
    """Swap the entry for ``updated``'s identity in place, or append it."""
    result: list[PendingChange] = []
    replaced = False
    for change in pending:
        if change.matches(updated.collection, updated.local_id):
            result.append(updated)
            replaced = True
        else:
            result.append(change)
    if not replaced:
        result.append(updated)
    return tuple(result)


def update_pending(
    pending: Iterable[PendingChange],
    collection: str,
    local_id: str,
    fn: Callable[[PendingChange], PendingChange | None],
) -> PendingQueue:
    """Apply ``fn`` to one entry; returning ``None`` drops it."""
    result: list[PendingChange] = []
    for change in pending:
        if change.matches(collection, local_id):
            updated = fn(change)
            if updated is not None:
                result.append(updated)
        else:
            result.append(change)
    return tuple(result)


def _record_removal(pending: PendingQueue, collection: str, diff: RecordDiff) -> PendingQueue:
    existing = find_pending(pending, collection, diff.local_id)
    if existing is None:
        if diff.id is None:
            # Never reached the server, nothing to delete remotely.
            return pending
        return (
            *pending,
            PendingChange(
                action=SyncAction.REMOVE,
                collection=collection,
                local_id=diff.local_id,
                id=diff.id,
            ),
        )

    server_id = existing.id if existing.id is not None else diff.id
    if existing.action == SyncAction.CREATE and server_id is None:
        logger.debug(
            "Create then remove before dispatch, dropping %s/%s", collection, diff.local_id
        )
        return remove_pending(pending, collection, diff.local_id)

    return replace_pending(
        pending,
        existing.with_update(
            action=SyncAction.REMOVE,
            id=server_id,
            version=existing.version + 1,
        ),
    )


def _record_addition(pending: PendingQueue, collection: str, diff: RecordDiff) -> PendingQueue:
    existing = find_pending(pending, collection, diff.local_id)
    if existing is None:
        return (
            *pending,
            PendingChange(
                action=SyncAction.CREATE,
                collection=collection,
                local_id=diff.local_id,
                id=diff.id,
                changes=dict(diff.changes),
            ),
        )
    if existing.action == SyncAction.REMOVE:
        raise InvalidChangeSequenceError(collection, diff.local_id)
    return replace_pending(
        pending,
        existing.with_update(
            changes={**existing.changes, **diff.changes},
            version=existing.version + 1,
        ),
    )


def _record_update(pending: PendingQueue, collection: str, diff: RecordDiff) -> PendingQueue:
    existing = find_pending(pending, collection, diff.local_id)
    if existing is None:
        if diff.id is None:
            # Local-only record (its create never got a server id): retry as a create.
            full = omit_sync_fields(diff.updated or {})
            return (
                *pending,
                PendingChange(
                    action=SyncAction.CREATE,
                    collection=collection,
                    local_id=diff.local_id,
                    changes=full,
                ),
            )
        return (
            *pending,
            PendingChange(
                action=SyncAction.UPDATE,
                collection=collection,
                local_id=diff.local_id,
                id=diff.id,
                changes=dict(diff.changes),
                before=omit_sync_fields(diff.current or {}),
            ),
        )
    if existing.action == SyncAction.REMOVE:
        return pending
    return replace_pending(
        pending,
        existing.with_update(
            changes={**existing.changes, **diff.changes},
            id=existing.id if existing.id is not None else diff.id,
            version=existing.version + 1,
        ),
    )


def record_change(pending: PendingQueue, collection: str, diff: RecordDiff) -> PendingQueue:
    """Coalesce one diff into the queue.

    At most one entry exists per (collection, local_id). ``remove`` is
    terminal: later edits to the same identity are ignored.

    Raises:
        InvalidChangeSequenceError: the record was re-added while a remove
            for the same local id is still queued.
    """
    if diff.kind == ChangeKind.REMOVAL:
        return _record_removal(pending, collection, diff)
    if diff.kind == ChangeKind.ADDITION:
        return _record_addition(pending, collection, diff)
    return _record_update(pending, collection, diff)


def record_changes(
    pending: PendingQueue, collection: str, diffs: Mapping[str, RecordDiff]
) -> PendingQueue:
    for diff in diffs.values():
        pending = record_change(pending, collection, diff)
    return pending


def pending_summary(pending: Iterable[PendingChange]) -> dict[str, Any]:
    """Counts by action and collection, for status output."""
    by_action: dict[str, int] = {}
    by_collection: dict[str, int] = {}
    total = 0
    for change in pending:
        total += 1
        by_action[change.action.value] = by_action.get(change.action.value, 0) + 1
        by_collection[change.collection] = by_collection.get(change.collection, 0) + 1
    return {"total": total, "by_action": by_action, "by_collection": by_collection}
