"""Pull reconciler: merge remote deltas into local state.

The network call happens first; the whole batch is then applied in one
container transition, reading the pending queue and conflicts as they are
at apply time, so local edits made while ``list`` was awaited are honored.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from zync.core.container import StateContainer
from zync.core.models import (
    Conflict,
    ConflictResolutionStrategy,
    PendingChange,
    SyncAction,
)
from zync.core.records import DELETED, LOCAL_ID, SERVER_ID, UPDATED_AT, Record, next_local_id
from zync.core.state import records_of, sync_state_of, sync_state_patch
from zync.engine.conflicts import detect_field_conflicts, shallow_merge
from zync.engine.pending import find_pending, remove_pending
from zync.utils.timeutils import parse_timestamp, to_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PullResult:
    """Counters for one merged batch."""

    collection: str
    fetched: int = 0
    inserted: int = 0
    merged: int = 0
    removed: int = 0
    skipped: int = 0
    conflicts: int = 0
    watermark: str | None = None


class _LocalIndex:
    """Ordered local records addressable by server id."""

    def __init__(self, items: Iterable[Record]) -> None:
        self._items: dict[Any, Record] = {}
        self._by_server_id: dict[Any, Any] = {}
        for item in items:
            key = item.get(LOCAL_ID) or object()
            self._items[key] = item
            if item.get(SERVER_ID) is not None:
                self._by_server_id[item[SERVER_ID]] = key

    def get(self, server_id: Any) -> Record | None:
        key = self._by_server_id.get(server_id)
        return None if key is None else self._items[key]

    def add(self, item: Record) -> None:
        key = item[LOCAL_ID]
        self._items[key] = item
        if item.get(SERVER_ID) is not None:
            self._by_server_id[item[SERVER_ID]] = key

    def replace(self, server_id: Any, item: Record) -> None:
        self._items[self._by_server_id[server_id]] = item

    def drop(self, server_id: Any) -> None:
        key = self._by_server_id.pop(server_id, None)
        if key is not None:
            self._items.pop(key, None)

    def values(self) -> list[Record]:
        return list(self._items.values())


def merge_remote_batch(
    state: Mapping[str, Any],
    collection: str,
    batch: Iterable[Mapping[str, Any]],
    strategy: ConflictResolutionStrategy,
    *,
    check_pending: bool = True,
) -> tuple[dict[str, Any], PullResult]:
    """Compute the container patch that merges a remote batch.

    Args:
        state: Current container state
        collection: Collection the batch belongs to
        batch: Remote records (may carry the ``deleted`` flag)
        strategy: Conflict policy for records with a pending local update
        check_pending: ``False`` for first load, which bypasses the pending
            queue and conflict checks

    Returns:
        Tuple of (patch, PullResult)
    """
    sync_state = sync_state_of(state)
    pending: tuple[PendingChange, ...] = sync_state.pending_changes
    conflicts: dict[str, Conflict] = dict(sync_state.conflicts)
    index = _LocalIndex(records_of(state, collection))

    previous = parse_timestamp(sync_state.last_pulled.get(collection))
    newest = previous
    pending_removals = {
        p.id
        for p in pending
        if check_pending
        and p.collection == collection
        and p.action == SyncAction.REMOVE
        and p.id is not None
    }

    fetched = inserted = merged = removed = skipped = conflicted = 0

    for raw in batch:
        fetched += 1
        remote: Record = dict(raw)
        remote_updated = parse_timestamp(remote.get(UPDATED_AT))
        if remote_updated > newest:
            newest = remote_updated

        server_id = remote.get(SERVER_ID)
        if server_id in pending_removals:
            logger.debug("Pull skip %s id=%s: remove pending", collection, server_id)
            skipped += 1
            continue

        is_deleted = bool(remote.pop(DELETED, False))
        local = index.get(server_id) if server_id is not None else None

        if is_deleted:
            if local is not None:
                index.drop(server_id)
                local_id = local.get(LOCAL_ID)
                if local_id:
                    pending = remove_pending(pending, collection, local_id)
                    conflicts.pop(local_id, None)
                removed += 1
                logger.debug("Pull remove %s id=%s", collection, server_id)
            continue

        if local is None:
            index.add({**remote, LOCAL_ID: next_local_id()})
            inserted += 1
            logger.debug("Pull add %s id=%s", collection, server_id)
            continue

        local_id = local.get(LOCAL_ID) or next_local_id()
        change = find_pending(pending, collection, local_id) if check_pending else None
        if change is None:
            index.replace(server_id, {**local, **remote, LOCAL_ID: local_id})
            merged += 1
            logger.debug("Pull merge %s id=%s", collection, server_id)
            continue

        if change.action != SyncAction.UPDATE:
            logger.debug(
                "Pull %s id=%s: pending %s, keeping local", collection, server_id, change.action
            )
            skipped += 1
            continue

        if strategy == ConflictResolutionStrategy.LOCAL_WINS:
            logger.debug("Pull %s id=%s: %s, keeping local", collection, server_id, strategy)
            skipped += 1
        elif strategy == ConflictResolutionStrategy.REMOTE_WINS:
            index.replace(server_id, {**remote, LOCAL_ID: local_id})
            pending = remove_pending(pending, collection, local_id)
            conflicts.pop(local_id, None)
            merged += 1
            logger.debug(
                "Pull %s id=%s: %s, pending edit discarded", collection, server_id, strategy
            )
        elif strategy == ConflictResolutionStrategy.TRY_SHALLOW_MERGE:
            fields = detect_field_conflicts(change, local, remote)
            if fields:
                conflicts[local_id] = Conflict(collection=collection, fields=fields)
                conflicted += 1
                logger.debug(
                    "Pull %s id=%s: conflict on %s",
                    collection,
                    server_id,
                    ", ".join(f.key for f in fields),
                )
            else:
                merged_item = shallow_merge(local, remote, change)
                index.replace(server_id, {**merged_item, LOCAL_ID: local_id})
                conflicts.pop(local_id, None)
                merged += 1
                logger.debug("Pull %s id=%s: shallow merge", collection, server_id)
        else:
            logger.error(
                "Unknown conflict strategy %r for %s id=%s", strategy, collection, server_id
            )

    watermark = _watermark(newest, previous, sync_state.last_pulled.get(collection))
    patch: dict[str, Any] = {
        collection: index.values(),
        **sync_state_patch(
            state,
            pending_changes=pending,
            conflicts=conflicts,
            last_pulled={**sync_state.last_pulled, collection: watermark},
        ),
    }
    result = PullResult(
        collection=collection,
        fetched=fetched,
        inserted=inserted,
        merged=merged,
        removed=removed,
        skipped=skipped,
        conflicts=conflicted,
        watermark=watermark,
    )
    return patch, result


def _watermark(newest: datetime, previous: datetime, stored: str | None) -> str:
    if stored is not None and newest <= previous:
        return stored
    return to_iso(newest, timespec="auto")


async def pull_collection(
    container: StateContainer,
    collection: str,
    api: Any,
    strategy: ConflictResolutionStrategy,
) -> PullResult:
    """Fetch records changed since the collection's watermark and merge them.

    Raises whatever the collaborator's ``list`` raises; nothing is applied
    in that case.
    """
    stored = sync_state_of(container.get_state()).last_pulled.get(collection)
    since = parse_timestamp(stored)
    logger.debug("Pull start %s since=%s", collection, since.isoformat())

    batch = await api.list(since)
    if not batch:
        return PullResult(collection=collection, watermark=stored)

    outcome: list[PullResult] = []

    def apply(state: dict[str, Any]) -> dict[str, Any]:
        patch, result = merge_remote_batch(state, collection, batch, strategy)
        outcome.append(result)
        return patch

    container.set_state(apply)
    result = outcome[0]
    logger.debug(
        "Pull done %s: fetched=%d inserted=%d merged=%d removed=%d skipped=%d conflicts=%d",
        collection,
        result.fetched,
        result.inserted,
        result.merged,
        result.removed,
        result.skipped,
        result.conflicts,
    )
    return result
