"""Conflict tracker: shallow-merge detection and explicit resolution."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from zync.core.models import Conflict, FieldConflict, PendingChange
from zync.core.records import LOCAL_ID, SYNC_FIELDS, Record
from zync.core.state import records_of, sync_state_of, sync_state_patch
from zync.engine.pending import find_pending, update_pending

logger = logging.getLogger(__name__)


def detect_field_conflicts(
    change: PendingChange, local: Mapping[str, Any], remote: Mapping[str, Any]
) -> tuple[FieldConflict, ...]:
    """Fields edited locally that the server also moved to a different value.

    A field conflicts when the remote value differs from the value captured
    in ``change.before`` and from the current local value.
    """
    conflicts: list[FieldConflict] = []
    for key in change.changes:
        if key in SYNC_FIELDS or key not in remote:
            continue
        remote_value = remote[key]
        local_value = local.get(key, change.changes[key])
        if remote_value != change.before.get(key) and remote_value != local_value:
            conflicts.append(
                FieldConflict(key=key, local_value=local_value, remote_value=remote_value)
            )
    return tuple(conflicts)


def shallow_merge(
    local: Mapping[str, Any], remote: Mapping[str, Any], change: PendingChange
) -> Record:
    """Remote values for fields the client did not touch, local values for the rest."""
    merged: Record = dict(local)
    for key, value in remote.items():
        if key == LOCAL_ID or key in change.changes:
            continue
        merged[key] = value
    return merged


def without_conflict(conflicts: Mapping[str, Conflict], local_id: str) -> dict[str, Conflict]:
    return {k: v for k, v in conflicts.items() if k != local_id}


def resolve_conflict_patch(
    state: Mapping[str, Any], local_id: str, keep_local: bool
) -> dict[str, Any] | None:
    """Container patch resolving the conflict tracked for ``local_id``.

    keep_local: the remote values become the new base of the pending edit,
    which is pushed on the next cycle.
    Otherwise the remote values are written into the local record and the
    conflicting fields leave the pending edit; an edit left empty is dropped.

    Returns ``None`` when no conflict is tracked for ``local_id``.
    """
    sync_state = sync_state_of(state)
    conflict = sync_state.conflicts.get(local_id)
    if conflict is None:
        logger.warning("No conflict to resolve for %s", local_id)
        return None

    collection = conflict.collection
    remote_values = {f.key: f.remote_value for f in conflict.fields}
    pending = sync_state.pending_changes
    patch: dict[str, Any] = {}

    if keep_local:

        def rebase(change: PendingChange) -> PendingChange:
            return change.with_update(before={**change.before, **remote_values})

        pending = update_pending(pending, collection, local_id, rebase)
        logger.debug("Conflict %s/%s resolved keeping local", collection, local_id)
    else:
        patch[collection] = [
            {**item, **remote_values} if item.get(LOCAL_ID) == local_id else item
            for item in records_of(state, collection)
        ]

        def drop_fields(change: PendingChange) -> PendingChange | None:
            remaining = {k: v for k, v in change.changes.items() if k not in remote_values}
            if not remaining:
                return None
            return change.with_update(
                changes=remaining, before={**change.before, **remote_values}
            )

        pending = update_pending(pending, collection, local_id, drop_fields)
        logger.debug(
            "Conflict %s/%s resolved keeping remote (pending kept: %s)",
            collection,
            local_id,
            find_pending(pending, collection, local_id) is not None,
        )

    patch.update(
        sync_state_patch(
            state,
            pending_changes=pending,
            conflicts=without_conflict(sync_state.conflicts, local_id),
        )
    )
    return patch
