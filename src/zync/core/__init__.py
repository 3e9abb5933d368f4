"""Core data structures for zync."""

from zync.core.container import StateContainer
from zync.core.models import (
    Conflict,
    ConflictResolutionStrategy,
    FieldConflict,
    MissingRemoteRecordStrategy,
    PendingChange,
    SyncAction,
    SyncState,
    SyncStatus,
    order_for,
)
from zync.core.records import (
    SYNC_FIELDS,
    Record,
    change_keys_from,
    change_keys_to,
    next_local_id,
    omit_sync_fields,
)

__all__ = [
    "StateContainer",
    "Conflict",
    "ConflictResolutionStrategy",
    "FieldConflict",
    "MissingRemoteRecordStrategy",
    "PendingChange",
    "SyncAction",
    "SyncState",
    "SyncStatus",
    "order_for",
    "SYNC_FIELDS",
    "Record",
    "change_keys_from",
    "change_keys_to",
    "next_local_id",
    "omit_sync_fields",
]
