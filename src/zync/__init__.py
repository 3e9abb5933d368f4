"""zync - offline-first optimistic sync engine."""

from zync.api import CollectionApi
from zync.config import SyncConfig, ZyncConfig, configure_logging
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
)
from zync.core.records import next_local_id
from zync.errors import (
    FirstLoadLoopError,
    InvalidChangeSequenceError,
    MissingApiError,
    ZyncError,
)
from zync.sync.lifecycle import ManualLifecycle, NullLifecycle
from zync.sync.sync_engine import SyncEngine, create_with_sync

__version__ = "0.1.0"

__all__ = [
    # Engine
    "SyncEngine",
    "create_with_sync",
    "CollectionApi",
    "StateContainer",
    "ManualLifecycle",
    "NullLifecycle",
    # Models
    "Conflict",
    "ConflictResolutionStrategy",
    "FieldConflict",
    "MissingRemoteRecordStrategy",
    "PendingChange",
    "SyncAction",
    "SyncState",
    "SyncStatus",
    "next_local_id",
    # Config
    "SyncConfig",
    "ZyncConfig",
    "configure_logging",
    # Errors
    "ZyncError",
    "MissingApiError",
    "FirstLoadLoopError",
    "InvalidChangeSequenceError",
    # Version
    "__version__",
]
