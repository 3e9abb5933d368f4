"""Sync orchestration: engine, scheduler and host lifecycle."""

from zync.sync.lifecycle import HostLifecycle, ManualLifecycle, NullLifecycle
from zync.sync.scheduler import IntervalScheduler
from zync.sync.sync_engine import SyncEngine, create_with_sync

__all__ = [
    "HostLifecycle",
    "ManualLifecycle",
    "NullLifecycle",
    "IntervalScheduler",
    "SyncEngine",
    "create_with_sync",
]
