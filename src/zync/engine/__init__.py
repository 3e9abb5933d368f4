"""Sync algorithms: diff, pending queue, conflicts, pull, first load, push."""

from zync.engine.conflicts import detect_field_conflicts, resolve_conflict_patch, shallow_merge
from zync.engine.diff import ChangeKind, RecordDiff, find_changes
from zync.engine.first_load import FirstLoadResult, first_load_collection
from zync.engine.pending import record_change, record_changes
from zync.engine.pull import PullResult, merge_remote_batch, pull_collection
from zync.engine.push import PushDispatcher, dispatch_order

__all__ = [
    "ChangeKind",
    "RecordDiff",
    "find_changes",
    "record_change",
    "record_changes",
    "detect_field_conflicts",
    "shallow_merge",
    "resolve_conflict_patch",
    "PullResult",
    "merge_remote_batch",
    "pull_collection",
    "FirstLoadResult",
    "first_load_collection",
    "PushDispatcher",
    "dispatch_order",
]
