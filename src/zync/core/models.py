"""Sync state data structures: pending changes, conflicts and the engine state."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any


class SyncAction(StrEnum):
    """Kind of outstanding local mutation."""

    CREATE = "create"
    UPDATE = "update"
    REMOVE = "remove"


class SyncStatus(StrEnum):
    """Engine status exposed to the host."""

    DISABLED = "disabled"
    HYDRATING = "hydrating"
    SYNCING = "syncing"
    IDLE = "idle"


class ConflictResolutionStrategy(StrEnum):
    """How a pull treats a remote record that also has a pending local change."""

    LOCAL_WINS = "local-wins"
    REMOTE_WINS = "remote-wins"
    TRY_SHALLOW_MERGE = "try-shallow-merge"


class MissingRemoteRecordStrategy(StrEnum):
    """What to do when an update finds the server record gone."""

    IGNORE = "ignore"
    DELETE_LOCAL_RECORD = "delete-local-record"
    INSERT_REMOTE_RECORD = "insert-remote-record"


_ACTION_ORDER = {
    SyncAction.CREATE: 1,
    SyncAction.UPDATE: 2,
    SyncAction.REMOVE: 3,
}


def order_for(action: SyncAction) -> int:
    """Dispatch priority: creates first so ids exist before updates and removes."""
    return _ACTION_ORDER[action]


@dataclass(frozen=True)
class PendingChange:
    """One local mutation awaiting server confirmation.

    Attributes:
        action: create, update or remove
        collection: State key of the record collection
        local_id: Local identity of the record
        id: Server identity, once known
        version: Bumped on every re-mutation while the change is queued
        changes: Field payload to send
        before: Pre-change field values, used for shallow-merge comparison
    """

    action: SyncAction
    collection: str
    local_id: str
    id: Any = None
    version: int = 1
    changes: dict[str, Any] = field(default_factory=dict)
    before: dict[str, Any] = field(default_factory=dict)

    def with_update(self, **kwargs: Any) -> PendingChange:
        """Create updated PendingChange (immutable pattern)."""
        return replace(self, **kwargs)

    def matches(self, collection: str, local_id: str) -> bool:
        return self.collection == collection and self.local_id == local_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "collection": self.collection,
            "local_id": self.local_id,
            "id": self.id,
            "version": self.version,
            "changes": dict(self.changes),
            "before": dict(self.before),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingChange:
        return cls(
            action=SyncAction(data["action"]),
            collection=data["collection"],
            local_id=data["local_id"],
            id=data.get("id"),
            version=int(data.get("version", 1)),
            changes=dict(data.get("changes") or {}),
            before=dict(data.get("before") or {}),
        )


@dataclass(frozen=True)
class FieldConflict:
    """A field both sides changed to different values."""

    key: str
    local_value: Any
    remote_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "local_value": self.local_value,
            "remote_value": self.remote_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FieldConflict:
        return cls(
            key=data["key"],
            local_value=data.get("local_value"),
            remote_value=data.get("remote_value"),
        )


@dataclass(frozen=True)
class Conflict:
    """Unresolved divergence for one record, keyed by local id in SyncState."""

    collection: str
    fields: tuple[FieldConflict, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"collection": self.collection, "fields": [f.to_dict() for f in self.fields]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Conflict:
        return cls(
            collection=data["collection"],
            fields=tuple(FieldConflict.from_dict(f) for f in data.get("fields", [])),
        )


@dataclass(frozen=True)
class SyncState:
    """Engine state stored in the container under ``sync_state``.

    Only ``first_load_done``, ``pending_changes``, ``last_pulled`` and
    ``conflicts`` survive persistence; the rest is reset on reload.
    """

    status: SyncStatus = SyncStatus.HYDRATING
    enabled: bool = False
    first_load_done: bool = False
    pending_changes: tuple[PendingChange, ...] = ()
    last_pulled: dict[str, str] = field(default_factory=dict)
    conflicts: dict[str, Conflict] = field(default_factory=dict)
    error: BaseException | None = None

    def with_update(self, **kwargs: Any) -> SyncState:
        """Create updated SyncState (immutable pattern)."""
        return replace(self, **kwargs)

    def to_persisted(self) -> dict[str, Any]:
        return {
            "first_load_done": self.first_load_done,
            "pending_changes": [p.to_dict() for p in self.pending_changes],
            "last_pulled": dict(self.last_pulled),
            "conflicts": {k: c.to_dict() for k, c in self.conflicts.items()},
        }

    @classmethod
    def from_persisted(cls, data: dict[str, Any]) -> SyncState:
        """Rebuild state from storage; transient fields get their reload defaults."""
        return cls(
            status=SyncStatus.IDLE,
            enabled=False,
            first_load_done=bool(data.get("first_load_done", False)),
            pending_changes=tuple(
                PendingChange.from_dict(p) for p in data.get("pending_changes", [])
            ),
            last_pulled=dict(data.get("last_pulled") or {}),
            conflicts={
                k: Conflict.from_dict(c) for k, c in (data.get("conflicts") or {}).items()
            },
            error=None,
        )
