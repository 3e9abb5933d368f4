"""Accessors for the parts of container state the engine owns or reads."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from zync.core.models import SyncState
from zync.core.records import Record

SYNC_STATE_KEY = "sync_state"


def sync_state_of(state: Mapping[str, Any]) -> SyncState:
    current = state.get(SYNC_STATE_KEY)
    if isinstance(current, SyncState):
        return current
    return SyncState()


def sync_state_patch(state: Mapping[str, Any], **changes: Any) -> dict[str, Any]:
    """Build a container patch replacing selected SyncState fields."""
    return {SYNC_STATE_KEY: sync_state_of(state).with_update(**changes)}


def records_of(state: Mapping[str, Any], collection: str) -> list[Record]:
    items = state.get(collection)
    return list(items) if items else []
