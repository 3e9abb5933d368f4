"""Push dispatcher: send pending changes to the collaborator API.

Every dispatch re-reads the live queue entry first, so a snapshot taken at
the start of the push phase never overrides coalescing that happened while
earlier changes were awaited. State is only touched after the network call
returns, in a single transition per outcome.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from zync.api import find_api
from zync.core.container import StateContainer
from zync.core.models import MissingRemoteRecordStrategy, PendingChange, SyncAction, order_for
from zync.core.records import (
    LOCAL_ID,
    SERVER_ID,
    UPDATED_AT,
    Record,
    find_by_local_id,
    next_local_id,
    omit_sync_fields,
)
from zync.core.state import records_of, sync_state_of, sync_state_patch
from zync.engine.pending import find_pending, remove_pending, replace_pending
from zync.utils.timeutils import utcnow_iso

logger = logging.getLogger(__name__)

AfterRemoteAdd = Callable[[str, Record], Any]
MissingRemoteRecord = Callable[[MissingRemoteRecordStrategy, Record], Any]


def dispatch_order(pending: Iterable[PendingChange]) -> list[PendingChange]:
    """Creates first, then updates, then removes; insertion order within each."""
    return sorted(pending, key=lambda change: order_for(change.action))


async def _call_hook(name: str, hook: Callable[..., Any] | None, *args: Any) -> None:
    if hook is None:
        return
    try:
        result = hook(*args)
        if asyncio.iscoroutine(result):
            await result
    except Exception:
        logger.error("%s hook failed", name, exc_info=True)


class PushDispatcher:
    """Dispatches one pending change at a time against its collection's API.

    Args:
        container: State container holding the records and SyncState
        apis: Collaborators keyed by collection
        missing_remote_record_strategy: What to do when an update reports
            the server record gone
        on_after_remote_add: Called with ``(collection, record)`` after a
            successful create
        on_missing_remote_record: Called with ``(strategy, record)`` after a
            missing-remote outcome was handled
    """

    def __init__(
        self,
        container: StateContainer,
        apis: Mapping[str, Any],
        *,
        missing_remote_record_strategy: MissingRemoteRecordStrategy = (
            MissingRemoteRecordStrategy.IGNORE
        ),
        on_after_remote_add: AfterRemoteAdd | None = None,
        on_missing_remote_record: MissingRemoteRecord | None = None,
    ) -> None:
        self._container = container
        self._apis = apis
        self._missing_strategy = MissingRemoteRecordStrategy(missing_remote_record_strategy)
        self._on_after_remote_add = on_after_remote_add
        self._on_missing_remote_record = on_missing_remote_record

    async def dispatch(self, change: PendingChange) -> None:
        """Push one change.

        Raises:
            MissingApiError: no usable collaborator for the collection
            Exception: whatever the collaborator raised; the entry stays
                queued for the next cycle
        """
        live = find_pending(self._pending(), change.collection, change.local_id)
        if live is None:
            logger.debug("Push skip %s/%s: already handled", change.collection, change.local_id)
            return

        api = find_api(live.collection, self._apis)
        logger.debug(
            "Push attempt action=%s collection=%s local_id=%s",
            live.action,
            live.collection,
            live.local_id,
        )
        if live.action == SyncAction.REMOVE:
            await self._remove(api, live)
        elif live.action == SyncAction.CREATE:
            await self._create(api, live)
        else:
            await self._update(api, live)

    # ── State helpers ──

    def _pending(self) -> tuple[PendingChange, ...]:
        return sync_state_of(self._container.get_state()).pending_changes

    def _local(self, collection: str, local_id: str) -> Record | None:
        return find_by_local_id(records_of(self._container.get_state(), collection), local_id)

    def _discard(self, change: PendingChange, *, same_version_only: bool) -> None:
        def apply(state: dict[str, Any]) -> dict[str, Any] | None:
            pending = sync_state_of(state).pending_changes
            current = find_pending(pending, change.collection, change.local_id)
            if current is None:
                return None
            if same_version_only and current.version != change.version:
                return None
            return sync_state_patch(
                state,
                pending_changes=remove_pending(pending, change.collection, change.local_id),
            )

        self._container.set_state(apply)

    def _discard_missing_local(self, change: PendingChange) -> None:
        logger.warning(
            "Push %s: no local item for %s/%s, discarding",
            change.action,
            change.collection,
            change.local_id,
        )
        self._discard(change, same_version_only=False)

    # ── Actions ──

    async def _remove(self, api: Any, change: PendingChange) -> None:
        if change.id is None:
            logger.debug(
                "Push remove %s/%s: never reached the server", change.collection, change.local_id
            )
            self._discard(change, same_version_only=False)
            return

        await api.remove(change.id)
        logger.debug("Push remove ok %s/%s id=%s", change.collection, change.local_id, change.id)
        self._discard(change, same_version_only=False)

    async def _create(self, api: Any, change: PendingChange) -> None:
        collection, local_id = change.collection, change.local_id
        local = self._local(collection, local_id)
        if local is None:
            self._discard_missing_local(change)
            return

        payload = omit_sync_fields(local)
        result = await api.add(payload)
        if not result:
            logger.warning("Push create %s/%s: no result from add", collection, local_id)
            self._discard(change, same_version_only=True)
            return

        server_fields = dict(result)
        server_id = server_fields.get(SERVER_ID)
        logger.debug("Push create ok %s/%s id=%s", collection, local_id, server_id)
        merged: list[Record] = []

        def apply(state: dict[str, Any]) -> dict[str, Any]:
            pending = sync_state_of(state).pending_changes
            current = find_pending(pending, collection, local_id)
            if current is not None and current.version != change.version:
                # Edited while in flight: keep the newer local values.
                assigned = {
                    k: v for k, v in server_fields.items() if k in (SERVER_ID, UPDATED_AT)
                }
            else:
                assigned = server_fields

            items: list[Record] = []
            for item in records_of(state, collection):
                if item.get(LOCAL_ID) == local_id:
                    item = {**item, **assigned, LOCAL_ID: local_id}
                    merged.append(item)
                items.append(item)

            if current is None:
                if not merged and server_id is not None:
                    logger.debug(
                        "Push create %s/%s: removed while in flight, queueing remove id=%s",
                        collection,
                        local_id,
                        server_id,
                    )
                    pending = (
                        *pending,
                        PendingChange(
                            action=SyncAction.REMOVE,
                            collection=collection,
                            local_id=local_id,
                            id=server_id,
                        ),
                    )
            elif current.version == change.version:
                pending = remove_pending(pending, collection, local_id)
            elif current.action == SyncAction.REMOVE:
                if current.id is None:
                    pending = replace_pending(pending, current.with_update(id=server_id))
            else:
                pending = replace_pending(
                    pending,
                    current.with_update(
                        action=SyncAction.UPDATE,
                        id=server_id if server_id is not None else current.id,
                        before=payload,
                    ),
                )
            return {collection: items, **sync_state_patch(state, pending_changes=pending)}

        self._container.set_state(apply)
        if merged:
            await _call_hook(
                "on_after_remote_add",
                self._on_after_remote_add,
                collection,
                {**local, **server_fields},
            )

    async def _update(self, api: Any, change: PendingChange) -> None:
        collection, local_id = change.collection, change.local_id
        if local_id in sync_state_of(self._container.get_state()).conflicts:
            logger.debug("Push update %s/%s: unresolved conflict, skipped", collection, local_id)
            return

        local = self._local(collection, local_id)
        if local is None:
            self._discard_missing_local(change)
            return

        server_id = change.id if change.id is not None else local.get(SERVER_ID)
        if server_id is None:
            await self._create(api, change)
            return

        found = await api.update(server_id, dict(change.changes), omit_sync_fields(local))
        if found:
            logger.debug("Push update ok %s/%s id=%s", collection, local_id, server_id)
            self._confirm_update(change)
            return

        logger.warning(
            "Push update %s/%s: id=%s missing on server, strategy=%s",
            collection,
            local_id,
            server_id,
            self._missing_strategy,
        )
        record = self._handle_missing_remote(change)
        if record is not None:
            await _call_hook(
                "on_missing_remote_record",
                self._on_missing_remote_record,
                self._missing_strategy,
                record,
            )

    def _confirm_update(self, change: PendingChange) -> None:
        def apply(state: dict[str, Any]) -> dict[str, Any] | None:
            pending = sync_state_of(state).pending_changes
            current = find_pending(pending, change.collection, change.local_id)
            if current is None:
                return None
            if current.version == change.version:
                pending = remove_pending(pending, change.collection, change.local_id)
            elif current.action == SyncAction.UPDATE:
                # The server now holds the pushed values; compare later pulls against them.
                pending = replace_pending(
                    pending, current.with_update(before={**current.before, **change.changes})
                )
            else:
                return None
            return sync_state_patch(state, pending_changes=pending)

        self._container.set_state(apply)

    def _handle_missing_remote(self, change: PendingChange) -> Record | None:
        collection, local_id = change.collection, change.local_id
        strategy = self._missing_strategy
        handled: list[Record] = []

        def apply(state: dict[str, Any]) -> dict[str, Any]:
            pending = remove_pending(sync_state_of(state).pending_changes, collection, local_id)
            items = records_of(state, collection)
            local = find_by_local_id(items, local_id)
            patch: dict[str, Any] = {}

            if local is not None:
                if strategy == MissingRemoteRecordStrategy.DELETE_LOCAL_RECORD:
                    patch[collection] = [i for i in items if i.get(LOCAL_ID) != local_id]
                    handled.append(local)
                elif strategy == MissingRemoteRecordStrategy.INSERT_REMOTE_RECORD:
                    fresh: Record = {
                        **omit_sync_fields(local),
                        LOCAL_ID: next_local_id(),
                        UPDATED_AT: utcnow_iso(),
                    }
                    patch[collection] = [
                        fresh if i.get(LOCAL_ID) == local_id else i for i in items
                    ]
                    pending = (
                        *pending,
                        PendingChange(
                            action=SyncAction.CREATE,
                            collection=collection,
                            local_id=fresh[LOCAL_ID],
                            changes=omit_sync_fields(fresh),
                        ),
                    )
                    handled.append(fresh)
                else:
                    handled.append(local)

            patch.update(sync_state_patch(state, pending_changes=pending))
            return patch

        self._container.set_state(apply)
        return handled[0] if handled else None
