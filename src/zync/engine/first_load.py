"""First-load loader: page through a whole remote collection.

Used to bootstrap an empty client. Pages are merged with the pull rules for
soft deletes and live records, without pending-change checks, since first
load is expected to run before any local mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from zync.core.container import StateContainer
from zync.core.models import ConflictResolutionStrategy
from zync.core.records import SERVER_ID
from zync.engine.pull import PullResult, merge_remote_batch
from zync.errors import FirstLoadLoopError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FirstLoadResult:
    """Totals for one collection's bootstrap."""

    collection: str
    pages: int = 0
    fetched: int = 0
    inserted: int = 0
    merged: int = 0
    removed: int = 0
    watermark: str | None = None


async def first_load_collection(
    container: StateContainer, collection: str, api: Any
) -> FirstLoadResult:
    """Download every remote record of ``collection`` page by page.

    Each page is requested with the server id of the previous page's last
    record and applied in its own transition. An empty page ends the loop.

    Raises:
        FirstLoadLoopError: two consecutive pages ended with the same id
    """
    logger.info("First load start: %s", collection)
    cursor: Any = None
    pages = fetched = inserted = merged = removed = 0
    watermark: str | None = None

    while True:
        batch = await api.first_load(cursor)
        if not batch:
            break

        last_id = batch[-1].get(SERVER_ID)
        if pages and last_id == cursor:
            raise FirstLoadLoopError(collection, cursor)
        cursor = last_id
        pages += 1

        outcome: list[PullResult] = []

        def apply(state: dict[str, Any], page: list[Any] = batch) -> dict[str, Any]:
            patch, result = merge_remote_batch(
                state,
                collection,
                page,
                ConflictResolutionStrategy.LOCAL_WINS,
                check_pending=False,
            )
            outcome.append(result)
            return patch

        container.set_state(apply)
        result = outcome[0]
        fetched += result.fetched
        inserted += result.inserted
        merged += result.merged
        removed += result.removed
        watermark = result.watermark
        logger.debug(
            "First load %s page %d: %d records, cursor=%r", collection, pages, len(batch), cursor
        )

    logger.info("First load done: %s (%d records in %d pages)", collection, fetched, pages)
    return FirstLoadResult(
        collection=collection,
        pages=pages,
        fetched=fetched,
        inserted=inserted,
        merged=merged,
        removed=removed,
        watermark=watermark,
    )
