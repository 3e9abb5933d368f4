"""Exception types raised by the sync engine."""

from __future__ import annotations


class ZyncError(Exception):
    """Base class for sync engine errors."""


class MissingApiError(ZyncError):
    """A collection has no collaborator, or its collaborator lacks an operation."""

    def __init__(self, collection: str, missing: tuple[str, ...] = ()) -> None:
        if missing:
            names = ", ".join(missing)
            message = f"Missing API function(s) for collection '{collection}': {names}"
        else:
            message = f"No API registered for collection '{collection}'"
        super().__init__(message)
        self.collection = collection
        self.missing = missing


class FirstLoadLoopError(ZyncError):
    """First load received two pages ending with the same cursor."""

    def __init__(self, collection: str, cursor: object) -> None:
        super().__init__(
            f"Duplicate records downloaded for '{collection}' (cursor={cursor!r}), "
            "stopping to prevent infinite loop"
        )
        self.collection = collection
        self.cursor = cursor


class InvalidChangeSequenceError(ZyncError):
    """A record was re-added while a remove for the same local id is pending."""

    def __init__(self, collection: str, local_id: str) -> None:
        super().__init__(
            f"Record {local_id} in '{collection}' was added again while its removal is pending"
        )
        self.collection = collection
        self.local_id = local_id
