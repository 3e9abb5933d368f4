"""Collaborator contract for one synchronized collection."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from zync.errors import MissingApiError

REQUIRED_OPERATIONS: tuple[str, ...] = ("add", "update", "remove", "list")
FIRST_LOAD_OPERATION = "first_load"


@runtime_checkable
class CollectionApi(Protocol):
    """Remote CRUD operations the engine calls for a collection.

    Failures must raise; the engine retries the same work next cycle.
    ``first_load`` is optional and only needed for ``start_first_load``.
    """

    async def add(self, item: dict[str, Any]) -> dict[str, Any] | None:
        """Create a record; return server-assigned fields (at least ``id``)."""
        ...

    async def update(self, id: Any, changes: dict[str, Any], item: dict[str, Any]) -> bool:
        """Apply changes; ``False`` means the record no longer exists server-side."""
        ...

    async def remove(self, id: Any) -> None:
        """Soft-delete the record server-side."""
        ...

    async def list(self, since: datetime) -> list[dict[str, Any]]:
        """Records updated strictly after ``since``, soft-deleted ones included."""
        ...


def _missing_operations(api: object, operations: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(op for op in operations if not callable(getattr(api, op, None)))


def validate_api(collection: str, api: object, *, require_first_load: bool = False) -> object:
    """Fail fast when a collaborator lacks a required operation.

    Raises:
        MissingApiError: if any required operation is missing or not callable
    """
    operations = REQUIRED_OPERATIONS
    if require_first_load:
        operations = (*operations, FIRST_LOAD_OPERATION)
    missing = _missing_operations(api, operations)
    if missing:
        raise MissingApiError(collection, missing)
    return api


def validate_apis(apis: Mapping[str, object]) -> None:
    for collection, api in apis.items():
        validate_api(collection, api)


def find_api(
    collection: str, apis: Mapping[str, Any], *, require_first_load: bool = False
) -> Any:
    """Look up and re-validate the collaborator for a collection.

    Raises:
        MissingApiError: unknown collection or incomplete collaborator
    """
    api = apis.get(collection)
    if api is None:
        raise MissingApiError(collection)
    validate_api(collection, api, require_first_load=require_first_load)
    return api
