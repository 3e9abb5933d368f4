"""Record API routes: the collaborator contract over REST."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query

from zync.server.dependencies import RecordStore, get_store, validate_collection
from zync.server.models import (
    CollectionInfo,
    CreateRecordRequest,
    CreateRecordResponse,
    DeleteRecordResponse,
    ErrorResponse,
    RecordListResponse,
    UpdateRecordRequest,
    UpdateRecordResponse,
)

router = APIRouter(prefix="/collections", tags=["records"])

Collection = Annotated[str, Depends(validate_collection)]
Store = Annotated[RecordStore, Depends(get_store)]


@router.get("", response_model=list[CollectionInfo], summary="List collections")
async def list_collections(store: Store) -> list[CollectionInfo]:
    return [
        CollectionInfo(name=name, total=len(table), live=len(table.live_records()))
        for name, table in sorted(store.tables().items())
    ]


@router.post(
    "/{collection}/records",
    response_model=CreateRecordResponse,
    status_code=201,
    summary="Create a record",
)
async def create_record(
    collection: Collection, request: CreateRecordRequest, store: Store
) -> CreateRecordResponse:
    """Create a record; the server assigns ``id`` and ``updated_at``."""
    assigned = store.table(collection).add(request.data)
    return CreateRecordResponse(**assigned)


@router.get(
    "/{collection}/records",
    response_model=RecordListResponse,
    summary="Records updated after a timestamp",
)
async def list_records(
    collection: Collection,
    store: Store,
    since: str | None = Query(default=None, description="ISO-8601 timestamp, exclusive"),
) -> RecordListResponse:
    """Records updated strictly after ``since``, soft-deleted ones included."""
    records = store.table(collection).list_since(since)
    return RecordListResponse(collection=collection, records=records)


@router.get(
    "/{collection}/records/first-load",
    response_model=RecordListResponse,
    summary="Page through all records by id",
)
async def first_load_records(
    collection: Collection,
    store: Store,
    after_id: int | None = Query(default=None, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
) -> RecordListResponse:
    records = store.table(collection).first_load(after_id, limit)
    return RecordListResponse(collection=collection, records=records)


@router.get(
    "/{collection}/records/{record_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Get one record",
)
async def get_record(collection: Collection, record_id: int, store: Store) -> dict[str, object]:
    record = store.table(collection).get(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return record


@router.patch(
    "/{collection}/records/{record_id}",
    response_model=UpdateRecordResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update a record",
)
async def update_record(
    collection: Collection, record_id: int, request: UpdateRecordRequest, store: Store
) -> UpdateRecordResponse:
    """Apply field changes. 404 when the record is missing or soft-deleted."""
    if not store.table(collection).update(record_id, request.changes):
        raise HTTPException(status_code=404, detail="Record not found")
    return UpdateRecordResponse(updated=True)


@router.delete(
    "/{collection}/records/{record_id}",
    response_model=DeleteRecordResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Soft-delete a record",
)
async def delete_record(
    collection: Collection, record_id: int, store: Store
) -> DeleteRecordResponse:
    table = store.table(collection)
    if table.get(record_id) is None:
        raise HTTPException(status_code=404, detail="Record not found")
    return DeleteRecordResponse(deleted=table.remove(record_id))
