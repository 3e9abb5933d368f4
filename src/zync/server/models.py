"""Pydantic models for API request/response."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

# ============ Request Models ============


class CreateRecordRequest(BaseModel):
    """Request to create a record."""

    data: dict[str, Any] = Field(default_factory=dict, description="Record fields")


class UpdateRecordRequest(BaseModel):
    """Request to update a record."""

    changes: dict[str, Any] = Field(..., description="Fields to overwrite")
    record: dict[str, Any] | None = Field(
        None, description="Full client-side record after the change (informational)"
    )


# ============ Response Models ============


class CreateRecordResponse(BaseModel):
    """Server-assigned fields of a new record."""

    id: int
    updated_at: str


class UpdateRecordResponse(BaseModel):
    updated: bool


class DeleteRecordResponse(BaseModel):
    deleted: bool


class RecordListResponse(BaseModel):
    """Records of a collection, soft-deleted ones included."""

    collection: str
    records: list[dict[str, Any]]


class CollectionInfo(BaseModel):
    name: str
    total: int
    live: int


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""

    detail: str
