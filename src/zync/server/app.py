"""FastAPI application factory for the reference backend."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI

from zync import __version__
from zync.server.dependencies import RecordStore
from zync.server.dependencies import get_store as shared_get_store
from zync.server.models import HealthResponse
from zync.server.routes import router as records_router


def create_app(
    title: str = "zync",
    description: str = "Reference backend for the zync sync engine",
    store: RecordStore | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        title: API title
        description: API description
        store: Record store to serve (a fresh in-memory one by default)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        description=description,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.store = store or RecordStore()

    async def get_store() -> RecordStore:
        record_store: RecordStore = app.state.store
        return record_store

    app.dependency_overrides[shared_get_store] = get_store
    app.include_router(records_router)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @app.get("/", tags=["health"])
    async def root() -> dict[str, Any]:
        """Root endpoint with API info."""
        return {
            "name": title,
            "description": description,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    return app
