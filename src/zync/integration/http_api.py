"""HTTP collaborator: the CRUD contract over the reference REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import aiohttp

from zync.core.records import DELETED, SERVER_ID, UPDATED_AT, change_keys_from, change_keys_to
from zync.utils.timeutils import to_iso


class HttpApiError(Exception):
    """Error from a collaborator HTTP call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HttpCollectionApi:
    """
    REST client for one collection on a zync-compatible server.

    Usage:
        async with HttpCollectionApi("http://localhost:8000", "todos") as api:
            engine = await create_with_sync({"todos": api})

    Backends naming the sync fields differently can pass ``id_key``,
    ``updated_at_key`` and ``deleted_key``; records are renamed on the way
    in and out.
    """

    def __init__(
        self,
        server_url: str,
        collection: str,
        *,
        timeout: float = 30.0,
        api_key: str | None = None,
        id_key: str = SERVER_ID,
        updated_at_key: str = UPDATED_AT,
        deleted_key: str = DELETED,
        page_size: int = 100,
    ) -> None:
        """
        Initialize the client.

        Args:
            server_url: Base URL of the server (e.g., "http://localhost:8000")
            collection: Collection name on the server
            timeout: Request timeout in seconds
            api_key: Optional API key for authentication
            page_size: Records per first-load page
        """
        self._server_url = server_url.rstrip("/")
        self._collection = collection
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._api_key = api_key
        self._keys = (id_key, updated_at_key, deleted_key)
        self._page_size = page_size
        self._session: aiohttp.ClientSession | None = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def is_connected(self) -> bool:
        return self._session is not None

    async def connect(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            headers = {}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"
            self._session = aiohttp.ClientSession(timeout=self._timeout, headers=headers)

    async def disconnect(self) -> None:
        """Close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> HttpCollectionApi:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.disconnect()

    def _path(self, suffix: str = "") -> str:
        return f"/collections/{self._collection}/records{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make HTTP request to server."""
        if not self.is_connected:
            await self.connect()

        assert self._session is not None

        url = f"{self._server_url}{path}"
        try:
            async with self._session.request(
                method, url, json=json_data, params=params
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    raise HttpApiError(f"Server error: {text}", status_code=response.status)
                return await response.json()
        except aiohttp.ClientError as e:
            raise HttpApiError(f"Connection error: {e}") from e

    def _to_local(self, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return change_keys_from(records, *self._keys) or []

    # ========== Collaborator contract ==========

    async def add(self, item: dict[str, Any]) -> dict[str, Any] | None:
        """Create a record; returns the server-assigned fields."""
        result = await self._request(
            "POST", self._path(), json_data={"data": change_keys_to(item, *self._keys)}
        )
        return change_keys_from(result, *self._keys) or None

    async def update(self, id: Any, changes: dict[str, Any], item: dict[str, Any]) -> bool:
        """Apply changes; a 404 means the record is gone server-side."""
        try:
            result = await self._request(
                "PATCH",
                self._path(f"/{id}"),
                json_data={
                    "changes": change_keys_to(changes, *self._keys) or {},
                    "record": change_keys_to(item, *self._keys) or {},
                },
            )
        except HttpApiError as e:
            if e.status_code == 404:
                return False
            raise
        return bool(result.get("updated", False))

    async def remove(self, id: Any) -> None:
        """Soft-delete the record. A record already gone counts as removed."""
        try:
            await self._request("DELETE", self._path(f"/{id}"))
        except HttpApiError as e:
            if e.status_code != 404:
                raise

    async def list(self, since: datetime) -> list[dict[str, Any]]:
        result = await self._request(
            "GET", self._path(), params={"since": to_iso(since, timespec="auto")}
        )
        return self._to_local(result.get("records", []))

    async def first_load(self, last_id: Any) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"limit": self._page_size}
        if last_id is not None:
            params["after_id"] = last_id
        result = await self._request("GET", self._path("/first-load"), params=params)
        return self._to_local(result.get("records", []))
