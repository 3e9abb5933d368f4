"""Tests for the reference backend: record table and REST routes."""

from __future__ import annotations

from collections.abc import Generator
from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from zync.server.app import create_app
from zync.server.dependencies import RecordStore
from zync.server.table import RecordTable
from zync.utils.timeutils import parse_timestamp


@pytest.fixture
def store() -> RecordStore:
    return RecordStore()


@pytest.fixture
def client(store: RecordStore) -> Generator[TestClient, None, None]:
    app = create_app(store=store)
    with TestClient(app) as c:
        yield c


# ── RecordTable ───────────────────────────────────────────────────────────────


class TestRecordTable:
    def test_add_assigns_increasing_ids(self) -> None:
        table = RecordTable()
        first = table.add({"title": "a"})
        second = table.add({"title": "b", "id": 99})
        assert (first["id"], second["id"]) == (1, 2)
        assert table.get(2)["title"] == "b"
        assert table.get(2)["deleted"] is False

    def test_stamps_strictly_increase_under_frozen_clock(self) -> None:
        frozen = datetime(2026, 1, 1, tzinfo=UTC)
        table = RecordTable(clock=lambda: frozen)
        stamps = [table.add({"n": i})["updated_at"] for i in range(5)]
        parsed = [parse_timestamp(s) for s in stamps]
        assert parsed == sorted(parsed)
        assert len(set(parsed)) == 5

    def test_update_and_soft_delete(self) -> None:
        table = RecordTable()
        row_id = table.add({"title": "a"})["id"]

        assert table.update(row_id, {"title": "b", "id": 50}) is True
        assert table.get(row_id)["title"] == "b"
        assert table.get(row_id)["id"] == row_id

        assert table.remove(row_id) is True
        assert table.remove(row_id) is False
        assert table.update(row_id, {"title": "c"}) is False
        assert table.get(row_id)["deleted"] is True
        assert table.live_records() == []
        assert len(table.all_records()) == 1

    def test_update_unknown(self) -> None:
        assert RecordTable().update(42, {"x": 1}) is False

    def test_list_since_is_exclusive_and_includes_deleted(self) -> None:
        table = RecordTable()
        first = table.add({"title": "a"})
        table.add({"title": "b"})
        table.remove(first["id"])

        rows = table.list_since(first["updated_at"])
        assert [r["title"] for r in rows] == ["b", "a"]
        assert rows[-1]["deleted"] is True
        assert table.list_since(None)[0]["id"] in (1, 2)

    def test_first_load_pages(self) -> None:
        table = RecordTable()
        for i in range(5):
            table.add({"n": i})
        assert [r["id"] for r in table.first_load(None, 2)] == [1, 2]
        assert [r["id"] for r in table.first_load(2, 2)] == [3, 4]
        assert table.first_load(5, 2) == []

    def test_returned_rows_are_copies(self) -> None:
        table = RecordTable()
        table.add({"tags": ["a"]})
        table.get(1)["tags"].append("b")
        assert table.get(1)["tags"] == ["a"]


# ── REST routes ───────────────────────────────────────────────────────────────


class TestHealthEndpoints:
    def test_health_check(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_endpoint(self, client: TestClient) -> None:
        data = client.get("/").json()
        assert data["name"] == "zync"
        assert "version" in data


class TestRecordRoutes:
    def test_create_and_get(self, client: TestClient) -> None:
        response = client.post("/collections/todos/records", json={"data": {"title": "x"}})

        assert response.status_code == 201
        created = response.json()
        assert created["id"] == 1
        assert created["updated_at"]

        record = client.get("/collections/todos/records/1").json()
        assert record["title"] == "x"
        assert record["deleted"] is False

    def test_get_missing(self, client: TestClient) -> None:
        assert client.get("/collections/todos/records/7").status_code == 404

    def test_update(self, client: TestClient, store: RecordStore) -> None:
        client.post("/collections/todos/records", json={"data": {"title": "x"}})

        response = client.patch(
            "/collections/todos/records/1",
            json={"changes": {"title": "y"}, "record": {"title": "y"}},
        )

        assert response.status_code == 200
        assert response.json() == {"updated": True}
        assert store.table("todos").get(1)["title"] == "y"

    def test_update_missing_is_404(self, client: TestClient) -> None:
        response = client.patch("/collections/todos/records/3", json={"changes": {"a": 1}})
        assert response.status_code == 404

    def test_delete(self, client: TestClient) -> None:
        client.post("/collections/todos/records", json={"data": {"title": "x"}})

        assert client.delete("/collections/todos/records/1").json() == {"deleted": True}
        assert client.delete("/collections/todos/records/1").json() == {"deleted": False}
        assert client.delete("/collections/todos/records/9").status_code == 404

    def test_list_since(self, client: TestClient) -> None:
        first = client.post("/collections/todos/records", json={"data": {"title": "a"}}).json()
        client.post("/collections/todos/records", json={"data": {"title": "b"}})

        everything = client.get("/collections/todos/records").json()
        assert len(everything["records"]) == 2

        newer = client.get(
            "/collections/todos/records", params={"since": first["updated_at"]}
        ).json()
        assert [r["title"] for r in newer["records"]] == ["b"]

    def test_first_load(self, client: TestClient) -> None:
        for i in range(3):
            client.post("/collections/todos/records", json={"data": {"n": i}})

        page = client.get(
            "/collections/todos/records/first-load", params={"after_id": 1, "limit": 1}
        ).json()
        assert [r["id"] for r in page["records"]] == [2]

    def test_list_collections(self, client: TestClient) -> None:
        client.post("/collections/todos/records", json={"data": {}})
        client.post("/collections/notes/records", json={"data": {}})
        client.delete("/collections/notes/records/1")

        data = client.get("/collections").json()
        assert data == [
            {"name": "notes", "total": 1, "live": 0},
            {"name": "todos", "total": 1, "live": 1},
        ]

    def test_invalid_collection_name(self, client: TestClient) -> None:
        response = client.get("/collections/bad name!/records")
        assert response.status_code == 400
