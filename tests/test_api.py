"""
Tests for the HTTP surface.
"""
from __future__ import annotations

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tableboard.main import app
from tableboard.services.board_session import BoardSession
from tableboard.store.base import StoreNetworkError

from tests.conftest import FlakyStore


@pytest_asyncio.fixture
async def client(board_session: BoardSession) -> AsyncGenerator[AsyncClient, None]:
    app.state.board_session = board_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http:
        yield http
    app.state.board_session = None


class TestHealth:
    async def test_healthz(self, client: AsyncClient):
        response = await client.get("/healthz")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestTablesApi:
    """Tests for the table endpoints."""

    async def test_list_tables_busiest_first(self, client: AsyncClient):
        response = await client.get("/api/v1/tables")
        assert response.status_code == 200
        assert [t["id"] for t in response.json()] == ["T4", "T2", "T6", "T5", "T1", "T3"]

    async def test_filter_and_search(self, client: AsyncClient):
        response = await client.get("/api/v1/tables", params={"status": "RESERVED", "q": "weber"})
        assert [t["id"] for t in response.json()] == ["T6"]

    async def test_unknown_status_filter(self, client: AsyncClient):
        response = await client.get("/api/v1/tables", params={"status": "BROKEN"})
        assert response.status_code == 422

    async def test_totals(self, client: AsyncClient):
        response = await client.get("/api/v1/tables/totals")
        assert response.json() == {"ALL": 6, "FREE": 2, "RESERVED": 2, "SEATED": 1, "DIRTY": 1}

    async def test_get_table_with_label(self, client: AsyncClient):
        response = await client.get("/api/v1/tables/T4")
        assert response.status_code == 200
        assert response.json()["since_label"] == "40m"

    async def test_get_missing_table(self, client: AsyncClient):
        response = await client.get("/api/v1/tables/T99")
        assert response.status_code == 404

    async def test_apply_action(self, client: AsyncClient):
        response = await client.post("/api/v1/tables/T1/actions/SEAT_NOW")
        body = response.json()

        assert response.status_code == 200
        assert body["applied"] is True
        assert body["table"]["status"] == "SEATED"

    async def test_out_of_order_action_ignored(self, client: AsyncClient):
        response = await client.post("/api/v1/tables/T1/actions/CHECKOUT")
        body = response.json()

        assert body["applied"] is False
        assert body["table"]["status"] == "FREE"

    async def test_failed_write_rolls_back(self, client: AsyncClient, flaky_store: FlakyStore):
        flaky_store.fail("update", StoreNetworkError("offline"))
        response = await client.post("/api/v1/tables/T3/actions/SEAT_NOW")
        body = response.json()

        assert body["outcome"] == "rolled_back"
        assert body["table"]["status"] == "FREE"

    async def test_unknown_action(self, client: AsyncClient):
        response = await client.post("/api/v1/tables/T1/actions/DANCE")
        assert response.status_code == 422


class TestReservationsApi:
    """Tests for the reservation book endpoints."""

    async def test_book_and_assign(self, client: AsyncClient):
        response = await client.post("/api/v1/reservations", json={"name": "Müller", "party_size": 4, "time": "19:00"})
        assert response.status_code == 201
        reservation = response.json()
        assert reservation["time_label"] == "19:00"

        candidates = await client.get(f"/api/v1/reservations/{reservation['id']}/candidates")
        assert [t["id"] for t in candidates.json()] == ["T3"]

        response = await client.post(
            f"/api/v1/reservations/{reservation['id']}/assign", json={"table_id": "T3"}
        )
        assert response.status_code == 200
        assert response.json()["table"]["name"] == "Müller"
        assert (await client.get("/api/v1/reservations")).json() == []

    async def test_incomplete_booking_rejected(self, client: AsyncClient):
        response = await client.post("/api/v1/reservations", json={"name": " ", "party_size": 2, "time": "19:00"})
        assert response.status_code == 422

    async def test_assign_to_busy_table(self, client: AsyncClient):
        reservation = (
            await client.post("/api/v1/reservations", json={"name": "Müller", "party_size": 4, "time": "19:00"})
        ).json()
        response = await client.post(
            f"/api/v1/reservations/{reservation['id']}/assign", json={"table_id": "T4"}
        )
        assert response.status_code == 409

    async def test_remove(self, client: AsyncClient):
        reservation = (
            await client.post("/api/v1/reservations", json={"name": "Kurz", "time": "20:00"})
        ).json()
        assert reservation["party_size"] == 2

        response = await client.delete(f"/api/v1/reservations/{reservation['id']}")
        assert response.status_code == 204
        assert (await client.delete(f"/api/v1/reservations/{reservation['id']}")).status_code == 404

    async def test_not_ready(self, client: AsyncClient):
        app.state.board_session = None
        response = await client.get("/api/v1/tables")
        assert response.status_code == 503
