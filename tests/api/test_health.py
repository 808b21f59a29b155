"""Health endpoint tests."""

from unittest.mock import AsyncMock

from httpx import AsyncClient

from linkgate.services.errors import StoreUnavailableError


async def test_health_check(client: AsyncClient):
    response = await client.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_health_db_not_configured(client: AsyncClient):
    response = await client.get("/api/health/db")

    assert response.status_code == 503
    assert response.json()["database"] == "not_configured"


async def test_ready_degraded_mode(client: AsyncClient, email_backend):
    await client.post("/api/auth/magic-link", json={"email": "user@example.com", "deviceId": "D1"})

    response = await client.get("/api/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "degraded", "storage": "degraded", "outstanding_tokens": 1}


async def test_ready_durable_mode(sql_client: AsyncClient):
    response = await sql_client.get("/api/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["storage"] == "durable"
    assert data["outstanding_tokens"] == 0


async def test_ready_store_unavailable(sql_client: AsyncClient, sql_backend):
    sql_backend.token_store.count_outstanding = AsyncMock(side_effect=StoreUnavailableError())

    response = await sql_client.get("/api/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "error"
