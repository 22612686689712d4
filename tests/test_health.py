"""Tests for health and metrics endpoints."""

from httpx import AsyncClient


class TestHealth:
    """Tests for the health endpoints."""

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["checks"]["database"]["status"] == "healthy"

    async def test_ready(self, client: AsyncClient):
        resp = await client.get("/health/ready")
        assert resp.json() == {"status": "ready", "database": True}

    async def test_live(self, client: AsyncClient):
        resp = await client.get("/health/live")
        assert resp.json() == {"status": "alive"}


class TestErrorEnvelope:
    """Tests for framework errors rendered in the standard envelope."""

    async def test_unknown_route(self, client: AsyncClient):
        resp = await client.get("/api/v1/nowhere")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"
        assert resp.json()["error"]["request_id"] == resp.headers["X-Request-ID"]

    async def test_unmapped_status_falls_back_to_bad_request(self, client: AsyncClient):
        resp = await client.post("/health/live")
        assert resp.status_code == 405
        assert resp.json()["error"]["code"] == "BAD_REQUEST"


class TestMetrics:
    """Tests for the Prometheus endpoint."""

    async def test_operations_are_counted(self, client: AsyncClient, as_user, make_team):
        await make_team("Nova", "lead")
        await client.get("/health")

        resp = await client.get("/metrics")

        assert resp.status_code == 200
        body = resp.text
        assert 'hackteam_team_operations_total{operation="create"}' in body
        assert "hackteam_teams 1.0" in body
