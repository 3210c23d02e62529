"""
Tests for app wiring: health checks, correlation ids, CORS.
"""
import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import select

from relay.models.webhook_event import WebhookEvent


class TestHealth:
    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_ready(self, client):
        response = await client.get("/health/ready")
        assert response.json() == {
            "status": "ready",
            "checks": {"database": True, "redis": True},
            "timestamp": response.json()["timestamp"],
        }

    @pytest.mark.asyncio
    async def test_redis_down_is_degraded(self, client):
        with patch("relay.utils.cache.get_redis", new=AsyncMock(side_effect=ConnectionError("refused"))):
            response = await client.get("/health/ready")
        assert response.json()["status"] == "degraded"
        assert response.json()["checks"]["redis"] is False


class TestCorrelationId:
    @pytest.mark.asyncio
    async def test_generated(self, client):
        response = await client.get("/health")
        assert response.headers["X-Correlation-ID"]

    @pytest.mark.asyncio
    async def test_echoed(self, client):
        response = await client.get("/health", headers={"X-Correlation-ID": "req-42"})
        assert response.headers["X-Correlation-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_recorded_on_webhook_event(self, client, db):
        await client.post(
            "/api/v1/webhook/retell", content=b"", headers={"X-Correlation-ID": "req-77"},
        )
        event = (await db.execute(select(WebhookEvent))).scalar_one()
        assert event.correlation_id == "req-77"


class TestCors:
    @pytest.mark.asyncio
    async def test_preflight_from_dashboard(self, client):
        response = await client.options("/api/v1/phone-lookup", headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
        })
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
