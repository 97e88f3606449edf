"""Tests for the /health endpoint."""

import pytest


@pytest.mark.asyncio
async def test_health_check(client):
    """GET /health should report both stores reachable."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["postgres"] == "ok"
    assert data["redis"] == "ok"
