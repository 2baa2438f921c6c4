"""Health endpoint tests."""

import pytest
from httpx import AsyncClient

from bitlytics.enums import HealthStatus


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == HealthStatus.HEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"]["connected"] is True
    assert data["counts"] == {"urls": 0, "clicks": 0}
    assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"


@pytest.mark.asyncio
async def test_health_counts_links(client: AsyncClient) -> None:
    await client.post("/api/shorten", json={"url": "https://www.google.com"})
    data = (await client.get("/health")).json()
    assert data["counts"]["urls"] == 1


@pytest.mark.asyncio
async def test_health_degraded_without_cache(client: AsyncClient, fake_cache) -> None:
    fake_cache.available = False
    response = await client.get("/health")
    assert response.status_code == 503
    data = response.json()
    assert data["status"] == HealthStatus.DEGRADED.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"]["connected"] is False
