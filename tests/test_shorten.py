"""Shorten endpoint behavior tests."""

import datetime

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    assert response.status_code == 201
    data = response.json()
    assert data["original_url"] == "https://www.google.com/"
    assert data["short_code"] is not None
    assert len(data["short_code"]) == 6
    assert data["clicks"] == 0
    assert data["active"] is True
    assert data["short_url"] == f"http://test/{data['short_code']}"


@pytest.mark.asyncio
async def test_shorten_bare_domain(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "example.com"})
    assert response.status_code == 201
    assert response.json()["original_url"] == "https://example.com/"


@pytest.mark.asyncio
async def test_shorten_empty_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": ""})
    assert response.status_code == 400
    assert response.json()["detail"] == "URL cannot be empty"


@pytest.mark.asyncio
async def test_shorten_unsupported_scheme(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "ftp://example.com"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Only HTTP and HTTPS protocols are allowed"


@pytest.mark.asyncio
async def test_shorten_missing_url(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_with_custom_code(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "mycode"})
    assert response.status_code == 201
    data = response.json()
    assert data["short_code"] == "mycode"


@pytest.mark.asyncio
async def test_shorten_duplicate_custom_code(client: AsyncClient) -> None:
    await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "taken1"})
    response = await client.post("/api/shorten", json={"url": "https://www.example.com", "custom_code": "taken1"})
    assert response.status_code == 409
    assert response.json()["detail"] == "This custom code is already taken"


@pytest.mark.asyncio
async def test_shorten_custom_code_too_short(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "ab"})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_custom_code_too_long(client: AsyncClient) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "a" * 21},
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_reserved_code(client: AsyncClient) -> None:
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "Admin"})
    assert response.status_code == 400
    assert "reserved" in response.json()["detail"]


@pytest.mark.asyncio
async def test_shorten_past_expiry(client: AsyncClient) -> None:
    past = (datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=1)).isoformat()
    response = await client.post("/api/shorten", json={"url": "https://www.github.com", "expires_at": past})
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_records_owner(client: AsyncClient, fake_cache) -> None:
    response = await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "owned1"},
        headers={"X-User-ID": "user-1"},
    )
    assert response.status_code == 201
    assert fake_cache.owners["user-1"] == {"owned1"}


@pytest.mark.asyncio
async def test_shorten_with_cache_down(client: AsyncClient, fake_cache) -> None:
    fake_cache.available = False
    response = await client.post("/api/shorten", json={"url": "https://www.github.com"})
    assert response.status_code == 201
