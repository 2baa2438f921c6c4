"""Redirect endpoint behavior tests."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_redirect_valid_code(client: AsyncClient) -> None:
    # Create a short URL first
    create_resp = await client.post("/api/shorten", json={"url": "https://www.google.com"})
    short_code = create_resp.json()["short_code"]

    # httpx won't follow by default
    response = await client.get(f"/{short_code}", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.google.com/"


@pytest.mark.asyncio
async def test_redirect_invalid_code(client: AsyncClient) -> None:
    response = await client.get("/nonexistent", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["detail"] == "Short URL not found"


@pytest.mark.asyncio
async def test_redirect_increments_clicks(client: AsyncClient, service_manager) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.python.org"})
    short_code = create_resp.json()["short_code"]

    for _ in range(3):
        await client.get(f"/{short_code}", follow_redirects=False)
    await service_manager.task_queue.join()

    stats_resp = await client.get(f"/api/stats/{short_code}")
    assert stats_resp.status_code == 200
    assert stats_resp.json()["clicks"] == 3


@pytest.mark.asyncio
async def test_redirect_with_custom_code(client: AsyncClient) -> None:
    await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "ghub"},
    )
    response = await client.get("/ghub", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.github.com/"


@pytest.mark.asyncio
async def test_redirect_from_store_when_cache_cleared(client: AsyncClient, fake_cache) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.python.org/downloads/"})
    short_code = create_resp.json()["short_code"]
    fake_cache.clear()

    response = await client.get(f"/{short_code}", follow_redirects=False)
    assert response.status_code == 307
    assert response.headers["location"] == "https://www.python.org/downloads/"
    assert short_code in fake_cache.entries


@pytest.mark.asyncio
async def test_redirect_with_cache_down(client: AsyncClient, fake_cache) -> None:
    create_resp = await client.post("/api/shorten", json={"url": "https://www.python.org"})
    short_code = create_resp.json()["short_code"]
    fake_cache.available = False

    response = await client.get(f"/{short_code}", follow_redirects=False)
    assert response.status_code == 307


@pytest.mark.asyncio
async def test_redirect_deactivated_link(client: AsyncClient) -> None:
    headers = {"X-User-ID": "user-1"}
    await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "gone1"}, headers=headers)

    patch_resp = await client.patch("/api/urls/gone1", json={"active": False}, headers=headers)
    assert patch_resp.status_code == 200
    assert patch_resp.json()["active"] is False

    response = await client.get("/gone1", follow_redirects=False)
    assert response.status_code == 404
    assert response.json()["detail"] == "Short URL not found"


@pytest.mark.asyncio
async def test_update_requires_owner(client: AsyncClient) -> None:
    await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "mine1"},
        headers={"X-User-ID": "user-1"},
    )

    anonymous = await client.patch("/api/urls/mine1", json={"active": False})
    assert anonymous.status_code == 401

    other = await client.patch("/api/urls/mine1", json={"active": False}, headers={"X-User-ID": "user-2"})
    assert other.status_code == 403

    empty = await client.patch("/api/urls/mine1", json={}, headers={"X-User-ID": "user-1"})
    assert empty.status_code == 400


@pytest.mark.asyncio
async def test_delete_link(client: AsyncClient) -> None:
    headers = {"X-User-ID": "user-1"}
    await client.post("/api/shorten", json={"url": "https://www.github.com", "custom_code": "bye1"}, headers=headers)

    assert (await client.delete("/api/urls/bye1", headers={"X-User-ID": "user-2"})).status_code == 403
    assert (await client.delete("/api/urls/bye1", headers=headers)).status_code == 204
    assert (await client.get("/bye1", follow_redirects=False)).status_code == 404
    assert (await client.delete("/api/urls/bye1", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_overlong_owner_id_rejected(client: AsyncClient) -> None:
    owner = "u" * 64
    create_resp = await client.post(
        "/api/shorten",
        json={"url": "https://www.github.com", "custom_code": "long1"},
        headers={"X-User-ID": owner},
    )
    assert create_resp.status_code == 201

    # Shares the first 64 characters with the real owner.
    response = await client.patch(
        "/api/urls/long1", json={"active": False}, headers={"X-User-ID": owner + "-impostor"}
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "X-User-ID header is too long"

    still_there = await client.get("/long1", follow_redirects=False)
    assert still_there.status_code == 307
