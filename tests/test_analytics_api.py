"""Analytics endpoint behavior tests."""

import pytest
from httpx import AsyncClient

from conftest import API_KEY, OTHER_API_KEY

AUTH = {"X-API-Key": API_KEY}


@pytest.mark.asyncio
async def test_analytics_valid_code(client: AsyncClient) -> None:
    create_resp = await client.post("/urls", json={"url": "https://www.google.com"}, headers=AUTH)
    code = create_resp.json()["code"]

    response = await client.get(f"/api/analytics/{code}", headers=AUTH)
    assert response.status_code == 200
    data = response.json()
    assert data["code"] == code
    assert data["destination"] == "https://www.google.com"
    assert data["total_clicks"] == 0
    assert data["recent_clicks"] == []
    assert "created_at" in data


@pytest.mark.asyncio
async def test_analytics_unknown_code(client: AsyncClient) -> None:
    response = await client.get("/api/analytics/nonexistent", headers=AUTH)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_analytics_requires_api_key(client: AsyncClient) -> None:
    response = await client.get("/api/analytics/abc")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_analytics_other_owner_forbidden(client: AsyncClient) -> None:
    create_resp = await client.post("/urls", json={"url": "https://www.google.com"}, headers=AUTH)
    code = create_resp.json()["code"]

    response = await client.get(f"/api/analytics/{code}", headers={"X-API-Key": OTHER_API_KEY})
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_analytics_after_clicks(client: AsyncClient, manager) -> None:
    create_resp = await client.post("/urls", json={"url": "https://www.example.com"}, headers=AUTH)
    code = create_resp.json()["code"]

    # Generate clicks
    for _ in range(5):
        await client.get(f"/{code}", headers={"User-Agent": "pytest-agent"}, follow_redirects=False)
    await manager.recorder.drain()

    response = await client.get(f"/api/analytics/{code}", headers=AUTH)
    assert response.status_code == 200
    data = response.json()
    assert data["total_clicks"] == 5
    assert len(data["recent_clicks"]) == 5
    assert data["recent_clicks"][0]["user_agent"] == "pytest-agent"


@pytest.mark.asyncio
async def test_owner_analytics_lists_only_own_links(client: AsyncClient) -> None:
    await client.post("/urls", json={"url": "https://example.com/a", "custom_alias": "mine1"}, headers=AUTH)
    await client.post(
        "/urls", json={"url": "https://example.com/b", "custom_alias": "theirs1"}, headers={"X-API-Key": OTHER_API_KEY}
    )

    response = await client.get("/api/analytics", headers=AUTH)
    assert response.status_code == 200
    assert [item["code"] for item in response.json()] == ["mine1"]
