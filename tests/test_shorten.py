"""Shorten endpoint behavior tests."""

import pytest
from httpx import AsyncClient

from conftest import API_KEY, OWNER_ID
from shortlink.schemas import MAX_EXPIRY_HOURS

AUTH = {"X-API-Key": API_KEY}


@pytest.mark.asyncio
async def test_shorten_valid_url(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.google.com"}, headers=AUTH)
    assert response.status_code == 201
    data = response.json()
    assert data["destination"] == "https://www.google.com"
    assert data["code"]
    assert len(data["code"]) <= 7
    assert data["click_count"] == 0
    assert data["owner_id"] == OWNER_ID
    assert data["short_url"] == f"http://sho.rt/{data['code']}"
    assert data["expires_at"] is None


@pytest.mark.asyncio
async def test_shorten_requires_api_key(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.google.com"})
    assert response.status_code == 401
    assert response.json()["detail"] == "API key required"


@pytest.mark.asyncio
async def test_shorten_unknown_api_key(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.google.com"}, headers={"X-API-Key": "nope"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid API key"


@pytest.mark.asyncio
async def test_shorten_invalid_url(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "not-a-url"}, headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_empty_url(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": ""}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["detail"] == "URL cannot be empty"


@pytest.mark.asyncio
async def test_shorten_private_address(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "http://10.1.2.3/path"}, headers=AUTH)
    assert response.status_code == 400
    assert response.json()["detail"] == "Private IP addresses are not allowed"


@pytest.mark.asyncio
async def test_shorten_missing_body_field(client: AsyncClient) -> None:
    response = await client.post("/urls", json={}, headers=AUTH)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_with_custom_alias(client: AsyncClient) -> None:
    response = await client.post(
        "/urls", json={"url": "https://www.github.com", "custom_alias": "mycode"}, headers=AUTH
    )
    assert response.status_code == 201
    assert response.json()["code"] == "mycode"


@pytest.mark.asyncio
async def test_shorten_duplicate_custom_alias(client: AsyncClient) -> None:
    await client.post("/urls", json={"url": "https://www.github.com", "custom_alias": "taken1"}, headers=AUTH)
    response = await client.post(
        "/urls", json={"url": "https://www.example.com", "custom_alias": "taken1"}, headers=AUTH
    )
    assert response.status_code == 400
    assert "taken1" in response.json()["detail"]


@pytest.mark.asyncio
async def test_shorten_custom_alias_too_short(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.github.com", "custom_alias": "ab"}, headers=AUTH)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_custom_alias_too_long(client: AsyncClient) -> None:
    response = await client.post(
        "/urls",
        json={"url": "https://www.github.com", "custom_alias": "a" * 21},
        headers=AUTH,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_shorten_with_expiry(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.github.com", "expiry_hours": 2}, headers=AUTH)
    assert response.status_code == 201
    assert response.json()["expires_at"] is not None


@pytest.mark.asyncio
async def test_shorten_non_positive_expiry(client: AsyncClient) -> None:
    response = await client.post("/urls", json={"url": "https://www.github.com", "expiry_hours": 0}, headers=AUTH)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_rate_limited_per_owner(client: AsyncClient) -> None:
    for i in range(10):
        response = await client.post("/urls", json={"url": f"https://example.com/{i}"}, headers=AUTH)
        assert response.status_code == 201

    response = await client.post("/urls", json={"url": "https://example.com/11"}, headers=AUTH)
    assert response.status_code == 429
    assert int(response.headers["retry-after"]) >= 1


@pytest.mark.asyncio
async def test_shorten_expiry_beyond_limit(client: AsyncClient) -> None:
    response = await client.post(
        "/urls", json={"url": "https://www.github.com", "expiry_hours": 10**12}, headers=AUTH
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_shorten_expiry_at_limit(client: AsyncClient) -> None:
    response = await client.post(
        "/urls", json={"url": "https://www.github.com", "expiry_hours": MAX_EXPIRY_HOURS}, headers=AUTH
    )
    assert response.status_code == 201
