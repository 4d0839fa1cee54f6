"""Health endpoint tests."""

from unittest.mock import AsyncMock

import pytest
from httpx import AsyncClient

from shortlink.enums import HealthStatus


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == HealthStatus.HEALTHY.value
    assert data["database"] == HealthStatus.HEALTHY.value
    assert data["cache"] == HealthStatus.HEALTHY.value


@pytest.mark.asyncio
async def test_health_check_reports_failed_dependency(client: AsyncClient, manager) -> None:
    manager.ping_database = AsyncMock(side_effect=ConnectionError("database down"))

    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == HealthStatus.UNHEALTHY.value
    assert data["database"] == HealthStatus.UNHEALTHY.value
    assert data["cache"] == HealthStatus.HEALTHY.value


@pytest.mark.asyncio
async def test_health_check_is_not_rate_limited(client: AsyncClient) -> None:
    for _ in range(10):
        response = await client.get("/health")
        assert response.status_code == 200
