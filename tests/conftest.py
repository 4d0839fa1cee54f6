"""Shared pytest fixtures: in-memory collaborators, a wired service manager,
and an HTTP client bound to the FastAPI app."""

import datetime
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from shortlink.config import Settings
from shortlink.dependencies import ServiceManager, get_service_manager
from shortlink.exceptions import AliasTakenError, StoreUnavailableError
from shortlink.main import app
from shortlink.schemas import ClickEventRecord, ShortLinkRecord
from shortlink.users import ApiKeyDirectory

API_KEY = "test-key"
OWNER_ID = "owner-1"
OTHER_API_KEY = "other-key"
OTHER_OWNER_ID = "owner-2"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class InMemoryUrlStore:
    """UrlStore backed by a dict, with call counters and fault switches."""

    def __init__(self) -> None:
        self.links: dict[str, ShortLinkRecord] = {}
        self.get_calls = 0
        self.exists_calls = 0
        self.fail_get = False
        self.fail_increment = False
        self.taken_on_create: set[str] = set()

    def add(
        self,
        code: str,
        destination: str,
        owner_id: str | None = OWNER_ID,
        expires_at: datetime.datetime | None = None,
        created_at: datetime.datetime | None = None,
    ) -> ShortLinkRecord:
        record = ShortLinkRecord(
            code=code,
            destination=destination,
            owner_id=owner_id,
            created_at=created_at or utcnow(),
            expires_at=expires_at,
        )
        self.links[code] = record
        return record

    async def get(self, code: str) -> ShortLinkRecord | None:
        self.get_calls += 1
        if self.fail_get:
            raise StoreUnavailableError("store down")
        record = self.links.get(code)
        return record.model_copy() if record else None

    async def exists_code(self, code: str) -> bool:
        self.exists_calls += 1
        return code in self.links

    async def create(self, code, destination, owner_id, expires_at=None) -> ShortLinkRecord:
        if code in self.links or code in self.taken_on_create:
            raise AliasTakenError(code)
        return self.add(code, destination, owner_id=owner_id, expires_at=expires_at).model_copy()

    async def increment_clicks(self, code: str) -> None:
        if self.fail_increment:
            raise RuntimeError("increment failed")
        record = self.links.get(code)
        if record is not None:
            record.click_count += 1

    async def find_by_owner(self, owner_id: str) -> list[ShortLinkRecord]:
        return [record.model_copy() for record in self.links.values() if record.owner_id == owner_id]


class InMemoryEventLog:
    def __init__(self) -> None:
        self.events: list[ClickEventRecord] = []
        self.fail_append = False

    async def append(self, event: ClickEventRecord) -> None:
        if self.fail_append:
            raise RuntimeError("append failed")
        self.events.append(event)

    async def recent(self, code: str, limit: int) -> list[ClickEventRecord]:
        matching = [event for event in self.events if event.code == code]
        matching.sort(key=lambda event: event.timestamp, reverse=True)
        return matching[:limit]


class CountingCache:
    """FastCache backed by a dict that counts reads and writes."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.get_calls = 0
        self.set_calls = 0
        self.fail_get = False
        self.fail_set = False

    async def get(self, key: str) -> str | None:
        self.get_calls += 1
        if self.fail_get:
            raise ConnectionError("redis unavailable")
        return self.values.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self.set_calls += 1
        if self.fail_set:
            raise ConnectionError("redis unavailable")
        self.values[key] = value
        self.ttls[key] = ttl_seconds

    async def ping(self) -> bool:
        return True


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_ENV="test",
        BASE_URL="http://sho.rt",
        API_KEYS={API_KEY: OWNER_ID, OTHER_API_KEY: OTHER_OWNER_ID},
        RATE_LIMIT_ANONYMOUS_CAPACITY=5,
        RATE_LIMIT_ANONYMOUS_REFILL_TOKENS=5,
        RATE_LIMIT_ANONYMOUS_REFILL_SECONDS=60.0,
        RATE_LIMIT_AUTHENTICATED_CAPACITY=10,
        RATE_LIMIT_AUTHENTICATED_REFILL_TOKENS=10,
        RATE_LIMIT_AUTHENTICATED_REFILL_SECONDS=60.0,
    )


@pytest.fixture
def store() -> InMemoryUrlStore:
    return InMemoryUrlStore()


@pytest.fixture
def event_log() -> InMemoryEventLog:
    return InMemoryEventLog()


@pytest.fixture
def cache() -> CountingCache:
    return CountingCache()


@pytest.fixture
def manager(settings, store, event_log, cache) -> ServiceManager:
    manager = ServiceManager().wire(
        settings=settings,
        store=store,
        cache=cache,
        event_log=event_log,
        directory=ApiKeyDirectory(settings.API_KEYS),
    )
    manager.ping_cache = cache.ping
    return manager


@pytest_asyncio.fixture
async def client(manager: ServiceManager) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_service_manager() -> ServiceManager:
        return manager

    app.dependency_overrides[get_service_manager] = override_get_service_manager

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await manager.recorder.drain()
    app.dependency_overrides.clear()
