"""Configuration management for the shortlink service.

Every tunable of the service is an upper-case field on ``Settings``, read from
the environment or a ``.env`` file and cached for the life of the process.

Setting Groups
==============
::
    App              APP_NAME, APP_ENV, BASE_URL, LOG_LEVEL
    Storage          DATABASE_URL, DATABASE_POOL_SIZE, DATABASE_MAX_OVERFLOW
    Cache            REDIS_URL, CACHE_KEY_PREFIX, CACHE_TTL_SECONDS
    Code allocation  SHORT_CODE_LENGTH, CODE_ALLOCATION_MAX_ATTEMPTS,
                     CODE_PERTURBATION_RANGE, CREATE_CONFLICT_RETRIES,
                     ALIAS_MIN_LENGTH, ALIAS_MAX_LENGTH, MAX_URL_LENGTH
    Rate limiting    RATE_LIMIT_ANONYMOUS_*, RATE_LIMIT_AUTHENTICATED_*,
                     RATE_LIMIT_MAX_BUCKETS
    Identity         API_KEYS, TRUSTED_PROXY_HOPS
    Analytics        ANALYTICS_DRAIN_TIMEOUT_SECONDS, ANALYTICS_RECENT_LIMIT,
                     ANALYTICS_OVERVIEW_LIMIT

How to Use
===========
**Step 1 — Import**::
    from shortlink.config import get_settings

**Step 2 — Get settings**::
    settings = get_settings()
    ttl = settings.CACHE_TTL_SECONDS

**Step 3 — Override through the environment**::
    RATE_LIMIT_ANONYMOUS_CAPACITY=50 uvicorn shortlink.main:app
    API_KEYS='{"k-123": "owner-1"}' uvicorn shortlink.main:app

Key Behaviours
===============
- Settings are cached after first access for performance.
- Environment variables override defaults automatically.
- ``API_KEYS`` is parsed from a JSON object mapping API key to owner id.
- The two rate-limit classes are configured independently.
- ``TRUSTED_PROXY_HOPS`` counts the proxies in front of the service. Client
  addresses are read that many entries from the right of ``X-Forwarded-For``;
  ``0`` ignores forwarding headers and uses the socket peer.

Classes:
    Settings:  Pydantic model for all configuration values.

"""

__all__ = ["Settings", "get_settings"]

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "shortlink"
    APP_ENV: str = "development"
    BASE_URL: str = "http://localhost:8080"
    LOG_LEVEL: str = "INFO"

    # PostgreSQL
    DATABASE_URL: str = "postgresql+asyncpg://shortlink:shortlink@db:5432/shortlink"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Short code allocation
    SHORT_CODE_LENGTH: int = 7
    CODE_ALLOCATION_MAX_ATTEMPTS: int = 10
    CODE_PERTURBATION_RANGE: int = 1000
    CREATE_CONFLICT_RETRIES: int = 3
    ALIAS_MIN_LENGTH: int = 3
    ALIAS_MAX_LENGTH: int = 20

    # Destination acceptance
    MAX_URL_LENGTH: int = 2048

    # Cache-aside lookups
    CACHE_KEY_PREFIX: str = "url"
    CACHE_TTL_SECONDS: int = 3600

    # Token buckets: anonymous traffic is keyed by client address,
    # authenticated traffic by owner id.
    RATE_LIMIT_ANONYMOUS_CAPACITY: int = 20
    RATE_LIMIT_ANONYMOUS_REFILL_TOKENS: int = 20
    RATE_LIMIT_ANONYMOUS_REFILL_SECONDS: float = 60.0
    RATE_LIMIT_AUTHENTICATED_CAPACITY: int = 100
    RATE_LIMIT_AUTHENTICATED_REFILL_TOKENS: int = 100
    RATE_LIMIT_AUTHENTICATED_REFILL_SECONDS: float = 60.0
    RATE_LIMIT_MAX_BUCKETS: int = 100_000

    # API key -> owner id
    API_KEYS: dict[str, str] = {}

    # Reverse proxies in front of the service that append to X-Forwarded-For
    TRUSTED_PROXY_HOPS: int = 1

    # Click analytics
    ANALYTICS_DRAIN_TIMEOUT_SECONDS: float = 5.0
    ANALYTICS_RECENT_LIMIT: int = 100
    ANALYTICS_OVERVIEW_LIMIT: int = 10

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
