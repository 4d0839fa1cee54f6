"""Redirect resolution - the latency-sensitive read path.

Flow Diagram — resolve()
========================
::
    ┌─────────────┐
    │  GET /:code │
    └──────┬──────┘
           ▼
    ┌─────────────┐  fault
    │ Redis GET   ├────────┐ (logged, treated as miss)
    └──────┬──────┘        │
    HIT?  │                │
    ┌─────┴─────┐          │
    │ YES        │ NO ◄─────┘
    ▼            ▼
┌─────────┐  ┌─────────────┐
│ schedule│  │ store.get() │──► None ──► NotFoundError
│ click   │  └──────┬──────┘
└────┬────┘         ▼
     │       ┌─────────────┐
     │       │ expired?    │──► yes ──► ExpiredError
     │       └──────┬──────┘
     │              ▼
     │       ┌─────────────┐
     │       │ Redis SET   │  (best-effort, 1h TTL)
     │       │ + schedule  │
     │       │ click       │
     │       └──────┬──────┘
     ▼              ▼
    ┌─────────────────┐
    │ destination     │
    └─────────────────┘

Key Behaviours
===============
- The durable store is the fallback of record; cache faults never abort a
  request.
- Expired links are never served even though they remain in storage.
- The cache TTL is fixed and independent of ``expires_at``: a link cached
  shortly before it expires can be served for up to one TTL afterwards.
- Store faults propagate to the caller (503 at the HTTP edge).
- Analytics are scheduled, never awaited.
"""

import datetime
import logging
import time
from collections.abc import Callable

from prometheus_client import Counter, Histogram

from shortlink.analytics import AnalyticsRecorder, ClickMetadata
from shortlink.encoder import is_valid_code
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.exceptions import ExpiredError, InvalidEncodingError, NotFoundError
from shortlink.interfaces import FastCache, UrlStore

__all__ = ["RedirectResolver", "DEFAULT_CACHE_TTL_SECONDS", "cache_key"]

DEFAULT_CACHE_TTL_SECONDS = 3600  # 1 hour

REDIRECT_LOOKUPS_TOTAL = Counter(
    "shortlink_redirect_lookups_total",
    "Redirect lookups by outcome",
    ["status", "cache_hit"],
)
REDIRECT_LOOKUP_DURATION = Histogram(
    "shortlink_redirect_lookup_duration_seconds",
    "Time taken to resolve a short code",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25],
)
CACHE_FAULTS_TOTAL = Counter(
    "shortlink_cache_faults_total",
    "Cache operations that failed and were absorbed",
    ["operation"],
)


def cache_key(code: str, prefix: str = "url") -> str:
    return f"{prefix}:{code}"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RedirectResolver:
    """Cache-aside resolution of short codes to destinations.

    Example:
        >>> resolver = RedirectResolver(store, cache, recorder)
        >>> await resolver.resolve("abc123", ClickMetadata(client_address="203.0.113.7"))
        'https://example.com'
    """

    def __init__(
        self,
        store: UrlStore,
        cache: FastCache,
        recorder: AnalyticsRecorder,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        cache_key_prefix: str = "url",
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self._store = store
        self._cache = cache
        self._recorder = recorder
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache_key_prefix = cache_key_prefix
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    async def resolve(self, code: str, click: ClickMetadata | None = None) -> str:
        """Resolve ``code`` to its destination and schedule a click record.

        Args:
            code: Short code from the request path.
            click: Request values captured before the analytics handoff.

        Returns:
            str: Destination URL.

        Raises:
            InvalidEncodingError: If ``code`` has characters outside Base62.
            NotFoundError: If no mapping exists.
            ExpiredError: If the mapping's expiry instant has passed.
            StoreUnavailableError: If the durable store cannot be read.
        """
        if not is_valid_code(code):
            raise InvalidEncodingError(f"Malformed short code: {code!r}")

        click = click or ClickMetadata()
        start_time = time.perf_counter()
        key = cache_key(code, self._cache_key_prefix)

        destination = await self._cache_get(key)
        if destination is not None:
            self._recorder.schedule(code, click)
            self._observe(start_time, RequestStatus.SUCCESS, CacheStatus.HIT)
            self._logger.debug(f"Cache hit for {code}")
            return destination

        try:
            link = await self._store.get(code)
        except Exception:
            self._observe(start_time, RequestStatus.ERROR, CacheStatus.MISS)
            raise

        if link is None:
            self._observe(start_time, RequestStatus.NOT_FOUND, CacheStatus.MISS)
            raise NotFoundError(f"Short URL '{code}' not found")

        if link.is_expired(self._clock()):
            self._observe(start_time, RequestStatus.EXPIRED, CacheStatus.MISS)
            raise ExpiredError(code)

        await self._cache_set(key, link.destination)
        self._recorder.schedule(code, click)
        self._observe(start_time, RequestStatus.SUCCESS, CacheStatus.MISS)
        self._logger.debug(f"Store hit and cached for {code}")
        return link.destination

    async def _cache_get(self, key: str) -> str | None:
        try:
            return await self._cache.get(key)
        except Exception as exc:
            CACHE_FAULTS_TOTAL.labels(operation="get").inc()
            self._logger.warning(f"Cache error (falling back to store) for {key}: {exc}")
            return None

    async def _cache_set(self, key: str, destination: str) -> None:
        try:
            await self._cache.set(key, destination, self._cache_ttl_seconds)
        except Exception as exc:
            CACHE_FAULTS_TOTAL.labels(operation="set").inc()
            self._logger.warning(f"Cache error (cache not updated) for {key}: {exc}")

    @staticmethod
    def _observe(start_time: float, status: RequestStatus, cache_hit: CacheStatus) -> None:
        REDIRECT_LOOKUP_DURATION.observe(time.perf_counter() - start_time)
        REDIRECT_LOOKUPS_TOTAL.labels(status=status, cache_hit=cache_hit).inc()
