"""Create path for short links.

Flow Diagram — create()
=======================
::
    ┌─────────────┐
    │ POST /urls  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Destination │──► ValidationError
    │ policy      │
    └──────┬──────┘
           ▼
    ┌─────────────┐  alias   ┌─────────────┐
    │ alias?      ├─────────►│ reserve()   │──► AliasTakenError
    └──────┬──────┘          └──────┬──────┘
           │ none                   │
           ▼                        │
    ┌─────────────┐                 │
    │ allocate()  │──► AllocationExhaustedError
    └──────┬──────┘                 │
           ▼                        ▼
    ┌────────────────────────────────────┐
    │ store.create()  (unique constraint)│──► AliasTakenError
    └──────┬─────────────────────────────┘    (generated codes retry)
           ▼
    ┌─────────────┐
    │ Cache warm  │  (best-effort)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ record      │
    └─────────────┘

Key Behaviours
===============
- The existence pre-check is advisory; the store's uniqueness constraint
  decides. A caller-supplied alias that loses the race surfaces as
  ``AliasTakenError``.
- A generated code that loses the race is re-allocated a bounded number of
  times before the conflict is surfaced.
- Cache warming after create never fails the request.
"""

import datetime
import logging
import time
from collections.abc import Callable

from prometheus_client import Counter, Histogram

from shortlink.allocator import CodeAllocator
from shortlink.enums import RequestStatus
from shortlink.exceptions import AliasTakenError, ConflictError, InvalidEncodingError, ValidationError
from shortlink.interfaces import FastCache, UrlStore
from shortlink.resolver import DEFAULT_CACHE_TTL_SECONDS, cache_key
from shortlink.schemas import ShortenRequest, ShortLinkRecord
from shortlink.url_policy import DEFAULT_MAX_URL_LENGTH, validate_destination

__all__ = ["LinkService"]

LINK_CREATION_REQUESTS_TOTAL = Counter(
    "shortlink_creation_requests_total",
    "Total short link creation requests",
    ["status"],
)
LINK_CREATION_DURATION = Histogram(
    "shortlink_creation_duration_seconds",
    "Time taken to create short links",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class LinkService:
    """Validates destinations, mints or reserves codes, and persists links."""

    def __init__(
        self,
        store: UrlStore,
        cache: FastCache,
        allocator: CodeAllocator,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS,
        cache_key_prefix: str = "url",
        max_url_length: int = DEFAULT_MAX_URL_LENGTH,
        create_retries: int = 3,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self._store = store
        self._cache = cache
        self._allocator = allocator
        self._logger = logger or logging.getLogger(__name__)
        self._cache_ttl_seconds = cache_ttl_seconds
        self._cache_key_prefix = cache_key_prefix
        self._max_url_length = max_url_length
        self._create_retries = create_retries
        self._clock = clock

    async def create(self, request: ShortenRequest, owner_id: str | None) -> ShortLinkRecord:
        """Create a short link for ``owner_id``.

        Args:
            request: Destination, optional alias and optional expiry in hours.
            owner_id: Identity the link is recorded against.

        Returns:
            ShortLinkRecord: The stored link.

        Raises:
            ValidationError: If the destination is refused.
            InvalidEncodingError: If the alias is malformed.
            AliasTakenError: If the alias, or a generated code on every retry,
                is already taken.
            AllocationExhaustedError: If code generation ran out of attempts.
            StoreUnavailableError: If the store rejected the write for any
                other reason.
        """
        start_time = time.perf_counter()
        try:
            validate_destination(request.url, max_length=self._max_url_length)
            expires_at = None
            if request.expiry_hours:
                expires_at = self._clock() + datetime.timedelta(hours=request.expiry_hours)

            if request.custom_alias:
                record = await self._create_with_alias(request, owner_id, expires_at)
            else:
                record = await self._create_with_generated_code(request, owner_id, expires_at)
        except (ValidationError, InvalidEncodingError) as exc:
            self._finish(start_time, RequestStatus.VALIDATION_ERROR)
            self._logger.warning(f"Short link creation refused: {exc}")
            raise
        except ConflictError as exc:
            self._finish(start_time, RequestStatus.CONFLICT)
            self._logger.warning(f"Short link creation conflict: {exc}")
            raise
        except Exception as exc:
            self._finish(start_time, RequestStatus.ERROR)
            self._logger.error(f"Short link creation error: {exc}")
            raise

        await self._warm_cache(record)
        duration = self._finish(start_time, RequestStatus.SUCCESS)
        self._logger.info(f"Short link created: {record.code} in {duration:.3f}s")
        return record

    async def _create_with_alias(
        self,
        request: ShortenRequest,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
    ) -> ShortLinkRecord:
        code = await self._allocator.reserve(request.custom_alias, self._store.exists_code)
        return await self._store.create(code, request.url, owner_id, expires_at)

    async def _create_with_generated_code(
        self,
        request: ShortenRequest,
        owner_id: str | None,
        expires_at: datetime.datetime | None,
    ) -> ShortLinkRecord:
        conflicts = 0
        while True:
            code = await self._allocator.allocate(self._store.exists_code)
            try:
                return await self._store.create(code, request.url, owner_id, expires_at)
            except AliasTakenError:
                conflicts += 1
                if conflicts > self._create_retries:
                    raise
                self._logger.warning(f"Generated code {code} lost a concurrent insert, re-allocating")

    async def _warm_cache(self, record: ShortLinkRecord) -> None:
        try:
            await self._cache.set(
                cache_key(record.code, self._cache_key_prefix),
                record.destination,
                self._cache_ttl_seconds,
            )
        except Exception as exc:
            self._logger.warning(f"Cache error (cache not warmed) for {record.code}: {exc}")

    @staticmethod
    def _finish(start_time: float, status: RequestStatus) -> float:
        duration = time.perf_counter() - start_time
        LINK_CREATION_DURATION.observe(duration)
        LINK_CREATION_REQUESTS_TOTAL.labels(status=status).inc()
        return duration
