"""Dependency injection with a per-process service manager.

This module wires the stores, cache, rate limiters, resolver, and analytics
recorder once at startup and exposes them to FastAPI endpoints through
lightweight per-request contexts.

Request Pipeline
================
::
    ┌─────────────┐   ┌──────────────┐   ┌──────────────┐   ┌────────────┐
    │ Request     ├──►│ RequestContext├──►│ Identity     ├──►│ Token      │
    │             │   │ (ip, ua, ref) │   │ (api key/ip) │   │ bucket     │
    └─────────────┘   └──────────────┘   └──────────────┘   └─────┬──────┘
                                                                   ▼
                                                            route handler
"""

import logging
import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, HTTPException, Request

from shortlink.allocator import CodeAllocator
from shortlink.analytics import AnalyticsQueries, AnalyticsRecorder, ClickMetadata
from shortlink.cache import RedisCache, close_redis, get_redis
from shortlink.config import Settings, get_settings
from shortlink.database import async_session, ping
from shortlink.enums import IdentityKind
from shortlink.exceptions import AuthenticationError, RateLimitExceeded
from shortlink.interfaces import EventLog, FastCache, UrlStore, UserDirectory
from shortlink.rate_limiter import Identity, RateLimiter, RateLimiters, RateLimitPolicy
from shortlink.resolver import RedirectResolver
from shortlink.service import LinkService
from shortlink.stores import SqlEventLog, SqlUrlStore
from shortlink.users import ApiKeyDirectory


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Holds the shared components of one running service.

    One instance serves the whole process; tests build a fresh instance per
    case with ``wire`` and in-memory collaborators.
    """

    def __init__(self) -> None:
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Connect to PostgreSQL and Redis and wire the components once."""
        if self._initialized:
            return

        settings = get_settings()
        cache = RedisCache(await get_redis())
        self.wire(
            settings=settings,
            store=SqlUrlStore(async_session),
            cache=cache,
            event_log=SqlEventLog(async_session),
            directory=ApiKeyDirectory(settings.API_KEYS),
        )
        self.ping_database = ping
        self.ping_cache = cache.ping

    def wire(
        self,
        settings: Settings,
        store: UrlStore,
        cache: FastCache,
        event_log: EventLog,
        directory: UserDirectory,
        limiters: Optional[RateLimiters] = None,
        allocator: Optional[CodeAllocator] = None,
    ) -> "ServiceManager":
        self.settings = settings
        self.logger = self._setup_logger(settings)
        self.store = store
        self.cache = cache
        self.event_log = event_log
        self.directory = directory
        self.limiters = limiters or self._setup_limiters(settings)
        self.allocator = allocator or CodeAllocator(
            max_attempts=settings.CODE_ALLOCATION_MAX_ATTEMPTS,
            code_length=settings.SHORT_CODE_LENGTH,
            perturbation_range=settings.CODE_PERTURBATION_RANGE,
            alias_min_length=settings.ALIAS_MIN_LENGTH,
            alias_max_length=settings.ALIAS_MAX_LENGTH,
            logger=self.logger,
        )
        self.recorder = AnalyticsRecorder(store, event_log, logger=self.logger)
        self.resolver = RedirectResolver(
            store,
            cache,
            self.recorder,
            cache_ttl_seconds=settings.CACHE_TTL_SECONDS,
            cache_key_prefix=settings.CACHE_KEY_PREFIX,
            logger=self.logger,
        )
        self.link_service = LinkService(
            store,
            cache,
            self.allocator,
            logger=self.logger,
            cache_ttl_seconds=settings.CACHE_TTL_SECONDS,
            cache_key_prefix=settings.CACHE_KEY_PREFIX,
            max_url_length=settings.MAX_URL_LENGTH,
            create_retries=settings.CREATE_CONFLICT_RETRIES,
        )
        self.queries = AnalyticsQueries(store, event_log)
        self.ping_database = None
        self.ping_cache = None
        self._initialized = True
        return self

    def _setup_logger(self, settings: Settings) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("shortlink")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(settings.LOG_LEVEL)
        return logger

    @staticmethod
    def _setup_limiters(settings: Settings) -> RateLimiters:
        return RateLimiters(
            anonymous=RateLimiter(
                RateLimitPolicy(
                    capacity=settings.RATE_LIMIT_ANONYMOUS_CAPACITY,
                    refill_tokens=settings.RATE_LIMIT_ANONYMOUS_REFILL_TOKENS,
                    refill_interval_seconds=settings.RATE_LIMIT_ANONYMOUS_REFILL_SECONDS,
                ),
                max_buckets=settings.RATE_LIMIT_MAX_BUCKETS,
                kind=IdentityKind.ANONYMOUS,
            ),
            authenticated=RateLimiter(
                RateLimitPolicy(
                    capacity=settings.RATE_LIMIT_AUTHENTICATED_CAPACITY,
                    refill_tokens=settings.RATE_LIMIT_AUTHENTICATED_REFILL_TOKENS,
                    refill_interval_seconds=settings.RATE_LIMIT_AUTHENTICATED_REFILL_SECONDS,
                ),
                max_buckets=settings.RATE_LIMIT_MAX_BUCKETS,
                kind=IdentityKind.AUTHENTICATED,
            ),
        )

    async def cleanup(self) -> None:
        """Let in-flight analytics finish, then release shared resources."""
        if not self._initialized:
            return
        await self.recorder.drain(timeout=self.settings.ANALYTICS_DRAIN_TIMEOUT_SECONDS)
        await close_redis()
        self._initialized = False


# Global service instance
_service_manager = ServiceManager()


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


def client_address(request: Request, trusted_hops: int = 1) -> Optional[str]:
    """Resolve the caller's address through ``trusted_hops`` reverse proxies.

    Each trusted proxy appends the address it saw to ``X-Forwarded-For``, so
    the client is ``trusted_hops`` entries from the right. Entries further
    left were supplied by the caller and are never used. With no trusted
    proxies the forwarding headers are ignored.
    """
    peer = request.client.host if request.client else None
    if trusted_hops <= 0:
        return peer

    forwarded = [
        entry.strip()
        for entry in request.headers.get("x-forwarded-for", "").split(",")
        if entry.strip() and entry.strip().lower() != "unknown"
    ]
    if forwarded:
        return forwarded[max(0, len(forwarded) - trusted_hops)]

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip and real_ip.lower() != "unknown":
        return real_ip
    return peer


@dataclass
class RequestContext:
    """Per-request values plus access to the shared service manager.

    Attributes:
        service_manager: Shared components
        request_id: Unique identifier for this request
        client_ip: Client address (proxy headers honoured)
        user_agent: Client user agent string
        referrer: Referer header
        api_key: X-API-Key header, if presented
        start_time: Request start timestamp
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    api_key: Optional[str] = None
    start_time: float = field(default_factory=time.time)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
            },
        )

    @property
    def click(self) -> ClickMetadata:
        """Plain values safe to hand to a background task."""
        return ClickMetadata(client_address=self.client_ip, user_agent=self.user_agent, referrer=self.referrer)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


async def get_service_manager() -> ServiceManager:
    if not _service_manager.initialized:
        await _service_manager.initialize()
    return _service_manager


async def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=client_address(request, manager.settings.TRUSTED_PROXY_HOPS),
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer"),
        api_key=request.headers.get("x-api-key"),
    )


def get_identity(ctx: RequestContext = Depends(get_request_context)) -> Identity:
    """Authenticated by owner id when an API key is presented, else by address."""
    if ctx.api_key:
        try:
            owner_id = ctx.service_manager.directory.resolve_owner_id(ctx.api_key)
        except AuthenticationError as exc:
            ctx.logger.warning("Rejected unknown API key")
            raise HTTPException(status_code=401, detail="Invalid API key") from exc
        return Identity(kind=IdentityKind.AUTHENTICATED, key=owner_id)
    return Identity(kind=IdentityKind.ANONYMOUS, key=ctx.client_ip or "unknown")


def enforce_rate_limit(
    ctx: RequestContext = Depends(get_request_context),
    identity: Identity = Depends(get_identity),
) -> Identity:
    try:
        ctx.service_manager.limiters.check(identity)
    except RateLimitExceeded as exc:
        ctx.logger.warning(f"Rate limit exceeded for {identity.kind} identity {identity.key}")
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
        ) from exc
    return identity


def require_owner(identity: Identity = Depends(enforce_rate_limit)) -> str:
    if identity.kind is not IdentityKind.AUTHENTICATED:
        raise HTTPException(status_code=401, detail="API key required")
    return identity.key
