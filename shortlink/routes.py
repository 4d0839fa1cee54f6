"""FastAPI route definitions for the shortlink REST API.

API Endpoint Overview
=====================
::
    GET  /health
        └─ HealthResponse (200)

    POST /urls                         (X-API-Key)
        ├─ ShortenRequest (request body)
        └─ LinkResponse (201) or 400/401/429/500/503

    GET  /api/analytics                (X-API-Key)
        └─ list[AnalyticsResponse] (200) or 401/429

    GET  /api/analytics/:code          (X-API-Key)
        └─ AnalyticsResponse (200) or 401/403/404/429

    GET  /:code
        └─ 302 Redirect or 400/404/429/503

Key Behaviours
===============
- Every endpoint except /health passes through the token bucket of its
  identity class before any work is done.
- Domain errors are translated to HTTP status codes here.
- The redirect response never waits for click analytics.
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from shortlink.dependencies import (
    RequestContext,
    enforce_rate_limit,
    get_request_context,
    require_owner,
)
from shortlink.enums import HealthStatus
from shortlink.exceptions import (
    AllocationExhaustedError,
    ConflictError,
    ExpiredError,
    InvalidEncodingError,
    NotFoundError,
    OwnershipError,
    StoreUnavailableError,
    ValidationError,
)
from shortlink.rate_limiter import Identity
from shortlink.schemas import AnalyticsResponse, HealthResponse, LinkResponse, ShortenRequest

__all__ = ["router"]

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    manager = ctx.service_manager
    db_status = HealthStatus.HEALTHY
    cache_status = HealthStatus.HEALTHY

    try:
        if manager.ping_database is not None:
            await manager.ping_database()
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    try:
        if manager.ping_cache is not None:
            await manager.ping_cache()
    except Exception as e:
        ctx.logger.error(f"Cache health check failed: {e}")
        cache_status = HealthStatus.UNHEALTHY

    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post("/urls", response_model=LinkResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: ShortenRequest,
    ctx: RequestContext = Depends(get_request_context),
    owner_id: str = Depends(require_owner),
) -> LinkResponse:
    ctx.logger.info(f"Short link requested by {owner_id}: {payload.url}")

    try:
        record = await ctx.service_manager.link_service.create(payload, owner_id)
    except (ValidationError, InvalidEncodingError, ConflictError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except AllocationExhaustedError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc

    ctx.logger.info(f"Short link created: {record.code} in {ctx.get_duration():.1f}ms")
    return LinkResponse.from_record(record, ctx.settings.BASE_URL)


@router.get("/api/analytics", response_model=list[AnalyticsResponse], tags=["analytics"])
async def get_all_analytics(
    ctx: RequestContext = Depends(get_request_context),
    owner_id: str = Depends(require_owner),
) -> list[AnalyticsResponse]:
    try:
        return await ctx.service_manager.queries.owner_analytics(
            owner_id, limit=ctx.settings.ANALYTICS_OVERVIEW_LIMIT
        )
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc


@router.get("/api/analytics/{code}", response_model=AnalyticsResponse, tags=["analytics"])
async def get_analytics(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    owner_id: str = Depends(require_owner),
) -> AnalyticsResponse:
    try:
        return await ctx.service_manager.queries.link_analytics(
            code, owner_id, limit=ctx.settings.ANALYTICS_RECENT_LIMIT
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Short URL not found") from exc
    except OwnershipError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except StoreUnavailableError as exc:
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc


@router.get("/{code}", tags=["redirect"])
async def redirect_to_url(
    code: str,
    ctx: RequestContext = Depends(get_request_context),
    identity: Identity = Depends(enforce_rate_limit),
) -> RedirectResponse:
    try:
        destination = await ctx.service_manager.resolver.resolve(code, ctx.click)
    except InvalidEncodingError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ExpiredError as exc:
        ctx.logger.info(f"Redirect refused, expired: {code}")
        raise HTTPException(status_code=404, detail="Short URL has expired") from exc
    except NotFoundError as exc:
        ctx.logger.info(f"Redirect failed - short code not found: {code}")
        raise HTTPException(status_code=404, detail="Short URL not found") from exc
    except StoreUnavailableError as exc:
        ctx.logger.error(f"Redirect failed - store unavailable: {exc}")
        raise HTTPException(status_code=503, detail="Storage temporarily unavailable") from exc

    ctx.logger.debug(f"Redirect {code} -> {destination} for {identity.kind} in {ctx.get_duration():.1f}ms")
    return RedirectResponse(url=destination, status_code=302)
