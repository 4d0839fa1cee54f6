"""FastAPI application entry point for the shortlink service.

Lifecycle
=========
::
    startup   init_db() -> ServiceManager.initialize()
              (Redis client, SQL stores, limiters, resolver, recorder)
    serving   /health, /urls, /api/analytics, /{code}, /metrics
    shutdown  ServiceManager.cleanup() drains click tasks, closes Redis
              close_db() disposes the engine

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Step 2 — Shorten a URL**::
    curl -X POST http://localhost:8080/urls \
         -H "X-API-Key: k-123" -H "Content-Type: application/json" \
         -d '{"url": "https://example.com"}'

**Step 3 — Follow it**::
    curl -i http://localhost:8080/<code>

Key Behaviours
===============
- Database tables are created automatically on startup.
- Pending click analytics are drained before connections close.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import get_settings
from shortlink.database import close_db, init_db
from shortlink.dependencies import _service_manager
from shortlink.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    await init_db()
    await _service_manager.initialize()
    yield
    # Shutdown
    await _service_manager.cleanup()
    await close_db()


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Short link redirection with rate limiting and click analytics",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=False,
    should_respect_env_var=False,
).instrument(app).expose(app)

app.include_router(router)
