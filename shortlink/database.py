"""Database configuration and session management for the shortlink service.

This module provides SQLAlchemy async engine setup, the session factory used
by the stores, and database lifecycle operations using PostgreSQL as the backend.

Flow Diagram — Store Operation
==============================
::
    ┌─────────────┐
    │ Store call   │
    │ (get/create) │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ async_session│
    │ () context   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Execute +    │
    │ commit       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auto-close   │
    └─────────────┘

How to Use
===========
**Step 1 — Initialize on startup**::
    await init_db()  # Creates tables

**Step 2 — Hand the factory to the stores**::
    store = SqlUrlStore(async_session)

**Step 3 — Cleanup on shutdown**::
    await close_db()

Key Behaviours
===============
- Every store operation opens its own short-lived session, so background
  analytics never share a session with the request that scheduled them.
- Connection pooling is configured for production workloads.
- Engine is properly disposed on application shutdown.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    init_db():  Creates all tables on startup.
    ping():  Round-trips ``SELECT 1`` for health checks.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlink.config import get_settings

__all__ = ["Base", "engine", "async_session", "init_db", "ping", "close_db"]

settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=(settings.APP_ENV == "development"),
    pool_size=settings.DATABASE_POOL_SIZE,
    max_overflow=settings.DATABASE_MAX_OVERFLOW,
    pool_pre_ping=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    # Registers the tables on Base.metadata.
    from shortlink import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def ping() -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    await engine.dispose()
