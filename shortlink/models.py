"""SQLAlchemy ORM models for the shortlink service.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ code (VARCHAR(20) UNIQUE, INDEXED)
    ├─ destination (TEXT NOT NULL)
    ├─ owner_id (VARCHAR(64), INDEXED, NULL)
    ├─ click_count (BIGINT DEFAULT 0)
    ├─ expires_at (TIMESTAMPTZ, INDEXED, NULL)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

    click_events table
    ├─ id (BIGSERIAL PRIMARY KEY)
    ├─ code (VARCHAR(20), INDEXED, no foreign key)
    ├─ timestamp (TIMESTAMPTZ, INDEXED)
    ├─ client_address (VARCHAR(64), NULL)
    ├─ user_agent (TEXT, NULL)
    └─ referrer (TEXT, NULL)

Key Behaviours
===============
- ``code`` uniqueness is the final arbiter for concurrent alias claims.
- ``click_count`` only ever moves through an atomic ``UPDATE ... + 1``.
- Click events reference codes without a foreign key; an event written while
  its link is being deleted still succeeds.
- Expiry is derived from ``expires_at``; expired rows are not deleted.

Classes:
    ShortLink:  One code -> destination mapping with click counter.
    ClickEvent:  Append-only record of one resolved redirect.
"""

import datetime

from sqlalchemy import BigInteger, DateTime, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["ShortLink", "ClickEvent"]


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True, nullable=False)
    destination: Mapped[str] = mapped_column(Text, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    click_count: Mapped[int] = mapped_column(BigInteger, default=0, server_default="0", nullable=False)
    expires_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), index=True, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, code='{self.code}', click_count={self.click_count})>"


class ClickEvent(Base):
    __tablename__ = "click_events"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(20), index=True, nullable=False)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), index=True, server_default=func.now(), nullable=False
    )
    client_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ClickEvent(id={self.id}, code='{self.code}', timestamp={self.timestamp})>"
