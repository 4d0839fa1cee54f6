"""Pydantic schemas for request/response validation and store records.

This module defines Pydantic models for API input validation, output
serialization, and the plain records exchanged with the durable store.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    ├─ url: str
    ├─ custom_alias: str | None (3-20 Base62 characters)
    └─ expiry_hours: int | None (positive)

    ShortLinkRecord (Store)
    ├─ code, destination, owner_id
    ├─ click_count: int
    ├─ created_at: datetime
    └─ expires_at: datetime | None

    ClickEventRecord (Store)
    ├─ code, timestamp
    └─ client_address, user_agent, referrer (optional)

    LinkResponse / AnalyticsResponse / HealthResponse (Output)

Key Behaviours
===============
- Store records are built from ORM rows with ``from_attributes``.
- Alias syntax and destination policy are checked by the service so they
  raise domain errors (400), not request validation errors (422).
- All datetime fields are timezone-aware.
"""

import datetime

from pydantic import BaseModel, Field, field_validator

from shortlink.enums import HealthStatus

MAX_EXPIRY_HOURS = 24 * 365 * 100

__all__ = [
    "ShortenRequest",
    "ShortLinkRecord",
    "ClickEventRecord",
    "LinkResponse",
    "ClickDetail",
    "AnalyticsResponse",
    "HealthResponse",
]


class ShortenRequest(BaseModel):
    url: str
    custom_alias: str | None = None
    expiry_hours: int | None = Field(default=None, gt=0, le=MAX_EXPIRY_HOURS)

    @field_validator("custom_alias")
    @classmethod
    def normalize_custom_alias(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ShortLinkRecord(BaseModel):
    """One code -> destination mapping as held by the durable store."""

    code: str
    destination: str
    owner_id: str | None = None
    click_count: int = 0
    created_at: datetime.datetime
    expires_at: datetime.datetime | None = None

    model_config = {"from_attributes": True}

    def is_expired(self, now: datetime.datetime) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=datetime.timezone.utc)
        return now > expires_at


class ClickEventRecord(BaseModel):
    """Append-only record of one resolved redirect."""

    code: str
    timestamp: datetime.datetime
    client_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None

    model_config = {"from_attributes": True}


class LinkResponse(BaseModel):
    code: str
    short_url: str
    destination: str
    owner_id: str | None
    click_count: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None

    @classmethod
    def from_record(cls, record: ShortLinkRecord, base_url: str) -> "LinkResponse":
        return cls(
            code=record.code,
            short_url=f"{base_url.rstrip('/')}/{record.code}",
            destination=record.destination,
            owner_id=record.owner_id,
            click_count=record.click_count,
            created_at=record.created_at,
            expires_at=record.expires_at,
        )


class ClickDetail(BaseModel):
    timestamp: datetime.datetime
    client_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None


class AnalyticsResponse(BaseModel):
    code: str
    destination: str
    total_clicks: int
    created_at: datetime.datetime
    expires_at: datetime.datetime | None
    recent_clicks: list[ClickDetail] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus
