"""Collaborator interfaces consumed by the redirect and create paths.

The core only talks to storage through these protocols, so the SQL store,
the Redis cache, and the in-memory fakes used by tests are interchangeable.
"""

import datetime
from typing import Protocol

from shortlink.schemas import ClickEventRecord, ShortLinkRecord

__all__ = ["UrlStore", "FastCache", "EventLog", "UserDirectory"]


class UrlStore(Protocol):
    async def get(self, code: str) -> ShortLinkRecord | None: ...

    async def exists_code(self, code: str) -> bool: ...

    async def create(
        self,
        code: str,
        destination: str,
        owner_id: str | None,
        expires_at: datetime.datetime | None = None,
    ) -> ShortLinkRecord:
        """Insert a new mapping, raising ``AliasTakenError`` on a duplicate code."""
        ...

    async def increment_clicks(self, code: str) -> None: ...

    async def find_by_owner(self, owner_id: str) -> list[ShortLinkRecord]: ...


class FastCache(Protocol):
    """Both operations may raise; callers absorb the failure."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


class EventLog(Protocol):
    async def append(self, event: ClickEventRecord) -> None: ...

    async def recent(self, code: str, limit: int) -> list[ClickEventRecord]: ...


class UserDirectory(Protocol):
    def resolve_owner_id(self, identity: str) -> str:
        """Return the owner id for ``identity`` or raise ``AuthenticationError``."""
        ...
