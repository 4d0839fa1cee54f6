"""Fire-and-forget click analytics and the analytics read side.

Flow Diagram — Click Recording
==============================
::
    ┌─────────────┐
    │ Resolver    │  captures ClickMetadata (plain values)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ schedule()  │  asyncio task, reference held until done
    └──────┬──────┘
           ▼                    (caller returns the redirect here)
    ┌─────────────┐
    │ record()    │
    └──────┬──────┘
     ┌─────┴──────────────┐
     ▼                    ▼
┌──────────────┐   ┌──────────────┐
│ increment    │   │ append       │
│ click_count  │   │ ClickEvent   │
└──────────────┘   └──────────────┘
  (each failure logged and absorbed independently)

Key Behaviours
===============
- ``record`` never raises; each write fails on its own.
- Scheduled tasks are not tied to the request; a client disconnect does not
  cancel them. ``drain`` awaits the stragglers on shutdown.
- Only plain values cross the handoff; no request objects are retained.

Classes:
    ClickMetadata:  Plain values captured from the request.
    AnalyticsRecorder:  Best-effort click counter + event writer.
    AnalyticsQueries:  Per-link and per-owner analytics summaries.
"""

import asyncio
import datetime
import logging
from collections.abc import Callable
from dataclasses import dataclass

from prometheus_client import Counter

from shortlink.exceptions import NotFoundError, OwnershipError
from shortlink.interfaces import EventLog, UrlStore
from shortlink.schemas import AnalyticsResponse, ClickDetail, ClickEventRecord, ShortLinkRecord

__all__ = ["ClickMetadata", "AnalyticsRecorder", "AnalyticsQueries"]

ANALYTICS_WRITES_TOTAL = Counter(
    "shortlink_analytics_writes_total",
    "Analytics writes by kind and outcome",
    ["kind", "status"],
)


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class ClickMetadata:
    client_address: str | None = None
    user_agent: str | None = None
    referrer: str | None = None


class AnalyticsRecorder:
    """Records clicks without ever failing the redirect that triggered them."""

    def __init__(
        self,
        store: UrlStore,
        event_log: EventLog,
        logger: logging.Logger | logging.LoggerAdapter | None = None,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ):
        self._store = store
        self._event_log = event_log
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def record(
        self,
        code: str,
        client_address: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> None:
        try:
            await self._store.increment_clicks(code)
            ANALYTICS_WRITES_TOTAL.labels(kind="increment", status="success").inc()
        except Exception as exc:
            ANALYTICS_WRITES_TOTAL.labels(kind="increment", status="error").inc()
            self._logger.error(f"Click count increment failed for {code}: {exc}")

        event = ClickEventRecord(
            code=code,
            timestamp=self._clock(),
            client_address=client_address,
            user_agent=user_agent,
            referrer=referrer,
        )
        try:
            await self._event_log.append(event)
            ANALYTICS_WRITES_TOTAL.labels(kind="event", status="success").inc()
        except Exception as exc:
            ANALYTICS_WRITES_TOTAL.labels(kind="event", status="error").inc()
            self._logger.error(f"Click event append failed for {code}: {exc}")

    def schedule(self, code: str, click: ClickMetadata) -> asyncio.Task:
        """Start recording in the background and return without waiting."""
        task = asyncio.get_running_loop().create_task(
            self.record(code, click.client_address, click.user_agent, click.referrer),
            name=f"click:{code}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self, timeout: float | None = None) -> None:
        if not self._tasks:
            return
        self._logger.info(f"Draining {self.pending} pending analytics tasks")
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            self._logger.warning(f"{len(pending)} analytics tasks still running after drain timeout")


class AnalyticsQueries:
    """Per-code counters and recent click lists for link owners."""

    def __init__(self, store: UrlStore, event_log: EventLog):
        self._store = store
        self._event_log = event_log

    async def _summary(self, link: ShortLinkRecord, limit: int) -> AnalyticsResponse:
        events = await self._event_log.recent(link.code, limit)
        return AnalyticsResponse(
            code=link.code,
            destination=link.destination,
            total_clicks=link.click_count,
            created_at=link.created_at,
            expires_at=link.expires_at,
            recent_clicks=[
                ClickDetail(
                    timestamp=event.timestamp,
                    client_address=event.client_address,
                    user_agent=event.user_agent,
                    referrer=event.referrer,
                )
                for event in events
            ],
        )

    async def link_analytics(self, code: str, owner_id: str, limit: int = 100) -> AnalyticsResponse:
        link = await self._store.get(code)
        if link is None:
            raise NotFoundError(f"Short URL '{code}' not found")
        if link.owner_id != owner_id:
            raise OwnershipError("You don't have permission to view analytics for this URL")
        return await self._summary(link, limit)

    async def owner_analytics(self, owner_id: str, limit: int = 10) -> list[AnalyticsResponse]:
        links = await self._store.find_by_owner(owner_id)
        links = sorted(links, key=lambda link: link.created_at, reverse=True)
        return [await self._summary(link, limit) for link in links]
