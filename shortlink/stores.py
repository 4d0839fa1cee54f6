"""SQLAlchemy-backed implementations of ``UrlStore`` and ``EventLog``.

Each operation opens its own session from the injected factory and commits
before returning. Database faults surface as ``StoreUnavailableError``; a
unique-constraint violation on ``create`` surfaces as ``AliasTakenError``.
"""

import datetime
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.exceptions import AliasTakenError, StoreUnavailableError
from shortlink.models import ClickEvent, ShortLink
from shortlink.schemas import ClickEventRecord, ShortLinkRecord

__all__ = ["SqlUrlStore", "SqlEventLog"]

logger = logging.getLogger(__name__)


class SqlUrlStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, code: str) -> ShortLinkRecord | None:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ShortLink).where(ShortLink.code == code))
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Short link lookup failed for {code}") from exc
        return ShortLinkRecord.model_validate(row) if row is not None else None

    async def exists_code(self, code: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(ShortLink.id).where(ShortLink.code == code).limit(1))
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Existence check failed for {code}") from exc

    async def create(
        self,
        code: str,
        destination: str,
        owner_id: str | None,
        expires_at: datetime.datetime | None = None,
    ) -> ShortLinkRecord:
        try:
            async with self._session_factory() as session:
                row = ShortLink(code=code, destination=destination, owner_id=owner_id, expires_at=expires_at)
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError as exc:
                    await session.rollback()
                    logger.warning(f"Unique constraint rejected code: {code}")
                    raise AliasTakenError(code) from exc
                await session.refresh(row)
                return ShortLinkRecord.model_validate(row)
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Short link insert failed for {code}") from exc

    async def increment_clicks(self, code: str) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    update(ShortLink).where(ShortLink.code == code).values(click_count=ShortLink.click_count + 1)
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Click increment failed for {code}") from exc

    async def find_by_owner(self, owner_id: str) -> list[ShortLinkRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ShortLink).where(ShortLink.owner_id == owner_id).order_by(ShortLink.created_at.desc())
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Owner lookup failed for {owner_id}") from exc
        return [ShortLinkRecord.model_validate(row) for row in rows]


class SqlEventLog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, event: ClickEventRecord) -> None:
        try:
            async with self._session_factory() as session:
                session.add(ClickEvent(**event.model_dump()))
                await session.commit()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Click event append failed for {event.code}") from exc

    async def recent(self, code: str, limit: int) -> list[ClickEventRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(ClickEvent).where(ClickEvent.code == code).order_by(ClickEvent.timestamp.desc()).limit(limit)
                )
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StoreUnavailableError(f"Click event query failed for {code}") from exc
        return [ClickEventRecord.model_validate(row) for row in rows]
