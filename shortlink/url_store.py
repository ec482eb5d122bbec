"""Durable CRUD over short link records.

Each call opens its own session from the injected ``async_sessionmaker`` and
closes it before returning, so no connection is held across more than one
logical store round trip and the store is safe to share between concurrent
requests and the background click recorder.

Key Behaviours
===============
- Lookups only ever return *active* links; soft-deleted rows are invisible.
- ``create`` relies on the partial unique index on ``short_code``; a
  violation is rolled back and surfaced as ``ConflictError``.
- ``soft_delete`` flips ``is_active`` and never removes the row.
"""

import datetime
import logging

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.errors import ConflictError
from shortlink.models import ShortLink

__all__ = ["URLStore"]

logger = logging.getLogger(__name__)


class URLStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def exists_active(self, code: str) -> bool:
        """Return True if an active link holds ``code`` as its code or alias."""
        stmt = (
            select(ShortLink.id)
            .where(
                or_(ShortLink.short_code == code, ShortLink.custom_alias == code),
                ShortLink.is_active.is_(True),
            )
            .limit(1)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none() is not None

    async def create(
        self,
        short_code: str,
        original_url: str,
        custom_alias: str | None = None,
        expires_at: datetime.datetime | None = None,
        user_id: str | None = None,
    ) -> ShortLink:
        link = ShortLink(
            short_code=short_code,
            original_url=original_url,
            custom_alias=custom_alias,
            expires_at=expires_at,
            user_id=user_id,
            is_active=True,
        )
        async with self._sessions() as session:
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                logger.warning(f"Uniqueness violation inserting short code {short_code}")
                raise ConflictError(f"Short code '{short_code}' is already in use") from exc
            await session.refresh(link)
        return link

    async def find_active_by_code(self, code: str) -> ShortLink | None:
        stmt = select(ShortLink).where(ShortLink.short_code == code, ShortLink.is_active.is_(True))
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_active_by_owner(self, user_id: str) -> list[ShortLink]:
        stmt = (
            select(ShortLink)
            .where(ShortLink.user_id == user_id, ShortLink.is_active.is_(True))
            .order_by(ShortLink.created_at.desc(), ShortLink.id.desc())
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def soft_delete(self, code: str) -> bool:
        stmt = (
            update(ShortLink)
            .where(ShortLink.short_code == code, ShortLink.is_active.is_(True))
            .values(is_active=False)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            await session.commit()
            return (result.rowcount or 0) > 0
