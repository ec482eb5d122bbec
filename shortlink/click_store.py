"""Append-only click event log and aggregate queries."""

import datetime
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shortlink.enums import DeviceType
from shortlink.models import ClickEvent
from shortlink.schemas import ClickContext, CountryClicks, DateClicks, DeviceClicks

__all__ = ["ClickStore", "UNKNOWN_COUNTRY"]

logger = logging.getLogger(__name__)

UNKNOWN_COUNTRY = "Unknown"


class ClickStore:
    def __init__(self, sessions: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = sessions

    async def record(self, url_id: int, context: ClickContext) -> ClickEvent:
        event = ClickEvent(
            url_id=url_id,
            ip_address=context.ip_address or None,
            user_agent=context.user_agent or None,
            referrer=context.referrer or None,
            country=context.country or None,
            city=context.city or None,
            device_type=context.device_type.value if context.device_type else None,
        )
        if context.clicked_at is not None:
            event.clicked_at = context.clicked_at
        async with self._sessions() as session:
            session.add(event)
            await session.commit()
            await session.refresh(event)
        return event

    async def total_clicks(self, url_id: int) -> int:
        stmt = select(func.count(ClickEvent.id)).where(ClickEvent.url_id == url_id)
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def clicks_by_date(
        self, url_id: int, days: int = 30, now: datetime.datetime | None = None
    ) -> list[DateClicks]:
        """Per-day counts over the trailing ``days`` window, most recent first."""
        since = (now or datetime.datetime.now(datetime.timezone.utc)) - datetime.timedelta(days=days)
        day = func.date(ClickEvent.clicked_at).label("day")
        stmt = (
            select(day, func.count(ClickEvent.id).label("clicks"))
            .where(ClickEvent.url_id == url_id, ClickEvent.clicked_at >= since)
            .group_by(day)
            .order_by(day.desc())
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [
            DateClicks(date=row.day if isinstance(row.day, str) else row.day.isoformat(), clicks=int(row.clicks))
            for row in rows
        ]

    async def clicks_by_country(self, url_id: int, limit: int = 10) -> list[CountryClicks]:
        country = func.coalesce(ClickEvent.country, UNKNOWN_COUNTRY).label("country")
        clicks = func.count(ClickEvent.id).label("clicks")
        stmt = (
            select(country, clicks)
            .where(ClickEvent.url_id == url_id)
            .group_by(ClickEvent.country)
            .order_by(clicks.desc(), country.asc())
            .limit(limit)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            rows = result.all()
        return [CountryClicks(country=row.country, clicks=int(row.clicks)) for row in rows]

    async def clicks_by_device(self, url_id: int) -> DeviceClicks:
        """Device counts folded into mobile/desktop/tablet with everything else in other."""
        stmt = (
            select(ClickEvent.device_type, func.count(ClickEvent.id).label("clicks"))
            .where(ClickEvent.url_id == url_id)
            .group_by(ClickEvent.device_type)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            rows = result.all()

        buckets = DeviceClicks()
        for row in rows:
            label = DeviceType.from_str(row.device_type)
            count = int(row.clicks)
            if label is DeviceType.MOBILE:
                buckets.mobile += count
            elif label is DeviceType.DESKTOP:
                buckets.desktop += count
            elif label is DeviceType.TABLET:
                buckets.tablet += count
            else:
                buckets.other += count
        return buckets

    async def recent_clicks(self, url_id: int, limit: int = 10) -> list[ClickEvent]:
        stmt = (
            select(ClickEvent)
            .where(ClickEvent.url_id == url_id)
            .order_by(ClickEvent.clicked_at.desc(), ClickEvent.id.desc())
            .limit(limit)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
