"""Concurrent analytics fan-out over the click store."""

import asyncio
import logging

from shortlink.click_store import ClickStore
from shortlink.errors import InternalError
from shortlink.models import ShortLink
from shortlink.schemas import AnalyticsResponse, RecentClick

__all__ = ["AnalyticsAggregator"]

logger = logging.getLogger(__name__)


class AnalyticsAggregator:
    def __init__(self, click_store: ClickStore, window_days: int = 30, top_countries: int = 10) -> None:
        self._clicks = click_store
        self.window_days = window_days
        self.top_countries = top_countries

    async def summarize(self, link: ShortLink, include_recent: bool = False) -> AnalyticsResponse:
        """Run the aggregate queries for ``link`` concurrently.

        The queries share no state and are issued on independent sessions. If
        any of them fails the rest are cancelled and the whole summary fails;
        a partial result is never returned.

        Raises:
            InternalError: If any aggregate query fails.
        """
        try:
            async with asyncio.TaskGroup() as tg:
                total = tg.create_task(self._clicks.total_clicks(link.id))
                by_date = tg.create_task(self._clicks.clicks_by_date(link.id, self.window_days))
                by_country = tg.create_task(self._clicks.clicks_by_country(link.id, self.top_countries))
                by_device = tg.create_task(self._clicks.clicks_by_device(link.id))
                recent = tg.create_task(self._clicks.recent_clicks(link.id)) if include_recent else None
        except ExceptionGroup as group:
            logger.error(
                f"Analytics aggregation failed for {link.short_code}",
                exc_info=group.exceptions[0],
            )
            raise InternalError("Failed to aggregate analytics") from group

        return AnalyticsResponse(
            short_code=link.short_code,
            total_clicks=total.result(),
            clicks_by_date=by_date.result(),
            clicks_by_country=by_country.result(),
            clicks_by_device=by_device.result(),
            recent_clicks=[RecentClick.model_validate(event) for event in recent.result()] if recent else None,
        )
