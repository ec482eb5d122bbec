"""Resolution Service - Core Business Logic

This module orchestrates the short code lifecycle: creation with collision
avoidance, the cache-aside resolve path, ownership-checked soft deletion and
analytics lookups.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                   ResolutionService                         │
    │  ┌────────────────┐  ┌────────────────┐  ┌───────────────┐  │
    │  │ ShortCode      │  │ ClickRecorder  │  │ Analytics     │  │
    │  │ Generator      │  │ (queue+worker) │  │ Aggregator    │  │
    │  └────────────────┘  └────────────────┘  └───────────────┘  │
    └─────────────────────────────────────────────────────────────┘
                │                    │                    │
                ▼                    ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐  ┌─────────────────┐
    │    URLStore     │  │   ClickStore    │  │    URLCache     │
    │  (PostgreSQL)   │  │  (PostgreSQL)   │  │    (Redis)      │
    └─────────────────┘  └─────────────────┘  └─────────────────┘

Request Flow Diagrams
=====================

Link Creation Flow
------------------
::
    ┌─────────────┐
    │ Sanitize &  │
    │ validate URL│
    └──────┬──────┘
           ▼
    ┌─────────────┐    alias taken
    │ Alias given?│──────────────► ConflictError
    └──────┬──────┘
      NO   ▼
    ┌─────────────┐    5 collisions
    │ Generate &  │──────────────► InternalError
    │ check store │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ INSERT      │  (unique index is the real guard)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache set   │  (best-effort)
    └─────────────┘

Resolve Flow (hot path)
-----------------------
::
    ┌─────────────┐    malformed
    │ Check shape │──────────────► ValidationError
    └──────┬──────┘
           ▼
    ┌─────────────┐   HIT
    │ Cache get   │──────► submit click job ──► return URL
    └──────┬──────┘
      MISS ▼
    ┌─────────────┐   absent ──► NotFoundError
    │ Store get   │   expired ─► ExpiredError
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Cache set,  │
    │ submit click│──► return URL
    └─────────────┘

Key Behaviours
===============
- Cache failures are misses; the store is always consulted on a miss.
- Click recording never delays or fails a resolve.
- Cache TTL never outlives the link's expiry.
- Soft-deleted links are invisible to resolve, details and analytics.
- Unexpected failures are logged with traceback and re-raised as a generic
  ``InternalError``.
"""

import datetime
import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator

from shortlink.analytics import AnalyticsAggregator
from shortlink.cache import URLCache
from shortlink.codes import ShortCodeGenerator
from shortlink.config import Settings
from shortlink.enums import CacheStatus, RequestStatus
from shortlink.errors import (
    ConflictError,
    ExpiredError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ShortLinkError,
    ValidationError,
)
from shortlink.metrics import (
    CACHE_HITS_TOTAL,
    CACHE_MISSES_TOTAL,
    GENERATION_COLLISIONS_TOTAL,
    LINK_CREATION_DURATION,
    LINK_CREATION_REQUESTS_TOTAL,
    RESOLVE_DURATION,
    RESOLVE_REQUESTS_TOTAL,
)
from shortlink.models import ShortLink
from shortlink.recorder import ClickJob, ClickRecorder
from shortlink.schemas import AnalyticsResponse, ClickContext, LinkResponse
from shortlink.url_store import URLStore
from shortlink.validation import is_valid_lookup_key, validate_alias, validate_original_url

__all__ = ["ResolutionService"]

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ValidationError.kind: RequestStatus.VALIDATION_ERROR,
    ConflictError.kind: RequestStatus.CONFLICT,
    NotFoundError.kind: RequestStatus.NOT_FOUND,
    ExpiredError.kind: RequestStatus.EXPIRED,
}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


class ResolutionService:
    """Orchestrates create, resolve, delete and analytics over the stores.

    One instance is built at process start and shared by every request; it
    holds no per-request state. Each store call opens its own session, so
    concurrent callers never share a connection.

    Example:
        >>> link = await service.create_link("https://example.com/path/")
        >>> await service.resolve(link.short_code)
        'https://example.com/path'
    """

    def __init__(
        self,
        url_store: URLStore,
        cache: URLCache,
        recorder: ClickRecorder,
        aggregator: AnalyticsAggregator,
        generator: ShortCodeGenerator,
        settings: Settings,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._urls = url_store
        self._cache = cache
        self._recorder = recorder
        self._aggregator = aggregator
        self._generator = generator
        self._settings = settings
        self._clock = clock
        self._max_attempts = settings.SHORT_CODE_MAX_ATTEMPTS

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def create_link(
        self,
        original_url: str,
        custom_alias: str | None = None,
        expires_at: datetime.datetime | None = None,
        owner_id: str | None = None,
    ) -> LinkResponse:
        """Create a short link and warm the cache for it.

        Args:
            original_url: URL to shorten; trimmed and stripped of trailing slashes.
            custom_alias: Optional caller-chosen code (3-50 chars of [A-Za-z0-9_-]).
            expires_at: Optional expiry; naive values are taken as UTC.
            owner_id: Optional opaque id of the authenticated caller.

        Returns:
            LinkResponse: Public projection of the created link.

        Raises:
            ValidationError: Bad URL, alias or expiry.
            ConflictError: Alias already held by an active link.
            InternalError: Generation exhausted its attempts, or store failure.
        """
        start_time = time.perf_counter()
        try:
            url = validate_original_url(original_url)
            expiry = self._normalize_expiry(expires_at)

            if custom_alias:
                link = await self._create_with_alias(validate_alias(custom_alias), url, expiry, owner_id)
            else:
                link = await self._create_with_generated_code(url, expiry, owner_id)

            await self._cache.set(link.short_code, link.original_url, self._cache_ttl(link))

            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS).inc()
            logger.info(f"Short link created: {link.short_code}")
            return self.to_public(link)

        except ShortLinkError as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=_STATUS_BY_KIND.get(exc.kind, RequestStatus.ERROR)).inc()
            logger.warning(f"Short link creation rejected: {exc}")
            raise
        except Exception as exc:
            LINK_CREATION_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR).inc()
            logger.exception("Short link creation failed")
            raise InternalError("Failed to create short URL") from exc
        finally:
            LINK_CREATION_DURATION.observe(time.perf_counter() - start_time)

    async def resolve(self, short_code: str, click: ClickContext | None = None) -> str:
        """Resolve a short code to its original URL.

        Args:
            short_code: Generated code or custom alias.
            click: Request metadata; when given, a click event is queued.

        Returns:
            str: The original URL.

        Raises:
            ValidationError: ``short_code`` is malformed.
            NotFoundError: No active link holds the code.
            ExpiredError: The link exists but has expired.
        """
        start_time = time.perf_counter()
        cache_status = CacheStatus.MISS
        try:
            if not is_valid_lookup_key(short_code):
                raise ValidationError("Invalid short code format")

            cached = await self._cache.get(short_code)
            if cached is not None:
                cache_status = CacheStatus.HIT
                CACHE_HITS_TOTAL.inc()
                logger.debug(f"Cache hit for {short_code}")
                if click is not None:
                    self._recorder.submit(ClickJob(short_code=short_code, context=click))
                RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
                return cached

            CACHE_MISSES_TOTAL.inc()
            logger.debug(f"Cache miss for {short_code}")
            link = await self._load_active(short_code)
            if self._is_expired(link):
                raise ExpiredError("This short URL has expired")

            await self._cache.set(link.short_code, link.original_url, self._cache_ttl(link))
            if click is not None:
                self._recorder.submit(ClickJob(short_code=short_code, context=click, url_id=link.id))

            RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.SUCCESS, cache_hit=cache_status).inc()
            return link.original_url

        except ShortLinkError as exc:
            RESOLVE_REQUESTS_TOTAL.labels(
                status=_STATUS_BY_KIND.get(exc.kind, RequestStatus.ERROR), cache_hit=cache_status
            ).inc()
            raise
        except Exception as exc:
            RESOLVE_REQUESTS_TOTAL.labels(status=RequestStatus.ERROR, cache_hit=cache_status).inc()
            logger.exception(f"Resolve failed for {short_code}")
            raise InternalError("Failed to resolve short URL") from exc
        finally:
            RESOLVE_DURATION.observe(time.perf_counter() - start_time)

    async def delete_link(self, short_code: str, owner_id: str) -> None:
        """Soft-delete a link owned by ``owner_id`` and evict it from the cache.

        Raises:
            ValidationError: ``short_code`` is malformed.
            NotFoundError: No active link holds the code.
            PermissionDeniedError: The caller does not own the link, or it is anonymous.
        """
        with self._internal_errors(f"Delete failed for {short_code}"):
            self._check_lookup_key(short_code)
            link = await self._load_active(short_code)
            if link.user_id is None or link.user_id != owner_id:
                raise PermissionDeniedError("You do not have permission to delete this URL")
            if not await self._urls.soft_delete(short_code):
                raise NotFoundError("Short URL not found")
            await self._cache.delete(short_code)
            logger.info(f"Short link deleted: {short_code}")

    async def get_analytics(self, short_code: str, include_recent: bool = False) -> AnalyticsResponse:
        with self._internal_errors(f"Analytics failed for {short_code}"):
            self._check_lookup_key(short_code)
            link = await self._load_active(short_code)
            return await self._aggregator.summarize(link, include_recent=include_recent)

    async def get_link_details(self, short_code: str) -> LinkResponse:
        """Public projection of an active, unexpired link. Records no click."""
        with self._internal_errors(f"Details lookup failed for {short_code}"):
            self._check_lookup_key(short_code)
            link = await self._load_active(short_code)
            if self._is_expired(link):
                raise ExpiredError("This short URL has expired")
            return self.to_public(link)

    async def list_owner_links(self, owner_id: str) -> list[LinkResponse]:
        with self._internal_errors(f"Listing links failed for owner {owner_id}"):
            links = await self._urls.find_active_by_owner(owner_id)
            return [self.to_public(link) for link in links]

    def to_public(self, link: ShortLink) -> LinkResponse:
        return LinkResponse(
            short_code=link.short_code,
            short_url=f"{self._settings.BASE_URL.rstrip('/')}/{link.short_code}",
            original_url=link.original_url,
            created_at=_as_utc(link.created_at),
            expires_at=_as_utc(link.expires_at),
        )

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _create_with_alias(
        self, alias: str, url: str, expiry: datetime.datetime | None, owner_id: str | None
    ) -> ShortLink:
        # Fast, friendly conflict in the common case; the unique index settles races.
        if await self._urls.exists_active(alias):
            raise ConflictError("Custom alias already exists")
        try:
            return await self._urls.create(alias, url, custom_alias=alias, expires_at=expiry, user_id=owner_id)
        except ConflictError:
            raise ConflictError("Custom alias already exists") from None

    async def _create_with_generated_code(
        self, url: str, expiry: datetime.datetime | None, owner_id: str | None
    ) -> ShortLink:
        for attempt in range(1, self._max_attempts + 1):
            candidate = self._generator.generate_candidate()
            if await self._urls.exists_active(candidate):
                GENERATION_COLLISIONS_TOTAL.inc()
                logger.warning(f"Generated code collision on attempt {attempt}: {candidate}")
                continue
            try:
                return await self._urls.create(candidate, url, expires_at=expiry, user_id=owner_id)
            except ConflictError:
                GENERATION_COLLISIONS_TOTAL.inc()
                logger.warning(f"Generated code lost insert race on attempt {attempt}: {candidate}")
        logger.error(f"Short code generation exhausted {self._max_attempts} attempts")
        raise InternalError("Failed to generate unique short code. Please try again.")

    async def _load_active(self, short_code: str) -> ShortLink:
        link = await self._urls.find_active_by_code(short_code)
        if link is None:
            raise NotFoundError("Short URL not found")
        return link

    @staticmethod
    def _check_lookup_key(short_code: str) -> None:
        if not is_valid_lookup_key(short_code):
            raise ValidationError("Invalid short code format")

    def _normalize_expiry(self, expires_at: datetime.datetime | None) -> datetime.datetime | None:
        expiry = _as_utc(expires_at)
        if expiry is not None and expiry <= self._clock():
            raise ValidationError("expires_at must be in the future")
        return expiry

    def _is_expired(self, link: ShortLink) -> bool:
        expiry = _as_utc(link.expires_at)
        return expiry is not None and expiry <= self._clock()

    def _cache_ttl(self, link: ShortLink) -> int:
        ttl = self._cache.default_ttl_seconds
        expiry = _as_utc(link.expires_at)
        if expiry is not None:
            ttl = min(ttl, int((expiry - self._clock()).total_seconds()))
        return ttl

    @staticmethod
    @contextmanager
    def _internal_errors(context: str) -> Iterator[None]:
        try:
            yield
        except ShortLinkError:
            raise
        except Exception as exc:
            logger.exception(context)
            raise InternalError("Internal server error") from exc
