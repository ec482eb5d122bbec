"""Redis-backed URL cache for the short code hot path.

This module wraps a ``redis.asyncio`` client with the cache contract the
service layer relies on: ``url:<code>`` keys holding the raw original URL with
a TTL. The client is created once at process start by the service manager and
injected into the service; nothing references it as a global.

Flow Diagram — get()
====================
::
    ┌─────────────┐
    │ get(code)   │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ GET url:code│
    │ (timeout)   │
    └──────┬──────┘
    OK?   │
    ┌─────┴─────┐
    │ YES        │ ERROR / TIMEOUT
    ▼            ▼
┌─────────┐  ┌─────────┐
│ Return  │  │ Log,    │
│ value or│  │ return  │
│ None    │  │ None    │
└─────────┘  └─────────┘

Key Behaviours
===============
- Every operation is bounded by ``CACHE_OP_TIMEOUT_SECONDS``.
- A failed or timed-out read is a miss, so callers degrade to the store.
- Failed writes and evictions are logged and reported as ``False``; they
  never raise.
- Entries may vanish at any time; absence never means the link is gone.

Classes:
    URLCache:  Cache-aside helper around a Redis client.
"""

import asyncio
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

from shortlink.config import Settings
from shortlink.metrics import CACHE_ERRORS_TOTAL

__all__ = ["URLCache"]

logger = logging.getLogger(__name__)

_CACHE_FAILURES = (RedisError, OSError, asyncio.TimeoutError)


class URLCache:
    def __init__(
        self,
        client: redis.Redis,
        default_ttl_seconds: int = 3600,
        key_prefix: str = "url:",
        op_timeout_seconds: float = 0.25,
    ) -> None:
        self._client = client
        self.default_ttl_seconds = default_ttl_seconds
        self.key_prefix = key_prefix
        self.op_timeout_seconds = op_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "URLCache":
        client = redis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.CACHE_OP_TIMEOUT_SECONDS,
            socket_connect_timeout=settings.CACHE_OP_TIMEOUT_SECONDS,
        )
        return cls(
            client,
            default_ttl_seconds=settings.CACHE_TTL_SECONDS,
            key_prefix=settings.CACHE_KEY_PREFIX,
            op_timeout_seconds=settings.CACHE_OP_TIMEOUT_SECONDS,
        )

    def key_for(self, short_code: str) -> str:
        return f"{self.key_prefix}{short_code}"

    async def get(self, short_code: str) -> str | None:
        try:
            value = await asyncio.wait_for(self._client.get(self.key_for(short_code)), self.op_timeout_seconds)
        except _CACHE_FAILURES as exc:
            CACHE_ERRORS_TOTAL.labels(operation="get").inc()
            logger.warning(f"Cache get failed for {short_code}, treating as miss: {exc!r}")
            return None
        return value or None

    async def set(self, short_code: str, original_url: str, ttl_seconds: int | None = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        if ttl <= 0:
            return False
        try:
            await asyncio.wait_for(
                self._client.set(self.key_for(short_code), original_url, ex=ttl),
                self.op_timeout_seconds,
            )
        except _CACHE_FAILURES as exc:
            CACHE_ERRORS_TOTAL.labels(operation="set").inc()
            logger.warning(f"Cache set failed for {short_code}: {exc!r}")
            return False
        return True

    async def delete(self, short_code: str) -> bool:
        try:
            await asyncio.wait_for(self._client.delete(self.key_for(short_code)), self.op_timeout_seconds)
        except _CACHE_FAILURES as exc:
            CACHE_ERRORS_TOTAL.labels(operation="delete").inc()
            logger.warning(f"Cache eviction failed for {short_code}: {exc!r}")
            return False
        return True

    async def ping(self) -> bool:
        try:
            return bool(await asyncio.wait_for(self._client.ping(), self.op_timeout_seconds))
        except _CACHE_FAILURES as exc:
            logger.error(f"Cache health check failed: {exc!r}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
