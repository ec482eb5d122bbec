"""Dependency wiring with an explicitly constructed service manager.

The service manager owns every process-wide resource (database engine, Redis
client, click recorder) and is built exactly once by the application
lifespan, then stored on ``app.state``. Route handlers reach it through
FastAPI ``Depends`` providers; nothing in the package refers to a global
client.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shortlink.analytics import AnalyticsAggregator
from shortlink.cache import URLCache
from shortlink.click_store import ClickStore
from shortlink.codes import ShortCodeGenerator
from shortlink.config import Settings
from shortlink.database import build_engine, build_session_factory, close_db, init_db
from shortlink.devices import classify_device
from shortlink.recorder import ClickRecorder
from shortlink.schemas import ClickContext
from shortlink.url_service import ResolutionService
from shortlink.url_store import URLStore

__all__ = [
    "ServiceManager",
    "RequestContext",
    "setup_logger",
    "get_service_manager",
    "get_request_context",
    "get_resolution_service",
]


def setup_logger(level: str = "INFO") -> logging.Logger:
    """Setup the package logger once."""
    logger = logging.getLogger("shortlink")
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Process-wide resources and the shared resolution service.

    Build with :meth:`from_settings` in production, or pass pre-built
    collaborators directly (tests inject an in-memory cache and SQLite).
    """

    def __init__(
        self,
        settings: Settings,
        engine: AsyncEngine,
        sessions: async_sessionmaker[AsyncSession],
        cache: URLCache,
        generator: ShortCodeGenerator | None = None,
    ) -> None:
        self.settings = settings
        self.logger = setup_logger(settings.LOG_LEVEL)
        self.engine = engine
        self.sessions = sessions
        self.cache = cache
        self.url_store = URLStore(sessions)
        self.click_store = ClickStore(sessions)
        self.recorder = ClickRecorder(self.url_store, self.click_store, maxsize=settings.CLICK_QUEUE_MAXSIZE)
        self.aggregator = AnalyticsAggregator(
            self.click_store,
            window_days=settings.ANALYTICS_WINDOW_DAYS,
            top_countries=settings.ANALYTICS_TOP_COUNTRIES,
        )
        self.service = ResolutionService(
            url_store=self.url_store,
            cache=self.cache,
            recorder=self.recorder,
            aggregator=self.aggregator,
            generator=generator or ShortCodeGenerator(settings.SHORT_CODE_LENGTH),
            settings=settings,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceManager":
        engine = build_engine(settings)
        return cls(
            settings=settings,
            engine=engine,
            sessions=build_session_factory(engine),
            cache=URLCache.from_settings(settings),
        )

    async def initialize(self) -> None:
        """Create tables and start the click recorder."""
        await init_db(self.engine)
        self.recorder.start()
        self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    async def cleanup(self) -> None:
        """Drain the recorder, then close the cache and the engine."""
        await self.recorder.stop()
        await self.cache.close()
        await close_db(self.engine)

    async def database_healthy(self) -> bool:
        try:
            async with self.sessions() as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            self.logger.error(f"Database health check failed: {e}")
            return False
        return True


# ============================================================================
# LIGHTWEIGHT REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request tracking data and access to shared resources.

    Attributes:
        service_manager: Process-wide resources
        request_id: Unique identifier for this request
        client_ip: Client IP address (first X-Forwarded-For hop if present)
        user_agent: Client user agent string
        referrer: Referer header
        owner_id: Authenticated caller id forwarded by the auth layer
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None
    owner_id: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Shared logger with request context attached."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000

    def click_context(self) -> ClickContext:
        return ClickContext(
            ip_address=self.client_ip,
            user_agent=self.user_agent,
            referrer=self.referrer,
            device_type=classify_device(self.user_agent),
        )


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.services


def get_request_context(
    request: Request,
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
    else:
        client_ip = request.client.host if request.client else None

    return RequestContext(
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        client_ip=client_ip,
        user_agent=request.headers.get("user-agent"),
        referrer=request.headers.get("referer") or request.headers.get("referrer"),
        owner_id=request.headers.get("x-owner-id") or None,
    )


def get_resolution_service(manager: ServiceManager = Depends(get_service_manager)) -> ResolutionService:
    return manager.service
