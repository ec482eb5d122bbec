"""FastAPI application entry point for the shortlink service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌──────────────┐
    │ lifespan()   │
    │ build        │
    │ ServiceManager│
    │ init tables, │
    │ start worker │
    └──────┬───────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ drain clicks│
    │ close redis │
    │ dispose db  │
    └─────────────┘

How to Use
===========
**Run with uvicorn**::
    uvicorn shortlink.main:app --host 0.0.0.0 --port 8080

**Shorten a URL**::
    curl -X POST http://localhost:8080/api/urls \
         -H "Content-Type: application/json" \
         -d '{"original_url": "https://example.com"}'

Key Behaviours
===============
- A ServiceManager already present on ``app.state`` (tests) is reused and not
  rebuilt by the lifespan.
- Domain errors render as ``{"detail", "kind"}`` with their status code.
- Unexpected errors are logged and rendered as a generic 500 without details.
- Prometheus metrics are exposed at /metrics.
"""

__all__ = ["app", "create_app"]

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from shortlink.config import get_settings
from shortlink.dependencies import ServiceManager
from shortlink.errors import InternalError, ShortLinkError
from shortlink.routes import router
from shortlink.schemas import ErrorResponse

logger = logging.getLogger("shortlink")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    manager = getattr(app.state, "services", None)
    if manager is None:
        manager = ServiceManager.from_settings(get_settings())
        app.state.services = manager
    await manager.initialize()
    yield
    # Shutdown
    await manager.cleanup()


async def shortlink_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(detail=exc.message, kind=exc.kind).model_dump(),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=InternalError.status_code,
        content=ErrorResponse(detail="Internal server error", kind=InternalError.kind).model_dump(),
    )


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Short link service with cache-aside resolution and click analytics",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShortLinkError, shortlink_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()
