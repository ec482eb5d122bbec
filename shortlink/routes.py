"""FastAPI route definitions for the shortlink REST API.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200)

    POST   /api/urls                      [X-Owner-ID optional]
        ├─ LinkCreate (request body)
        └─ LinkResponse (201) or 400/409/500

    GET    /api/urls                      [X-Owner-ID required]
        └─ list[LinkResponse] (200) or 401

    GET    /api/urls/:short_code
        └─ LinkResponse (200) or 400/404/410

    GET    /api/urls/:short_code/analytics
        └─ AnalyticsResponse (200) or 400/404

    DELETE /api/urls/:short_code          [X-Owner-ID required]
        └─ 200 or 401/403/404

    GET    /:short_code
        └─ 302 Redirect or 400/404/410

Key Behaviours
===============
- Handlers are thin: they collect request metadata into a RequestContext and
  delegate to the shared ResolutionService.
- Domain errors propagate to the handlers registered in ``shortlink.main``,
  which render ``{"detail", "kind"}`` with the error's status code.
- The owner id is an opaque value supplied by an upstream auth layer in the
  ``X-Owner-ID`` header.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from shortlink.dependencies import (
    RequestContext,
    ServiceManager,
    get_request_context,
    get_resolution_service,
    get_service_manager,
)
from shortlink.enums import HealthStatus
from shortlink.schemas import AnalyticsResponse, ErrorResponse, HealthResponse, LinkCreate, LinkResponse
from shortlink.url_service import ResolutionService

__all__ = ["router"]

router = APIRouter()


def _errors(*status_codes: int) -> dict[int, dict]:
    return {status_code: {"model": ErrorResponse} for status_code in status_codes}


def _require_owner(ctx: RequestContext) -> str:
    if not ctx.owner_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return ctx.owner_id


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    ctx: RequestContext = Depends(get_request_context),
    manager: ServiceManager = Depends(get_service_manager),
) -> HealthResponse:
    db_status = HealthStatus.HEALTHY if await manager.database_healthy() else HealthStatus.UNHEALTHY
    cache_status = HealthStatus.HEALTHY if await manager.cache.ping() else HealthStatus.UNHEALTHY
    status = (
        HealthStatus.HEALTHY
        if db_status is HealthStatus.HEALTHY and cache_status is HealthStatus.HEALTHY
        else HealthStatus.UNHEALTHY
    )
    ctx.logger.debug(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/api/urls",
    response_model=LinkResponse,
    status_code=201,
    tags=["urls"],
    responses=_errors(400, 409, 500),
)
async def create_link(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> LinkResponse:
    ctx.add_tag("url_creation")
    ctx.logger.info(
        f"Short link requested for: {payload.original_url}",
        extra={"operation": "create_link", "custom_alias": payload.custom_alias},
    )
    link = await service.create_link(
        payload.original_url,
        custom_alias=payload.custom_alias,
        expires_at=payload.expires_at,
        owner_id=ctx.owner_id,
    )
    ctx.logger.info(
        f"Short link created: {link.short_code}",
        extra={"operation": "create_link", "duration_ms": ctx.get_duration()},
    )
    return link


@router.get("/api/urls", response_model=list[LinkResponse], tags=["urls"])
async def list_links(
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> list[LinkResponse]:
    return await service.list_owner_links(_require_owner(ctx))


@router.get(
    "/api/urls/{short_code}",
    response_model=LinkResponse,
    tags=["urls"],
    responses=_errors(400, 404, 410),
)
async def get_link_details(
    short_code: str,
    service: ResolutionService = Depends(get_resolution_service),
) -> LinkResponse:
    return await service.get_link_details(short_code)


@router.get(
    "/api/urls/{short_code}/analytics",
    response_model=AnalyticsResponse,
    tags=["analytics"],
    responses=_errors(400, 404, 500),
)
async def get_analytics(
    short_code: str,
    include_recent: bool = Query(False),
    service: ResolutionService = Depends(get_resolution_service),
) -> AnalyticsResponse:
    return await service.get_analytics(short_code, include_recent=include_recent)


@router.delete("/api/urls/{short_code}", tags=["urls"], responses=_errors(400, 403, 404))
async def delete_link(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> dict[str, str]:
    owner_id = _require_owner(ctx)
    await service.delete_link(short_code, owner_id)
    ctx.logger.info(f"Short link deleted: {short_code}", extra={"operation": "delete_link"})
    return {"message": "Short URL deleted successfully"}


@router.get("/{short_code}", tags=["redirect"], responses=_errors(400, 404, 410))
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: ResolutionService = Depends(get_resolution_service),
) -> RedirectResponse:
    ctx.add_tag("redirect")
    original_url = await service.resolve(short_code, click=ctx.click_context())
    ctx.logger.debug(
        f"Redirect: {short_code} -> {original_url}",
        extra={"operation": "redirect", "duration_ms": ctx.get_duration()},
    )
    return RedirectResponse(url=original_url, status_code=302)
