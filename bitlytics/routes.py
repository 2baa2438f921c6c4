"""FastAPI route definitions for the short-link service.

API Endpoint Overview
=====================
::
    GET    /health
        └─ HealthResponse (200) or (503 when degraded)

    POST   /api/shorten
        ├─ LinkCreate (request body), optional X-User-ID header
        └─ LinkResponse (201) or 400/409/503

    GET    /api/stats/:short_code
        └─ LinkStats (200) or 404

    PATCH  /api/urls/:short_code
        ├─ LinkUpdate (request body), X-User-ID header
        └─ LinkResponse (200) or 400/401/403/404

    DELETE /api/urls/:short_code
        └─ 204 or 401/403/404

    GET    /:short_code
        └─ 307 Redirect, 404, or 503

Key Behaviours
===============
- Services raise ``bitlytics.errors`` exceptions; routes translate them to
  ``HTTPException`` with the service's message as ``detail``.
- Not-found responses are identical for unknown, inactive and expired codes.
- The redirect is returned before click tracking runs.
- 307 redirects preserve the HTTP method.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from bitlytics.dependencies import (
    RequestContext,
    get_current_owner,
    get_link_service,
    get_request_context,
    get_resolution_service,
)
from bitlytics.enums import HealthStatus
from bitlytics.errors import (
    AuthenticationRequired,
    CodeConflict,
    GenerationExhausted,
    LinkNotFound,
    LinkValidationError,
    PermissionDenied,
    ShortLinkError,
    TransientInfraError,
)
from bitlytics.link_service import LinkService
from bitlytics.resolver import ResolutionService
from bitlytics.schemas import (
    HealthResponse,
    LinkCreate,
    LinkResponse,
    LinkStats,
    LinkUpdate,
    StoreCounts,
)
from bitlytics.store import LinkStore

__all__ = ["router"]

router = APIRouter()

ERROR_STATUS_CODES: dict[type[ShortLinkError], int] = {
    LinkValidationError: 400,
    AuthenticationRequired: 401,
    PermissionDenied: 403,
    LinkNotFound: 404,
    CodeConflict: 409,
    GenerationExhausted: 503,
    TransientInfraError: 503,
}


def to_http_exception(exc: ShortLinkError) -> HTTPException:
    for klass in type(exc).__mro__:
        status_code = ERROR_STATUS_CODES.get(klass)
        if status_code is not None:
            return HTTPException(status_code=status_code, detail=exc.message)
    return HTTPException(status_code=500, detail="Internal server error")


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    response: Response,
    ctx: RequestContext = Depends(get_request_context),
) -> HealthResponse:
    store = LinkStore(ctx.database)
    db_status = HealthStatus.HEALTHY
    counts = StoreCounts()

    try:
        await store.ping()
        counts = await store.counts()
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    cache_health = await ctx.cache.health_status()

    if db_status is HealthStatus.UNHEALTHY:
        status = HealthStatus.UNHEALTHY
    elif not cache_health.connected:
        status = HealthStatus.DEGRADED
    else:
        status = HealthStatus.HEALTHY

    if status is not HealthStatus.HEALTHY:
        response.status_code = 503
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"

    ctx.logger.info(f"Health check completed: {status.value}")
    return HealthResponse(status=status, database=db_status, cache=cache_health, counts=counts)


@router.post("/api/shorten", response_model=LinkResponse, status_code=201, tags=["urls"])
async def shorten_url(
    payload: LinkCreate,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
    owner_id: str | None = Depends(get_current_owner),
) -> LinkResponse:
    ctx.logger.info(
        f"Link creation requested: {payload.url}",
        extra={"operation": "create_link", "custom_code": payload.custom_code},
    )
    try:
        link = await service.create_link(payload, owner_id=owner_id)
    except ShortLinkError as exc:
        raise to_http_exception(exc) from exc

    ctx.logger.info(
        f"Link created: {link.code}",
        extra={"operation": "create_link", "short_code": link.code, "duration_ms": ctx.get_duration()},
    )
    return service.to_response(link)


@router.get("/api/stats/{short_code}", response_model=LinkStats, tags=["urls"])
async def get_stats(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkStats:
    try:
        return await service.get_link_statistics(short_code)
    except ShortLinkError as exc:
        ctx.logger.warning(f"Stats not available for short code {short_code}: {exc}")
        raise to_http_exception(exc) from exc


@router.patch("/api/urls/{short_code}", response_model=LinkResponse, tags=["urls"])
async def update_url(
    short_code: str,
    payload: LinkUpdate,
    service: LinkService = Depends(get_link_service),
    owner_id: str | None = Depends(get_current_owner),
) -> LinkResponse:
    try:
        link = await service.update_link(short_code, payload, owner_id)
    except ShortLinkError as exc:
        raise to_http_exception(exc) from exc
    return service.to_response(link)


@router.delete("/api/urls/{short_code}", status_code=204, tags=["urls"])
async def delete_url(
    short_code: str,
    service: LinkService = Depends(get_link_service),
    owner_id: str | None = Depends(get_current_owner),
) -> Response:
    try:
        await service.delete_link(short_code, owner_id)
    except ShortLinkError as exc:
        raise to_http_exception(exc) from exc
    return Response(status_code=204)


@router.get("/{short_code}", tags=["redirect"])
async def redirect_to_url(
    short_code: str,
    ctx: RequestContext = Depends(get_request_context),
    resolver: ResolutionService = Depends(get_resolution_service),
) -> RedirectResponse:
    try:
        resolved = await resolver.resolve(short_code, ctx.click)
    except ShortLinkError as exc:
        ctx.logger.warning(
            f"Redirect failed for short code {short_code}: {exc}",
            extra={"operation": "redirect", "short_code": short_code, "duration_ms": ctx.get_duration()},
        )
        raise to_http_exception(exc) from exc

    ctx.logger.info(
        f"Redirect: {short_code} -> {resolved.destination}",
        extra={
            "operation": "redirect",
            "short_code": short_code,
            "cache_hit": resolved.from_cache,
            "duration_ms": ctx.get_duration(),
        },
    )
    return RedirectResponse(url=resolved.destination, status_code=307)
