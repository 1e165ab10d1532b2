"""FastAPI route definitions for the link shortener REST API.

This module provides all HTTP endpoints with dependency injection, domain
error mapping, and response serialization for the link shortening service.

API Endpoint Overview
=====================
::
    GET    /                     └─ MessageResponse (200)
    GET    /health               └─ HealthResponse (200)
    GET    /url                  └─ LinkListResponse (200) or 400
    POST   /url/store            └─ LinkMutationResponse (200) or 400
    PUT    /url/update/:id       └─ LinkMutationResponse (200) or 400
    DELETE /url/delete/:id       └─ MessageResponse (200) or 400
    POST   /url/export           └─ ExportResponse (200) or 500
    GET    /:short_url           └─ ResolveResponse (200) or 404

Request Flow Diagram
====================
::
    ┌─────────────┐
    │  HTTP       │
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Validate &  │
    │ Parse       │──── invalid ──▶ 400 {message, error}
    │ (Pydantic)  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Inject      │
    │ Dependencies│
    │ (DB, S3)    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Call Service│──── domain error ──▶ HTTPException
    │ Layer       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serialize   │
    │ Response    │
    └─────────────┘

Key Behaviours
===============
- Conflicts and unknown ids on update/delete answer 400; unknown names on resolve answer 404.
- Export failures answer 500 with a generic message; the cause is only logged.
- The catch-all resolve route is registered last so fixed paths take precedence.
- Resolution answers JSON; the frontend performs the actual navigation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import text

from app.dependencies import RequestContext, get_link_exporter, get_link_service, get_request_context
from app.enums import HealthStatus
from app.exceptions import ExportError, LinkConflictError, LinkNotFoundError
from app.export import LinkExporter
from app.link_service import LinkService
from app.schemas import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    ExportResponse,
    HealthResponse,
    LinkInput,
    LinkListResponse,
    LinkMutationResponse,
    LinkRead,
    MessageResponse,
    ResolveResponse,
)

__all__ = ["router"]

router = APIRouter()


@router.get("/", response_model=MessageResponse, tags=["health"])
async def root() -> MessageResponse:
    return MessageResponse(message="Hello World")


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(ctx: RequestContext = Depends(get_request_context)) -> HealthResponse:
    db_status = HealthStatus.HEALTHY
    try:
        await ctx.database.execute(text("SELECT 1"))
    except Exception as e:
        ctx.logger.error(f"Database health check failed: {e}")
        db_status = HealthStatus.UNHEALTHY

    return HealthResponse(status=db_status, database=db_status)


@router.get("/url", response_model=LinkListResponse, tags=["url"])
async def list_links(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1, le=MAX_PAGE_SIZE),
    service: LinkService = Depends(get_link_service),
) -> LinkListResponse:
    result = await service.list_links(search, page, page_size)
    return LinkListResponse(
        data=[LinkRead.model_validate(link) for link in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
    )


@router.post("/url/store", response_model=LinkMutationResponse, tags=["url"])
async def store_link(
    payload: LinkInput,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkMutationResponse:
    ctx.add_tag("link_creation")
    try:
        link = await service.create_link(payload.name, payload.url)
    except LinkConflictError as exc:
        ctx.logger.warning(
            f"Link creation failed: {exc}",
            extra={"operation": "create_link", "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return LinkMutationResponse(data=LinkRead.model_validate(link), message="URL created successfully")


@router.put("/url/update/{link_id}", response_model=LinkMutationResponse, tags=["url"])
async def update_link(
    link_id: str,
    payload: LinkInput,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> LinkMutationResponse:
    ctx.add_tag("link_update")
    try:
        link = await service.update_link(link_id, payload.name, payload.url)
    except (LinkNotFoundError, LinkConflictError) as exc:
        ctx.logger.warning(
            f"Link update failed: {exc}",
            extra={"operation": "update_link", "link_id": link_id, "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return LinkMutationResponse(data=LinkRead.model_validate(link), message="URL updated successfully")


@router.delete("/url/delete/{link_id}", response_model=MessageResponse, tags=["url"])
async def delete_link(
    link_id: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> MessageResponse:
    ctx.add_tag("link_delete")
    try:
        await service.delete_link(link_id)
    except LinkNotFoundError as exc:
        ctx.logger.warning(f"Link delete failed: {exc}", extra={"operation": "delete_link", "link_id": link_id})
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return MessageResponse(message="URL deleted successfully")


@router.post("/url/export", response_model=ExportResponse, tags=["url"])
async def export_links(
    search_query: Optional[str] = Query(None, alias="searchQuery"),
    ctx: RequestContext = Depends(get_request_context),
    exporter: LinkExporter = Depends(get_link_exporter),
) -> ExportResponse:
    ctx.add_tag("export")
    try:
        stored = await exporter.export(search_query)
    except ExportError as exc:
        ctx.logger.error(
            f"Export failed: {exc}",
            extra={"operation": "export", "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=500, detail="Failed to export URLs") from exc

    return ExportResponse(message="Url exported successfully", url=stored.url)


@router.get("/{short_url}", response_model=ResolveResponse, tags=["redirect"])
async def resolve_short_url(
    short_url: str,
    ctx: RequestContext = Depends(get_request_context),
    service: LinkService = Depends(get_link_service),
) -> ResolveResponse:
    ctx.add_tag("resolve")
    try:
        resolved = await service.resolve_and_increment(short_url)
    except LinkNotFoundError as exc:
        ctx.logger.info(
            f"Resolve failed - name not found: {short_url}",
            extra={"operation": "resolve", "client_ip": ctx.client_ip, "duration_ms": ctx.get_duration()},
        )
        raise HTTPException(status_code=404, detail="Url not found") from exc

    return ResolveResponse(url=resolved.url, count_access=resolved.count_access)
