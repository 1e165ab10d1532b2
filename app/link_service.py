"""Link Service Layer - Core Business Logic

This module provides the service layer for short link CRUD and resolution,
with logging, Prometheus metrics, and domain error handling.

Architecture Overview
==================
::
    ┌─────────────────────────────────────────────────────────────┐
    │                    Service Layer                            │
    │  ┌─────────────────┐  ┌─────────────────┐                   │
    │  │  Link Service   │  │  Link Exporter  │                   │
    │  │                 │  │  (app.export)   │                   │
    │  │ • List / Create │  │ • Cursor stream │                   │
    │  │ • Update/Delete │  │ • CSV encoding  │                   │
    │  │ • Resolve       │  │ • Upload        │                   │
    │  └─────────────────┘  └─────────────────┘                   │
    └─────────────────────────────────────────────────────────────┘
                │                    │
                ▼                    ▼
    ┌─────────────────┐  ┌─────────────────┐
    │   PostgreSQL    │  │  Object Storage │
    │ link_shorteners │  │  (S3 / R2)      │
    └─────────────────┘  └─────────────────┘

Request Flow Diagrams
=====================

Link Creation Flow
------------------
::
    ┌─────────────┐
    │ POST /url/  │
    │ store       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Name already │
    │ taken?       │──── YES ──▶ LinkConflictError
    └──────┬──────┘
           ▼ NO
    ┌─────────────┐
    │ INSERT row  │
    │ count = 0   │──── unique violation ──▶ LinkConflictError
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Return      │
    │ ShortLink   │
    └─────────────┘

Resolve Flow
------------
::
    ┌─────────────┐
    │ GET /:name  │
    └──────┬──────┘
           ▼
    ┌──────────────────────────────┐
    │ UPDATE link_shorteners        │
    │ SET count_access = count + 1  │
    │ WHERE name = :name            │
    │ RETURNING url, count_access   │
    └──────┬───────────────────────┘
    ROW?   │
    ┌─────┴─────┐
    │ NO         │ YES
    ▼            ▼
┌─────────┐  ┌─────────┐
│ NotFound│  │ url +   │
│         │  │ count   │
└─────────┘  └─────────┘

Key Behaviours
==============
- Every public method is one logical transaction on the request's session.
- Resolution is a single statement, so the reported count is the persisted count.
- Uniqueness of names is checked up front and enforced again by the unique
  constraint; both paths surface as LinkConflictError.
- Search is a case-insensitive substring match with LIKE wildcards escaped.

Usage Examples
=============
```python
@router.post("/url/store")
async def store_link(
    payload: LinkInput,
    service: LinkService = Depends(get_link_service),
) -> LinkMutationResponse:
    link = await service.create_link(payload.name, payload.url)
    return LinkMutationResponse(data=LinkRead.model_validate(link), message="Link created")
```
"""

import time
from dataclasses import dataclass
from typing import Optional

from prometheus_client import Counter, Histogram
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.enums import LinkOperation, RequestStatus
from app.exceptions import LinkConflictError, LinkNotFoundError
from app.models import ShortLink

__all__ = ["LinkService", "LinkPage", "ResolvedLink"]


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

LINK_OPERATIONS_TOTAL = Counter(
    "link_shortener_operations_total",
    "Total link service operations",
    ["operation", "status"],
)
LINK_OPERATION_DURATION = Histogram(
    "link_shortener_operation_duration_seconds",
    "Time taken by link service operations",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class LinkPage:
    """One page of links plus the size of the whole filtered result."""
    items: list[ShortLink]
    total: int
    page: int
    page_size: int


@dataclass
class ResolvedLink:
    url: str
    count_access: int


# ============================================================================
# CORE SERVICE CLASS
# ============================================================================

class LinkService:
    """Core service class for short link operations.

    Example:
        >>> ctx = RequestContext(database=db, service_manager=manager, ...)
        >>> service = LinkService.from_context(ctx)
        >>> link = await service.create_link("guide", "https://example.com/guide")
        >>> resolved = await service.resolve_and_increment("guide")
        >>> print(resolved.count_access)
        1
    """

    def __init__(self, db: AsyncSession, logger):
        self._db = db
        self._logger = logger

    @classmethod
    def from_context(cls, ctx: 'RequestContext') -> 'LinkService':
        """Factory method to create service from RequestContext."""
        return cls(ctx.database, ctx.logger)

    # ========================================================================
    # PUBLIC API METHODS
    # ========================================================================

    async def list_links(self, search: Optional[str], page: int, page_size: int) -> LinkPage:
        """List links ordered by creation time, newest first.

        Args:
            search: Optional case-insensitive substring of the name
            page: 1-based page number
            page_size: Number of links per page

        Returns:
            LinkPage: The requested page and the total number of matching links
        """
        start_time = time.perf_counter()

        query = select(ShortLink)
        count_query = select(func.count()).select_from(ShortLink)
        if search:
            condition = ShortLink.name.icontains(search, autoescape=True)
            query = query.where(condition)
            count_query = count_query.where(condition)

        total = await self._db.scalar(count_query)
        result = await self._db.scalars(
            query.order_by(ShortLink.created_at.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        items = list(result.all())

        self._record(LinkOperation.LIST, RequestStatus.SUCCESS, start_time)
        self._logger.debug(f"Listed {len(items)} of {total} links (search={search!r}, page={page})")
        return LinkPage(items=items, total=total or 0, page=page, page_size=page_size)

    async def create_link(self, name: str, url: str) -> ShortLink:
        """Create a new short link with count_access = 0.

        Raises:
            LinkConflictError: If the name is already in use
        """
        start_time = time.perf_counter()
        self._logger.info(f"Creating link '{name}' -> {url}")

        if await self._name_taken(name):
            self._record(LinkOperation.CREATE, RequestStatus.CONFLICT, start_time)
            self._logger.warning(f"Link creation rejected, name already in use: {name}")
            raise LinkConflictError(name)

        link = ShortLink(name=name, url=url, count_access=0)
        self._db.add(link)
        await self._commit_or_conflict(LinkOperation.CREATE, name, start_time)
        await self._db.refresh(link)

        self._record(LinkOperation.CREATE, RequestStatus.SUCCESS, start_time)
        self._logger.info(f"Link created: {link.name} ({link.id})")
        return link

    async def update_link(self, link_id: str, name: str, url: str) -> ShortLink:
        """Overwrite name and url of an existing link.

        Raises:
            LinkNotFoundError: If no link has this id
            LinkConflictError: If another link already uses the name
        """
        start_time = time.perf_counter()
        self._logger.info(f"Updating link {link_id}: name='{name}', url={url}")

        link = await self._db.get(ShortLink, link_id)
        if link is None:
            self._record(LinkOperation.UPDATE, RequestStatus.NOT_FOUND, start_time)
            self._logger.warning(f"Link update failed, id not found: {link_id}")
            raise LinkNotFoundError(link_id)

        if await self._name_taken(name, exclude_id=link_id):
            self._record(LinkOperation.UPDATE, RequestStatus.CONFLICT, start_time)
            self._logger.warning(f"Link update rejected, name already in use: {name}")
            raise LinkConflictError(name)

        link.name = name
        link.url = url
        await self._commit_or_conflict(LinkOperation.UPDATE, name, start_time)
        await self._db.refresh(link)

        self._record(LinkOperation.UPDATE, RequestStatus.SUCCESS, start_time)
        self._logger.info(f"Link updated: {link.name} ({link.id})")
        return link

    async def delete_link(self, link_id: str) -> None:
        """Permanently remove a link.

        Raises:
            LinkNotFoundError: If no link has this id
        """
        start_time = time.perf_counter()

        link = await self._db.get(ShortLink, link_id)
        if link is None:
            self._record(LinkOperation.DELETE, RequestStatus.NOT_FOUND, start_time)
            self._logger.warning(f"Link delete failed, id not found: {link_id}")
            raise LinkNotFoundError(link_id)

        await self._db.delete(link)
        await self._db.commit()

        self._record(LinkOperation.DELETE, RequestStatus.SUCCESS, start_time)
        self._logger.info(f"Link deleted: {link_id}")

    async def resolve_and_increment(self, name: str) -> ResolvedLink:
        """Look up a link by name and count the access.

        The increment and the read of the new count happen in one UPDATE ...
        RETURNING statement, so concurrent resolutions each report the value
        they persisted.

        Raises:
            LinkNotFoundError: If no link has this name
        """
        start_time = time.perf_counter()

        statement = (
            update(ShortLink)
            .where(ShortLink.name == name)
            .values(count_access=ShortLink.count_access + 1)
            .returning(ShortLink.url, ShortLink.count_access)
            .execution_options(synchronize_session=False)
        )
        result = await self._db.execute(statement)
        row = result.one_or_none()
        await self._db.commit()

        if row is None:
            self._record(LinkOperation.RESOLVE, RequestStatus.NOT_FOUND, start_time)
            self._logger.debug(f"Resolve failed, name not found: {name}")
            raise LinkNotFoundError(name, field="name")

        self._record(LinkOperation.RESOLVE, RequestStatus.SUCCESS, start_time)
        self._logger.debug(f"Resolved {name} -> {row.url} (count_access={row.count_access})")
        return ResolvedLink(url=row.url, count_access=row.count_access)

    # ========================================================================
    # PRIVATE HELPER METHODS
    # ========================================================================

    async def _name_taken(self, name: str, exclude_id: Optional[str] = None) -> bool:
        query = select(ShortLink.id).where(ShortLink.name == name)
        if exclude_id is not None:
            query = query.where(ShortLink.id != exclude_id)
        existing = await self._db.scalar(query.limit(1))
        return existing is not None

    async def _commit_or_conflict(self, operation: LinkOperation, name: str, start_time: float) -> None:
        # A concurrent writer can claim the name between the check and the commit
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            self._record(operation, RequestStatus.CONFLICT, start_time)
            self._logger.warning(f"Unique constraint violation for name: {name}")
            raise LinkConflictError(name) from exc

    @staticmethod
    def _record(operation: LinkOperation, status: RequestStatus, start_time: float) -> None:
        LINK_OPERATIONS_TOTAL.labels(operation=operation, status=status).inc()
        LINK_OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start_time)
