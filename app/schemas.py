"""Pydantic schemas for request/response validation in the link shortener.

This module defines Pydantic models for API input validation and output serialization,
ensuring type safety and automatic OpenAPI documentation generation.

Schema Hierarchy
=================
::
    LinkInput (Input: store and update bodies)
    ├─ name: str (1-50 chars, letters/digits/-/_)
    └─ url: str (http:// or https:// URL)

    LinkRead (Output)
    ├─ id: str
    ├─ name: str
    ├─ url: str
    ├─ count_access: int
    └─ created_at: datetime

    LinkListResponse  {data, total, page, pageSize}
    LinkMutationResponse  {data, message}
    ResolveResponse  {url, count_access}
    ExportResponse  {message, url}
    MessageResponse  {message}
    HealthResponse  {status, database}

How to Use
===========
**Step 1 — Input validation**::
    @router.post("/url/store")
    async def store_link(payload: LinkInput):
        # payload is already validated
        ...

**Step 2 — Response serialization**::
    link = await service.create_link(payload)
    return LinkMutationResponse(data=LinkRead.model_validate(link), message="...")

Key Behaviours
===============
- URL validation uses the validators library plus an explicit http(s) scheme check.
- Names equal to a fixed route segment are rejected before touching storage.
  Routing is case-sensitive, so only the exact segment is reserved.
- pageSize is serialized under its camelCase alias for the frontend.
- Models are configured for ORM attribute mapping.
"""

import datetime
import re

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.enums import HealthStatus
from app.models import NAME_MAX_LENGTH

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "RESERVED_NAMES",
    "LinkInput",
    "LinkRead",
    "LinkListResponse",
    "LinkMutationResponse",
    "ResolveResponse",
    "ExportResponse",
    "MessageResponse",
    "HealthResponse",
]

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# First path segments owned by fixed routes; a link with one of these names could never resolve
RESERVED_NAMES = frozenset({"url", "health", "metrics", "docs", "redoc"})

NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
_HTTP_URL_RE = re.compile(r"^(https?://)[^\s$.?#].[^\s]*$", re.IGNORECASE)


class LinkInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH, pattern=NAME_PATTERN)
    url: str = Field(..., min_length=1)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if v in RESERVED_NAMES:
            raise ValueError(f"Name '{v}' is reserved")
        return v

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not _HTTP_URL_RE.match(v) or not validators.url(v, simple_host=True, strict_query=False):
            raise ValueError("Invalid URL format")
        return v


class LinkRead(BaseModel):
    id: str
    name: str
    url: str
    count_access: int
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class LinkListResponse(BaseModel):
    data: list[LinkRead]
    total: int
    page: int
    page_size: int = Field(..., alias="pageSize")

    model_config = ConfigDict(populate_by_name=True)


class LinkMutationResponse(BaseModel):
    data: LinkRead
    message: str


class ResolveResponse(BaseModel):
    url: str
    count_access: int


class ExportResponse(BaseModel):
    message: str
    url: str


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
