"""Dependency injection with a process-lifetime service manager.

This module provides a centralized way to inject the database session, the
object storage client and a request-scoped logger into every endpoint. Shared
resources live on one ServiceManager that the application lifespan builds on
startup and tears down on shutdown; nothing here is a module-level global.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.database import close_db, create_engine, create_session_factory, get_db, init_db
from app.export import LinkExporter
from app.link_service import LinkService
from app.storage import ObjectStorage


# ============================================================================
# SERVICE MANAGER
# ============================================================================


class ServiceManager:
    """Owner of the resources shared by all requests.

    The database engine, session factory, storage client and logger are built
    once in ``initialize()`` and released in ``cleanup()``. Tests construct
    their own manager with test settings and an in-memory storage double.
    """

    def __init__(self, settings: Optional[Settings] = None, storage: Optional[ObjectStorage] = None) -> None:
        self.settings = settings or get_settings()
        self._storage = storage
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize shared resources once at startup."""
        if not self._initialized:
            self.logger = self._setup_logger()
            self.engine: AsyncEngine = create_engine(self.settings)
            self.session_factory: async_sessionmaker[AsyncSession] = create_session_factory(self.engine)
            self.storage = self._storage or ObjectStorage.from_settings(self.settings)
            await init_db(self.engine)
            self._initialized = True
            self.logger.info(f"{self.settings.APP_NAME} initialized ({self.settings.APP_ENV})")

    def _setup_logger(self) -> logging.Logger:
        """Setup logger once."""
        logger = logging.getLogger("linkshortener")
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            handler.setFormatter(formatter)
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL.upper())
        return logger

    async def cleanup(self) -> None:
        """Cleanup shared resources at shutdown."""
        if not self._initialized:
            return
        await close_db(self.engine)
        self.storage.close()
        self._initialized = False
        self.logger.info("Shared resources released")


# ============================================================================
# REQUEST CONTEXT
# ============================================================================


@dataclass
class RequestContext:
    """Per-request context with tracking and access to shared resources.

    Attributes:
        database: Async database session (only per-request resource)
        service_manager: Process-lifetime manager with shared resources
        request_id: Unique identifier for this request
        user_agent: Client user agent string
        client_ip: Client IP address
        start_time: Request start timestamp
        tags: Request tags for categorization
    """

    database: AsyncSession
    service_manager: ServiceManager
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    user_agent: Optional[str] = None
    client_ip: Optional[str] = None
    start_time: float = field(default_factory=lambda: time.time())
    tags: list[str] = field(default_factory=list)

    @property
    def logger(self) -> logging.LoggerAdapter:
        """Get shared logger with request context."""
        return logging.LoggerAdapter(
            self.service_manager.logger,
            {
                "request_id": self.request_id,
                "client_ip": self.client_ip,
                "user_agent": self.user_agent,
                "tags": ",".join(self.tags),
            },
        )

    @property
    def settings(self) -> Settings:
        return self.service_manager.settings

    def add_tag(self, tag: str) -> None:
        """Add a tag to the request context."""
        if tag not in self.tags:
            self.tags.append(tag)

    def get_duration(self) -> float:
        """Get request duration in milliseconds."""
        return (time.time() - self.start_time) * 1000


# ============================================================================
# DEPENDENCY FUNCTIONS
# ============================================================================


def get_service_manager(request: Request) -> ServiceManager:
    return request.app.state.service_manager


async def get_request_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    manager: ServiceManager = Depends(get_service_manager),
) -> RequestContext:
    """Build the request context from the incoming request.

    Args:
        request: FastAPI Request object for extracting client info
        db: Database session (only per-request resource)
        manager: Service manager with shared resources

    Returns:
        RequestContext: Context for the request
    """
    return RequestContext(
        database=db,
        service_manager=manager,
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        user_agent=request.headers.get("user-agent"),
        client_ip=request.client.host if request.client else None,
    )


def get_link_service(ctx: RequestContext = Depends(get_request_context)) -> LinkService:
    return LinkService.from_context(ctx)


def get_link_exporter(ctx: RequestContext = Depends(get_request_context)) -> LinkExporter:
    return LinkExporter.from_context(ctx)
