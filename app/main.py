"""FastAPI application entry point for the link shortener service.

This module configures and initializes the FastAPI application with middleware,
lifecycle management, and route registration for the link shortening service.

Application Lifecycle Diagram
===========================
::
    ┌─────────────┐
    │  uvicorn    │
    │  startup    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Create      │
    │ FastAPI app │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ CORS, error │
    │ handlers,   │
    │ metrics     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ startup:    │
    │ ServiceMgr  │
    │ initialize()│
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Serve HTTP  │
    │ requests    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ lifespan()  │
    │ shutdown:   │
    │ cleanup()   │
    └─────────────┘

How to Use
===========
**Step 1 — Run with uvicorn**::
    uvicorn app.main:app --host 127.0.0.1 --port 3333 --reload

    # or, using HOST/PORT from the environment
    python -m app.main

**Step 2 — Access interactive docs**::
    http://localhost:3333/docs

**Step 3 — Make API calls**::
    curl -X POST http://localhost:3333/url/store \
         -H "Content-Type: application/json" \
         -d '{"name": "guide", "url": "https://example.com/guide"}'

    curl http://localhost:3333/guide

Key Behaviours
===============
- Database tables are created automatically on startup.
- Engine and storage client are owned by the ServiceManager on app.state.
- CORS is enabled for all origins so the separately served frontend can call the API.
- HTTP metrics are exposed on /metrics.
"""

__all__ = ["app", "create_app"]

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.config import get_settings
from app.dependencies import ServiceManager
from app.error_handlers import register_error_handlers
from app.routes import router

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    manager = ServiceManager(settings)
    await manager.initialize()
    app.state.service_manager = manager
    yield
    # Shutdown
    await manager.cleanup()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="1.0.0",
        description="Short link management and resolution API",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
    ).instrument(app).expose(app)

    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
