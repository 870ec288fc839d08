"""CPHB Events API — FastAPI application factory."""


import logging
import sys
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from cphb_events.core.config import settings
from cphb_events.core.exceptions import register_exception_handlers
from cphb_events.middleware.request_log import RequestLogMiddleware
from cphb_events.schemas.common import HealthResponse
from cphb_events.services.document_sync import DocumentSyncClient
from cphb_events.services.identity import ApplicationTokenProvider, IdentityClient
from cphb_events.services.workflow import WorkflowClient

# v1 routers
from cphb_events.routers.v1.auth import router as auth_v1_router
from cphb_events.routers.v1.events import router as events_v1_router
from cphb_events.routers.v1.layouts import router as layouts_v1_router
from cphb_events.routers.v1.workflow import router as workflow_v1_router

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Set up structured logging for the application."""
    level = logging.DEBUG if settings.app_env == "development" else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """One shared HTTP client per process; the outbound clients are built on it."""
    http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
    identity = IdentityClient(http_client)
    app.state.http_client = http_client
    app.state.identity = identity
    app.state.app_tokens = ApplicationTokenProvider(identity)
    app.state.workflow = WorkflowClient(http_client, app.state.app_tokens)
    app.state.document_sync = DocumentSyncClient(http_client)
    logger.info("%s started (%s)", settings.app_name, settings.app_env)
    try:
        yield
    finally:
        await http_client.aclose()


def create_app() -> FastAPI:
    _configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url="/docs" if settings.app_env == "development" else None,
        redoc_url="/redoc" if settings.app_env == "development" else None,
        lifespan=lifespan,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # --- Request log middleware ---
    app.add_middleware(RequestLogMiddleware)

    # --- Global exception handlers ---
    register_exception_handlers(app)

    # --- v1 API routes (/api/v1/*) ---
    app.include_router(auth_v1_router, prefix="/api/v1")
    app.include_router(events_v1_router, prefix="/api/v1")
    app.include_router(layouts_v1_router, prefix="/api/v1")
    app.include_router(workflow_v1_router, prefix="/api/v1")

    @app.get("/", include_in_schema=False)
    async def root():
        """The API has no pages of its own."""
        return RedirectResponse(settings.frontend_url)

    # --- Health check ---
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health():
        return HealthResponse(app=settings.app_name, env=settings.app_env)

    return app


app = create_app()
