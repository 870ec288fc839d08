"""Shared FastAPI dependencies: collaborators, caller identity and services.

The HTTP client and the clients built on it live on ``app.state`` (created in
the lifespan); tests replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from cphb_events.core.config import settings
from cphb_events.core.exceptions import UnauthenticatedError
from cphb_events.db.base import get_db
from cphb_events.repositories.session import SqlSessionStore
from cphb_events.services.document_sync import DocumentSyncClient
from cphb_events.services.events import EventPipeline
from cphb_events.services.identity import IdentityClient
from cphb_events.services.layouts import LayoutService
from cphb_events.services.session_guard import AuthContext, SessionGuard
from cphb_events.services.workflow import WorkflowClient


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else ""


def session_id(request: Request) -> str | None:
    return request.cookies.get(settings.session_cookie_name)


# ------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------

def get_identity(request: Request) -> IdentityClient:
    return request.app.state.identity


def get_workflow(request: Request) -> WorkflowClient:
    return request.app.state.workflow


def get_document_sync(request: Request) -> DocumentSyncClient:
    return request.app.state.document_sync


def get_session_store(session: AsyncSession = Depends(get_db)) -> SqlSessionStore:
    return SqlSessionStore(session)


def get_session_guard(
    store: SqlSessionStore = Depends(get_session_store),
    identity: IdentityClient = Depends(get_identity),
) -> SessionGuard:
    return SessionGuard(store, identity)


# ------------------------------------------------------------------
# Caller identity
# ------------------------------------------------------------------

async def require_auth(
    request: Request,
    guard: SessionGuard = Depends(get_session_guard),
) -> AuthContext:
    return await guard.ensure_authenticated(
        session_id(request),
        ip=client_ip(request),
        origin=request.headers.get("origin"),
    )


def current_email(auth: AuthContext = Depends(require_auth)) -> str:
    if not auth.hawk_id:
        raise UnauthenticatedError("No user is associated with this session")
    return settings.campus_email(auth.hawk_id)


# ------------------------------------------------------------------
# Services
# ------------------------------------------------------------------

def get_event_pipeline(
    session: AsyncSession = Depends(get_db),
    workflow: WorkflowClient = Depends(get_workflow),
    document_sync: DocumentSyncClient = Depends(get_document_sync),
) -> EventPipeline:
    return EventPipeline(session, workflow, document_sync)


def get_layout_service(session: AsyncSession = Depends(get_db)) -> LayoutService:
    return LayoutService(session)
