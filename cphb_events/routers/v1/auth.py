"""Login, logout and session status.

``GET /auth`` is both the login entry point and the OAuth2 redirect target:
without a ``code`` it sends the browser to the campus login page, with one it
exchanges the code, opens a session and returns to the frontend.
"""

from __future__ import annotations

import logging
import secrets

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from cphb_events.core.config import settings
from cphb_events.core.exceptions import AppException, IdentityError
from cphb_events.core.response import DataResponse
from cphb_events.repositories.session import SqlSessionStore
from cphb_events.routers.deps import (
    client_ip,
    get_identity,
    get_session_guard,
    get_session_store,
    require_auth,
    session_id,
)
from cphb_events.schemas.auth import SessionStatus
from cphb_events.services.identity import IdentityClient
from cphb_events.services.session_guard import AuthContext, SessionGuard
from cphb_events.services.tokens import UserSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("")
async def authenticate(
    request: Request,
    code: str | None = Query(default=None),
    guard: SessionGuard = Depends(get_session_guard),
    identity: IdentityClient = Depends(get_identity),
    store: SqlSessionStore = Depends(get_session_store),
):
    if not code:
        return RedirectResponse(identity.authorization_url())

    # The callback carrying a code is let through without a session
    await guard.ensure_authenticated(
        session_id(request), ip=client_ip(request), auth_code=code
    )
    try:
        token = await identity.exchange_code(code)
    except IdentityError as exc:
        raise AppException(
            f"Could not complete login: {exc.message}", status_code=500, code="LOGIN_FAILED"
        ) from exc

    sid = session_id(request) or secrets.token_urlsafe(32)
    await store.set(
        sid,
        UserSession(
            session_id=sid,
            user_access_token=token.access_token,
            user_refresh_token=token.refresh_token,
            token_expiry=token.expires_at,
            hawk_id=token.hawk_id,
            university_id=token.university_id,
        ),
    )
    logger.info("Session opened for hawkid=%s", token.hawk_id)

    response = RedirectResponse(settings.frontend_url)
    response.set_cookie(
        settings.session_cookie_name,
        sid,
        max_age=token.refresh_expires_in or settings.refresh_token_lifetime_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/logout")
async def logout(
    request: Request,
    store: SqlSessionStore = Depends(get_session_store),
):
    """Forget the session's tokens and return to the frontend."""
    sid = session_id(request)
    if sid:
        await store.invalidate(sid)
        logger.info("Session %s closed", sid[:8])
    response = RedirectResponse(settings.frontend_url)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get("/validate", response_model=DataResponse[SessionStatus])
async def validate(auth: AuthContext = Depends(require_auth)):
    return {"data": SessionStatus(logged_in=True, hawkid=auth.hawk_id)}
