"""Session guard — gates every pipeline entry point on a valid user token."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from cphb_events.core.config import Settings, settings as default_settings
from cphb_events.core.exceptions import IdentityError, UnauthenticatedError
from cphb_events.services.identity import IdentityClient
from cphb_events.services.tokens import TokenStore, UserSession

logger = logging.getLogger(__name__)


@dataclass
class AuthContext:
    """What downstream stages need from the caller's session."""

    token: str | None
    ip: str
    hawk_id: str | None = None
    session_id: str | None = None
    bypassed: bool = False


class SessionGuard:
    def __init__(
        self,
        store: TokenStore[UserSession],
        identity: IdentityClient,
        config: Settings | None = None,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._identity = identity
        self._settings = config or default_settings
        self._margin = timedelta(seconds=self._settings.token_expiry_margin_seconds)
        self._now = now

    def _dev_origin(self, origin: str) -> bool:
        return self._settings.app_env == "development" and origin in self._settings.dev_origins

    async def ensure_authenticated(
        self,
        session_id: str | None,
        *,
        ip: str,
        origin: str | None = None,
        auth_code: str | None = None,
    ) -> AuthContext:
        """Return the caller's token, refreshing it at most once.

        Raises :class:`UnauthenticatedError` when there is no usable session
        and neither bypass applies, or when the refresh fails.
        """
        session = await self._store.get(session_id) if session_id else None

        if session is None or not session.has_token:
            if auth_code:
                return AuthContext(token=None, ip=ip, session_id=session_id, bypassed=True)
            if origin and self._dev_origin(origin):
                logger.debug("Local development origin %s bypasses the session guard", origin)
                return AuthContext(
                    token=None, ip=ip, hawk_id=self._settings.dev_hawk_id,
                    session_id=session_id, bypassed=True,
                )
            raise UnauthenticatedError()

        if self._now() < session.token_expiry - self._margin:
            return AuthContext(
                token=session.user_access_token, ip=ip,
                hawk_id=session.hawk_id, session_id=session.session_id,
            )

        try:
            token = await self._identity.refresh(session.user_refresh_token)
        except IdentityError as exc:
            logger.warning("Token refresh failed for session %s: %s", session.session_id, exc.message)
            raise UnauthenticatedError("Your session has expired, please log in again") from exc

        session.user_access_token = token.access_token
        session.user_refresh_token = token.refresh_token
        session.token_expiry = token.expires_at
        session.hawk_id = token.hawk_id or session.hawk_id
        session.university_id = token.university_id or session.university_id
        await self._store.set(session.session_id, session)
        logger.info("Refreshed user token for hawkid=%s", session.hawk_id)

        return AuthContext(
            token=session.user_access_token, ip=ip,
            hawk_id=session.hawk_id, session_id=session.session_id,
        )
