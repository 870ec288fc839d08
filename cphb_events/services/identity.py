"""Campus OAuth2 client — application and user tokens.

The authority issues two kinds of bearer tokens:

1. **Application tokens** (client-credentials grant) authorize this service
   itself against Workflow. They are cached process-wide by
   :class:`ApplicationTokenProvider` and simply re-acquired when stale.
2. **User tokens** (authorization-code grant) belong to one browser session
   and come with a refresh token.

Every failure (non-2xx, bad payload, network error, timeout) is raised as
:class:`IdentityError`; callers decide the HTTP status.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable
from urllib.parse import urlencode, urljoin

import httpx

from cphb_events.core.config import Settings, settings as default_settings
from cphb_events.core.exceptions import IdentityError
from cphb_events.services.tokens import CachedToken, MemoryTokenStore, TokenStore

logger = logging.getLogger(__name__)

APPLICATION_TOKEN_KEY = "APPLICATIONTOKEN"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UserToken:
    access_token: str
    refresh_token: str | None
    expires_at: datetime
    hawk_id: str | None = None
    university_id: str | None = None
    refresh_expires_in: int | None = None

class IdentityClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Settings | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._http = http_client
        self._settings = config or default_settings
        self._now = now

    @property
    def _token_url(self) -> str:
        return urljoin(self._settings.identity_base_url, "token.page")

    def authorization_url(self) -> str:
        """URL of the campus login page that redirects back with a ``code``."""
        query = urlencode(
            {
                "type": "web_server",
                "response_type": "code",
                "client_id": self._settings.uiowa_client_id,
                "redirect_uri": self._settings.redirect_uri,
                "scope": self._settings.uiowa_scopes,
            }
        )
        return f"{urljoin(self._settings.identity_base_url, 'auth.page')}?{query}"

    async def _token_request(self, grant: dict[str, str]) -> dict[str, Any]:
        form = {
            **grant,
            "client_id": self._settings.uiowa_client_id,
            "client_secret": self._settings.uiowa_client_secret,
        }
        grant_type = grant.get("grant_type")
        try:
            response = await self._http.post(
                self._token_url,
                data=form,
                headers={"Accept": "application/json"},
                timeout=self._settings.http_timeout_seconds,
            )
        except httpx.HTTPError as exc:
            logger.error("Token request (%s) failed: %s", grant_type, exc)
            raise IdentityError(f"Token request failed: {exc}") from exc

        if response.status_code >= 300:
            logger.error(
                "Token request (%s) rejected: %s %s",
                grant_type, response.status_code, response.text,
            )
            raise IdentityError(
                f"Identity provider returned {response.status_code}: {response.text}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise IdentityError("Identity provider returned a non-JSON body") from exc
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise IdentityError("No access token in identity provider response")
        return payload

    def _expiry(self, payload: dict[str, Any]) -> datetime:
        try:
            expires_in = float(payload.get("expires_in", 3600))
        except (TypeError, ValueError) as exc:
            raise IdentityError(f"Invalid expires_in: {payload.get('expires_in')!r}") from exc
        return self._now() + timedelta(seconds=expires_in)

    def _refresh_lifetime(self, payload: dict[str, Any]) -> int | None:
        value = payload.get("refresh_expires_in")
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid refresh_expires_in %r", value)
            return None

    def _user_token(self, payload: dict[str, Any]) -> UserToken:
        params = payload.get("params") or {}
        hawk_id = payload.get("hawkid") or params.get("hawkID") or params.get("hawkid")
        university_id = payload.get("uid") or params.get("uid")
        return UserToken(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=self._expiry(payload),
            hawk_id=hawk_id,
            university_id=str(university_id) if university_id is not None else None,
            refresh_expires_in=self._refresh_lifetime(payload),
        )

    async def client_credentials(self) -> CachedToken:
        """Acquire a fresh application token (no caching here)."""
        payload = await self._token_request(
            {"grant_type": "client_credentials", "scope": self._settings.uiowa_scopes}
        )
        logger.info("Acquired application token")
        return CachedToken(access_token=payload["access_token"], expires_at=self._expiry(payload))

    async def exchange_code(self, code: str) -> UserToken:
        payload = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self._settings.redirect_uri,
            }
        )
        token = self._user_token(payload)
        logger.info("Authorization code exchanged for hawkid=%s", token.hawk_id)
        return token

    async def refresh(self, refresh_token: str | None) -> UserToken:
        if not refresh_token:
            raise IdentityError("Session has no refresh token")
        payload = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        token = self._user_token(payload)
        # Some authorities omit the refresh token when it is unchanged
        if token.refresh_token is None:
            token.refresh_token = refresh_token
        return token


class ApplicationTokenProvider:
    """Process-wide cache of the application token.

    The lock keeps concurrent first requests from each spending a
    client-credentials grant; a waiter re-checks the cache after acquiring it.
    """

    def __init__(
        self,
        identity: IdentityClient,
        store: TokenStore[CachedToken] | None = None,
        margin: timedelta | None = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._identity = identity
        self._store = store if store is not None else MemoryTokenStore()
        self._margin = margin or timedelta(seconds=default_settings.token_expiry_margin_seconds)
        self._now = now
        self._lock = asyncio.Lock()

    async def _cached(self) -> str | None:
        token = await self._store.get(APPLICATION_TOKEN_KEY)
        if token is not None and token.is_fresh(self._now(), self._margin):
            return token.access_token
        return None

    async def get_token(self) -> str:
        cached = await self._cached()
        if cached:
            return cached
        async with self._lock:
            cached = await self._cached()
            if cached:
                return cached
            token = await self._identity.client_credentials()
            await self._store.set(APPLICATION_TOKEN_KEY, token)
            return token.access_token

    async def invalidate(self) -> None:
        await self._store.invalidate(APPLICATION_TOKEN_KEY)
