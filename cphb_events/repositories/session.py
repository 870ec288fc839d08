"""Session store: user OAuth2 tokens keyed by session id."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from cphb_events.domain.session import SessionRecord
from cphb_events.repositories.base import BaseRepository
from cphb_events.services.tokens import UserSession


def _aware(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionRepository(BaseRepository[SessionRecord]):
    model = SessionRecord
    system = "session-store"


class SqlSessionStore:
    """:class:`~cphb_events.services.tokens.TokenStore` of :class:`UserSession`."""

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self._repo = SessionRepository(session, timeout=timeout)

    async def get(self, key: str) -> UserSession | None:
        row = await self._repo.get(key)
        if row is None:
            return None
        return UserSession(
            session_id=row.session_id,
            user_access_token=row.user_access_token,
            user_refresh_token=row.user_refresh_token,
            token_expiry=_aware(row.token_expiry),
            hawk_id=row.hawk_id,
            university_id=row.university_id,
        )

    async def set(self, key: str, value: UserSession) -> None:
        fields = {
            "user_access_token": value.user_access_token,
            "user_refresh_token": value.user_refresh_token,
            "token_expiry": value.token_expiry,
            "hawk_id": value.hawk_id,
            "university_id": value.university_id,
        }
        # Two refreshes racing on one session both land here; the later one wins
        if await self._repo.update(key, **fields) is None:
            await self._repo.create(session_id=key, **fields)

    async def invalidate(self, key: str) -> None:
        await self._repo.delete(key)
