"""Token store interface and the token value types it holds.

Two stores implement :class:`TokenStore`:

* :class:`MemoryTokenStore` — process-wide, holds the application token.
* :class:`cphb_events.repositories.session.SqlSessionStore` — per browser
  session, holds user tokens in the ``sessions`` table.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")


@dataclass
class CachedToken:
    access_token: str
    expires_at: datetime

    def is_fresh(self, now: datetime, margin: timedelta) -> bool:
        return now < self.expires_at - margin


@dataclass
class UserSession:
    session_id: str
    user_access_token: str | None = None
    user_refresh_token: str | None = None
    token_expiry: datetime | None = None
    hawk_id: str | None = None
    university_id: str | None = None

    @property
    def has_token(self) -> bool:
        return bool(self.user_access_token) and self.token_expiry is not None


class TokenStore(Protocol[T]):
    async def get(self, key: str) -> T | None: ...

    async def set(self, key: str, value: T) -> None: ...

    async def invalidate(self, key: str) -> None: ...


class MemoryTokenStore(Generic[T]):
    """Dict-backed store; last write wins."""

    def __init__(self) -> None:
        self._items: dict[str, T] = {}

    async def get(self, key: str) -> T | None:
        return self._items.get(key)

    async def set(self, key: str, value: T) -> None:
        self._items[key] = value

    async def invalidate(self, key: str) -> None:
        self._items.pop(key, None)
