"""Record, layout and session tables live in one SQL database.

The stores behind the event pipelines are plain tables reached through one
async engine. Each repository commits its own writes, so a pipeline that
aborts keeps whatever earlier stages stored; the request session only
rolls back the write that failed.
"""


from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from cphb_events.core.config import settings


def make_engine(url: str | None = None) -> AsyncEngine:
    """Engine for ``url`` (default ``DATABASE_URL``).

    SQLite waits on a locked database no longer than a store call may take,
    and an in-memory database is pinned to one connection so every session
    sees the same tables.
    """
    url = url or settings.database_url
    kwargs: dict = {"echo": False}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {
            "check_same_thread": False,
            "timeout": settings.store_timeout_seconds,
        }
        if ":memory:" in url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_async_engine(url, **kwargs)


engine = make_engine()

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base for EventRecord, LayoutRecord and SessionRecord."""


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; an escaping error rolls back the pending write."""
    async with async_session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
