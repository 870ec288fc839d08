"""Generic async key/index repository used by the record and layout stores."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cphb_events.core.config import settings
from cphb_events.core.exceptions import UpstreamError
from cphb_events.db.base import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def store_call(method):
    """Bound a store operation by the configured timeout and tag its failures.

    Database errors and timeouts surface as :class:`UpstreamError` carrying the
    repository's ``system`` name, the same failure path as any external call.
    """

    @functools.wraps(method)
    async def wrapper(self: "BaseRepository", *args: Any, **kwargs: Any):
        try:
            return await asyncio.wait_for(method(self, *args, **kwargs), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            await self._session.rollback()
            logger.error("%s.%s timed out after %ss", self.system, method.__name__, self._timeout)
            raise UpstreamError(
                self.system, f"{method.__name__} timed out after {self._timeout}s"
            ) from exc
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error("%s.%s failed: %s", self.system, method.__name__, exc)
            raise UpstreamError(self.system, f"{method.__name__} failed: {exc}") from exc

    return wrapper


class BaseRepository(Generic[ModelT]):
    """Keyed create/get/query-by-index/update/delete over one table.

    Every write commits on its own; there is no unit of work spanning
    several calls.
    """

    model: type[ModelT]
    system: str = "store"

    def __init__(self, session: AsyncSession, timeout: float | None = None):
        self._session = session
        self._timeout = timeout if timeout is not None else settings.store_timeout_seconds

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @property
    def _key(self):
        return self.model.__mapper__.primary_key[0]

    def _index_column(self, index_name: str):
        """Return the hash column of the named secondary index."""
        for index in self.model.__table__.indexes:
            if index.name == index_name:
                return next(iter(index.columns))
        raise LookupError(f"{self.model.__tablename__} has no index named {index_name!r}")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @store_call
    async def get(self, key: Any) -> ModelT | None:
        result = await self._session.execute(select(self.model).where(self._key == key))
        return result.scalars().first()

    @store_call
    async def get_many(self, keys: list[Any]) -> list[ModelT]:
        if not keys:
            return []
        result = await self._session.execute(select(self.model).where(self._key.in_(keys)))
        return list(result.scalars().all())

    @store_call
    async def query_by_index(self, index_name: str, value: Any) -> list[ModelT]:
        """Return all rows whose index hash column equals ``value``, ordered by key."""
        column = self._index_column(index_name)
        result = await self._session.execute(
            select(self.model).where(column == value).order_by(self._key)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @store_call
    async def create(self, **kwargs: Any) -> ModelT:
        instance = self.model(**kwargs)
        self._session.add(instance)
        await self._session.commit()
        await self._session.refresh(instance)
        return instance

    @store_call
    async def update(self, key: Any, **kwargs: Any) -> ModelT | None:
        """Overwrite the given attributes; returns None when the row is missing."""
        instance = (
            await self._session.execute(select(self.model).where(self._key == key))
        ).scalars().first()
        if instance is None:
            return None
        kwargs.pop(self._key.key, None)
        for name, value in kwargs.items():
            setattr(instance, name, value)
        await self._session.commit()
        await self._session.refresh(instance)
        return instance

    @store_call
    async def delete(self, key: Any) -> bool:
        result = await self._session.execute(delete(self.model).where(self._key == key))
        await self._session.commit()
        return result.rowcount > 0
