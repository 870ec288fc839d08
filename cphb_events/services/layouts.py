"""Layout queries and public layout management."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from cphb_events.core.exceptions import ConflictError, NotFoundError
from cphb_events.domain.layout import LayoutRecord
from cphb_events.repositories.layout import LayoutRepository
from cphb_events.schemas.layout import LayoutCreate

logger = logging.getLogger(__name__)

LAYOUT_FILTER_INDEXES = {
    "userEmail": "LayoutUserIndex",
    "type": "LayoutTypeIndex",
}


class LayoutService:
    def __init__(self, session: AsyncSession):
        self._repo = LayoutRepository(session)

    async def get_layout(self, layout_id: str) -> LayoutRecord:
        layout = await self._repo.get(layout_id)
        if layout is None:
            raise NotFoundError("Layout", layout_id)
        return layout

    async def get_layouts(self, field: str, value: str) -> list[LayoutRecord]:
        try:
            index_name = LAYOUT_FILTER_INDEXES[field]
        except KeyError:
            raise LookupError(f"No layout index for filter field {field!r}") from None
        return await self._repo.query_by_index(index_name, value)

    async def create_public(self, data: LayoutCreate, user_email: str | None) -> LayoutRecord:
        if await self._repo.get(data.id) is not None:
            raise ConflictError(f"Layout '{data.id}' already exists")
        layout = await self._repo.create(
            id=data.id,
            type="public",
            package_id=None,
            user_email=user_email,
            chairs_per_table=data.chairs_per_table,
            items=[item.model_dump(by_alias=True) for item in data.items],
        )
        logger.info("Created public layout %s", layout.id)
        return layout

    async def delete(self, layout_id: str) -> None:
        if not await self._repo.delete(layout_id):
            raise NotFoundError("Layout", layout_id)
