"""Layout store."""


from cphb_events.domain.layout import LayoutRecord
from cphb_events.repositories.base import BaseRepository


class LayoutRepository(BaseRepository[LayoutRecord]):
    model = LayoutRecord
    system = "layout-store"
