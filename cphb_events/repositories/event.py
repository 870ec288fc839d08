"""Event record store."""


from cphb_events.domain.event import EventRecord
from cphb_events.repositories.base import BaseRepository


class EventRepository(BaseRepository[EventRecord]):
    model = EventRecord
    system = "record-store"
