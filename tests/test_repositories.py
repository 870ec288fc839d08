"""Tests for the keyed stores over SQLite."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy.pool import StaticPool

from cphb_events.core.exceptions import UpstreamError
from cphb_events.db.base import make_engine
from cphb_events.repositories.event import EventRepository
from cphb_events.repositories.layout import LayoutRepository


def _event(package_id: int, **overrides):
    fields = dict(
        package_id=package_id,
        approved="false",
        user_email="x@uiowa.edu",
        event_name="Curing Cancer",
        date="2018-08-01",
        start_time="8:00 AM",
        end_time="12:00 PM",
        room_number="XC100",
        num_people=1,
    )
    fields.update(overrides)
    return fields


class TestEventRepository:
    async def test_query_by_index_orders_by_key(self, session):
        repo = EventRepository(session)
        for package_id in (30, 10, 20):
            await repo.create(**_event(package_id))
        await repo.create(**_event(40, room_number="N110"))

        rows = await repo.query_by_index("EventRoomIndex", "XC100")
        assert [row.package_id for row in rows] == [10, 20, 30]

    async def test_unknown_index(self, session):
        with pytest.raises(LookupError):
            await EventRepository(session).query_by_index("EventNameIndex", "x")

    async def test_update_and_missing(self, session):
        repo = EventRepository(session)
        await repo.create(**_event(1))
        updated = await repo.update(1, approved="true")
        assert updated.approved == "true"
        assert await repo.update(2, approved="true") is None

    async def test_delete_reports_presence(self, session):
        repo = EventRepository(session)
        await repo.create(**_event(1))
        assert await repo.delete(1) is True
        assert await repo.delete(1) is False

    async def test_duplicate_key_is_upstream_error(self, session):
        repo = EventRepository(session)
        await repo.create(**_event(1))
        with pytest.raises(UpstreamError) as exc_info:
            await repo.create(**_event(1))
        assert exc_info.value.system == "record-store"
        assert await repo.get(1) is not None

    async def test_timeout(self, session, monkeypatch):
        repo = EventRepository(session, timeout=0.01)

        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        monkeypatch.setattr(type(session), "execute", slow)
        with pytest.raises(UpstreamError) as exc_info:
            await repo.get(1)
        assert "timed out" in exc_info.value.message


class TestLayoutRepository:
    async def test_get_many(self, session):
        repo = LayoutRepository(session)
        await repo.create(id="1", type="private", package_id=1, items=[])
        await repo.create(id="lecture", type="public", items=[])
        rows = await repo.get_many(["1", "lecture", "missing"])
        assert sorted(row.id for row in rows) == ["1", "lecture"]
        assert await repo.get_many([]) == []

    async def test_type_index(self, session):
        repo = LayoutRepository(session)
        await repo.create(id="b", type="public", items=[])
        await repo.create(id="a", type="public", items=[])
        await repo.create(id="5", type="private", package_id=5, items=[])
        rows = await repo.query_by_index("LayoutTypeIndex", "public")
        assert [row.id for row in rows] == ["a", "b"]


class TestEngine:
    async def test_memory_database_shared_across_sessions(self):
        engine = make_engine("sqlite+aiosqlite:///:memory:")
        assert isinstance(engine.pool, StaticPool)
        await engine.dispose()

    async def test_file_database_keeps_its_pool(self, tmp_path):
        engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'events.db'}")
        assert not isinstance(engine.pool, StaticPool)
        await engine.dispose()
