"""Tests for the event pipelines.

Covers:
- create: routing, storage, layouts, document sync, and failures at each stage
- update: approval kept and never set by an edit, entry diffing, the four layout cases
- Workflow callback: COMPLETE approves, other states change nothing
- void and delete, including deleting twice
- who may edit, void or delete: the submitter, or whoever Workflow grants it
- queries: filter field to index mapping, permissions and layouts zipped in
"""

from __future__ import annotations

import logging

import httpx
import pytest
from sqlalchemy import select

from cphb_events.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OrphanedApprovalPackageError,
    UpstreamError,
    ValidationError,
)
from cphb_events.domain.event import EventRecord
from cphb_events.domain.layout import LayoutRecord
from cphb_events.repositories.event import EventRepository
from cphb_events.repositories.layout import LayoutRepository
from cphb_events.services.session_guard import AuthContext

from conftest import FURNITURE, event_form


async def _stored(session, package_id):
    return await EventRepository(session).get(package_id)


class TestCreate:
    async def test_curing_cancer_submission(self, pipeline, upstream, session, auth):
        view = await pipeline.create(auth, event_form())

        assert view.package_id == 1001
        entry = upstream.body("create")["entry"]
        assert entry["setup_required"] == "false"
        assert entry["approved"] == "false"
        assert entry["room_number"] == "XC100"

        record = await _stored(session, 1001)
        assert record.approved == "false"
        assert record.event_name == "Curing Cancer"
        assert record.start_time == "8:00 AM"
        assert view.layout is None
        assert await LayoutRepository(session).get("1001") is None
        assert view.document_sync.status == "skipped"
        assert not any(op.startswith("sync_") for op in upstream.operations)

    async def test_routing_headers(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())

        request = upstream.requests("create")[0]
        assert request.url.path == "/workflow/test/api/developer/forms/6025/packages"
        assert request.headers["Authorization"] == "Bearer user-token"
        assert request.headers["X-App-Authorization"] == "Bearer app-token"
        assert request.headers["X-Client-Remote-Addr"] == "10.0.0.7"
        assert request.headers["Accept"] == "application/vnd.workflow+json;version=1.1"
        assert upstream.body("create")["state"] == "ROUTING"

    async def test_permissions_come_from_created_package(self, pipeline, auth):
        view = await pipeline.create(auth, event_form())
        assert view.permissions.can_edit is True
        assert view.permissions.package_id == 1001

    async def test_layout_stored_with_items(self, pipeline, session, auth):
        view = await pipeline.create(auth, event_form(items=FURNITURE, chairsPerTable=8))

        layout = await LayoutRepository(session).get("1001")
        assert layout.type == "private"
        assert layout.package_id == 1001
        assert layout.user_email == "x@uiowa.edu"
        assert layout.chairs_per_table == 8
        assert [item["furnitureKind"] for item in layout.items] == ["circle", "chair"]
        assert view.layout.id == "1001"

    async def test_approved_at_creation_is_synced(self, pipeline, upstream, auth):
        view = await pipeline.create(auth, event_form(approved=True))

        assert view.document_sync.status == "synced"
        item = upstream.body("sync_create")
        assert item["package_id"] == 1001
        assert item["start_time"] == "08:00"
        assert item["end_time"] == "12:00"
        assert item["url"] == "https://events.test/event/1001"

    async def test_sync_failure_is_degraded_success(self, pipeline, upstream, session, auth):
        upstream.fail("sync_create", status=500)

        view = await pipeline.create(auth, event_form(approved="true"))

        assert view.document_sync.status == "failed"
        assert (await _stored(session, 1001)).approved == "true"

    async def test_invalid_form_makes_no_external_call(self, pipeline, upstream, auth):
        with pytest.raises(ValidationError) as exc_info:
            await pipeline.create(auth, event_form(userEmail="x@gmail.com"))

        assert exc_info.value.stage == "Validating"
        assert exc_info.value.errors[0]["field"] == "userEmail"
        assert upstream.calls == []

    async def test_router_failure_stops_before_record_store(self, pipeline, upstream, session, auth):
        upstream.raise_on("create", httpx.ConnectError("connection refused"))

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.create(auth, event_form())

        assert exc_info.value.stage == "RoutingCreated"
        assert exc_info.value.system == "approval-router"
        assert not isinstance(exc_info.value, ValidationError)
        assert (await session.execute(select(EventRecord))).scalars().all() == []

    async def test_record_store_failure_reports_orphan(self, pipeline, session, auth):
        await EventRepository(session).create(
            package_id=1001, **{**_record_fields(), "event_name": "Already here"}
        )

        with pytest.raises(OrphanedApprovalPackageError) as exc_info:
            await pipeline.create(auth, event_form())

        assert exc_info.value.stage == "RecordStored"
        assert exc_info.value.details["packageId"] == 1001

    async def test_layout_store_failure_keeps_record(self, pipeline, session, auth):
        # A stale layout left under the next package id
        await LayoutRepository(session).create(id="1001", type="private", package_id=1001, items=[])

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.create(auth, event_form(items=FURNITURE))

        assert exc_info.value.stage == "LayoutStored"
        assert exc_info.value.details["packageId"] == 1001
        assert await _stored(session, 1001) is not None

    async def test_public_layout_in_slot_is_a_conflict(self, pipeline, session, auth):
        await LayoutRepository(session).create(id="1001", type="public", items=[])

        with pytest.raises(ConflictError) as exc_info:
            await pipeline.create(auth, event_form(items=FURNITURE))

        assert exc_info.value.stage == "LayoutStored"
        assert exc_info.value.details["packageId"] == 1001
        assert (await LayoutRepository(session).get("1001")).type == "public"


def _record_fields():
    return {
        "approved": "false",
        "user_email": "x@uiowa.edu",
        "event_name": "Curing Cancer",
        "date": "2018-08-01",
        "start_time": "8:00 AM",
        "end_time": "12:00 PM",
        "room_number": "XC100",
        "num_people": 1,
    }


class TestUpdate:
    async def test_keeps_stored_approval_when_not_sent(self, pipeline, session, auth):
        await pipeline.create(auth, event_form(approved="true"))

        form = event_form(eventName="Curing Cancer Again")
        view = await pipeline.update(auth, 1001, form)

        assert view.event.approved == "true"
        assert view.event.event_name == "Curing Cancer Again"

    async def test_unchanged_entry_skips_workflow(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        await pipeline.update(auth, 1001, event_form(comments="bring snacks"))
        assert "update" not in upstream.operations

    async def test_changed_entry_updates_workflow(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        await pipeline.update(auth, 1001, event_form(roomNumber="N110"))

        body = upstream.body("update")
        assert body["entry"]["room_number"] == "N110"
        assert upstream.requests("update")[0].url.path.endswith("/tools/forms/6025/packages/1001/entry")

    async def test_fetches_permissions(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(auth, 1001, event_form())
        assert upstream.requests("permissions")[0].url.params.get_list("id") == ["1001"]
        assert view.permissions.package_id == 1001

    async def test_missing_record(self, pipeline, upstream, auth):
        with pytest.raises(NotFoundError) as exc_info:
            await pipeline.update(auth, 404, event_form())
        assert exc_info.value.stage == "RecordLoaded"
        assert upstream.calls == []

    async def test_layout_none_to_items_creates(self, pipeline, session, auth):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(auth, 1001, event_form(items=FURNITURE))
        assert view.layout.id == "1001"
        assert len((await LayoutRepository(session).get("1001")).items) == 2

    async def test_layout_items_to_none_deletes(self, pipeline, session, auth):
        await pipeline.create(auth, event_form(items=FURNITURE))
        view = await pipeline.update(auth, 1001, event_form(items=[]))
        assert view.layout is None
        assert await LayoutRepository(session).get("1001") is None

    async def test_layout_items_to_items_overwrites(self, pipeline, session, auth):
        await pipeline.create(auth, event_form(items=FURNITURE))
        moved = [{"id": "t1", "furnitureKind": "rect", "x": 5, "y": 5}]
        await pipeline.update(auth, 1001, event_form(items=moved))
        layout = await LayoutRepository(session).get("1001")
        assert layout.items == [{"id": "t1", "furnitureKind": "rect", "x": 5.0, "y": 5.0}]

    async def test_layout_none_to_none_passes(self, pipeline, session, auth):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(auth, 1001, event_form())
        assert view.layout is None
        assert (await session.execute(select(LayoutRecord))).scalars().all() == []

    async def test_client_cannot_approve_by_editing(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())

        with pytest.raises(ValidationError) as exc_info:
            await pipeline.update(auth, 1001, event_form(approved="true"))

        assert exc_info.value.stage == "Validating"
        assert exc_info.value.errors[0]["field"] == "approved"
        assert (await _stored(session, 1001)).approved == "false"
        assert "update" not in upstream.operations
        assert not any(op.startswith("sync_") for op in upstream.operations)

    async def test_echoed_approval_is_accepted(self, pipeline, auth):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(auth, 1001, event_form(approved="false", numPeople=4))
        assert view.event.num_people == 4

    async def test_edit_of_listed_event_updates_mirror(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(auth, 1001, event_form(comments="pending"))
        assert view.document_sync.status == "skipped"
        assert upstream.requests("sync_update") == []

        await pipeline.apply_callback(auth, 1001, "COMPLETE")
        view = await pipeline.update(auth, 1001, event_form(comments="moved to noon"))
        assert view.event.approved == "true"
        assert view.document_sync.status == "synced"
        assert upstream.body("sync_update")["comments"] == "moved to noon"

    async def test_public_layout_in_slot_is_not_taken_over(self, pipeline, session, auth):
        await pipeline.create(auth, event_form())
        await LayoutRepository(session).create(id="1001", type="public", items=[])

        with pytest.raises(ConflictError) as exc_info:
            await pipeline.update(auth, 1001, event_form(items=FURNITURE))

        assert exc_info.value.stage == "LayoutStored"
        kept = await LayoutRepository(session).get("1001")
        assert kept.type == "public"
        assert kept.items == []


class TestCallback:
    async def test_complete_approves(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())

        result = await pipeline.apply_callback(auth, 1001, "COMPLETE")

        assert result.applied is True
        assert (await _stored(session, 1001)).approved == "true"
        assert result.document_sync.status == "synced"
        assert upstream.body("sync_create")["package_id"] == 1001

    async def test_void_state_changes_nothing(self, pipeline, session, auth, caplog):
        await pipeline.create(auth, event_form())

        with caplog.at_level(logging.INFO, logger="cphb_events.services.events"):
            result = await pipeline.apply_callback(auth, 1001, "VOID")

        assert result.applied is False
        assert (await _stored(session, 1001)).approved == "false"
        assert "VOID" in caplog.text

    async def test_already_approved_is_not_synced_again(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form(approved="true"))
        result = await pipeline.apply_callback(auth, 1001, "COMPLETE")
        assert result.applied is False
        assert len(upstream.requests("sync_create")) == 1

    async def test_unknown_package(self, pipeline, auth):
        with pytest.raises(NotFoundError) as exc_info:
            await pipeline.apply_callback(auth, 42, "COMPLETE")
        assert exc_info.value.stage == "RecordLoaded"


class TestVoid:
    async def test_void_marks_record(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())

        view = await pipeline.void(auth, 1001, "TRANSACTION_CANCELLED")

        assert view.event.approved == "void"
        assert upstream.body("void") == {
            "id": 1001, "state": "VOID", "voidReason": "TRANSACTION_CANCELLED",
        }
        assert view.document_sync.status == "skipped"

    async def test_void_of_approved_event_removes_mirror(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form(approved="true"))
        view = await pipeline.void(auth, 1001, "DUPLICATE_TRANSACTION")
        assert view.document_sync.status == "synced"
        assert upstream.body("sync_delete") == {"package_id": 1001}

    async def test_router_refusal_leaves_record(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())
        upstream.fail("void", status=403, text="not allowed")

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.void(auth, 1001, "INCORRECT_FORM")

        assert exc_info.value.stage == "RoutingVoided"
        assert (await _stored(session, 1001)).approved == "false"


class TestDelete:
    async def test_delete_everything(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form(items=FURNITURE))

        await pipeline.delete(auth, 1001)

        assert await _stored(session, 1001) is None
        assert await LayoutRepository(session).get("1001") is None
        assert "remove" in upstream.operations
        assert upstream.body("sync_delete") == {"package_id": 1001}

    async def test_delete_twice_is_not_found(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        await pipeline.delete(auth, 1001)

        with pytest.raises(NotFoundError) as exc_info:
            await pipeline.delete(auth, 1001)

        assert exc_info.value.stage == "RecordLoaded"
        assert len(upstream.requests("remove")) == 1

    async def test_public_layout_in_slot_survives_delete(self, pipeline, session, auth):
        await pipeline.create(auth, event_form())
        await LayoutRepository(session).create(id="1001", type="public", items=[])

        await pipeline.delete(auth, 1001)

        assert (await LayoutRepository(session).get("1001")).type == "public"

    async def test_missing_mirror_item_counts_as_deleted(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        upstream.fail("sync_delete", status=404, text="no such item")
        await pipeline.delete(auth, 1001)

    async def test_router_failure_stops_delete(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())
        upstream.fail("remove", status=500)

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.delete(auth, 1001)

        assert exc_info.value.stage == "RoutingRemoved"
        assert await _stored(session, 1001) is not None

    async def test_mirror_failure_surfaces(self, pipeline, upstream, session, auth):
        await pipeline.create(auth, event_form())
        upstream.fail("sync_delete", status=500)

        with pytest.raises(UpstreamError) as exc_info:
            await pipeline.delete(auth, 1001)

        assert exc_info.value.stage == "DocumentSynced"
        assert await _stored(session, 1001) is None


class TestAuthorization:
    @pytest.fixture
    def outsider(self) -> AuthContext:
        return AuthContext(token="other-token", ip="10.0.0.9", hawk_id="someoneelse", session_id="sid-2")

    async def test_submitter_needs_no_permission_lookup(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form())
        await pipeline.void(auth, 1001, "INCORRECT_FORM")
        assert "permissions" not in upstream.operations

    async def test_submitter_matched_case_insensitively(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form(userEmail="X@UIOWA.EDU"))
        await pipeline.delete(auth, 1001)
        assert "permissions" not in upstream.operations

    async def test_outsider_cannot_edit(self, pipeline, upstream, session, auth, outsider):
        await pipeline.create(auth, event_form())
        upstream.deny(1001)

        with pytest.raises(ForbiddenError) as exc_info:
            await pipeline.update(outsider, 1001, event_form(eventName="Hijacked event"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.stage == "Authorized"
        assert (await _stored(session, 1001)).event_name == "Curing Cancer"
        assert "update" not in upstream.operations
        assert upstream.requests("permissions")[0].headers["Authorization"] == "Bearer other-token"

    async def test_outsider_cannot_void(self, pipeline, upstream, session, auth, outsider):
        await pipeline.create(auth, event_form())
        upstream.deny(1001)

        with pytest.raises(ForbiddenError):
            await pipeline.void(outsider, 1001, "TRANSACTION_DENIED")

        assert "void" not in upstream.operations
        assert (await _stored(session, 1001)).approved == "false"

    async def test_outsider_cannot_delete(self, pipeline, upstream, session, auth, outsider):
        await pipeline.create(auth, event_form())
        upstream.deny(1001)

        with pytest.raises(ForbiddenError):
            await pipeline.delete(outsider, 1001)

        assert "remove" not in upstream.operations
        assert await _stored(session, 1001) is not None

    async def test_workflow_grant_lets_approver_edit(self, pipeline, upstream, auth, outsider):
        await pipeline.create(auth, event_form())
        view = await pipeline.update(outsider, 1001, event_form(numPeople=12))
        assert view.event.num_people == 12
        assert upstream.requests("permissions")[0].url.params.get_list("id") == ["1001"]


class TestQueries:
    async def test_get_event(self, pipeline, auth):
        await pipeline.create(auth, event_form(items=FURNITURE))
        view = await pipeline.get_event(auth, 1001)
        assert view.event.event_name == "Curing Cancer"
        assert view.permissions.can_edit is True
        assert len(view.layout.items) == 2

    async def test_get_missing_event(self, pipeline, auth):
        with pytest.raises(NotFoundError):
            await pipeline.get_event(auth, 9)

    async def test_approved_filter_uses_approved_index(self, pipeline, auth, monkeypatch):
        await pipeline.create(auth, event_form())
        await pipeline.create(auth, event_form(approved="true"))

        seen = []
        original = EventRepository.query_by_index

        async def spy(self, index_name, value):
            seen.append((index_name, value))
            return await original(self, index_name, value)

        monkeypatch.setattr(EventRepository, "query_by_index", spy)

        views = await pipeline.get_events(auth, "approved", False)

        assert seen == [("EventApprovedIndex", "false")]
        assert [view.package_id for view in views] == [1001]

    @pytest.mark.parametrize(
        "field,value,index_name",
        [
            ("userEmail", "x@uiowa.edu", "EventUserIndex"),
            ("roomNumber", "XC100", "EventRoomIndex"),
            ("date", "2018-08-01", "EventDateIndex"),
        ],
    )
    async def test_filter_fields(self, pipeline, auth, field, value, index_name, monkeypatch):
        await pipeline.create(auth, event_form())
        seen = []
        original = EventRepository.query_by_index

        async def spy(self, name, val):
            seen.append(name)
            return await original(self, name, val)

        monkeypatch.setattr(EventRepository, "query_by_index", spy)

        views = await pipeline.get_events(auth, field, value)
        assert seen == [index_name]
        assert len(views) == 1

    async def test_unmapped_field(self, pipeline, auth):
        with pytest.raises(LookupError):
            await pipeline.get_events(auth, "eventName", "Curing Cancer")

    async def test_results_zip_permissions_and_layouts(self, pipeline, upstream, auth):
        await pipeline.create(auth, event_form(items=FURNITURE))
        await pipeline.create(auth, event_form())

        views = await pipeline.get_events(auth, "roomNumber", "XC100")

        assert [v.permissions.package_id for v in views] == [1001, 1002]
        assert views[0].layout.id == "1001"
        assert views[1].layout is None
        assert upstream.requests("permissions")[-1].url.params.get_list("id") == ["1001", "1002"]

    async def test_empty_result_skips_permissions(self, pipeline, upstream, auth):
        assert await pipeline.get_events(auth, "date", "2030-01-01") == []
        assert "permissions" not in upstream.operations
