"""Event pipelines — create, edit, approve, void, delete and query events.

Each write verb is a fixed list of stages (see :mod:`.pipeline`). The four
systems touched (Workflow, the record store, the layout store and the
document list) are written in a defined order with no rollback: a failure
stops the run and the error names the stage that failed, while everything
before it stays done.

Document sync is best-effort in every verb except delete: its failure is
reported in ``documentSync`` and the request still succeeds.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from cphb_events.core.config import Settings, settings as default_settings
from cphb_events.core.exceptions import (
    AppException,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OrphanedApprovalPackageError,
    UpstreamError,
    ValidationError,
)
from cphb_events.domain.event import ApprovalState, EventRecord
from cphb_events.domain.layout import LayoutRecord
from cphb_events.repositories.event import EventRepository
from cphb_events.repositories.layout import LayoutRepository
from cphb_events.schemas.common import SyncStatus
from cphb_events.schemas.event import CallbackResult, EventOut, EventView
from cphb_events.schemas.layout import LayoutOut
from cphb_events.schemas.workflow import PackageActions, VoidReason
from cphb_events.services.document_sync import DocumentSyncClient
from cphb_events.services.pipeline import (
    CONTINUE,
    Abort,
    PipelineContext,
    Stage,
    StageResult,
    run_pipeline,
)
from cphb_events.services.session_guard import AuthContext
from cphb_events.services.validation import (
    as_flag,
    entry_changed,
    private_layout,
    validate_event,
    workflow_entry,
)
from cphb_events.services.workflow import WorkflowClient

logger = logging.getLogger(__name__)

# Query field -> record store index
EVENT_FILTER_INDEXES = {
    "userEmail": "EventUserIndex",
    "roomNumber": "EventRoomIndex",
    "approved": "EventApprovedIndex",
    "date": "EventDateIndex",
}

SKIPPED = SyncStatus(status="skipped", message="Event is not approved")


def owned_by(layout: LayoutRecord | None, package_id: int) -> bool:
    """Whether ``layout`` is the private layout stored for ``package_id``."""
    return (
        layout is not None
        and layout.type == "private"
        and layout.package_id == package_id
    )


def build_view(
    record: EventRecord,
    permissions: PackageActions | None = None,
    layout: LayoutRecord | None = None,
    document_sync: SyncStatus | None = None,
) -> EventView:
    return EventView(
        package_id=record.package_id,
        event=EventOut.model_validate(record),
        permissions=permissions,
        layout=LayoutOut.model_validate(layout) if layout is not None else None,
        document_sync=document_sync,
    )


class EventPipeline:
    def __init__(
        self,
        session: AsyncSession,
        workflow: WorkflowClient,
        document_sync: DocumentSyncClient,
        config: Settings | None = None,
    ):
        self._events = EventRepository(session)
        self._layouts = LayoutRepository(session)
        self._workflow = workflow
        self._sync = document_sync
        self._settings = config or default_settings

    # ------------------------------------------------------------------
    # Shared stages
    # ------------------------------------------------------------------

    def _owner_email(self, ctx: PipelineContext) -> str:
        if ctx.auth.hawk_id:
            return self._settings.campus_email(ctx.auth.hawk_id)
        return ctx.form.user_email

    async def _best_effort(self, operation: str, call) -> SyncStatus:
        try:
            return await call
        except AppException as exc:
            logger.warning("Document sync %s failed, continuing: %s", operation, exc.message)
            return SyncStatus(status="failed", message=exc.message)

    async def _record_loaded(self, ctx: PipelineContext) -> StageResult:
        record = await self._events.get(ctx.package_id)
        if record is None:
            return Abort(NotFoundError("Event", ctx.package_id))
        ctx.record = record
        ctx.previous_entry = workflow_entry(record)
        ctx.previous_approved = record.approved
        return CONTINUE

    def _is_submitter(self, ctx: PipelineContext) -> bool:
        if not ctx.auth.hawk_id:
            return False
        email = self._settings.campus_email(ctx.auth.hawk_id)
        return ctx.record.user_email.lower() == email.lower()

    def _authorized(self, *actions: str):
        """Stage letting the submitter through, or anyone Workflow grants one of ``actions``."""

        async def stage(ctx: PipelineContext) -> StageResult:
            if self._is_submitter(ctx):
                return CONTINUE
            permissions = await self._workflow.get_permissions(
                ctx.auth.token, ctx.auth.ip, [ctx.package_id]
            )
            granted = permissions.get(ctx.package_id)
            if granted is not None and any(getattr(granted, action) for action in actions):
                return CONTINUE
            logger.warning(
                "hawkid=%s refused on package %s (needs %s)",
                ctx.auth.hawk_id, ctx.package_id, " or ".join(actions),
            )
            return Abort(ForbiddenError())

        return stage

    async def _event_layout(self, ctx: PipelineContext) -> LayoutRecord | None:
        existing = await self._layouts.get(str(ctx.package_id))
        if existing is not None and not owned_by(existing, ctx.package_id):
            raise ConflictError(f"Layout '{existing.id}' is a public layout")
        return existing

    async def _validating(self, ctx: PipelineContext) -> StageResult:
        ctx.form = validate_event(ctx.payload)
        return CONTINUE

    async def _layout_validated(self, ctx: PipelineContext) -> StageResult:
        if not ctx.form.items:
            ctx.layout = None
            return CONTINUE
        fields = private_layout(ctx.package_id, ctx.form, self._owner_email(ctx))
        # Re-check the stored shape; items were already validated with the form
        LayoutOut.model_validate(fields)
        ctx.layout = fields
        return CONTINUE

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def _routing_created(self, ctx: PipelineContext) -> StageResult:
        package = await self._workflow.create_package(
            ctx.auth.token, ctx.auth.ip, workflow_entry(ctx.form)
        )
        ctx.package_id = package.id
        ctx.permissions = package.actions
        return CONTINUE

    async def _record_created(self, ctx: PipelineContext) -> StageResult:
        try:
            ctx.record = await self._events.create(
                package_id=ctx.package_id, **ctx.form.record_fields()
            )
        except UpstreamError as exc:
            return Abort(OrphanedApprovalPackageError(ctx.package_id, exc.message))
        return CONTINUE

    async def _layout_created(self, ctx: PipelineContext) -> StageResult:
        if ctx.layout is None:
            return CONTINUE
        try:
            await self._event_layout(ctx)
            ctx.layout = await self._layouts.create(**ctx.layout)
        except (ConflictError, UpstreamError) as exc:
            exc.details["packageId"] = ctx.package_id
            return Abort(exc)
        return CONTINUE

    async def _synced_if_approved(self, ctx: PipelineContext) -> StageResult:
        if ctx.record.approved == ApprovalState.APPROVED.value:
            ctx.document_sync = await self._best_effort("create", self._sync.create(ctx.record))
        else:
            ctx.document_sync = SKIPPED
        return CONTINUE

    async def create(self, auth: AuthContext, payload: Any) -> EventView:
        ctx = PipelineContext(auth=auth, payload=payload)
        await run_pipeline(
            "create",
            [
                Stage("Validating", self._validating),
                Stage("RoutingCreated", self._routing_created),
                Stage("RecordStored", self._record_created),
                Stage("LayoutValidated", self._layout_validated),
                Stage("LayoutStored", self._layout_created),
                Stage("DocumentSynced", self._synced_if_approved),
            ],
            ctx,
        )
        return build_view(ctx.record, ctx.permissions, ctx.layout, ctx.document_sync)

    # ------------------------------------------------------------------
    # Update (user edit)
    # ------------------------------------------------------------------

    async def _validating_edit(self, ctx: PipelineContext) -> StageResult:
        form = validate_event(ctx.payload)
        # Only a Workflow callback or a void moves the approval state
        if "approved" in form.model_fields_set and form.approved != ctx.previous_approved:
            return Abort(ValidationError(
                "Invalid event",
                [{"field": "approved", "message": "can only change through approval routing"}],
            ))
        form.approved = ctx.previous_approved
        ctx.form = form
        return CONTINUE

    async def _routing_updated(self, ctx: PipelineContext) -> StageResult:
        entry = workflow_entry(ctx.form)
        if not entry_changed(ctx.previous_entry, entry):
            logger.debug("Package %s entry unchanged; Workflow not updated", ctx.package_id)
            return CONTINUE
        await self._workflow.update_package_entry(
            ctx.auth.token, ctx.auth.ip, ctx.package_id, entry
        )
        return CONTINUE

    async def _record_updated(self, ctx: PipelineContext) -> StageResult:
        record = await self._events.update(ctx.package_id, **ctx.form.record_fields())
        if record is None:
            return Abort(NotFoundError("Event", ctx.package_id))
        ctx.record = record
        return CONTINUE

    async def _permissions_fetched(self, ctx: PipelineContext) -> StageResult:
        permissions = await self._workflow.get_permissions(
            ctx.auth.token, ctx.auth.ip, [ctx.package_id]
        )
        ctx.permissions = permissions.get(ctx.package_id)
        return CONTINUE

    async def _layout_replaced(self, ctx: PipelineContext) -> StageResult:
        layout_id = str(ctx.package_id)
        existing = await self._event_layout(ctx)
        if ctx.layout is None:
            if existing is not None:
                await self._layouts.delete(layout_id)
            return CONTINUE
        if existing is None:
            ctx.layout = await self._layouts.create(**ctx.layout)
        else:
            ctx.layout = await self._layouts.update(layout_id, **ctx.layout)
        return CONTINUE

    async def _synced_if_listed(self, ctx: PipelineContext) -> StageResult:
        # Approved events are on the list; pending ones are added by the callback
        if ctx.record.approved == ApprovalState.APPROVED.value:
            ctx.document_sync = await self._best_effort("update", self._sync.update(ctx.record))
        else:
            ctx.document_sync = SKIPPED
        return CONTINUE

    async def update(self, auth: AuthContext, package_id: int, payload: Any) -> EventView:
        ctx = PipelineContext(auth=auth, payload=payload, package_id=package_id)
        await run_pipeline(
            "update",
            [
                Stage("RecordLoaded", self._record_loaded),
                Stage("Authorized", self._authorized("can_edit")),
                Stage("Validating", self._validating_edit),
                Stage("RoutingUpdated", self._routing_updated),
                Stage("RecordStored", self._record_updated),
                Stage("PermissionsFetched", self._permissions_fetched),
                Stage("LayoutValidated", self._layout_validated),
                Stage("LayoutStored", self._layout_replaced),
                Stage("DocumentSynced", self._synced_if_listed),
            ],
            ctx,
        )
        return build_view(ctx.record, ctx.permissions, ctx.layout, ctx.document_sync)

    # ------------------------------------------------------------------
    # Update (Workflow callback)
    # ------------------------------------------------------------------

    async def _approval_applied(self, ctx: PipelineContext) -> StageResult:
        if ctx.state != "COMPLETE":
            logger.info(
                "Callback for package %s in state %s: nothing to apply", ctx.package_id, ctx.state
            )
            return CONTINUE
        if ctx.previous_approved == ApprovalState.APPROVED.value:
            logger.info("Package %s already approved", ctx.package_id)
            return CONTINUE
        record = await self._events.update(ctx.package_id, approved=ApprovalState.APPROVED.value)
        if record is None:
            return Abort(NotFoundError("Event", ctx.package_id))
        ctx.record = record
        ctx.approved_now = True
        logger.info("Package %s approved", ctx.package_id)
        return CONTINUE

    async def _synced_on_approval(self, ctx: PipelineContext) -> StageResult:
        if ctx.approved_now:
            ctx.document_sync = await self._best_effort("create", self._sync.create(ctx.record))
        else:
            ctx.document_sync = SyncStatus(status="skipped", message="Approval unchanged")
        return CONTINUE

    async def apply_callback(self, auth: AuthContext, package_id: int, state: str) -> CallbackResult:
        ctx = PipelineContext(auth=auth, package_id=package_id, state=state)
        await run_pipeline(
            "callback",
            [
                Stage("RecordLoaded", self._record_loaded),
                Stage("ApprovalApplied", self._approval_applied),
                Stage("DocumentSynced", self._synced_on_approval),
            ],
            ctx,
        )
        return CallbackResult(
            package_id=package_id,
            state=state,
            applied=ctx.approved_now,
            document_sync=ctx.document_sync,
        )

    # ------------------------------------------------------------------
    # Void
    # ------------------------------------------------------------------

    async def _routing_voided(self, ctx: PipelineContext) -> StageResult:
        await self._workflow.void_package(ctx.auth.token, ctx.auth.ip, ctx.package_id, ctx.reason)
        return CONTINUE

    async def _record_voided(self, ctx: PipelineContext) -> StageResult:
        record = await self._events.update(ctx.package_id, approved=ApprovalState.VOID.value)
        if record is None:
            return Abort(NotFoundError("Event", ctx.package_id))
        ctx.record = record
        return CONTINUE

    async def _unsynced_if_was_approved(self, ctx: PipelineContext) -> StageResult:
        if ctx.previous_approved == ApprovalState.APPROVED.value:
            ctx.document_sync = await self._best_effort("delete", self._sync.delete(ctx.package_id))
        else:
            ctx.document_sync = SyncStatus(status="skipped", message="Event was not approved")
        return CONTINUE

    async def void(self, auth: AuthContext, package_id: int, reason: VoidReason) -> EventView:
        ctx = PipelineContext(auth=auth, package_id=package_id, reason=reason)
        await run_pipeline(
            "void",
            [
                Stage("RecordLoaded", self._record_loaded),
                Stage("Authorized", self._authorized("can_void", "can_initiator_void")),
                Stage("RoutingVoided", self._routing_voided),
                Stage("RecordStored", self._record_voided),
                Stage("DocumentSynced", self._unsynced_if_was_approved),
            ],
            ctx,
        )
        return build_view(ctx.record, document_sync=ctx.document_sync)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def _routing_removed(self, ctx: PipelineContext) -> StageResult:
        await self._workflow.remove_package(ctx.auth.token, ctx.auth.ip, ctx.package_id)
        return CONTINUE

    async def _record_deleted(self, ctx: PipelineContext) -> StageResult:
        if not await self._events.delete(ctx.package_id):
            return Abort(NotFoundError("Event", ctx.package_id))
        return CONTINUE

    async def _layout_deleted(self, ctx: PipelineContext) -> StageResult:
        layout = await self._layouts.get(str(ctx.package_id))
        if not owned_by(layout, ctx.package_id):
            logger.debug("Package %s had no layout", ctx.package_id)
            return CONTINUE
        await self._layouts.delete(layout.id)
        return CONTINUE

    async def _unsynced(self, ctx: PipelineContext) -> StageResult:
        ctx.document_sync = await self._sync.delete(ctx.package_id)
        return CONTINUE

    async def delete(self, auth: AuthContext, package_id: int) -> None:
        ctx = PipelineContext(auth=auth, package_id=package_id)
        await run_pipeline(
            "delete",
            [
                Stage("RecordLoaded", self._record_loaded),
                Stage("Authorized", self._authorized("can_edit")),
                Stage("RoutingRemoved", self._routing_removed),
                Stage("RecordDeleted", self._record_deleted),
                Stage("LayoutDeleted", self._layout_deleted),
                Stage("DocumentSynced", self._unsynced),
            ],
            ctx,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_event(self, auth: AuthContext, package_id: int) -> EventView:
        record = await self._events.get(package_id)
        if record is None:
            raise NotFoundError("Event", package_id)
        permissions = await self._workflow.get_permissions(auth.token, auth.ip, [package_id])
        layout = await self._layouts.get(str(package_id))
        if not owned_by(layout, package_id):
            layout = None
        return build_view(record, permissions.get(package_id), layout)

    async def get_events(self, auth: AuthContext, field: str, value: Any) -> list[EventView]:
        """All events whose ``field`` equals ``value``, with permissions and layouts."""
        try:
            index_name = EVENT_FILTER_INDEXES[field]
        except KeyError:
            raise LookupError(f"No event index for filter field {field!r}") from None

        records = await self._events.query_by_index(index_name, as_flag(value))
        package_ids = [record.package_id for record in records]
        permissions = await self._workflow.get_permissions(auth.token, auth.ip, package_ids)
        layouts = {
            layout.id: layout
            for layout in await self._layouts.get_many([str(pid) for pid in package_ids])
            if owned_by(layout, layout.package_id)
        }
        return [
            build_view(record, permissions.get(record.package_id), layouts.get(str(record.package_id)))
            for record in records
        ]
