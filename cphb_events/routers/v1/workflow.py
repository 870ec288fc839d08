"""Workflow-facing routes: state-change callbacks and inbox links.

Workflow calls these directly, so neither goes through the session guard.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from pydantic import ValidationError as PydanticValidationError

from cphb_events.core.config import settings
from cphb_events.core.exceptions import ValidationError
from cphb_events.core.response import DataResponse
from cphb_events.routers.deps import client_ip, get_event_pipeline
from cphb_events.schemas.event import CallbackResult
from cphb_events.schemas.workflow import ApprovalCallback
from cphb_events.services.events import EventPipeline
from cphb_events.services.session_guard import AuthContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflow", tags=["Workflow"])


async def _callback_payload(request: Request) -> dict:
    # GET callbacks carry the package in the query string
    if request.method == "GET" or not await request.body():
        return dict(request.query_params)
    try:
        payload = await request.json()
    except ValueError as exc:
        raise ValidationError(
            "Invalid callback", [{"field": "body", "message": "must be JSON"}]
        ) from exc
    return payload if isinstance(payload, dict) else {}


@router.api_route(
    "/callback",
    methods=["GET", "POST", "PUT", "PATCH"],
    response_model=DataResponse[CallbackResult],
)
async def workflow_callback(
    request: Request,
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    """Apply a package state change reported by Workflow."""
    payload = await _callback_payload(request)
    try:
        callback = ApprovalCallback.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        raise ValidationError("Invalid callback", errors) from exc

    logger.info("Workflow callback: package %s is %s", callback.package_id, callback.state)
    auth = AuthContext(token=None, ip=client_ip(request), bypassed=True)
    result = await pipeline.apply_callback(auth, callback.package_id, callback.state)
    return {"data": result}


@router.get("/inbox")
async def workflow_inbox(
    package_id: str = Query(alias="packageId"),
    signature_id: str | None = Query(default=None, alias="signatureId"),
):
    """Send an approver from their Workflow inbox to the event page."""
    url = f"{settings.event_link_prefix}/{quote(package_id)}"
    if signature_id:
        url = f"{url}/{quote(signature_id)}"
    return RedirectResponse(url)
