"""Event routes — thin HTTP layer over :class:`EventPipeline`.

Bodies are taken as raw JSON and validated inside the pipeline, so a bad
form fails at the ``Validating`` stage with the same error shape as every
other stage.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from cphb_events.core.response import DataResponse, ListResponse, listed
from cphb_events.routers.deps import current_email, get_event_pipeline, require_auth
from cphb_events.schemas.event import EventView
from cphb_events.schemas.workflow import VoidRequest
from cphb_events.services.events import EventPipeline
from cphb_events.services.session_guard import AuthContext

router = APIRouter(prefix="/events", tags=["Events"])


# ------------------------------------------------------------------
# Lists (declared before /{package_id})
# ------------------------------------------------------------------

@router.get("/my", response_model=ListResponse[EventView])
async def my_events(
    email: str = Depends(current_email),
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    """Events submitted by the logged-in user."""
    return listed(await pipeline.get_events(auth, "userEmail", email))


@router.get("/unapproved", response_model=ListResponse[EventView])
async def unapproved_events(
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    return listed(await pipeline.get_events(auth, "approved", False))


@router.get("/date/{date}", response_model=ListResponse[EventView])
async def events_on_date(
    date: str,
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    return listed(await pipeline.get_events(auth, "date", date))


@router.get("/room/{room_number}", response_model=ListResponse[EventView])
async def events_in_room(
    room_number: str,
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    return listed(await pipeline.get_events(auth, "roomNumber", room_number))


# ------------------------------------------------------------------
# Single event
# ------------------------------------------------------------------

@router.post("", response_model=DataResponse[EventView], status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: Any = Body(...),
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    """Route, store, lay out and mirror a new event."""
    return {"data": await pipeline.create(auth, payload)}


@router.get("/{package_id}", response_model=DataResponse[EventView])
async def get_event(
    package_id: int,
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    return {"data": await pipeline.get_event(auth, package_id)}


@router.patch("/{package_id}", response_model=DataResponse[EventView])
async def update_event(
    package_id: int,
    payload: Any = Body(...),
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    return {"data": await pipeline.update(auth, package_id, payload)}


@router.post("/{package_id}/void", response_model=DataResponse[EventView])
async def void_event(
    package_id: int,
    body: VoidRequest,
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    """Stop routing the package and mark the event void."""
    return {"data": await pipeline.void(auth, package_id, body.reason)}


@router.delete("/{package_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event(
    package_id: int,
    auth: AuthContext = Depends(require_auth),
    pipeline: EventPipeline = Depends(get_event_pipeline),
):
    await pipeline.delete(auth, package_id)
