"""Layout routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from cphb_events.core.response import DataResponse, ListResponse, listed
from cphb_events.routers.deps import current_email, get_layout_service, require_auth
from cphb_events.schemas.layout import LayoutCreate, LayoutOut
from cphb_events.services.layouts import LayoutService

router = APIRouter(
    prefix="/layouts", tags=["Layouts"], dependencies=[Depends(require_auth)]
)


@router.get("/filter/my", response_model=ListResponse[LayoutOut])
async def my_layouts(
    email: str = Depends(current_email),
    service: LayoutService = Depends(get_layout_service),
):
    layouts = await service.get_layouts("userEmail", email)
    return listed([LayoutOut.model_validate(layout) for layout in layouts])


@router.get("/filter/public", response_model=ListResponse[LayoutOut])
async def public_layouts(service: LayoutService = Depends(get_layout_service)):
    """Template layouts anyone can start from."""
    layouts = await service.get_layouts("type", "public")
    return listed([LayoutOut.model_validate(layout) for layout in layouts])


@router.post("", response_model=DataResponse[LayoutOut], status_code=status.HTTP_201_CREATED)
async def create_public_layout(
    body: LayoutCreate,
    email: str = Depends(current_email),
    service: LayoutService = Depends(get_layout_service),
):
    layout = await service.create_public(body, email)
    return {"data": LayoutOut.model_validate(layout)}


@router.get("/{layout_id}", response_model=DataResponse[LayoutOut])
async def get_layout(layout_id: str, service: LayoutService = Depends(get_layout_service)):
    return {"data": LayoutOut.model_validate(await service.get_layout(layout_id))}


@router.delete("/{layout_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_layout(layout_id: str, service: LayoutService = Depends(get_layout_service)):
    await service.delete(layout_id)
