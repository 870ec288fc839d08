"""Furniture layout schemas."""

from __future__ import annotations

from typing import Annotated, Literal, Optional

from pydantic import AfterValidator, AliasChoices, Field, field_validator

from cphb_events.schemas.common import CamelModel

CANVAS_SIZE = 3000

FurnitureKind = Literal["chair", "circle", "cocktail", "rect", "display", "trash"]


class FurnitureItem(CamelModel):
    id: str = Field(min_length=1)
    # "furn" is what older clients send
    furniture_kind: FurnitureKind = Field(
        validation_alias=AliasChoices("furnitureKind", "furniture_kind", "furn"),
    )
    x: float = Field(ge=0, le=CANVAS_SIZE)
    y: float = Field(ge=0, le=CANVAS_SIZE)

    @field_validator("id")
    @classmethod
    def _alphanumeric(cls, value: str) -> str:
        if not value.isalnum():
            raise ValueError("must only contain alpha-numeric characters")
        return value


def _unique_ids(items: list[FurnitureItem]) -> list[FurnitureItem]:
    seen: set[str] = set()
    for item in items:
        if item.id in seen:
            raise ValueError(f"duplicate furniture id {item.id!r}")
        seen.add(item.id)
    return items


FurnitureItems = Annotated[list[FurnitureItem], AfterValidator(_unique_ids)]
ChairsPerTable = Literal[6, 8]


class LayoutCreate(CamelModel):
    """Public layout submitted directly to /layouts."""

    id: str = Field(min_length=1, max_length=100)
    items: FurnitureItems
    chairs_per_table: ChairsPerTable = 6

    @field_validator("id")
    @classmethod
    def _not_a_package_id(cls, value: str) -> str:
        # Event layouts are keyed by their numeric package id
        if value.strip().isdigit():
            raise ValueError("must not be a number")
        return value


class LayoutOut(CamelModel):
    id: str
    type: Literal["public", "private"]
    package_id: Optional[int] = None
    user_email: Optional[str] = None
    chairs_per_table: int = 6
    items: list[FurnitureItem] = []
