"""Event submission and response schemas.

Field-level rules live on the models. Rules that depend on a sibling field
(setup funding codes, course references) are declared in
:mod:`cphb_events.services.validation`.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field, StringConstraints, field_validator, model_validator

from cphb_events.core.config import settings
from cphb_events.core.dates import is_calendar_date, is_clock_time
from cphb_events.schemas.common import CamelModel, SyncStatus
from cphb_events.schemas.layout import ChairsPerTable, FurnitureItems, LayoutOut
from cphb_events.schemas.workflow import PackageActions

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

EventName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=5, max_length=75)]


def _check_email(value: str, *, campus: bool) -> str:
    if not _EMAIL.match(value):
        raise ValueError("must be a valid email")
    domain = settings.campus_email_domain
    if campus and not value.endswith(domain):
        raise ValueError(f"must be a {domain} address")
    return value


class SetupMFK(BaseModel):
    """University accounting string (MFK) charged for room setup."""

    FUND: str = ""
    ORG: str = ""
    DEPT: str = ""
    SUBDEPT: str = ""
    GRANT: str = ""
    INSTACCT: str = ""
    ORGACCT: str = ""
    DEPTACCT: str = ""
    FUNC: str = ""
    COSTCNTR: str = ""


class EventForm(CamelModel):
    """Every attribute of an event record except its package id."""

    approved: Literal["true", "void", "false"] = "false"

    # Contact information
    user_email: str
    contact_email: str = ""
    coph_email: str = ""

    # Event information
    event_name: EventName
    comments: str = Field(default="", max_length=3000)
    date: str
    start_time: str
    end_time: str
    room_number: str = Field(max_length=10)
    num_people: int = Field(ge=1, le=206)

    # Auxiliary information
    references_course: bool = False
    referenced_course: str = ""
    food_drink_required: bool = False
    food_provider: str = ""
    alcohol_provider: str = ""
    setup_required: bool = False
    setup_mfk: Optional[SetupMFK] = None

    @field_validator("approved", mode="before")
    @classmethod
    def _approved_as_string(cls, value: Any) -> Any:
        if isinstance(value, bool):
            return "true" if value else "false"
        return value

    @field_validator("user_email")
    @classmethod
    def _user_email(cls, value: str) -> str:
        return _check_email(value, campus=True)

    @field_validator("contact_email", "coph_email", mode="before")
    @classmethod
    def _null_email_is_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("contact_email")
    @classmethod
    def _contact_email(cls, value: str) -> str:
        return _check_email(value, campus=False) if value else value

    @field_validator("coph_email")
    @classmethod
    def _coph_email(cls, value: str) -> str:
        return _check_email(value, campus=True) if value else value

    @field_validator("date")
    @classmethod
    def _date(cls, value: str) -> str:
        if not is_calendar_date(value):
            raise ValueError("must be a YYYY-MM-DD date")
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _time(cls, value: str) -> str:
        if not is_clock_time(value):
            raise ValueError("must be a time like 8:00 AM")
        return value.strip()

    @field_validator("room_number")
    @classmethod
    def _room_number(cls, value: str) -> str:
        if not value.isalnum():
            raise ValueError("must only contain alpha-numeric characters")
        return value

    def record_fields(self) -> dict[str, Any]:
        """Attributes to persist, snake_case, funding code as a plain dict."""
        return self.model_dump(exclude={"items", "chairs_per_table"})


class EventSubmission(EventForm):
    """A form post: the event plus its (optional) furniture layout."""

    items: FurnitureItems = []
    chairs_per_table: ChairsPerTable = 6

    @model_validator(mode="before")
    @classmethod
    def _lift_nested_layout(cls, data: Any) -> Any:
        # Older clients nest the layout as {"layout": {"items": [...], "chairsPerTable": 6}}
        if isinstance(data, dict) and isinstance(data.get("layout"), dict):
            data = dict(data)
            layout = data.pop("layout")
            data.setdefault("items", layout.get("items", []))
            chairs = layout.get("chairsPerTable", layout.get("chairs_per_table"))
            if chairs is not None:
                data.setdefault("chairsPerTable", chairs)
        return data


class EventOut(CamelModel):
    package_id: int
    approved: str
    user_email: str
    contact_email: str
    coph_email: str
    event_name: str
    comments: str
    date: str
    start_time: str
    end_time: str
    room_number: str
    num_people: int
    references_course: bool
    referenced_course: str
    food_drink_required: bool
    food_provider: str
    alcohol_provider: str
    setup_required: bool
    setup_mfk: Optional[dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EventView(CamelModel):
    """An event composed with the caller's permissions and its layout."""

    package_id: int
    event: EventOut
    permissions: Optional[PackageActions] = None
    layout: Optional[LayoutOut] = None
    document_sync: Optional[SyncStatus] = None


class CallbackResult(CamelModel):
    package_id: int
    state: str
    applied: bool
    document_sync: Optional[SyncStatus] = None
