"""SQLAlchemy ORM model for event records.

One row per approval package. ``package_id`` is assigned by Workflow, never by
this service. ``approved`` is stored as a string-encoded tri-state so it can
back a secondary index like any other attribute.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cphb_events.db.base import Base
from cphb_events.domain.mixins import TimestampMixin


class ApprovalState(str, enum.Enum):
    PENDING = "false"
    VOID = "void"
    APPROVED = "true"


class EventRecord(Base, TimestampMixin):
    __tablename__ = "events"

    package_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    approved: Mapped[str] = mapped_column(
        String(5), default=ApprovalState.PENDING.value, nullable=False
    )

    # Contact information
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    coph_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    # Event information
    event_name: Mapped[str] = mapped_column(String(75), nullable=False)
    comments: Mapped[str] = mapped_column(Text, default="", nullable=False)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    room_number: Mapped[str] = mapped_column(String(10), nullable=False)
    num_people: Mapped[int] = mapped_column(Integer, nullable=False)

    # Auxiliary information
    references_course: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    referenced_course: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    food_drink_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    food_provider: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    alcohol_provider: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    setup_required: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    setup_mfk: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("EventUserIndex", "user_email", "package_id"),
        Index("EventRoomIndex", "room_number", "package_id"),
        Index("EventApprovedIndex", "approved", "package_id"),
        Index("EventDateIndex", "date", "package_id"),
    )
