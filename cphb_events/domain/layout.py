"""SQLAlchemy ORM model for furniture layouts."""

from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cphb_events.db.base import Base


class LayoutRecord(Base):
    __tablename__ = "layouts"

    # str(package_id) for private layouts, a human-chosen name for public ones
    id: Mapped[str] = mapped_column(String(100), primary_key=True)
    # "public" | "private"
    type: Mapped[str] = mapped_column(String(10), default="private", nullable=False)
    package_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    chairs_per_table: Mapped[int] = mapped_column(Integer, default=6, nullable=False)
    items: Mapped[List[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        Index("LayoutUserIndex", "user_email", "id"),
        Index("LayoutTypeIndex", "type", "id"),
    )
