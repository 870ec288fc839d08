"""SQLAlchemy ORM model for browser sessions holding user OAuth2 tokens."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cphb_events.db.base import Base
from cphb_events.domain.mixins import TimestampMixin


class SessionRecord(Base, TimestampMixin):
    __tablename__ = "sessions"

    session_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    token_expiry: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    hawk_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    university_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
