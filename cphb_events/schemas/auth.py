"""Session status schema."""

from __future__ import annotations

from typing import Optional

from cphb_events.schemas.common import CamelModel


class SessionStatus(CamelModel):
    logged_in: bool
    hawkid: Optional[str] = None
