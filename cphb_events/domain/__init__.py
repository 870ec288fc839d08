"""Domain package — all ORM models are imported here so Alembic autogenerate detects them.

Folder intent:
  event.py    — Event records keyed by Workflow package id
  layout.py   — Furniture layouts (private per event, or public templates)
  session.py  — Browser sessions holding user OAuth2 tokens
  mixins.py   — Shared TimestampMixin
"""

from cphb_events.domain.event import ApprovalState, EventRecord
from cphb_events.domain.layout import LayoutRecord
from cphb_events.domain.session import SessionRecord

__all__ = [
    "ApprovalState",
    "EventRecord",
    "LayoutRecord",
    "SessionRecord",
]
