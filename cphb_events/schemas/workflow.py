"""Workflow (approval routing) payloads."""

from __future__ import annotations

from typing import Any, Literal, Optional

from cphb_events.schemas.common import CamelModel

VoidReason = Literal[
    "DUPLICATE_TRANSACTION",
    "INCORRECT_FORM",
    "TRANSACTION_CANCELLED",
    "TRANSACTION_DENIED",
]


class PackageActions(CamelModel):
    """What the requesting user may do with a package."""

    can_view: bool = False
    can_edit: bool = False
    can_sign: bool = False
    can_void: bool = False
    can_initiator_void: bool = False
    can_add_approver: bool = False
    can_void_after: bool = False
    package_id: Optional[int] = None
    signature_id: Optional[int] = None


class ApprovalPackage(CamelModel):
    id: int
    # ROUTING | COMPLETE | VOID | PRE_ROUTING
    state: str
    actions: Optional[PackageActions] = None


class ApprovalCallback(CamelModel):
    """Body Workflow posts when a package changes state."""

    package_id: int
    state: str
    form_id: Optional[int] = None
    lock_id: Optional[int] = None
    entry: Optional[dict[str, Any]] = None


class VoidRequest(CamelModel):
    reason: VoidReason
