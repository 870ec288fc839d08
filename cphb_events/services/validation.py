"""Event form validation and the projections derived from a valid form.

Validation happens in two passes. The pydantic models in
:mod:`cphb_events.schemas.event` check each field on its own; the
:data:`CONDITIONAL_RULES` below check fields whose requirements depend on
another field (funding codes only when setup is requested, a course name
only when a course is referenced). Both passes report ``{field, message}``
pairs and no external call is made before they succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from cphb_events.core.exceptions import ValidationError
from cphb_events.schemas.event import EventSubmission

logger = logging.getLogger(__name__)

# Funding-code parts and their exact lengths
MFK_REQUIRED = {"FUND": 3, "ORG": 2, "DEPT": 4, "FUNC": 2}
MFK_OPTIONAL = {
    "SUBDEPT": 5,
    "GRANT": 8,
    "INSTACCT": 4,
    "ORGACCT": 3,
    "DEPTACCT": 5,
    "COSTCNTR": 4,
}

MIN_COURSE_LENGTH = 5

# Fields mirrored into the approval package entry
WORKFLOW_FIELDS = (
    "approved",
    "date",
    "setup_required",
    "user_email",
    "contact_email",
    "room_number",
)


@dataclass(frozen=True)
class ConditionalRule:
    """``check`` runs only when ``applies``; it returns an error message or None."""

    field: str
    applies: Callable[[EventSubmission], bool]
    check: Callable[[EventSubmission], Optional[str]]


def _mfk_part(form: EventSubmission, part: str) -> str:
    return getattr(form.setup_mfk, part, "") if form.setup_mfk else ""


def _required_length(part: str, length: int) -> Callable[[EventSubmission], Optional[str]]:
    def check(form: EventSubmission) -> Optional[str]:
        value = _mfk_part(form, part)
        if not value:
            return "is required when setup is requested"
        if len(value) != length:
            return f"must be exactly {length} characters"
        return None

    return check


def _optional_length(part: str, length: int) -> Callable[[EventSubmission], Optional[str]]:
    def check(form: EventSubmission) -> Optional[str]:
        value = _mfk_part(form, part)
        if value and len(value) != length:
            return f"must be exactly {length} characters"
        return None

    return check


def _course_named(form: EventSubmission) -> Optional[str]:
    if len(form.referenced_course.strip()) < MIN_COURSE_LENGTH:
        return f"must be at least {MIN_COURSE_LENGTH} characters when a course is referenced"
    return None


def _setup_requested(form: EventSubmission) -> bool:
    return form.setup_required


CONDITIONAL_RULES: list[ConditionalRule] = [
    *(
        ConditionalRule(f"setupMfk.{part}", _setup_requested, _required_length(part, length))
        for part, length in MFK_REQUIRED.items()
    ),
    *(
        ConditionalRule(f"setupMfk.{part}", _setup_requested, _optional_length(part, length))
        for part, length in MFK_OPTIONAL.items()
    ),
    ConditionalRule("referencedCourse", lambda form: form.references_course, _course_named),
]


def _field_name(loc: tuple) -> str:
    parts = [str(p) for p in loc if p not in ("body",)]
    return ".".join(parts) or "body"


def _message(error: dict[str, Any]) -> str:
    msg = error["msg"]
    return msg.removeprefix("Value error, ")


def check_rules(
    form: EventSubmission, rules: list[ConditionalRule] | None = None
) -> list[dict[str, str]]:
    errors = []
    for rule in CONDITIONAL_RULES if rules is None else rules:
        if not rule.applies(form):
            continue
        message = rule.check(form)
        if message:
            errors.append({"field": rule.field, "message": message})
    return errors


def validate_event(payload: Any) -> EventSubmission:
    """Validate a raw form post; raise :class:`ValidationError` listing every problem."""
    if not isinstance(payload, dict):
        raise ValidationError(
            "Invalid event", [{"field": "body", "message": "must be a JSON object"}]
        )
    try:
        form = EventSubmission.model_validate(payload)
    except PydanticValidationError as exc:
        errors = [
            {"field": _field_name(err["loc"]), "message": _message(err)}
            for err in exc.errors()
        ]
        logger.debug("Event rejected with %d field error(s)", len(errors))
        raise ValidationError("Invalid event", errors) from exc

    errors = check_rules(form)
    if errors:
        logger.debug("Event rejected by %d conditional rule(s)", len(errors))
        raise ValidationError("Invalid event", errors)
    return form


def as_flag(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def workflow_entry(form: Any) -> dict[str, Any]:
    """Project the fields the approval package carries; booleans as "true"/"false"."""
    return {name: as_flag(getattr(form, name)) for name in WORKFLOW_FIELDS}


def entry_changed(old: dict[str, Any], new: dict[str, Any]) -> bool:
    return any(old.get(name) != new.get(name) for name in WORKFLOW_FIELDS)


def private_layout(
    package_id: int,
    form: EventSubmission,
    owner_email: str,
) -> dict[str, Any]:
    """Column values for the layout stored alongside an event."""
    return {
        "id": str(package_id),
        "type": "private",
        "package_id": package_id,
        "user_email": owner_email,
        "chairs_per_table": form.chairs_per_table,
        "items": [item.model_dump(by_alias=True) for item in form.items],
    }
