"""Ordered stage runner shared by the event pipelines.

A pipeline is a list of named async stages over one mutable context. Each
stage returns :data:`CONTINUE` or an :class:`Abort`; an
:class:`~cphb_events.core.exceptions.AppException` raised inside a stage is
treated as an abort of that stage. Nothing already done is undone: the
error is tagged with the stage name and raised to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from cphb_events.core.exceptions import AppException
from cphb_events.schemas.common import SyncStatus
from cphb_events.services.session_guard import AuthContext

logger = logging.getLogger(__name__)


class _Continue:
    def __repr__(self) -> str:
        return "CONTINUE"


CONTINUE = _Continue()


@dataclass
class Abort:
    error: AppException


StageResult = Union[_Continue, Abort]


@dataclass
class PipelineContext:
    """Everything a pipeline run reads and accumulates."""

    auth: AuthContext
    payload: Any = None
    package_id: Optional[int] = None
    form: Any = None
    record: Any = None
    previous_entry: Optional[dict[str, Any]] = None
    previous_approved: Optional[str] = None
    layout: Any = None
    permissions: Any = None
    document_sync: Optional[SyncStatus] = None
    state: Optional[str] = None
    reason: Optional[str] = None
    approved_now: bool = False
    completed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Stage:
    name: str
    run: Callable[[PipelineContext], Awaitable[StageResult]]


async def run_pipeline(name: str, stages: list[Stage], ctx: PipelineContext) -> PipelineContext:
    for stage in stages:
        try:
            result = await stage.run(ctx)
        except AppException as exc:
            result = Abort(exc)

        if isinstance(result, Abort):
            error = result.error
            error.stage = stage.name
            logger.warning(
                "%s pipeline aborted at %s (package %s): %s",
                name, stage.name, ctx.package_id, error.message,
            )
            raise error

        ctx.completed.append(stage.name)
        logger.debug("%s pipeline: %s done (package %s)", name, stage.name, ctx.package_id)

    logger.info("%s pipeline finished for package %s", name, ctx.package_id)
    return ctx
