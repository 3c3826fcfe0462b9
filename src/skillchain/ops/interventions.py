"""
Human-intervention operations.

The intervention queue is every Paused execution with the intervention
flag set.  A human picks one, decides, and resolves it here.
"""

from __future__ import annotations

from skillchain.core.errors import SkillChainError
from skillchain.core.logging import get_logger
from skillchain.ops.context import OperationContext
from skillchain.ops.executions import execution_detail, execution_summary
from skillchain.ops.requests import ListInterventionsRequest, ResolveInterventionRequest
from skillchain.ops.responses import ExecutionDetail, ExecutionSummary
from skillchain.ops.result import OperationResult, PagedResult, start_timer

logger = get_logger(__name__)


def list_pending_interventions(
    ctx: OperationContext, request: ListInterventionsRequest | None = None
) -> PagedResult[ExecutionSummary]:
    """Executions awaiting a human decision, oldest first."""
    request = request or ListInterventionsRequest()
    timer = start_timer()

    try:
        items = ctx.controller.list_pending_interventions(
            organization_id=request.organization_id,
            project_id=request.project_id,
            chain_id=request.chain_id,
        )
        summaries = [execution_summary(item, ctx.registry) for item in items]
        return PagedResult.from_items(
            summaries,
            total=len(summaries),
            limit=len(summaries) or 1,
            elapsed_ms=timer.elapsed_ms,
        )
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return PagedResult(
            success=False,
            error=OperationResult.fail(
                "INTERNAL", f"Failed to list pending interventions: {exc}"
            ).error,
            elapsed_ms=timer.elapsed_ms,
        )


def resolve_intervention(
    ctx: OperationContext, request: ResolveInterventionRequest
) -> OperationResult[ExecutionDetail]:
    """Apply a human decision to a paused run.

    ``retry`` and ``go_to_link`` put the run back to Running; ``complete``
    and ``fail`` finish it; ``escalate`` leaves it Paused with the
    resolution text as the new reason.
    """
    timer = start_timer()

    if not request.execution_id:
        return OperationResult.fail(
            "INVALID_ARGUMENT", "execution_id is required", elapsed_ms=timer.elapsed_ms
        )
    if not request.next_action:
        return OperationResult.fail(
            "INVALID_ARGUMENT", "next_action is required", elapsed_ms=timer.elapsed_ms
        )

    try:
        execution = ctx.controller.resolve_intervention(
            request.execution_id,
            request.resolution,
            request.next_action,
            target_link_id=request.target_link_id,
            resolved_by=ctx.actor,
        )
        return OperationResult.ok(
            execution_detail(execution, ctx.registry), elapsed_ms=timer.elapsed_ms
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail(
            "INTERNAL",
            f"Failed to resolve intervention: {exc}",
            elapsed_ms=timer.elapsed_ms,
        )
