"""
Execution lifecycle operations.

Start, report, advance, pause, resume, cancel, inspect and rewind chain
executions.  Wraps :class:`~skillchain.chains.controller.ExecutionController`
with typed request/response contracts.
"""

from __future__ import annotations

from collections.abc import Callable

from skillchain.chains.graph import ChainGraph
from skillchain.chains.models import Checkpoint, Execution, Link, LinkExecution
from skillchain.chains.registry import SkillRegistry
from skillchain.chains.session_state import SessionStateOptions
from skillchain.core.errors import SkillChainError
from skillchain.core.logging import get_logger
from skillchain.ops.context import OperationContext
from skillchain.ops.requests import (
    CancelExecutionRequest,
    ExecutionRequest,
    ListExecutionsRequest,
    PauseExecutionRequest,
    RecordLinkOutcomeRequest,
    ResumeExecutionRequest,
    RewindExecutionRequest,
    StartExecutionRequest,
)
from skillchain.ops.responses import (
    CheckpointView,
    ExecutionDetail,
    ExecutionSummary,
    LinkAttempt,
)
from skillchain.ops.result import OperationResult, PagedResult, start_timer

logger = get_logger(__name__)


def start_execution(
    ctx: OperationContext, request: StartExecutionRequest
) -> OperationResult[ExecutionDetail]:
    """Start a run of a published chain at its first link."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        options = SessionStateOptions.from_dict(request.session_options)
        execution = ctx.controller.start_execution(
            request.chain_id,
            ticket_id=request.ticket_id,
            input_values=dict(request.input_values),
            started_by=ctx.actor,
            session_options=options,
        )
        return OperationResult.ok(
            execution_detail(execution, ctx.registry), elapsed_ms=timer.elapsed_ms
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("start execution", exc, timer.elapsed_ms)


def record_link_outcome(
    ctx: OperationContext, request: RecordLinkOutcomeRequest
) -> OperationResult[LinkAttempt]:
    """Record the result of one attempt of the current link."""
    timer = start_timer()

    if not request.execution_id or not request.link_id:
        return _missing("execution_id and link_id", timer.elapsed_ms)
    if not request.outcome:
        return _missing("outcome", timer.elapsed_ms)

    try:
        attempt = ctx.controller.record_link_outcome(
            request.execution_id,
            request.link_id,
            request.outcome,
            output=request.output,
            error_details=request.error_details,
            executed_by=ctx.actor,
            input=request.input,
            context_updates=request.context_updates,
        )
        execution = ctx.controller.get_execution(request.execution_id)
        return OperationResult.ok(
            link_attempt(attempt, ChainGraph.from_snapshot(execution.definition)),
            elapsed_ms=timer.elapsed_ms,
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("record link outcome", exc, timer.elapsed_ms)


def advance_execution(
    ctx: OperationContext, request: ExecutionRequest
) -> OperationResult[ExecutionDetail]:
    """Resolve the latest attempt of the current link and move the run on."""
    return _lifecycle(
        ctx, request.execution_id, "advance execution", ctx.controller.advance_execution
    )


def pause_execution(
    ctx: OperationContext, request: PauseExecutionRequest
) -> OperationResult[ExecutionDetail]:
    timer = start_timer()

    if not request.reason:
        return _missing("reason", timer.elapsed_ms)

    return _lifecycle(
        ctx,
        request.execution_id,
        "pause execution",
        lambda execution_id: ctx.controller.pause_execution(
            execution_id, request.reason, actor=ctx.actor
        ),
    )


def resume_execution(
    ctx: OperationContext, request: ResumeExecutionRequest
) -> OperationResult[ExecutionDetail]:
    return _lifecycle(
        ctx,
        request.execution_id,
        "resume execution",
        lambda execution_id: ctx.controller.resume_execution(
            execution_id, request.additional_context, actor=ctx.actor
        ),
    )


def cancel_execution(
    ctx: OperationContext, request: CancelExecutionRequest
) -> OperationResult[ExecutionDetail]:
    """Cancel a run that has not finished.  Irreversible."""
    timer = start_timer()

    if not request.reason:
        return _missing("reason", timer.elapsed_ms)

    if ctx.dry_run:
        return _preview(ctx, request.execution_id, timer.elapsed_ms)

    return _lifecycle(
        ctx,
        request.execution_id,
        "cancel execution",
        lambda execution_id: ctx.controller.cancel_execution(
            execution_id, request.reason, actor=ctx.actor
        ),
    )


def rewind_execution(
    ctx: OperationContext, request: RewindExecutionRequest
) -> OperationResult[ExecutionDetail]:
    """Move a paused run back to the link saved in an earlier checkpoint."""
    timer = start_timer()

    if request.position < 0:
        return OperationResult.fail(
            "INVALID_ARGUMENT",
            "position must be >= 0",
            elapsed_ms=timer.elapsed_ms,
        )

    if ctx.dry_run:
        return _preview(ctx, request.execution_id, timer.elapsed_ms)

    return _lifecycle(
        ctx,
        request.execution_id,
        "rewind execution",
        lambda execution_id: ctx.controller.rewind_to_checkpoint(
            execution_id, request.position, actor=ctx.actor
        ),
    )


def get_execution(
    ctx: OperationContext, request: ExecutionRequest
) -> OperationResult[ExecutionDetail]:
    return _lifecycle(ctx, request.execution_id, "get execution", ctx.controller.get_execution)


def list_executions(
    ctx: OperationContext, request: ListExecutionsRequest | None = None
) -> PagedResult[ExecutionSummary]:
    """List executions with optional filters and pagination, newest first."""
    request = request or ListExecutionsRequest()
    timer = start_timer()

    try:
        items, total = ctx.controller.list_executions(
            chain_id=request.chain_id,
            ticket_id=request.ticket_id,
            status=request.status,
            limit=request.limit,
            offset=request.offset,
        )
        return PagedResult.from_items(
            [execution_summary(item, ctx.registry) for item in items],
            total=total,
            limit=request.limit,
            offset=request.offset,
            elapsed_ms=timer.elapsed_ms,
        )
    except SkillChainError as exc:
        failed = OperationResult.from_error(exc)
        return PagedResult(success=False, error=failed.error, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return PagedResult(
            success=False,
            error=OperationResult.fail("INTERNAL", f"Failed to list executions: {exc}").error,
            elapsed_ms=timer.elapsed_ms,
        )


def list_link_executions(
    ctx: OperationContext, request: ExecutionRequest
) -> OperationResult[list[LinkAttempt]]:
    """Attempt history of an execution, oldest first."""
    timer = start_timer()

    if not request.execution_id:
        return _missing("execution_id", timer.elapsed_ms)

    try:
        execution = ctx.controller.get_execution(request.execution_id)
        graph = ChainGraph.from_snapshot(execution.definition)
        attempts = ctx.controller.list_link_executions(request.execution_id)
        return OperationResult.ok(
            [link_attempt(attempt, graph) for attempt in attempts],
            elapsed_ms=timer.elapsed_ms,
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("list link executions", exc, timer.elapsed_ms)


def list_checkpoints(
    ctx: OperationContext, request: ExecutionRequest
) -> OperationResult[list[CheckpointView]]:
    timer = start_timer()

    if not request.execution_id:
        return _missing("execution_id", timer.elapsed_ms)

    try:
        checkpoints = ctx.controller.list_checkpoints(request.execution_id)
        return OperationResult.ok(
            [checkpoint_view(cp) for cp in checkpoints], elapsed_ms=timer.elapsed_ms
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("list checkpoints", exc, timer.elapsed_ms)


def get_resume_point(
    ctx: OperationContext, request: ExecutionRequest
) -> OperationResult[CheckpointView | None]:
    """The latest checkpoint of the execution, ``None`` if it has none."""
    timer = start_timer()

    if not request.execution_id:
        return _missing("execution_id", timer.elapsed_ms)

    try:
        checkpoint = ctx.controller.get_resume_point(request.execution_id)
        view = checkpoint_view(checkpoint) if checkpoint is not None else None
        return OperationResult.ok(view, elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("get resume point", exc, timer.elapsed_ms)


def delete_execution(ctx: OperationContext, request: ExecutionRequest) -> OperationResult[None]:
    """Delete a finished execution with its history."""
    timer = start_timer()

    if not request.execution_id:
        return _missing("execution_id", timer.elapsed_ms)

    try:
        ctx.controller.delete_execution(request.execution_id)
        return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("delete execution", exc, timer.elapsed_ms)


# ------------------------------------------------------------------ #
# Converters
# ------------------------------------------------------------------ #


def _current_link(execution: Execution) -> Link | None:
    if not execution.current_link_id or not execution.definition:
        return None
    graph = ChainGraph.from_snapshot(execution.definition)
    if execution.current_link_id not in graph:
        return None
    return graph.get(execution.current_link_id)


def execution_summary(execution: Execution, registry: SkillRegistry) -> ExecutionSummary:
    link = _current_link(execution)
    data = execution.to_dict()
    return ExecutionSummary(
        id=execution.id,
        chain_id=execution.chain_id,
        chain_key=data["chain_key"],
        status=execution.status.value,
        current_link_id=execution.current_link_id,
        current_link_name=link.name if link else None,
        current_skill_name=registry.skill_name(link.skill_id) if link else None,
        ticket_id=execution.ticket_id,
        total_failure_count=execution.total_failure_count,
        requires_human_intervention=execution.requires_human_intervention,
        intervention_reason=execution.intervention_reason,
        started_at=data["started_at"],
    )


def execution_detail(execution: Execution, registry: SkillRegistry) -> ExecutionDetail:
    link = _current_link(execution)
    data = execution.to_dict()
    return ExecutionDetail(
        id=execution.id,
        chain_id=execution.chain_id,
        chain_key=data["chain_key"],
        chain_name=data["chain_name"],
        status=execution.status.value,
        current_link_id=execution.current_link_id,
        current_link_name=link.name if link else None,
        current_skill_name=registry.skill_name(link.skill_id) if link else None,
        ticket_id=execution.ticket_id,
        input_values=execution.input_values,
        execution_context=execution.execution_context,
        total_failure_count=execution.total_failure_count,
        max_total_failures=execution.definition.get("max_total_failures"),
        requires_human_intervention=execution.requires_human_intervention,
        intervention_reason=execution.intervention_reason,
        started_at=data["started_at"],
        started_by=execution.started_by,
        completed_at=data["completed_at"],
        completed_by=execution.completed_by,
        version=execution.version,
    )


def link_attempt(attempt: LinkExecution, graph: ChainGraph) -> LinkAttempt:
    data = attempt.to_dict()
    return LinkAttempt(
        id=attempt.id,
        execution_id=attempt.execution_id,
        link_id=attempt.link_id,
        link_name=graph.get(attempt.link_id).name if attempt.link_id in graph else None,
        attempt_number=attempt.attempt_number,
        outcome=attempt.outcome.value,
        transition_taken=data["transition_taken"],
        output=attempt.output,
        error_details=attempt.error_details,
        executed_by=attempt.executed_by,
        completed_at=data["completed_at"],
    )


def checkpoint_view(checkpoint: Checkpoint) -> CheckpointView:
    payload = checkpoint.payload
    return CheckpointView(
        position=checkpoint.position,
        link_id=checkpoint.link_id,
        status=payload.get("status"),
        reason=payload.get("reason"),
        total_failure_count=payload.get("total_failure_count", 0),
        created_at=checkpoint.to_dict()["created_at"],
        payload=payload,
    )


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _lifecycle(
    ctx: OperationContext,
    execution_id: str,
    action: str,
    call: Callable[[str], Execution],
) -> OperationResult[ExecutionDetail]:
    timer = start_timer()

    if not execution_id:
        return _missing("execution_id", timer.elapsed_ms)

    try:
        execution = call(execution_id)
        return OperationResult.ok(
            execution_detail(execution, ctx.registry), elapsed_ms=timer.elapsed_ms
        )
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal(action, exc, timer.elapsed_ms)


def _preview(
    ctx: OperationContext, execution_id: str, elapsed_ms: float
) -> OperationResult[ExecutionDetail]:
    result = get_execution(ctx, ExecutionRequest(execution_id=execution_id))
    if result.success:
        result.metadata["dry_run"] = True
    result.elapsed_ms = elapsed_ms
    return result


def _missing(field_name: str, elapsed_ms: float) -> OperationResult:
    return OperationResult.fail(
        "INVALID_ARGUMENT", f"{field_name} is required", elapsed_ms=elapsed_ms
    )


def _internal(action: str, exc: Exception, elapsed_ms: float) -> OperationResult:
    logger.exception("op_failed", error=str(exc))
    return OperationResult.fail("INTERNAL", f"Failed to {action}: {exc}", elapsed_ms=elapsed_ms)
