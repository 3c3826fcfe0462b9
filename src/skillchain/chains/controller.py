"""Execution controller: the run lifecycle.

Orchestrates start, record-outcome, advance, pause, resume, cancel and
intervention handling by reading and writing the execution store and
asking the transition resolver what to do.

Every public method is one unit of work::

    load → validate → mutate → commit

All validation happens before the first mutation, so a rejected call
leaves no trace.  The execution row carries a version counter; two
callers racing on the same run cannot both commit, and the loser gets a
retryable :class:`~skillchain.core.errors.ConflictError`.

Architecture:

    .. code-block:: text

        caller ── start_execution ──────────────► Running @ link 1, checkpoint 0
           │
           ├── record_link_outcome(link, outcome) ─► new LinkExecution (unresolved)
           │
           └── advance_execution ─► resolve_transition(...)
                                      │
                    ┌─────────────────┼───────────────────┬──────────────┐
                 ADVANCE           RETRY              COMPLETE     ESCALATE / PAUSE
              move link +       same link,          Completed,      Paused + flag +
              checkpoint        no status change    checkpoint      reason + checkpoint

Example:
    >>> controller = ExecutionController(session_factory)
    >>> run = controller.start_execution(chain.id, started_by="agent-7")
    >>> controller.record_link_outcome(run.id, run.current_link_id, "success")
    >>> controller.advance_execution(run.id).status
    <ExecutionStatus.RUNNING: 'running'>
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from skillchain.chains.checkpoints import CheckpointReason, CheckpointRecorder
from skillchain.chains.graph import ChainGraph
from skillchain.chains.models import (
    Checkpoint,
    Execution,
    ExecutionStatus,
    InterventionAction,
    LinkExecution,
    LinkOutcome,
    TERMINAL_STATUSES,
    TransitionAction,
    coerce_enum,
    new_id,
    utcnow,
    validate_execution_transition,
)
from skillchain.chains.registry import SkillRegistry, StaticSkillRegistry
from skillchain.chains.resolver import TransitionDecision, resolve_transition
from skillchain.chains.session_state import (
    InMemorySessionStateStore,
    SessionEvent,
    SessionStateNotifier,
    SessionStateOptions,
    SessionStateSink,
)
from skillchain.core.config import SkillChainSettings, get_settings
from skillchain.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from skillchain.core.logging import get_logger
from skillchain.core.orm.session import UnitOfWork
from skillchain.core.orm.tables import ChainExecutionTable, LinkExecutionTable
from skillchain.core.repositories import (
    ChainRepository,
    ExecutionRepository,
    PageSlice,
    chain_to_model,
    execution_to_model,
    link_execution_to_model,
)

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"
HUMAN_ACTOR = "human"


class ExecutionController:
    """Lifecycle operations for chain executions.

    Args:
        session_factory: Produces sessions bound to the shared store
        settings: Engine settings (defaults to :func:`get_settings`)
        session_state: Optional side-channel sink; when omitted and
            ``session_state_enabled`` is set, an in-memory store is used
        registry: Resolves skill/agent ids to display names
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        settings: SkillChainSettings | None = None,
        session_state: SessionStateSink | None = None,
        registry: SkillRegistry | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        if session_state is None and self._settings.session_state_enabled:
            session_state = InMemorySessionStateStore()
        self._notifier = SessionStateNotifier(
            session_state, SessionStateOptions.from_settings(self._settings)
        )
        self.registry: SkillRegistry = registry or StaticSkillRegistry()

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory)

    # ------------------------------------------------------------------ #
    # Start / record / advance
    # ------------------------------------------------------------------ #

    def start_execution(
        self,
        chain_id: str,
        *,
        ticket_id: str | None = None,
        input_values: dict[str, Any] | None = None,
        started_by: str | None = None,
        session_options: SessionStateOptions | None = None,
    ) -> Execution:
        """Create a Running execution positioned at the chain's first link.

        The chain's current definition is pinned on the execution; later
        edits to the chain do not affect this run.

        Raises:
            NotFoundError: Unknown chain.
            InvalidStateError: Chain unpublished or without links.
        """
        options = session_options or self._notifier.options_for_new_run()
        seed_context = self._notifier.load_for_start(options, options.session_id)

        with self._uow() as uow:
            chain_row = ChainRepository(uow.session).get(chain_id)
            if chain_row is None:
                raise NotFoundError(f"Chain '{chain_id}' not found").with_context(
                    chain_id=chain_id
                )
            if not chain_row.is_published:
                raise InvalidStateError(
                    f"Chain '{chain_row.chain_key}' is not published",
                    expected="published",
                    actual="unpublished",
                ).with_context(chain_id=chain_id)

            graph = ChainGraph.from_chain(chain_to_model(chain_row))
            first = graph.first
            if first is None:
                raise InvalidStateError(
                    f"Chain '{chain_row.chain_key}' has no links",
                    expected="at least one link",
                    actual="0 links",
                ).with_context(chain_id=chain_id)

            validate_execution_transition(ExecutionStatus.PENDING, ExecutionStatus.RUNNING)
            now = utcnow()
            row = ChainExecutionTable(
                id=new_id(),
                chain_id=chain_id,
                ticket_id=ticket_id,
                status=ExecutionStatus.RUNNING.value,
                current_link_id=first.id,
                input_values=dict(input_values or {}),
                execution_context=seed_context,
                total_failure_count=0,
                requires_human_intervention=False,
                intervention_reason=None,
                definition=graph.to_snapshot(),
                session_options=session_options.to_dict() if session_options else None,
                started_at=now,
                started_by=started_by,
                updated_at=now,
            )
            repo = ExecutionRepository(uow.session)
            repo.add(row)
            repo.session.flush()
            CheckpointRecorder(repo).record(row, CheckpointReason.STARTED)
            execution = execution_to_model(row)

        logger.info(
            "execution_started",
            execution_id=execution.id,
            chain_id=chain_id,
            chain_key=graph.chain_key,
            link_id=first.id,
            started_by=started_by,
        )
        return execution

    def record_link_outcome(
        self,
        execution_id: str,
        link_id: str,
        outcome: LinkOutcome | str,
        *,
        output: dict[str, Any] | None = None,
        error_details: dict[str, Any] | None = None,
        executed_by: str | None = None,
        input: dict[str, Any] | None = None,
        context_updates: dict[str, Any] | None = None,
        started_at: datetime | None = None,
    ) -> LinkExecution:
        """Append an attempt for the current link.  Does not transition.

        Raises:
            NotFoundError: Unknown execution.
            InvalidStateError: Run not Running, *link_id* is not the current
                link, or the previous attempt has not been advanced yet.
            InvalidArgumentError: Outcome is Pending or unknown.
        """
        outcome = coerce_enum(LinkOutcome, outcome, "outcome")
        if outcome == LinkOutcome.PENDING:
            raise InvalidArgumentError(
                "Recorded outcome must be success, failure or skipped", field="outcome"
            )

        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(row, ExecutionStatus.RUNNING, action="record an outcome for")
            if row.current_link_id != link_id:
                raise InvalidStateError(
                    "Outcome reported for a link that is not the current link",
                    expected=f"link {row.current_link_id}",
                    actual=f"link {link_id}",
                ).with_context(execution_id=execution_id, link_id=link_id)

            previous = repo.latest_attempt(execution_id, link_id)
            if previous is not None and previous.transition_taken is None:
                raise InvalidStateError(
                    f"Attempt {previous.attempt_number} of this link has not been "
                    "advanced yet; call advance_execution first",
                    expected="resolved attempt",
                    actual="unresolved attempt",
                ).with_context(execution_id=execution_id, link_id=link_id)

            now = utcnow()
            attempt = LinkExecutionTable(
                id=new_id(),
                execution_id=execution_id,
                link_id=link_id,
                attempt_number=previous.attempt_number + 1 if previous else 1,
                outcome=outcome.value,
                input=input,
                output=output,
                error_details=error_details,
                transition_taken=None,
                started_at=started_at or now,
                completed_at=now,
                executed_by=executed_by,
            )
            repo.add(attempt)
            if context_updates:
                row.execution_context = {**(row.execution_context or {}), **context_updates}
            row.updated_at = now
            repo.session.flush()

            result = link_execution_to_model(attempt)
            execution = execution_to_model(row)
            link_name = self._graph(row).get(link_id).name
            uow.after_commit(
                lambda: self._notifier.notify(
                    SessionEvent.LINK_COMPLETED,
                    execution,
                    summary=f"Link '{link_name}' attempt {result.attempt_number}: {outcome.value}",
                )
            )

        logger.info(
            "link_outcome_recorded",
            execution_id=execution_id,
            link_id=link_id,
            attempt=result.attempt_number,
            outcome=outcome.value,
        )
        return result

    def advance_execution(self, execution_id: str) -> Execution:
        """Resolve the current link's latest attempt and apply the decision.

        Raises:
            NotFoundError: Unknown execution.
            InvalidStateError: Run not Running, or no attempt of the current
                link is awaiting resolution.
        """
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(row, ExecutionStatus.RUNNING, action="advance")

            attempt = (
                repo.latest_attempt(execution_id, row.current_link_id)
                if row.current_link_id
                else None
            )
            if attempt is None or attempt.transition_taken is not None:
                raise InvalidStateError(
                    "No attempt of the current link is awaiting resolution",
                    expected="unresolved attempt",
                    actual="none",
                ).with_context(execution_id=execution_id, link_id=row.current_link_id)

            graph = self._graph(row)
            link = graph.get(attempt.link_id)
            decision = resolve_transition(
                graph,
                link,
                LinkOutcome(attempt.outcome),
                attempt.attempt_number,
                row.total_failure_count,
            )

            attempt_number = attempt.attempt_number
            attempt.transition_taken = decision.action.value
            event = self._apply_decision(repo, row, decision)
            row.updated_at = utcnow()
            repo.session.flush()
            execution = execution_to_model(row)
            if event is not None:
                uow.after_commit(
                    lambda: self._notifier.notify(event, execution, summary=decision.reason or "")
                )

        logger.info(
            "execution_advanced",
            execution_id=execution_id,
            link_id=link.id,
            attempt=attempt_number,
            action=decision.action.value,
            target_link_id=decision.target_link_id,
            total_failure_count=decision.total_failure_count,
        )
        return execution

    def _apply_decision(
        self,
        repo: ExecutionRepository,
        row: ChainExecutionTable,
        decision: TransitionDecision,
    ) -> SessionEvent | None:
        recorder = CheckpointRecorder(repo)
        row.total_failure_count = decision.total_failure_count

        if decision.action == TransitionAction.ADVANCE:
            row.current_link_id = decision.target_link_id
            recorder.record(row, CheckpointReason.ADVANCED)
            return None

        if decision.action == TransitionAction.RETRY:
            return None

        if decision.action == TransitionAction.COMPLETE:
            self._set_status(row, ExecutionStatus.COMPLETED)
            self._finish(row, SYSTEM_ACTOR)
            row.intervention_reason = None
            recorder.record(row, CheckpointReason.COMPLETED)
            return SessionEvent.COMPLETED

        # ESCALATE / PAUSE_FOR_INTERVENTION
        self._set_status(row, ExecutionStatus.PAUSED)
        row.requires_human_intervention = True
        row.intervention_reason = decision.reason
        recorder.record(
            row,
            CheckpointReason.ESCALATED
            if decision.action == TransitionAction.ESCALATE
            else CheckpointReason.PAUSED_FOR_INTERVENTION,
        )
        logger.warning(
            "execution_needs_intervention",
            execution_id=row.id,
            reason=decision.reason,
            total_failure_count=row.total_failure_count,
        )
        return SessionEvent.PAUSED

    # ------------------------------------------------------------------ #
    # Pause / resume / cancel
    # ------------------------------------------------------------------ #

    def pause_execution(
        self, execution_id: str, reason: str, *, actor: str | None = None
    ) -> Execution:
        """Manually pause a Running execution (no intervention flag)."""
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(row, ExecutionStatus.RUNNING, action="pause")

            self._set_status(row, ExecutionStatus.PAUSED)
            row.intervention_reason = reason
            row.updated_at = utcnow()
            CheckpointRecorder(repo).record(row, CheckpointReason.PAUSED)
            repo.session.flush()
            execution = execution_to_model(row)
            uow.after_commit(
                lambda: self._notifier.notify(SessionEvent.PAUSED, execution, summary=reason)
            )

        logger.info("execution_paused", execution_id=execution_id, reason=reason, actor=actor)
        return execution

    def resume_execution(
        self,
        execution_id: str,
        additional_context: dict[str, Any] | None = None,
        *,
        actor: str | None = None,
    ) -> Execution:
        """Resume a Paused execution at the same link.

        ``additional_context`` is merged into the execution context; keys
        given by the caller replace existing keys.  The failure count is
        left as it is.
        """
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(row, ExecutionStatus.PAUSED, action="resume")

            if additional_context:
                row.execution_context = {**(row.execution_context or {}), **additional_context}
            self._set_status(row, ExecutionStatus.RUNNING)
            row.requires_human_intervention = False
            row.intervention_reason = None
            row.updated_at = utcnow()
            repo.session.flush()
            execution = execution_to_model(row)

        logger.info(
            "execution_resumed",
            execution_id=execution_id,
            link_id=execution.current_link_id,
            actor=actor,
        )
        return execution

    def cancel_execution(
        self, execution_id: str, reason: str, *, actor: str | None = None
    ) -> Execution:
        """Cancel from any non-terminal status.  Terminal."""
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(
                row,
                ExecutionStatus.PENDING,
                ExecutionStatus.RUNNING,
                ExecutionStatus.PAUSED,
                action="cancel",
            )

            self._set_status(row, ExecutionStatus.CANCELLED)
            self._finish(row, actor or HUMAN_ACTOR)
            row.intervention_reason = reason
            row.updated_at = utcnow()
            CheckpointRecorder(repo).record(row, CheckpointReason.CANCELLED)
            repo.session.flush()
            execution = execution_to_model(row)
            uow.after_commit(
                lambda: self._notifier.notify(SessionEvent.CANCELLED, execution, summary=reason)
            )

        logger.info("execution_cancelled", execution_id=execution_id, reason=reason, actor=actor)
        return execution

    # ------------------------------------------------------------------ #
    # Human intervention
    # ------------------------------------------------------------------ #

    def list_pending_interventions(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        chain_id: str | None = None,
    ) -> list[Execution]:
        """Executions waiting for a human decision (always Paused)."""
        with self._uow() as uow:
            rows = ExecutionRepository(uow.session).list_pending_interventions(
                organization_id=organization_id,
                project_id=project_id,
                chain_id=chain_id,
            )
            return [execution_to_model(row) for row in rows]

    def resolve_intervention(
        self,
        execution_id: str,
        resolution: str,
        next_action: InterventionAction | str,
        *,
        target_link_id: str | None = None,
        resolved_by: str | None = None,
    ) -> Execution:
        """Apply a human decision to a run awaiting intervention.

        * ``retry``      → Running at the same link
        * ``go_to_link`` → Running at *target_link_id*
        * ``complete``   → Completed
        * ``escalate``   → stays Paused, reason becomes *resolution*
        * ``fail``       → Failed

        Raises:
            InvalidStateError: The run is not awaiting intervention.
            InvalidArgumentError: Missing or foreign *target_link_id*.
        """
        action = coerce_enum(InterventionAction, next_action, "next_action")

        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            if not row.requires_human_intervention:
                raise InvalidStateError(
                    "Execution is not awaiting human intervention",
                    expected="paused with intervention",
                    actual=row.status,
                ).with_context(execution_id=execution_id)

            graph = self._graph(row)
            if action == InterventionAction.GO_TO_LINK:
                if not target_link_id:
                    raise InvalidArgumentError(
                        "go_to_link requires target_link_id", field="target_link_id"
                    )
                if target_link_id not in graph:
                    raise InvalidArgumentError(
                        f"Target link '{target_link_id}' does not belong to this chain",
                        field="target_link_id",
                    ).with_context(execution_id=execution_id, link_id=target_link_id)

            recorder = CheckpointRecorder(repo)
            event: SessionEvent | None = None
            if action in (InterventionAction.RETRY, InterventionAction.GO_TO_LINK):
                if action == InterventionAction.GO_TO_LINK:
                    row.current_link_id = target_link_id
                self._set_status(row, ExecutionStatus.RUNNING)
                row.requires_human_intervention = False
                row.intervention_reason = None
                if action == InterventionAction.GO_TO_LINK:
                    recorder.record(row, CheckpointReason.INTERVENTION_RESOLVED)
            elif action == InterventionAction.COMPLETE:
                self._set_status(row, ExecutionStatus.COMPLETED)
                self._finish(row, resolved_by or HUMAN_ACTOR)
                row.intervention_reason = None
                recorder.record(row, CheckpointReason.COMPLETED)
                event = SessionEvent.COMPLETED
            elif action == InterventionAction.FAIL:
                self._set_status(row, ExecutionStatus.FAILED)
                self._finish(row, resolved_by or HUMAN_ACTOR)
                row.intervention_reason = resolution
                recorder.record(row, CheckpointReason.FAILED)
            else:
                row.intervention_reason = resolution

            row.updated_at = utcnow()
            repo.session.flush()
            execution = execution_to_model(row)
            if event is not None:
                uow.after_commit(
                    lambda: self._notifier.notify(event, execution, summary=resolution)
                )

        logger.info(
            "intervention_resolved",
            execution_id=execution_id,
            action=action.value,
            target_link_id=target_link_id,
            resolved_by=resolved_by,
            status=execution.status.value,
        )
        return execution

    # ------------------------------------------------------------------ #
    # Checkpoints
    # ------------------------------------------------------------------ #

    def get_resume_point(self, execution_id: str) -> Checkpoint | None:
        """The latest checkpoint of the execution."""
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            self._load(repo, execution_id)
            return CheckpointRecorder(repo).latest(execution_id)

    def list_checkpoints(self, execution_id: str) -> list[Checkpoint]:
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            self._load(repo, execution_id)
            return CheckpointRecorder(repo).list_checkpoints(execution_id)

    def rewind_to_checkpoint(
        self, execution_id: str, position: int, *, actor: str | None = None
    ) -> Execution:
        """Put a manually paused run back to an earlier checkpoint.

        Restores the current link and the execution context; the failure
        count is kept.  The run stays Paused and a new checkpoint records
        the rewind.

        Raises:
            InvalidStateError: Run not Paused, awaiting intervention, or
                its current link has an attempt that was never advanced.
            NotFoundError: No checkpoint at *position*.
            InvalidArgumentError: The checkpoint has no current link.
        """
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            self._require_status(row, ExecutionStatus.PAUSED, action="rewind")
            if row.requires_human_intervention:
                raise InvalidStateError(
                    "Resolve the pending intervention before rewinding",
                    expected="paused without intervention",
                    actual="paused with intervention",
                ).with_context(execution_id=execution_id)

            pending = repo.latest_attempt(execution_id, row.current_link_id)
            if pending is not None and pending.transition_taken is None:
                raise InvalidStateError(
                    "The current link has an attempt that was never advanced",
                    expected="resolved attempt",
                    actual="unresolved attempt",
                ).with_context(execution_id=execution_id, link_id=row.current_link_id)

            checkpoint = repo.get_checkpoint(execution_id, position)
            if checkpoint is None:
                raise NotFoundError(
                    f"Checkpoint {position} not found"
                ).with_context(execution_id=execution_id)
            target_link_id = checkpoint.payload.get("current_link_id")
            if not target_link_id:
                raise InvalidArgumentError(
                    f"Checkpoint {position} has no current link to rewind to",
                    field="position",
                )

            row.current_link_id = target_link_id
            row.execution_context = dict(checkpoint.payload.get("execution_context") or {})
            row.updated_at = utcnow()
            CheckpointRecorder(repo).record(row, CheckpointReason.REWOUND)
            repo.session.flush()
            execution = execution_to_model(row)

        logger.info(
            "execution_rewound",
            execution_id=execution_id,
            position=position,
            link_id=target_link_id,
            actor=actor,
        )
        return execution

    # ------------------------------------------------------------------ #
    # Reads / housekeeping
    # ------------------------------------------------------------------ #

    def get_execution(self, execution_id: str) -> Execution:
        with self._uow() as uow:
            return execution_to_model(self._load(ExecutionRepository(uow.session), execution_id))

    def list_executions(
        self,
        *,
        chain_id: str | None = None,
        ticket_id: str | None = None,
        status: ExecutionStatus | str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Execution], int]:
        """Filtered, paginated executions, newest first.  Returns ``(items, total)``."""
        if status is not None:
            status = coerce_enum(ExecutionStatus, status, "status")
        with self._uow() as uow:
            rows, total = ExecutionRepository(uow.session).list_executions(
                chain_id=chain_id,
                ticket_id=ticket_id,
                status=status.value if status is not None else None,
                page=PageSlice(limit=limit, offset=offset),
            )
            return [execution_to_model(row) for row in rows], total

    def list_link_executions(
        self, execution_id: str, *, link_id: str | None = None
    ) -> list[LinkExecution]:
        """Attempt history of an execution, optionally for one link."""
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            self._load(repo, execution_id)
            return [
                link_execution_to_model(row)
                for row in repo.list_link_executions(execution_id, link_id=link_id)
            ]

    def delete_execution(self, execution_id: str) -> None:
        """Delete a finished execution with its attempts and checkpoints."""
        with self._uow() as uow:
            repo = ExecutionRepository(uow.session)
            row = self._load(repo, execution_id)
            if ExecutionStatus(row.status) not in TERMINAL_STATUSES:
                raise InvalidStateError(
                    "Only completed, failed or cancelled executions can be deleted",
                    expected="terminal",
                    actual=row.status,
                ).with_context(execution_id=execution_id)
            repo.delete(row)

        logger.info("execution_deleted", execution_id=execution_id)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _load(repo: ExecutionRepository, execution_id: str) -> ChainExecutionTable:
        row = repo.get(execution_id)
        if row is None:
            raise NotFoundError(f"Execution '{execution_id}' not found").with_context(
                execution_id=execution_id
            )
        return row

    @staticmethod
    def _require_status(
        row: ChainExecutionTable, *allowed: ExecutionStatus, action: str
    ) -> None:
        if ExecutionStatus(row.status) not in allowed:
            expected = " or ".join(status.value for status in allowed)
            raise InvalidStateError(
                f"Can only {action} a {expected} execution",
                expected=expected,
                actual=row.status,
            ).with_context(execution_id=row.id)

    @staticmethod
    def _set_status(row: ChainExecutionTable, target: ExecutionStatus) -> None:
        validate_execution_transition(ExecutionStatus(row.status), target)
        row.status = target.value

    @staticmethod
    def _finish(row: ChainExecutionTable, actor: str) -> None:
        row.current_link_id = None
        row.requires_human_intervention = False
        row.completed_at = utcnow()
        row.completed_by = actor

    @staticmethod
    def _graph(row: ChainExecutionTable) -> ChainGraph:
        return ChainGraph.from_snapshot(row.definition)


__all__ = ["ExecutionController", "SYSTEM_ACTOR", "HUMAN_ACTOR"]
