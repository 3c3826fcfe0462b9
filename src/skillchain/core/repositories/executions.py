"""Execution repository: executions, link attempts, checkpoints.

Tags:
    skillchain, repository, execution
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from skillchain.chains.models import (
    Checkpoint,
    Execution,
    ExecutionStatus,
    LinkExecution,
    LinkOutcome,
    TransitionAction,
)
from skillchain.core.orm.tables import (
    ChainExecutionTable,
    ChainTable,
    ExecutionCheckpointTable,
    LinkExecutionTable,
)
from ._helpers import PageSlice, _apply_filters, _count


class ExecutionRepository:
    """CRUD for executions and their append-only history."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # -- executions ------------------------------------------------------------

    def get(self, execution_id: str) -> ChainExecutionTable | None:
        """Fetch a single execution row by primary key."""
        return self.session.get(ChainExecutionTable, execution_id)

    def list_executions(
        self,
        *,
        chain_id: str | None = None,
        ticket_id: str | None = None,
        status: str | None = None,
        page: PageSlice = PageSlice(),
    ) -> tuple[list[ChainExecutionTable], int]:
        """List executions with optional filters.  Returns ``(rows, total)``."""
        stmt = _apply_filters(
            select(ChainExecutionTable),
            {
                ChainExecutionTable.chain_id: chain_id,
                ChainExecutionTable.ticket_id: ticket_id,
                ChainExecutionTable.status: status,
            },
        )
        total = _count(self.session, stmt)
        rows = self.session.scalars(
            stmt.order_by(ChainExecutionTable.started_at.desc(), ChainExecutionTable.id)
            .limit(page.limit)
            .offset(page.offset)
        )
        return list(rows), total

    def list_pending_interventions(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        chain_id: str | None = None,
    ) -> list[ChainExecutionTable]:
        """Executions flagged for human intervention, oldest first."""
        stmt = (
            select(ChainExecutionTable)
            .join(ChainTable, ChainTable.id == ChainExecutionTable.chain_id)
            .where(ChainExecutionTable.requires_human_intervention.is_(True))
        )
        stmt = _apply_filters(
            stmt,
            {
                ChainTable.organization_id: organization_id,
                ChainTable.project_id: project_id,
                ChainExecutionTable.chain_id: chain_id,
            },
        )
        return list(
            self.session.scalars(
                stmt.order_by(ChainExecutionTable.updated_at, ChainExecutionTable.id)
            )
        )

    def add(self, row: object) -> None:
        self.session.add(row)

    def delete(self, row: ChainExecutionTable) -> None:
        self.session.delete(row)

    # -- link attempts ---------------------------------------------------------

    def latest_attempt(
        self, execution_id: str, link_id: str
    ) -> LinkExecutionTable | None:
        """Highest-numbered attempt of *link_id* in this execution."""
        return self.session.scalar(
            select(LinkExecutionTable)
            .where(
                LinkExecutionTable.execution_id == execution_id,
                LinkExecutionTable.link_id == link_id,
            )
            .order_by(LinkExecutionTable.attempt_number.desc())
            .limit(1)
        )

    def list_link_executions(
        self, execution_id: str, *, link_id: str | None = None
    ) -> list[LinkExecutionTable]:
        """Attempt history in recording order."""
        stmt = _apply_filters(
            select(LinkExecutionTable).where(
                LinkExecutionTable.execution_id == execution_id
            ),
            {LinkExecutionTable.link_id: link_id},
        )
        return list(
            self.session.scalars(
                stmt.order_by(
                    LinkExecutionTable.completed_at,
                    LinkExecutionTable.link_id,
                    LinkExecutionTable.attempt_number,
                )
            )
        )

    # -- checkpoints -----------------------------------------------------------

    def latest_checkpoint(self, execution_id: str) -> ExecutionCheckpointTable | None:
        return self.session.scalar(
            select(ExecutionCheckpointTable)
            .where(ExecutionCheckpointTable.execution_id == execution_id)
            .order_by(ExecutionCheckpointTable.position.desc())
            .limit(1)
        )

    def get_checkpoint(
        self, execution_id: str, position: int
    ) -> ExecutionCheckpointTable | None:
        return self.session.scalar(
            select(ExecutionCheckpointTable).where(
                ExecutionCheckpointTable.execution_id == execution_id,
                ExecutionCheckpointTable.position == position,
            )
        )

    def list_checkpoints(self, execution_id: str) -> list[ExecutionCheckpointTable]:
        return list(
            self.session.scalars(
                select(ExecutionCheckpointTable)
                .where(ExecutionCheckpointTable.execution_id == execution_id)
                .order_by(ExecutionCheckpointTable.position)
            )
        )


def execution_to_model(row: ChainExecutionTable) -> Execution:
    """Convert an execution row into the domain dataclass."""
    return Execution(
        id=row.id,
        chain_id=row.chain_id,
        ticket_id=row.ticket_id,
        status=ExecutionStatus(row.status),
        current_link_id=row.current_link_id,
        input_values=dict(row.input_values or {}),
        execution_context=dict(row.execution_context or {}),
        total_failure_count=row.total_failure_count,
        requires_human_intervention=row.requires_human_intervention,
        intervention_reason=row.intervention_reason,
        definition=dict(row.definition or {}),
        session_options=row.session_options,
        started_at=row.started_at,
        started_by=row.started_by,
        completed_at=row.completed_at,
        completed_by=row.completed_by,
        updated_at=row.updated_at,
        version=row.version,
    )


def link_execution_to_model(row: LinkExecutionTable) -> LinkExecution:
    """Convert an attempt row into the domain dataclass."""
    return LinkExecution(
        id=row.id,
        execution_id=row.execution_id,
        link_id=row.link_id,
        attempt_number=row.attempt_number,
        outcome=LinkOutcome(row.outcome),
        input=row.input,
        output=row.output,
        error_details=row.error_details,
        transition_taken=TransitionAction(row.transition_taken) if row.transition_taken else None,
        started_at=row.started_at,
        completed_at=row.completed_at,
        executed_by=row.executed_by,
    )


def checkpoint_to_model(row: ExecutionCheckpointTable) -> Checkpoint:
    return Checkpoint(
        id=row.id,
        execution_id=row.execution_id,
        link_id=row.link_id,
        position=row.position,
        payload=dict(row.payload or {}),
        created_at=row.created_at,
    )
