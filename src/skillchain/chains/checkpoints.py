"""Checkpoint recorder.

Appends a durable snapshot of an execution at every link boundary and
state change the controller deems resumable.  Positions run 0, 1, 2, …
per execution; the highest position is the resume point.  Checkpoints are
never updated or deleted except together with their execution.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from skillchain.chains.models import Checkpoint, new_id, utcnow
from skillchain.core.logging import get_logger
from skillchain.core.orm.tables import ChainExecutionTable, ExecutionCheckpointTable
from skillchain.core.repositories import ExecutionRepository, checkpoint_to_model

logger = get_logger(__name__)


class CheckpointReason(str, Enum):
    """Boundary that produced a checkpoint (stored in the payload)."""

    STARTED = "started"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    ESCALATED = "escalated"
    PAUSED_FOR_INTERVENTION = "paused_for_intervention"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    INTERVENTION_RESOLVED = "intervention_resolved"
    FAILED = "failed"
    REWOUND = "rewound"


def build_checkpoint_payload(
    row: ChainExecutionTable, reason: CheckpointReason
) -> dict[str, Any]:
    """Everything needed to put the execution back where it is now."""
    return {
        "current_link_id": row.current_link_id,
        "status": row.status,
        "execution_context": dict(row.execution_context or {}),
        "total_failure_count": row.total_failure_count,
        "requires_human_intervention": bool(row.requires_human_intervention),
        "intervention_reason": row.intervention_reason,
        "reason": reason.value,
    }


class CheckpointRecorder:
    """Reads and appends checkpoints through an :class:`ExecutionRepository`."""

    def __init__(self, repo: ExecutionRepository) -> None:
        self._repo = repo

    def record(
        self, row: ChainExecutionTable, reason: CheckpointReason
    ) -> ExecutionCheckpointTable:
        """Append a checkpoint built from *row*'s current state."""
        latest = self._repo.latest_checkpoint(row.id)
        position = 0 if latest is None else latest.position + 1
        checkpoint = ExecutionCheckpointTable(
            id=new_id(),
            execution_id=row.id,
            link_id=row.current_link_id,
            position=position,
            payload=build_checkpoint_payload(row, reason),
            created_at=utcnow(),
        )
        self._repo.add(checkpoint)
        logger.debug(
            "checkpoint_recorded",
            execution_id=row.id,
            position=position,
            reason=reason.value,
        )
        return checkpoint

    def latest(self, execution_id: str) -> Checkpoint | None:
        row = self._repo.latest_checkpoint(execution_id)
        return checkpoint_to_model(row) if row is not None else None

    def get(self, execution_id: str, position: int) -> Checkpoint | None:
        row = self._repo.get_checkpoint(execution_id, position)
        return checkpoint_to_model(row) if row is not None else None

    def list_checkpoints(self, execution_id: str) -> list[Checkpoint]:
        return [checkpoint_to_model(row) for row in self._repo.list_checkpoints(execution_id)]


__all__ = ["CheckpointReason", "CheckpointRecorder", "build_checkpoint_payload"]
