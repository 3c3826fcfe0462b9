"""Skill-chain domain models.

Defines the core data structures of the engine:
- Chain / Link: the workflow template and its ordered steps
- Execution: one run of a chain
- LinkExecution: one attempt of one link within a run
- Checkpoint: a resumable snapshot of a run

These are plain dataclasses handed out by the repositories and the
controller; the SQLAlchemy rows in :mod:`skillchain.core.orm.tables` never
leave a unit of work.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from skillchain.core.errors import InvalidArgumentError, InvalidStateError


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class _Unset:
    """Marks an argument that was not given where ``None`` means "clear"."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class ExecutionStatus(str, Enum):
    """Status of a chain execution.

    Valid transition graph::

        PENDING  → RUNNING | CANCELLED
        RUNNING  → PAUSED | COMPLETED | CANCELLED
        PAUSED   → RUNNING | COMPLETED | FAILED | CANCELLED
        COMPLETED → (terminal)
        FAILED    → (terminal)
        CANCELLED → (terminal)

    FAILED is only reachable through a human resolving an intervention.
    """

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset({
    ExecutionStatus.COMPLETED,
    ExecutionStatus.FAILED,
    ExecutionStatus.CANCELLED,
})

EXECUTION_VALID_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({
        ExecutionStatus.RUNNING,
        ExecutionStatus.CANCELLED,
    }),
    ExecutionStatus.RUNNING: frozenset({
        ExecutionStatus.PAUSED,
        ExecutionStatus.COMPLETED,
        ExecutionStatus.CANCELLED,
    }),
    ExecutionStatus.PAUSED: frozenset({
        ExecutionStatus.RUNNING,
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
        ExecutionStatus.CANCELLED,
    }),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
    ExecutionStatus.CANCELLED: frozenset(),
}


def validate_execution_transition(
    current: ExecutionStatus,
    target: ExecutionStatus,
) -> None:
    """Raise :class:`InvalidStateError` if *current → target* is illegal.

    Example:
        >>> validate_execution_transition(ExecutionStatus.RUNNING, ExecutionStatus.PAUSED)
        >>> validate_execution_transition(ExecutionStatus.COMPLETED, ExecutionStatus.RUNNING)
        InvalidStateError: Invalid execution transition: completed → running
    """
    allowed = EXECUTION_VALID_TRANSITIONS.get(current, frozenset())
    if target not in allowed:
        raise InvalidStateError(
            f"Invalid execution transition: {current.value} → {target.value}",
            expected=", ".join(sorted(s.value for s in EXECUTION_VALID_TRANSITIONS
                                      if target in EXECUTION_VALID_TRANSITIONS[s])) or None,
            actual=current.value,
        )


class SuccessTransition(str, Enum):
    """What a link does after a successful attempt."""

    NEXT_LINK = "next_link"
    GO_TO_LINK = "go_to_link"
    COMPLETE = "complete"


class FailureTransition(str, Enum):
    """What a link does once its retries are exhausted."""

    RETRY = "retry"
    GO_TO_LINK = "go_to_link"
    ESCALATE = "escalate"


class LinkOutcome(str, Enum):
    """Outcome of one link attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class TransitionAction(str, Enum):
    """Control-flow action chosen by the transition resolver."""

    ADVANCE = "advance"
    COMPLETE = "complete"
    RETRY = "retry"
    ESCALATE = "escalate"
    PAUSE_FOR_INTERVENTION = "pause_for_intervention"


class InterventionAction(str, Enum):
    """Next action a human picks when resolving an intervention."""

    RETRY = "retry"
    GO_TO_LINK = "go_to_link"
    COMPLETE = "complete"
    ESCALATE = "escalate"
    FAIL = "fail"


E = TypeVar("E", bound=Enum)

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def coerce_enum(enum_cls: type[E], value: E | str, field_name: str) -> E:
    """Parse *value* into *enum_cls*, accepting ``GoToLink``/``go_to_link``/``GO_TO_LINK``.

    Raises:
        InvalidArgumentError: If the value names no member.
    """
    if isinstance(value, enum_cls):
        return value
    normalized = _CAMEL_BOUNDARY.sub("_", str(value).strip()).replace("-", "_").lower()
    try:
        return enum_cls(normalized)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)  # type: ignore[attr-defined]
        raise InvalidArgumentError(
            f"Invalid {field_name} '{value}'; expected one of: {allowed}",
            field=field_name,
        ) from None


@dataclass
class Link:
    """One step in a chain.

    Jump targets are stored as plain link ids, never object references, so
    cyclic GoToLink graphs are just data.
    """

    id: str
    chain_id: str
    position: int
    name: str
    skill_id: str
    agent_id: str | None = None
    description: str | None = None
    max_retries: int = 3
    on_success_transition: SuccessTransition = SuccessTransition.NEXT_LINK
    on_success_target_link_id: str | None = None
    on_failure_transition: FailureTransition = FailureTransition.RETRY
    on_failure_target_link_id: str | None = None
    link_config: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "position": self.position,
            "name": self.name,
            "description": self.description,
            "skill_id": self.skill_id,
            "agent_id": self.agent_id,
            "max_retries": self.max_retries,
            "on_success_transition": self.on_success_transition.value,
            "on_success_target_link_id": self.on_success_target_link_id,
            "on_failure_transition": self.on_failure_transition.value,
            "on_failure_target_link_id": self.on_failure_target_link_id,
            "link_config": self.link_config,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Link:
        """Rebuild a link from :meth:`to_dict` output (e.g. a run's snapshot)."""
        return cls(
            id=data["id"],
            chain_id=data["chain_id"],
            position=data["position"],
            name=data["name"],
            description=data.get("description"),
            skill_id=data["skill_id"],
            agent_id=data.get("agent_id"),
            max_retries=data.get("max_retries", 3),
            on_success_transition=SuccessTransition(data["on_success_transition"]),
            on_success_target_link_id=data.get("on_success_target_link_id"),
            on_failure_transition=FailureTransition(data["on_failure_transition"]),
            on_failure_target_link_id=data.get("on_failure_target_link_id"),
            link_config=data.get("link_config") or {},
        )


@dataclass
class Chain:
    """A workflow template: ordered links plus a run-level failure budget.

    Scoped to exactly one of an organization or a project.
    """

    id: str
    chain_key: str
    name: str
    organization_id: str | None = None
    project_id: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    max_total_failures: int = 5
    is_published: bool = False
    links: list[Link] = field(default_factory=list)
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None

    @property
    def scope(self) -> str:
        return "organization" if self.organization_id else "project"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "chain_key": self.chain_key,
            "name": self.name,
            "description": self.description,
            "scope": self.scope,
            "organization_id": self.organization_id,
            "project_id": self.project_id,
            "input_schema": self.input_schema,
            "max_total_failures": self.max_total_failures,
            "is_published": self.is_published,
            "links": [link.to_dict() for link in self.links],
            "created_at": _iso(self.created_at),
            "created_by": self.created_by,
            "updated_at": _iso(self.updated_at),
            "updated_by": self.updated_by,
        }


@dataclass
class Execution:
    """One run of a chain.

    ``definition`` is the chain snapshot pinned when the run started; the
    resolver always reads links from it, so editing a published chain never
    changes the behaviour of a run already in flight.

    Example:
        >>> execution.status
        <ExecutionStatus.RUNNING: 'running'>
        >>> execution.current_link_id
        'b1c2...'
    """

    id: str
    chain_id: str
    status: ExecutionStatus
    current_link_id: str | None
    ticket_id: str | None = None
    input_values: dict[str, Any] = field(default_factory=dict)
    execution_context: dict[str, Any] = field(default_factory=dict)
    total_failure_count: int = 0
    requires_human_intervention: bool = False
    intervention_reason: str | None = None
    definition: dict[str, Any] = field(default_factory=dict)
    session_options: dict[str, Any] | None = None
    started_at: datetime | None = None
    started_by: str | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    updated_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "chain_id": self.chain_id,
            "chain_key": self.definition.get("chain_key"),
            "chain_name": self.definition.get("name"),
            "ticket_id": self.ticket_id,
            "status": self.status.value,
            "current_link_id": self.current_link_id,
            "input_values": self.input_values,
            "execution_context": self.execution_context,
            "total_failure_count": self.total_failure_count,
            "requires_human_intervention": self.requires_human_intervention,
            "intervention_reason": self.intervention_reason,
            "started_at": _iso(self.started_at),
            "started_by": self.started_by,
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "version": self.version,
        }


@dataclass
class LinkExecution:
    """One attempt of one link.

    Outcome and payloads are fixed at insert.  ``transition_taken`` stays
    ``None`` until ``advance_execution`` resolves the attempt.
    """

    id: str
    execution_id: str
    link_id: str
    attempt_number: int
    outcome: LinkOutcome
    input: dict[str, Any] | None = None
    output: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None
    transition_taken: TransitionAction | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    executed_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "link_id": self.link_id,
            "attempt_number": self.attempt_number,
            "outcome": self.outcome.value,
            "input": self.input,
            "output": self.output,
            "error_details": self.error_details,
            "transition_taken": self.transition_taken.value if self.transition_taken else None,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "executed_by": self.executed_by,
        }


@dataclass
class Checkpoint:
    """Append-only snapshot of a run; the highest position is the resume point."""

    id: str
    execution_id: str
    link_id: str | None
    position: int
    payload: dict[str, Any]
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "execution_id": self.execution_id,
            "link_id": self.link_id,
            "position": self.position,
            "payload": self.payload,
            "created_at": _iso(self.created_at),
        }
