"""
Typed response objects for operations.

Each dataclass represents the *output* of a single operation beyond the
generic :class:`OperationResult` envelope.  Responses carry only domain
data, flattened for display and JSON, with skill/agent display names
resolved through the registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# ------------------------------------------------------------------ #
# Database responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class DatabaseInitResult:
    """Result payload for :func:`skillchain.ops.database.initialize_database`."""

    tables_created: list[str]
    dry_run: bool = False


# ------------------------------------------------------------------ #
# Chain responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class LinkView:
    id: str
    position: int
    name: str
    skill_id: str
    skill_name: str | None
    agent_id: str | None
    agent_name: str | None
    max_retries: int
    on_success_transition: str
    on_success_target_link_id: str | None
    on_failure_transition: str
    on_failure_target_link_id: str | None
    description: str | None = None
    link_config: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ChainSummary:
    """Compact chain row for list views."""

    id: str
    chain_key: str
    name: str
    scope: str
    scope_id: str
    is_published: bool
    link_count: int
    max_total_failures: int


@dataclass(frozen=True, slots=True)
class ChainDetail:
    id: str
    chain_key: str
    name: str
    scope: str
    scope_id: str
    is_published: bool
    max_total_failures: int
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    links: list[LinkView] = field(default_factory=list)
    created_at: str | None = None
    created_by: str | None = None
    updated_at: str | None = None
    updated_by: str | None = None


# ------------------------------------------------------------------ #
# Execution responses
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ExecutionSummary:
    """Compact execution row for list views and the intervention queue."""

    id: str
    chain_id: str
    chain_key: str | None
    status: str
    current_link_id: str | None
    current_link_name: str | None
    current_skill_name: str | None
    ticket_id: str | None
    total_failure_count: int
    requires_human_intervention: bool
    intervention_reason: str | None
    started_at: str | None = None


@dataclass(frozen=True, slots=True)
class ExecutionDetail:
    id: str
    chain_id: str
    chain_key: str | None
    chain_name: str | None
    status: str
    current_link_id: str | None
    current_link_name: str | None
    current_skill_name: str | None
    ticket_id: str | None
    input_values: dict[str, Any]
    execution_context: dict[str, Any]
    total_failure_count: int
    max_total_failures: int | None
    requires_human_intervention: bool
    intervention_reason: str | None
    started_at: str | None = None
    started_by: str | None = None
    completed_at: str | None = None
    completed_by: str | None = None
    version: int = 1


@dataclass(frozen=True, slots=True)
class LinkAttempt:
    """One recorded attempt (LinkExecution) of a link."""

    id: str
    execution_id: str
    link_id: str
    link_name: str | None
    attempt_number: int
    outcome: str
    transition_taken: str | None
    output: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None
    executed_by: str | None = None
    completed_at: str | None = None


@dataclass(frozen=True, slots=True)
class CheckpointView:
    position: int
    link_id: str | None
    status: str | None
    reason: str | None
    total_failure_count: int
    created_at: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
