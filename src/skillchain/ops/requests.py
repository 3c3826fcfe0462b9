"""
Typed request objects for operations.

Each dataclass represents the *input* contract for a single operation
function.  Requests carry only transport-agnostic data: no raw HTTP
bodies, no CLI params.  ``None`` on an update request means "leave the
field unchanged", except for the optional link fields defaulting to
``UNSET``: there ``None`` clears the value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from skillchain.chains.models import UNSET

# ------------------------------------------------------------------ #
# Database operations
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class DatabaseInitRequest:
    """Request for :func:`skillchain.ops.database.initialize_database`."""

    drop_existing: bool = False


# ------------------------------------------------------------------ #
# Chain authoring
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class CreateChainRequest:
    """Request for :func:`skillchain.ops.chains.create_chain`.

    Exactly one of ``organization_id`` / ``project_id`` must be set.
    """

    chain_key: str = ""
    name: str = ""
    organization_id: str | None = None
    project_id: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    max_total_failures: int | None = None


@dataclass(frozen=True, slots=True)
class UpdateChainRequest:
    chain_id: str = ""
    name: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] | None = None
    max_total_failures: int | None = None


@dataclass(frozen=True, slots=True)
class ChainRequest:
    """Request naming one chain (get, delete, publish, unpublish)."""

    chain_id: str = ""


@dataclass(frozen=True, slots=True)
class ListChainsRequest:
    organization_id: str | None = None
    project_id: str | None = None
    published_only: bool = False


@dataclass(frozen=True, slots=True)
class AddLinkRequest:
    """Request for :func:`skillchain.ops.chains.add_link`.

    Transitions accept ``NextLink`` / ``next_link`` spellings alike.
    """

    chain_id: str = ""
    name: str = ""
    skill_id: str = ""
    agent_id: str | None = None
    description: str | None = None
    max_retries: int | None = None
    on_success_transition: str = "next_link"
    on_success_target_link_id: str | None = None
    on_failure_transition: str = "retry"
    on_failure_target_link_id: str | None = None
    link_config: dict[str, Any] = field(default_factory=dict)
    position: int | None = None


@dataclass(frozen=True, slots=True)
class UpdateLinkRequest:
    link_id: str = ""
    name: str | None = None
    description: str | None = UNSET
    skill_id: str | None = None
    agent_id: str | None = UNSET
    max_retries: int | None = None
    on_success_transition: str | None = None
    on_success_target_link_id: str | None = UNSET
    on_failure_transition: str | None = None
    on_failure_target_link_id: str | None = UNSET
    link_config: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class RemoveLinkRequest:
    link_id: str = ""


@dataclass(frozen=True, slots=True)
class ReorderLinksRequest:
    chain_id: str = ""
    ordered_link_ids: list[str] = field(default_factory=list)


# ------------------------------------------------------------------ #
# Execution lifecycle
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class StartExecutionRequest:
    """Request for :func:`skillchain.ops.executions.start_execution`.

    ``session_options`` uses the field names of
    :class:`~skillchain.chains.session_state.SessionStateOptions`.
    """

    chain_id: str = ""
    ticket_id: str | None = None
    input_values: dict[str, Any] = field(default_factory=dict)
    session_options: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class RecordLinkOutcomeRequest:
    execution_id: str = ""
    link_id: str = ""
    outcome: str = ""
    output: dict[str, Any] | None = None
    error_details: dict[str, Any] | None = None
    input: dict[str, Any] | None = None
    context_updates: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class ExecutionRequest:
    """Request naming one execution (get, advance, checkpoints, delete)."""

    execution_id: str = ""


@dataclass(frozen=True, slots=True)
class PauseExecutionRequest:
    execution_id: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class ResumeExecutionRequest:
    execution_id: str = ""
    additional_context: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class CancelExecutionRequest:
    execution_id: str = ""
    reason: str = ""


@dataclass(frozen=True, slots=True)
class RewindExecutionRequest:
    execution_id: str = ""
    position: int = 0


@dataclass(frozen=True, slots=True)
class ListExecutionsRequest:
    chain_id: str | None = None
    ticket_id: str | None = None
    status: str | None = None
    limit: int = 50
    offset: int = 0


# ------------------------------------------------------------------ #
# Interventions
# ------------------------------------------------------------------ #


@dataclass(frozen=True, slots=True)
class ListInterventionsRequest:
    organization_id: str | None = None
    project_id: str | None = None
    chain_id: str | None = None


@dataclass(frozen=True, slots=True)
class ResolveInterventionRequest:
    """Request for :func:`skillchain.ops.interventions.resolve_intervention`.

    ``next_action`` is one of ``retry``, ``go_to_link``, ``complete``,
    ``escalate`` or ``fail``.
    """

    execution_id: str = ""
    resolution: str = ""
    next_action: str = ""
    target_link_id: str | None = None
