"""
Tests for execution status transitions and enum parsing.

Tests cover:
- Valid and invalid ExecutionStatus transitions
- Terminal states have no outgoing transitions
- coerce_enum accepts snake_case, CamelCase and enum members
"""

import pytest

from skillchain.chains.models import (
    EXECUTION_VALID_TRANSITIONS,
    TERMINAL_STATUSES,
    Execution,
    ExecutionStatus,
    FailureTransition,
    InterventionAction,
    Link,
    SuccessTransition,
    coerce_enum,
    validate_execution_transition,
)
from skillchain.core.errors import InvalidArgumentError, InvalidStateError


class TestExecutionStatusTransitions:
    """Tests for ExecutionStatus transition validation."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (ExecutionStatus.PENDING, ExecutionStatus.RUNNING),
            (ExecutionStatus.PENDING, ExecutionStatus.CANCELLED),
            (ExecutionStatus.RUNNING, ExecutionStatus.PAUSED),
            (ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED),
            (ExecutionStatus.RUNNING, ExecutionStatus.CANCELLED),
            (ExecutionStatus.PAUSED, ExecutionStatus.RUNNING),
            (ExecutionStatus.PAUSED, ExecutionStatus.COMPLETED),
            (ExecutionStatus.PAUSED, ExecutionStatus.FAILED),
            (ExecutionStatus.PAUSED, ExecutionStatus.CANCELLED),
        ],
    )
    def test_valid(self, current, target):
        validate_execution_transition(current, target)

    def test_running_cannot_fail_directly(self):
        """FAILED is only reachable from PAUSED (a human decision)."""
        with pytest.raises(InvalidStateError) as exc_info:
            validate_execution_transition(ExecutionStatus.RUNNING, ExecutionStatus.FAILED)
        assert exc_info.value.actual == "running"

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_states_have_no_exits(self, terminal):
        assert EXECUTION_VALID_TRANSITIONS[terminal] == frozenset()
        with pytest.raises(InvalidStateError):
            validate_execution_transition(terminal, ExecutionStatus.RUNNING)

    def test_every_status_has_an_entry(self):
        assert set(EXECUTION_VALID_TRANSITIONS) == set(ExecutionStatus)

    def test_is_terminal(self):
        run = Execution(id="e", chain_id="c", status=ExecutionStatus.CANCELLED, current_link_id=None)
        assert run.is_terminal
        run.status = ExecutionStatus.PAUSED
        assert not run.is_terminal


class TestCoerceEnum:
    """coerce_enum parsing."""

    @pytest.mark.parametrize("raw", ["go_to_link", "GoToLink", "GO_TO_LINK", "go-to-link"])
    def test_spellings(self, raw):
        assert coerce_enum(SuccessTransition, raw, "t") == SuccessTransition.GO_TO_LINK

    def test_member_passthrough(self):
        assert coerce_enum(FailureTransition, FailureTransition.ESCALATE, "t") is FailureTransition.ESCALATE

    def test_unknown_value_names_field(self):
        with pytest.raises(InvalidArgumentError) as exc_info:
            coerce_enum(InterventionAction, "explode", "next_action")
        assert exc_info.value.field == "next_action"
        assert "retry" in exc_info.value.message


class TestLinkSerialisation:
    def test_dict_round_trip_keeps_transitions(self):
        link = Link(
            id="l1",
            chain_id="c1",
            position=1,
            name="Fix",
            skill_id="skill-fix",
            on_failure_transition=FailureTransition.GO_TO_LINK,
            on_failure_target_link_id="l0",
            link_config={"session_phase": "Reviewing"},
        )
        data = link.to_dict()
        assert data["on_failure_transition"] == "go_to_link"
        assert Link.from_dict(data) == link
