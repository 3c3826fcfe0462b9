"""
Tests for the transition resolver.

Tests cover:
- Success / Skipped → NextLink, GoToLink, Complete
- NextLink past the last link completes
- Failure retries while attempts remain, for every failure policy
- Exhausted GoToLink jumps without charging the failure budget
- Exhausted Retry/Escalate charge the budget; the budget forces a pause
- Pending outcome is rejected
"""

import pytest

from skillchain.chains.graph import ChainGraph
from skillchain.chains.models import (
    FailureTransition,
    Link,
    LinkOutcome,
    SuccessTransition,
    TransitionAction,
)
from skillchain.chains.resolver import resolve_transition
from skillchain.core.errors import InvalidArgumentError


# =============================================================================
# Helpers
# =============================================================================


def _link(link_id: str, position: int, **kwargs) -> Link:
    kwargs.setdefault("name", link_id.upper())
    kwargs.setdefault("skill_id", f"skill-{link_id}")
    return Link(id=link_id, chain_id="chain-1", position=position, **kwargs)


def _graph(*links: Link, max_total_failures: int = 5) -> ChainGraph:
    return ChainGraph(
        chain_id="chain-1",
        chain_key="flow",
        name="Flow",
        max_total_failures=max_total_failures,
        links=links,
    )


# =============================================================================
# Success
# =============================================================================


class TestSuccessTransitions:
    """Success and Skipped follow the link's success transition."""

    def test_next_link_advances_by_position(self):
        a, b = _link("a", 1), _link("b", 2)
        decision = resolve_transition(_graph(b, a), a, LinkOutcome.SUCCESS, 1, 0)

        assert decision.action == TransitionAction.ADVANCE
        assert decision.target_link_id == "b"
        assert decision.total_failure_count == 0

    def test_next_link_skips_position_gaps(self):
        a, c = _link("a", 1), _link("c", 5)
        decision = resolve_transition(_graph(a, c), a, LinkOutcome.SUCCESS, 1, 0)
        assert decision.target_link_id == "c"

    def test_next_link_on_last_link_completes(self):
        a, b = _link("a", 1), _link("b", 2)
        decision = resolve_transition(_graph(a, b), b, LinkOutcome.SUCCESS, 1, 2)

        assert decision.action == TransitionAction.COMPLETE
        assert decision.target_link_id is None
        assert decision.total_failure_count == 2

    def test_go_to_link_targets_any_link(self):
        a = _link("a", 1)
        b = _link(
            "b",
            2,
            on_success_transition=SuccessTransition.GO_TO_LINK,
            on_success_target_link_id="a",
        )
        decision = resolve_transition(_graph(a, b), b, LinkOutcome.SUCCESS, 1, 0)

        assert decision.action == TransitionAction.ADVANCE
        assert decision.target_link_id == "a"

    def test_explicit_complete_ends_early(self):
        a = _link("a", 1, on_success_transition=SuccessTransition.COMPLETE)
        b = _link("b", 2)
        decision = resolve_transition(_graph(a, b), a, LinkOutcome.SUCCESS, 1, 0)
        assert decision.action == TransitionAction.COMPLETE

    def test_skipped_is_treated_as_success(self):
        a, b = _link("a", 1), _link("b", 2)
        decision = resolve_transition(_graph(a, b), a, LinkOutcome.SKIPPED, 1, 0)

        assert decision.action == TransitionAction.ADVANCE
        assert decision.target_link_id == "b"

    def test_success_does_not_pause(self):
        a = _link("a", 1)
        decision = resolve_transition(_graph(a), a, LinkOutcome.SUCCESS, 1, 0)
        assert decision.pauses is False


# =============================================================================
# Failure
# =============================================================================


class TestFailureRetries:
    """Attempts below max_retries retry the same link."""

    @pytest.mark.parametrize(
        "policy",
        [FailureTransition.RETRY, FailureTransition.ESCALATE, FailureTransition.GO_TO_LINK],
    )
    def test_retry_while_attempts_remain(self, policy):
        a = _link("a", 1)
        b = _link(
            "b",
            2,
            max_retries=3,
            on_failure_transition=policy,
            on_failure_target_link_id="a" if policy == FailureTransition.GO_TO_LINK else None,
        )
        decision = resolve_transition(_graph(a, b), b, LinkOutcome.FAILURE, 2, 1)

        assert decision.action == TransitionAction.RETRY
        assert decision.target_link_id == "b"
        assert decision.total_failure_count == 1

    def test_single_attempt_link_never_retries(self):
        a = _link("a", 1, max_retries=1)
        decision = resolve_transition(_graph(a), a, LinkOutcome.FAILURE, 1, 0)
        assert decision.action != TransitionAction.RETRY


class TestFailureExhausted:
    """Behaviour once attempt_number reaches max_retries."""

    def test_go_to_link_jumps_without_charging_budget(self):
        fix = _link("fix", 2)
        build = _link(
            "build",
            1,
            max_retries=2,
            on_failure_transition=FailureTransition.GO_TO_LINK,
            on_failure_target_link_id="fix",
        )
        decision = resolve_transition(_graph(build, fix), build, LinkOutcome.FAILURE, 2, 3)

        assert decision.action == TransitionAction.ADVANCE
        assert decision.target_link_id == "fix"
        assert decision.total_failure_count == 3

    def test_retry_policy_pauses_for_intervention(self):
        a = _link("a", 1, max_retries=2)
        decision = resolve_transition(_graph(a), a, LinkOutcome.FAILURE, 2, 0)

        assert decision.action == TransitionAction.PAUSE_FOR_INTERVENTION
        assert decision.total_failure_count == 1
        assert decision.reason == "Link 'A' failed and requires human intervention"
        assert decision.pauses is True

    def test_escalate_policy_escalates_under_budget(self):
        a = _link("a", 1, max_retries=1, on_failure_transition=FailureTransition.ESCALATE)
        decision = resolve_transition(_graph(a), a, LinkOutcome.FAILURE, 1, 0)

        assert decision.action == TransitionAction.ESCALATE
        assert decision.total_failure_count == 1
        assert decision.pauses is True

    def test_budget_reached_forces_pause_even_for_escalate(self):
        a = _link("a", 1, max_retries=1, on_failure_transition=FailureTransition.ESCALATE)
        decision = resolve_transition(
            _graph(a, max_total_failures=3), a, LinkOutcome.FAILURE, 1, 2
        )

        assert decision.action == TransitionAction.PAUSE_FOR_INTERVENTION
        assert decision.total_failure_count == 3
        assert decision.reason == "Total failures (3) reached maximum (3)"

    def test_budget_of_one_pauses_on_first_exhaustion(self):
        a = _link("a", 1, max_retries=1)
        decision = resolve_transition(
            _graph(a, max_total_failures=1), a, LinkOutcome.FAILURE, 1, 0
        )
        assert decision.reason == "Total failures (1) reached maximum (1)"

    def test_attempts_beyond_max_are_treated_as_exhausted(self):
        a = _link("a", 1, max_retries=2)
        decision = resolve_transition(_graph(a), a, LinkOutcome.FAILURE, 5, 0)
        assert decision.action == TransitionAction.PAUSE_FOR_INTERVENTION


class TestPurity:
    """The resolver is a pure function of its inputs."""

    def test_same_inputs_same_decision(self):
        a = _link("a", 1, max_retries=1, on_failure_transition=FailureTransition.ESCALATE)
        graph = _graph(a)
        first = resolve_transition(graph, a, LinkOutcome.FAILURE, 1, 0)
        second = resolve_transition(graph, a, LinkOutcome.FAILURE, 1, 0)
        assert first == second

    def test_pending_outcome_rejected(self):
        a = _link("a", 1)
        with pytest.raises(InvalidArgumentError):
            resolve_transition(_graph(a), a, LinkOutcome.PENDING, 1, 0)
