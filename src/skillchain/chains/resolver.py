"""Transition resolver: the pure decision function of the engine.

Given the link just attempted, its outcome, the attempt number and the
run's failure counters, decide what the run does next.  No I/O, no
clock, no store: the same inputs always give the same decision, which is
what makes the controller's behaviour auditable.

Rules, evaluated in order:

1. Success (or Skipped) → the link's success transition.
   NextLink past the last link completes the run.
2. Failure with ``attempt_number < max_retries`` → Retry the same link.
3. Failure, retries exhausted, GoToLink → Advance to the recovery link.
   The failure budget is not charged.
4. Failure, retries exhausted, Retry/Escalate → charge the budget.
   Under budget: Escalate for an Escalate policy, otherwise
   PauseForIntervention.  At or over budget: always PauseForIntervention.

Example:
    >>> decision = resolve_transition(graph, link, LinkOutcome.FAILURE, 2, 0)
    >>> decision.action
    <TransitionAction.PAUSE_FOR_INTERVENTION: 'pause_for_intervention'>
"""

from __future__ import annotations

from dataclasses import dataclass

from skillchain.chains.graph import ChainGraph
from skillchain.chains.models import (
    FailureTransition,
    Link,
    LinkOutcome,
    SuccessTransition,
    TransitionAction,
)
from skillchain.core.errors import InvalidArgumentError


@dataclass(frozen=True, slots=True)
class TransitionDecision:
    """What the controller should apply after one attempt."""

    action: TransitionAction
    total_failure_count: int
    target_link_id: str | None = None
    reason: str | None = None

    @property
    def pauses(self) -> bool:
        return self.action in (
            TransitionAction.ESCALATE,
            TransitionAction.PAUSE_FOR_INTERVENTION,
        )


def resolve_transition(
    graph: ChainGraph,
    link: Link,
    outcome: LinkOutcome,
    attempt_number: int,
    total_failure_count: int,
) -> TransitionDecision:
    """Decide the next control-flow action for an attempt of *link*.

    Args:
        graph: The run's chain (used only to find the next link by position)
        link: The link that was attempted
        outcome: Outcome recorded for the attempt
        attempt_number: 1-based attempt number of that attempt
        total_failure_count: The run's failure count before this decision

    Raises:
        InvalidArgumentError: If the outcome is Pending.
    """
    if outcome == LinkOutcome.PENDING:
        raise InvalidArgumentError(
            "A pending attempt has no transition to resolve", field="outcome"
        )

    if outcome in (LinkOutcome.SUCCESS, LinkOutcome.SKIPPED):
        return _resolve_success(graph, link, total_failure_count)

    return _resolve_failure(graph, link, attempt_number, total_failure_count)


def _resolve_success(
    graph: ChainGraph, link: Link, total_failure_count: int
) -> TransitionDecision:
    if link.on_success_transition == SuccessTransition.GO_TO_LINK:
        return TransitionDecision(
            action=TransitionAction.ADVANCE,
            target_link_id=link.on_success_target_link_id,
            total_failure_count=total_failure_count,
        )

    if link.on_success_transition == SuccessTransition.NEXT_LINK:
        next_link = graph.next_after(link)
        if next_link is not None:
            return TransitionDecision(
                action=TransitionAction.ADVANCE,
                target_link_id=next_link.id,
                total_failure_count=total_failure_count,
            )

    # Explicit Complete, or NextLink with no link left
    return TransitionDecision(
        action=TransitionAction.COMPLETE,
        total_failure_count=total_failure_count,
    )


def _resolve_failure(
    graph: ChainGraph,
    link: Link,
    attempt_number: int,
    total_failure_count: int,
) -> TransitionDecision:
    if attempt_number < link.max_retries:
        return TransitionDecision(
            action=TransitionAction.RETRY,
            target_link_id=link.id,
            total_failure_count=total_failure_count,
        )

    if link.on_failure_transition == FailureTransition.GO_TO_LINK:
        return TransitionDecision(
            action=TransitionAction.ADVANCE,
            target_link_id=link.on_failure_target_link_id,
            total_failure_count=total_failure_count,
        )

    failures = total_failure_count + 1
    if failures >= graph.max_total_failures:
        return TransitionDecision(
            action=TransitionAction.PAUSE_FOR_INTERVENTION,
            total_failure_count=failures,
            reason=(
                f"Total failures ({failures}) reached maximum "
                f"({graph.max_total_failures})"
            ),
        )

    action = (
        TransitionAction.ESCALATE
        if link.on_failure_transition == FailureTransition.ESCALATE
        else TransitionAction.PAUSE_FOR_INTERVENTION
    )
    return TransitionDecision(
        action=action,
        total_failure_count=failures,
        reason=f"Link '{link.name}' failed and requires human intervention",
    )


__all__ = ["TransitionDecision", "resolve_transition"]
