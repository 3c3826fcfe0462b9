"""
Tests for ExecutionController (the run lifecycle against a real store).

Tests cover:
- Start: unknown / unpublished chains, first link, checkpoint 0
- RecordLinkOutcome: status and current-link guards, attempt numbering
- Advance: next link, completion at the end, retry budget, run-level
  failure budget, GoToLink recovery without charging the budget
- Pause / resume round-trip, context merge
- Cancel, terminal immutability
- Intervention queue and every resolution action
- Checkpoints, rewind, delete
"""

import io
import json

import pytest

from conftest import build_chain
from skillchain.chains.definitions import LinkSpec
from skillchain.chains.models import ExecutionStatus, LinkOutcome, TransitionAction
from skillchain.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from skillchain.core.logging import configure_logging


# =============================================================================
# Helpers
# =============================================================================


def _attempt(controller, run_id, outcome="success", **kwargs):
    """Record *outcome* for the current link and advance."""
    run = controller.get_execution(run_id)
    controller.record_link_outcome(run_id, run.current_link_id, outcome, **kwargs)
    return controller.advance_execution(run_id)


# =============================================================================
# Start
# =============================================================================


class TestStartExecution:
    def test_starts_running_at_first_link(self, controller, two_link_chain):
        run = controller.start_execution(
            two_link_chain.id,
            ticket_id="TCK-1",
            input_values={"feature": "login"},
            started_by="agent-7",
        )

        assert run.status == ExecutionStatus.RUNNING
        assert run.current_link_id == two_link_chain.links[0].id
        assert run.execution_context == {}
        assert run.total_failure_count == 0
        assert run.requires_human_intervention is False
        assert run.input_values == {"feature": "login"}
        assert run.started_by == "agent-7"

    def test_initial_checkpoint_at_position_zero(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        checkpoints = controller.list_checkpoints(run.id)

        assert [cp.position for cp in checkpoints] == [0]
        assert checkpoints[0].link_id == two_link_chain.links[0].id
        assert checkpoints[0].payload["reason"] == "started"

    def test_unknown_chain(self, controller):
        with pytest.raises(NotFoundError):
            controller.start_execution("missing")

    def test_unpublished_chain(self, controller, definitions):
        chain = build_chain(definitions, LinkSpec(name="A", skill_id="s"), publish=False)
        with pytest.raises(InvalidStateError, match="not published"):
            controller.start_execution(chain.id)

    def test_definition_is_pinned(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        assert run.definition["chain_key"] == two_link_chain.chain_key
        assert [link["id"] for link in run.definition["links"]] == [
            link.id for link in two_link_chain.links
        ]


# =============================================================================
# Record outcome
# =============================================================================


class TestRecordLinkOutcome:
    def test_records_without_transitioning(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        attempt = controller.record_link_outcome(
            run.id, run.current_link_id, "success", output={"plan": "ok"}, executed_by="agent-7"
        )

        assert attempt.attempt_number == 1
        assert attempt.outcome == LinkOutcome.SUCCESS
        assert attempt.transition_taken is None
        assert attempt.output == {"plan": "ok"}
        assert controller.get_execution(run.id).current_link_id == run.current_link_id

    def test_wrong_link_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError) as exc_info:
            controller.record_link_outcome(run.id, two_link_chain.links[1].id, "success")
        assert exc_info.value.context.execution_id == run.id

    def test_second_record_before_advance_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.record_link_outcome(run.id, run.current_link_id, "failure")
        with pytest.raises(InvalidStateError, match="advance"):
            controller.record_link_outcome(run.id, run.current_link_id, "failure")

    def test_pending_outcome_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidArgumentError):
            controller.record_link_outcome(run.id, run.current_link_id, "pending")

    def test_context_updates_merged(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.record_link_outcome(
            run.id, run.current_link_id, "success", context_updates={"branch": "feat/x"}
        )
        assert controller.get_execution(run.id).execution_context == {"branch": "feat/x"}

    def test_unknown_execution(self, controller):
        with pytest.raises(NotFoundError):
            controller.record_link_outcome("missing", "link", "success")


class TestAttemptNumbers:
    """Attempt numbers per (execution, link) increase by one with no gaps."""

    def test_monotonic_across_retries_and_interventions(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        plan_id = run.current_link_id

        _attempt(controller, run.id, "failure")  # 1 → retry
        _attempt(controller, run.id, "failure")  # 2 → pause
        controller.resolve_intervention(run.id, "try again", "retry")
        _attempt(controller, run.id, "success")  # 3 → advance

        numbers = [a.attempt_number for a in controller.list_link_executions(run.id, link_id=plan_id)]
        assert numbers == [1, 2, 3]


# =============================================================================
# Advance
# =============================================================================


class TestAdvanceExecution:
    def test_success_moves_to_next_link_with_checkpoint(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        advanced = _attempt(controller, run.id, "success")

        assert advanced.current_link_id == two_link_chain.links[1].id
        assert advanced.status == ExecutionStatus.RUNNING
        assert len(controller.list_checkpoints(run.id)) == 2

    def test_falling_off_the_end_completes(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "success")
        done = _attempt(controller, run.id, "success")

        assert done.status == ExecutionStatus.COMPLETED
        assert done.current_link_id is None
        assert done.completed_at is not None
        assert done.completed_by == "system"

    def test_skipped_advances(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        advanced = _attempt(controller, run.id, "skipped")
        assert advanced.current_link_id == two_link_chain.links[1].id

    def test_records_transition_taken(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "failure")
        attempts = controller.list_link_executions(run.id)
        assert attempts[0].transition_taken == TransitionAction.RETRY

    def test_advance_without_pending_attempt_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError, match="awaiting resolution"):
            controller.advance_execution(run.id)

    def test_advance_twice_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.record_link_outcome(run.id, run.current_link_id, "failure")
        controller.advance_execution(run.id)
        with pytest.raises(InvalidStateError):
            controller.advance_execution(run.id)

    def test_advance_paused_run_rejected(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "lunch")
        with pytest.raises(InvalidStateError) as exc_info:
            controller.advance_execution(run.id)
        assert exc_info.value.context.actual_status == "paused"

    def test_returned_state_matches_store_with_logging_on(self, controller, two_link_chain):
        stream = io.StringIO()
        configure_logging(level="INFO", json_format=True, stream=stream, cache_loggers=False)
        run = controller.start_execution(two_link_chain.id)
        controller.record_link_outcome(run.id, run.current_link_id, "success")

        advanced = controller.advance_execution(run.id)

        stored = controller.get_execution(run.id)
        assert advanced.current_link_id == stored.current_link_id == two_link_chain.links[1].id
        assert advanced.status == stored.status == ExecutionStatus.RUNNING
        events = [json.loads(line) for line in stream.getvalue().splitlines() if line.startswith("{")]
        logged = [e for e in events if e["event"] == "execution_advanced"]
        assert logged[0]["attempt"] == 1
        assert logged[0]["action"] == "advance"


class TestRetryBudget:
    """max_retries=2 with a Retry policy."""

    def test_first_failure_retries_second_pauses(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        plan_id = run.current_link_id

        after_first = _attempt(controller, run.id, "failure")
        assert after_first.status == ExecutionStatus.RUNNING
        assert after_first.current_link_id == plan_id
        assert after_first.total_failure_count == 0

        after_second = _attempt(controller, run.id, "failure")
        assert after_second.status == ExecutionStatus.PAUSED
        assert after_second.requires_human_intervention is True
        assert after_second.total_failure_count == 1
        assert after_second.intervention_reason == "Link 'Plan' failed and requires human intervention"
        assert after_second.current_link_id == plan_id

    def test_pause_writes_checkpoint(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "failure")
        _attempt(controller, run.id, "failure")

        latest = controller.get_resume_point(run.id)
        assert latest.payload["status"] == "paused"
        assert latest.payload["reason"] == "paused_for_intervention"
        assert latest.payload["requires_human_intervention"] is True


class TestRunLevelBudget:
    def test_budget_of_one_overrides_escalate(self, controller, definitions):
        chain = build_chain(
            definitions,
            LinkSpec(name="Risky", skill_id="s", max_retries=1, on_failure_transition="escalate"),
            max_total_failures=1,
        )
        run = controller.start_execution(chain.id)
        paused = _attempt(controller, run.id, "failure")

        assert paused.status == ExecutionStatus.PAUSED
        assert paused.requires_human_intervention is True
        assert paused.intervention_reason == "Total failures (1) reached maximum (1)"
        checkpoint = controller.get_resume_point(run.id)
        assert checkpoint.payload["reason"] == "paused_for_intervention"

    def test_escalate_under_budget(self, controller, definitions):
        chain = build_chain(
            definitions,
            LinkSpec(name="Risky", skill_id="s", max_retries=1, on_failure_transition="escalate"),
            max_total_failures=3,
        )
        run = controller.start_execution(chain.id)
        _attempt(controller, run.id, "failure")

        checkpoint = controller.get_resume_point(run.id)
        assert checkpoint.payload["reason"] == "escalated"

    def test_failure_count_never_decreases(self, controller, single_link_chain):
        run = controller.start_execution(single_link_chain.id)
        counts = []
        for _ in range(3):
            counts.append(_attempt(controller, run.id, "failure").total_failure_count)
            counts.append(controller.resume_execution(run.id).total_failure_count)

        assert counts == sorted(counts)
        assert counts[-1] == 3


class TestGoToLinkRecovery:
    def test_failure_jump_keeps_failure_count(self, controller, definitions):
        chain = definitions.create_chain("recover", "Recover", project_id="proj-1")
        build = definitions.add_link(chain.id, LinkSpec(name="Build", skill_id="skill-build", max_retries=1))
        fix = definitions.add_link(chain.id, LinkSpec(name="Fix", skill_id="skill-fix"))
        definitions.update_link(build.id, on_failure_transition="go_to_link", on_failure_target_link_id=fix.id)
        definitions.publish_chain(chain.id)

        run = controller.start_execution(chain.id)
        moved = _attempt(controller, run.id, "failure")

        assert moved.status == ExecutionStatus.RUNNING
        assert moved.current_link_id == fix.id
        assert moved.total_failure_count == 0

    def test_success_jump_back_allows_loops(self, controller, definitions):
        chain = definitions.create_chain("loop", "Loop", project_id="proj-1")
        a = definitions.add_link(chain.id, LinkSpec(name="A", skill_id="s"))
        definitions.add_link(
            chain.id,
            LinkSpec(name="B", skill_id="s", on_success_transition="go_to_link", on_success_target_link_id=a.id),
        )
        definitions.publish_chain(chain.id)

        run = controller.start_execution(chain.id)
        _attempt(controller, run.id, "success")
        back = _attempt(controller, run.id, "success")
        assert back.current_link_id == a.id
        again = _attempt(controller, run.id, "success")
        assert again.status == ExecutionStatus.RUNNING

        attempts_of_a = controller.list_link_executions(run.id, link_id=a.id)
        assert [x.attempt_number for x in attempts_of_a] == [1, 2]


# =============================================================================
# Pause / resume / cancel
# =============================================================================


class TestPauseResume:
    def test_round_trip_returns_to_same_link(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "success")

        paused = controller.pause_execution(run.id, "waiting on review", actor="alice")
        assert paused.status == ExecutionStatus.PAUSED
        assert paused.requires_human_intervention is False
        assert paused.intervention_reason == "waiting on review"

        resumed = controller.resume_execution(run.id, actor="alice")
        assert resumed.status == ExecutionStatus.RUNNING
        assert resumed.current_link_id == two_link_chain.links[1].id
        assert resumed.intervention_reason is None

    def test_manual_pause_not_in_intervention_queue(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "lunch")
        assert controller.list_pending_interventions() == []

    def test_pause_writes_checkpoint(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "lunch")
        assert controller.get_resume_point(run.id).payload["reason"] == "paused"

    def test_resume_merges_context(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.record_link_outcome(
            run.id, run.current_link_id, "success", context_updates={"a": 1, "b": 1}
        )
        controller.advance_execution(run.id)
        controller.pause_execution(run.id, "check")

        resumed = controller.resume_execution(run.id, {"b": 2, "c": 3})
        assert resumed.execution_context == {"a": 1, "b": 2, "c": 3}

    def test_pause_only_from_running(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "one")
        with pytest.raises(InvalidStateError):
            controller.pause_execution(run.id, "two")

    def test_resume_only_from_paused(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError):
            controller.resume_execution(run.id)

    def test_resume_clears_intervention_flag(self, controller, single_link_chain):
        run = controller.start_execution(single_link_chain.id)
        _attempt(controller, run.id, "failure")
        resumed = controller.resume_execution(run.id)
        assert resumed.requires_human_intervention is False
        assert resumed.total_failure_count == 1


class TestCancelAndTerminal:
    def test_cancel_running(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        cancelled = controller.cancel_execution(run.id, "not needed", actor="bob")

        assert cancelled.status == ExecutionStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert cancelled.completed_by == "bob"
        assert cancelled.intervention_reason == "not needed"

    def test_cancel_paused_for_intervention(self, controller, single_link_chain):
        run = controller.start_execution(single_link_chain.id)
        _attempt(controller, run.id, "failure")
        cancelled = controller.cancel_execution(run.id, "give up")
        assert cancelled.requires_human_intervention is False
        assert controller.list_pending_interventions() == []

    def test_terminal_immutability(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        link_id = run.current_link_id
        controller.cancel_execution(run.id, "stop")

        with pytest.raises(InvalidStateError):
            controller.record_link_outcome(run.id, link_id, "success")
        with pytest.raises(InvalidStateError):
            controller.advance_execution(run.id)
        with pytest.raises(InvalidStateError):
            controller.pause_execution(run.id, "again")
        with pytest.raises(InvalidStateError):
            controller.resume_execution(run.id)
        with pytest.raises(InvalidStateError):
            controller.cancel_execution(run.id, "again")

    def test_completed_is_terminal(self, controller, single_link_chain):
        run = controller.start_execution(single_link_chain.id)
        _attempt(controller, run.id, "success")
        with pytest.raises(InvalidStateError):
            controller.resume_execution(run.id)


# =============================================================================
# Interventions
# =============================================================================


class TestInterventions:
    @pytest.fixture()
    def stuck(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "failure")
        _attempt(controller, run.id, "failure")
        return run

    def test_listed_pending(self, controller, stuck, two_link_chain):
        pending = controller.list_pending_interventions()
        assert [p.id for p in pending] == [stuck.id]
        assert controller.list_pending_interventions(project_id="proj-1")[0].id == stuck.id
        assert controller.list_pending_interventions(project_id="proj-2") == []
        assert controller.list_pending_interventions(chain_id=two_link_chain.id)[0].id == stuck.id

    def test_resolve_retry(self, controller, stuck):
        resolved = controller.resolve_intervention(stuck.id, "flaky CI", "retry", resolved_by="alice")

        assert resolved.status == ExecutionStatus.RUNNING
        assert resolved.requires_human_intervention is False
        assert resolved.current_link_id == stuck.current_link_id
        assert resolved.total_failure_count == 1

    def test_retry_after_resolution_pauses_on_next_failure(self, controller, stuck):
        controller.resolve_intervention(stuck.id, "one more go", "retry")
        again = _attempt(controller, stuck.id, "failure")

        assert again.status == ExecutionStatus.PAUSED
        assert again.total_failure_count == 2

    def test_resolve_go_to_link(self, controller, stuck, two_link_chain):
        target = two_link_chain.links[1].id
        resolved = controller.resolve_intervention(
            stuck.id, "skip planning", "GoToLink", target_link_id=target
        )

        assert resolved.current_link_id == target
        assert resolved.requires_human_intervention is False
        assert resolved.status == ExecutionStatus.RUNNING
        assert controller.get_resume_point(stuck.id).payload["reason"] == "intervention_resolved"

    def test_go_to_link_requires_target(self, controller, stuck):
        with pytest.raises(InvalidArgumentError):
            controller.resolve_intervention(stuck.id, "x", "go_to_link")

    def test_go_to_link_foreign_target_rejected(self, controller, stuck, definitions):
        other = build_chain(definitions, LinkSpec(name="Z", skill_id="s"), chain_key="other")
        with pytest.raises(InvalidArgumentError):
            controller.resolve_intervention(
                stuck.id, "x", "go_to_link", target_link_id=other.links[0].id
            )
        assert controller.get_execution(stuck.id).requires_human_intervention is True

    def test_resolve_complete(self, controller, stuck):
        done = controller.resolve_intervention(stuck.id, "done by hand", "complete", resolved_by="alice")
        assert done.status == ExecutionStatus.COMPLETED
        assert done.completed_by == "alice"
        assert done.current_link_id is None

    def test_resolve_escalate_keeps_paused(self, controller, stuck):
        escalated = controller.resolve_intervention(stuck.id, "needs the tech lead", "escalate")

        assert escalated.status == ExecutionStatus.PAUSED
        assert escalated.requires_human_intervention is True
        assert escalated.intervention_reason == "needs the tech lead"

    def test_resolve_fail(self, controller, stuck):
        failed = controller.resolve_intervention(stuck.id, "abandon", "fail")
        assert failed.status == ExecutionStatus.FAILED
        assert failed.intervention_reason == "abandon"
        with pytest.raises(InvalidStateError):
            controller.resume_execution(stuck.id)

    def test_resolve_requires_flag(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "manual")
        with pytest.raises(InvalidStateError):
            controller.resolve_intervention(run.id, "x", "retry")

    def test_unknown_action(self, controller, stuck):
        with pytest.raises(InvalidArgumentError):
            controller.resolve_intervention(stuck.id, "x", "explode")


# =============================================================================
# Checkpoints / rewind / housekeeping
# =============================================================================


class TestCheckpointsAndRewind:
    def test_positions_are_dense(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "success")
        _attempt(controller, run.id, "success")

        checkpoints = controller.list_checkpoints(run.id)
        assert [cp.position for cp in checkpoints] == [0, 1, 2]
        assert checkpoints[-1].payload["reason"] == "completed"

    def test_rewind_to_first_link(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        _attempt(controller, run.id, "success")
        controller.pause_execution(run.id, "redo plan")

        rewound = controller.rewind_to_checkpoint(run.id, 0, actor="alice")
        assert rewound.current_link_id == two_link_chain.links[0].id
        assert rewound.status == ExecutionStatus.PAUSED
        assert controller.get_resume_point(run.id).payload["reason"] == "rewound"

        resumed = controller.resume_execution(run.id)
        again = _attempt(controller, resumed.id, "success")
        assert again.current_link_id == two_link_chain.links[1].id

    def test_rewind_requires_manual_pause(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError):
            controller.rewind_to_checkpoint(run.id, 0)

    def test_rewind_unknown_position(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        controller.pause_execution(run.id, "x")
        with pytest.raises(NotFoundError):
            controller.rewind_to_checkpoint(run.id, 42)


class TestReadsAndDelete:
    def test_list_executions_filters(self, controller, two_link_chain):
        first = controller.start_execution(two_link_chain.id, ticket_id="T-1")
        controller.start_execution(two_link_chain.id, ticket_id="T-2")
        controller.cancel_execution(first.id, "dup")

        items, total = controller.list_executions(chain_id=two_link_chain.id)
        assert total == 2
        items, total = controller.list_executions(status="cancelled")
        assert [i.id for i in items] == [first.id]
        items, total = controller.list_executions(ticket_id="T-2", limit=1)
        assert total == 1

    def test_list_unknown_status(self, controller):
        with pytest.raises(InvalidArgumentError):
            controller.list_executions(status="sleeping")

    def test_delete_only_terminal(self, controller, two_link_chain):
        run = controller.start_execution(two_link_chain.id)
        with pytest.raises(InvalidStateError):
            controller.delete_execution(run.id)

        controller.cancel_execution(run.id, "done")
        controller.delete_execution(run.id)
        with pytest.raises(NotFoundError):
            controller.get_execution(run.id)
