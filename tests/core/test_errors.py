"""Tests for the engine error hierarchy."""

from __future__ import annotations

from skillchain.core.errors import (
    ConflictError,
    ErrorCategory,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    SkillChainError,
    categorize_error,
    is_retryable,
)


class TestCategories:
    def test_defaults(self):
        assert NotFoundError("x").category == ErrorCategory.NOT_FOUND
        assert InvalidStateError("x").category == ErrorCategory.STATE
        assert InvalidArgumentError("x").category == ErrorCategory.VALIDATION
        assert ConflictError("x").category == ErrorCategory.CONFLICT

    def test_only_conflict_is_retryable(self):
        assert is_retryable(ConflictError("x"))
        for error in (NotFoundError("x"), InvalidStateError("x"), InvalidArgumentError("x")):
            assert not is_retryable(error)
        assert not is_retryable(ValueError("x"))

    def test_categorize_foreign_error(self):
        assert categorize_error(KeyError("x")) == ErrorCategory.INTERNAL
        assert categorize_error(NotFoundError("x")) == ErrorCategory.NOT_FOUND


class TestContext:
    def test_with_context_fills_typed_fields_and_metadata(self):
        error = NotFoundError("Execution not found").with_context(
            execution_id="e-1", attempt=3
        )
        assert error.context.execution_id == "e-1"
        assert error.context.metadata == {"attempt": 3}
        assert error.context.to_dict() == {"execution_id": "e-1", "attempt": 3}

    def test_invalid_state_records_expected_and_actual(self):
        error = InvalidStateError("Can only advance a running execution", expected="running", actual="paused")
        assert error.context.expected_status == "running"
        assert error.context.actual_status == "paused"

    def test_invalid_argument_records_field(self):
        error = InvalidArgumentError("bad", field="target_link_id")
        assert error.field == "target_link_id"
        assert error.context.metadata["field"] == "target_link_id"

    def test_to_dict(self):
        cause = RuntimeError("db")
        error = ConflictError("stale", cause=cause).with_context(execution_id="e-1")
        data = error.to_dict()

        assert data["error_type"] == "ConflictError"
        assert data["category"] == "CONFLICT"
        assert data["retryable"] is True
        assert data["context"] == {"execution_id": "e-1"}
        assert data["cause"] == "db"
        assert error.__cause__ is cause

    def test_is_exception(self):
        assert isinstance(NotFoundError("x"), SkillChainError)
        assert str(NotFoundError("missing")) == "missing"
