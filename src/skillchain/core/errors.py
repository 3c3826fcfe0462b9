"""
Structured error types for the skillchain engine.

Every engine operation reports failure through one of four typed errors.
Each carries a category, an explicit retry flag, and a structured context
(execution id, link id, expected vs. actual status) so a caller can
self-correct without parsing the message.

Manifesto:
    - **Typed Error Hierarchy:** One class per failure kind the caller can act on
    - **Explicit Retry Semantics:** Only write conflicts are retryable
    - **Rich Context:** Errors carry ids and statuses for logging and clients
    - **Error Chaining:** Preserve the underlying driver exception as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                     SkillChainError                              │
        │  (category, retryable, context, cause)                          │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  NotFoundError        InvalidStateError    InvalidArgumentError │
        │  (NOT_FOUND)          (STATE)              (VALIDATION)         │
        │                                                                  │
        │  ConflictError                                                   │
        │  (CONFLICT, retryable=True)                                      │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    Raising a state error with context:

    >>> raise InvalidStateError(
    ...     "Can only advance a running execution",
    ...     expected="running",
    ...     actual="paused",
    ... ).with_context(execution_id="exec-1")
    Traceback (most recent call last):
    ...
    InvalidStateError: Can only advance a running execution

    Checking whether a caller may retry:

    >>> is_retryable(ConflictError("row changed"))
    True
    >>> is_retryable(NotFoundError("missing"))
    False

Guardrails:
    ❌ DON'T: Raise plain ValueError/RuntimeError from engine operations
    ✅ DO: Raise the SkillChainError subclass matching the failure kind

    ❌ DON'T: Retry NotFound/InvalidState/InvalidArgument automatically
    ✅ DO: Retry only ConflictError (the pre-condition check re-validates)

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    skillchain
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """
    Standard error categories for classification and routing.

    The ops layer maps each category onto a stable machine-readable
    error code, so categories double as the public error vocabulary.
    """

    NOT_FOUND = "NOT_FOUND"
    STATE = "STATE"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    DATABASE = "DATABASE"
    CONFIG = "CONFIG"
    INTERNAL = "INTERNAL"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set appear in :meth:`to_dict`; anything without a
    typed field goes into ``metadata``.

    Attributes:
        chain_id: Chain definition identifier
        link_id: Link identifier
        execution_id: Execution (run) identifier
        expected_status: Status(es) the operation requires
        actual_status: Status the record was found in
        metadata: Additional key-value pairs
    """

    chain_id: str | None = None
    link_id: str | None = None
    execution_id: str | None = None
    expected_status: str | None = None
    actual_status: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["chain_id", "link_id", "execution_id", "expected_status", "actual_status"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class SkillChainError(Exception):
    """
    Base class for all engine errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers
    normally only pass the message and, via :meth:`with_context`, the ids
    involved.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> SkillChainError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NotFoundError("Execution not found").with_context(
                execution_id=execution_id,
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


class NotFoundError(SkillChainError):
    """A chain, link, or execution identifier does not resolve."""

    default_category = ErrorCategory.NOT_FOUND


class InvalidStateError(SkillChainError):
    """The operation is not legal for the record's current status.

    ``expected`` and ``actual`` are copied into the error context so the
    caller sees which status the operation needed.
    """

    default_category = ErrorCategory.STATE

    def __init__(
        self,
        message: str,
        *,
        expected: str | None = None,
        actual: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.expected = expected
        self.actual = actual
        if expected is not None:
            self.context.expected_status = expected
        if actual is not None:
            self.context.actual_status = actual


class InvalidArgumentError(SkillChainError):
    """Malformed input: bad transition target, duplicate position, bad scope."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field
        if field is not None:
            self.context.metadata["field"] = field


class ConflictError(SkillChainError):
    """A concurrent write to the same record was detected.

    The only error class callers are expected to retry: re-issuing the
    same lifecycle call re-validates against the fresh state.
    """

    default_category = ErrorCategory.CONFLICT
    default_retryable = True


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, SkillChainError):
        return error.retryable
    return False


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, SkillChainError):
        return error.category
    return ErrorCategory.INTERNAL


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "SkillChainError",
    "NotFoundError",
    "InvalidStateError",
    "InvalidArgumentError",
    "ConflictError",
    "is_retryable",
    "categorize_error",
]
