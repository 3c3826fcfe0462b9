"""
Operations layer: the transport-agnostic API of skillchain.

Every operation follows the same shape:

- accepts an ``OperationContext`` as first argument
- returns ``OperationResult[T]`` and never raises
- maps engine errors onto ``NOT_FOUND``, ``INVALID_STATE``,
  ``INVALID_ARGUMENT`` and the retryable ``CONFLICT``

Usage::

    from skillchain.core.orm import create_skillchain_engine
    from skillchain.ops import OperationContext
    from skillchain.ops.database import initialize_database
    from skillchain.ops.executions import start_execution
    from skillchain.ops.requests import StartExecutionRequest

    ctx = OperationContext.from_engine(create_skillchain_engine("sqlite:///chains.db"))
    initialize_database(ctx)
    result = start_execution(ctx, StartExecutionRequest(chain_id=chain_id))
    assert result.success
"""

from skillchain.ops.context import OperationContext
from skillchain.ops.result import OperationError, OperationResult, PagedResult

__all__ = [
    "OperationContext",
    "OperationError",
    "OperationResult",
    "PagedResult",
]
