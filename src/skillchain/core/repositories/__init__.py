"""ORM-backed repositories for the skillchain store.

Each repository wraps the ``Session`` of the surrounding
:class:`~skillchain.core.orm.session.UnitOfWork`; none of them commits.
"""

from skillchain.core.repositories._helpers import PageSlice, scope_key_for
from skillchain.core.repositories.chains import (
    ChainRepository,
    apply_link_fields,
    chain_to_model,
    link_to_model,
)
from skillchain.core.repositories.executions import (
    ExecutionRepository,
    checkpoint_to_model,
    execution_to_model,
    link_execution_to_model,
)

__all__ = [
    "PageSlice",
    "scope_key_for",
    "ChainRepository",
    "ExecutionRepository",
    "apply_link_fields",
    "chain_to_model",
    "link_to_model",
    "checkpoint_to_model",
    "execution_to_model",
    "link_execution_to_model",
]
