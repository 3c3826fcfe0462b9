"""
Database operations.

Thin wrapper around :func:`skillchain.core.orm.session.init_schema` for
table creation.
"""

from __future__ import annotations

from skillchain.core.logging import get_logger
from skillchain.core.orm import SkillChainBase, init_schema
from skillchain.ops.context import OperationContext
from skillchain.ops.requests import DatabaseInitRequest
from skillchain.ops.responses import DatabaseInitResult
from skillchain.ops.result import OperationResult, start_timer

logger = get_logger(__name__)


def initialize_database(
    ctx: OperationContext,
    request: DatabaseInitRequest | None = None,
) -> OperationResult[DatabaseInitResult]:
    """Create all skillchain tables (idempotent).

    With ``drop_existing`` every skillchain table is dropped first; all
    chains and run history are lost.
    """
    request = request or DatabaseInitRequest()
    timer = start_timer()
    table_names = sorted(SkillChainBase.metadata.tables)

    if ctx.dry_run:
        return OperationResult.ok(
            DatabaseInitResult(tables_created=table_names, dry_run=True),
            elapsed_ms=timer.elapsed_ms,
        )

    if ctx.engine is None:
        return OperationResult.fail(
            "INVALID_ARGUMENT",
            "initialize_database needs a context built with an engine",
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        if request.drop_existing:
            SkillChainBase.metadata.drop_all(ctx.engine)
            logger.warning("schema_dropped", tables=len(table_names))
        created = init_schema(ctx.engine)
        return OperationResult.ok(
            DatabaseInitResult(tables_created=created),
            elapsed_ms=timer.elapsed_ms,
        )
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return OperationResult.fail(
            "INTERNAL",
            f"Failed to create tables: {exc}",
            elapsed_ms=timer.elapsed_ms,
        )
