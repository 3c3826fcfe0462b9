"""SQLAlchemy 2.0 ORM layer for the skillchain store.

Modules
-------
base        SkillChainBase (declarative base)
session     Engine factory, SkillChainSession, UnitOfWork, init_schema
tables      The five mapped tables (chains, links, executions, attempts, checkpoints)
"""

from __future__ import annotations

from skillchain.core.orm.base import SkillChainBase
from skillchain.core.orm.session import (
    SkillChainSession,
    UnitOfWork,
    create_skillchain_engine,
    engine_from_settings,
    init_schema,
    skillchain_session_factory,
)
from skillchain.core.orm.tables import *  # noqa: F401,F403

__all__ = [
    "SkillChainBase",
    "SkillChainSession",
    "UnitOfWork",
    "create_skillchain_engine",
    "engine_from_settings",
    "init_schema",
    "skillchain_session_factory",
    "ChainTable",
    "ChainLinkTable",
    "ChainExecutionTable",
    "LinkExecutionTable",
    "ExecutionCheckpointTable",
]
