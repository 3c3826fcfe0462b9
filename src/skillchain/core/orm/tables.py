"""Skill-chain table definitions: chains, links, executions, attempts, checkpoints.

Chains own their links; executions own their link attempts and
checkpoints (ORM ``delete-orphan`` cascade plus ``ON DELETE CASCADE``).
Executions reference chains without owning them: the foreign key has no
cascade, so a chain that still has runs cannot be deleted.

Both ``skill_chains`` and ``skill_chain_executions`` carry a ``version``
column wired as the mapper's ``version_id_col``.  Every UPDATE is issued
as ``... WHERE id = :id AND version = :seen`` so a concurrent writer
fails with ``StaleDataError`` instead of overwriting.

Tags:
    skillchain, orm, sqlalchemy, tables
"""

from __future__ import annotations

import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from skillchain.core.orm.base import SkillChainBase

_NOW = text("(CURRENT_TIMESTAMP)")


class ChainTable(SkillChainBase):
    __tablename__ = "skill_chains"
    __table_args__ = (
        UniqueConstraint("scope_key", "chain_key", name="uq_skill_chains_scope_key"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    chain_key: Mapped[str] = mapped_column(Text, nullable=False)
    # "org:<id>" or "project:<id>"; keeps the uniqueness constraint free of NULLs
    scope_key: Mapped[str] = mapped_column(Text, nullable=False)
    organization_id: Mapped[str | None] = mapped_column(Text)
    project_id: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    input_schema: Mapped[dict | None] = mapped_column(JSON)
    max_total_failures: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, server_default=_NOW
    )
    created_by: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    updated_by: Mapped[str | None] = mapped_column(Text)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # --- relationships ---
    links: Mapped[list[ChainLinkTable]] = relationship(
        "ChainLinkTable",
        back_populates="chain",
        order_by="ChainLinkTable.position",
        cascade="all, delete-orphan",
    )


class ChainLinkTable(SkillChainBase):
    __tablename__ = "skill_chain_links"
    __table_args__ = (
        UniqueConstraint("chain_id", "position", name="uq_skill_chain_links_position"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    chain_id: Mapped[str] = mapped_column(
        Text, ForeignKey("skill_chains.id", ondelete="CASCADE"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    skill_id: Mapped[str] = mapped_column(Text, nullable=False)
    agent_id: Mapped[str | None] = mapped_column(Text)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    on_success_transition: Mapped[str] = mapped_column(
        Text, default="next_link", nullable=False
    )
    # Jump targets are plain ids within the same chain (checked on write)
    on_success_target_link_id: Mapped[str | None] = mapped_column(Text)
    on_failure_transition: Mapped[str] = mapped_column(
        Text, default="retry", nullable=False
    )
    on_failure_target_link_id: Mapped[str | None] = mapped_column(Text)
    link_config: Mapped[dict | None] = mapped_column(JSON)

    chain: Mapped[ChainTable] = relationship("ChainTable", back_populates="links")


class ChainExecutionTable(SkillChainBase):
    __tablename__ = "skill_chain_executions"
    __table_args__ = (
        Index("ix_skill_chain_executions_chain", "chain_id"),
        Index("ix_skill_chain_executions_status", "status"),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    chain_id: Mapped[str] = mapped_column(
        Text, ForeignKey("skill_chains.id"), nullable=False
    )
    ticket_id: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(Text, default="pending", nullable=False)
    current_link_id: Mapped[str | None] = mapped_column(Text)
    input_values: Mapped[dict | None] = mapped_column(JSON)
    execution_context: Mapped[dict | None] = mapped_column(JSON)
    total_failure_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    requires_human_intervention: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    intervention_reason: Mapped[str | None] = mapped_column(Text)
    # Chain + links pinned at start; the resolver only reads this
    definition: Mapped[dict] = mapped_column(JSON, nullable=False)
    session_options: Mapped[dict | None] = mapped_column(JSON)
    started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    started_by: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    completed_by: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # --- relationships ---
    link_executions: Mapped[list[LinkExecutionTable]] = relationship(
        "LinkExecutionTable",
        back_populates="execution",
        order_by="LinkExecutionTable.started_at",
        cascade="all, delete-orphan",
    )
    checkpoints: Mapped[list[ExecutionCheckpointTable]] = relationship(
        "ExecutionCheckpointTable",
        back_populates="execution",
        order_by="ExecutionCheckpointTable.position",
        cascade="all, delete-orphan",
    )


class LinkExecutionTable(SkillChainBase):
    __tablename__ = "skill_chain_link_executions"
    __table_args__ = (
        UniqueConstraint(
            "execution_id", "link_id", "attempt_number",
            name="uq_skill_chain_link_executions_attempt",
        ),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    execution_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("skill_chain_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Refers to a link in the execution's pinned definition, not a live row
    link_id: Mapped[str] = mapped_column(Text, nullable=False)
    attempt_number: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome: Mapped[str] = mapped_column(Text, nullable=False)
    input: Mapped[dict | None] = mapped_column(JSON)
    output: Mapped[dict | None] = mapped_column(JSON)
    error_details: Mapped[dict | None] = mapped_column(JSON)
    transition_taken: Mapped[str | None] = mapped_column(Text)
    started_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    completed_at: Mapped[datetime.datetime | None] = mapped_column(DateTime)
    executed_by: Mapped[str | None] = mapped_column(Text)

    execution: Mapped[ChainExecutionTable] = relationship(
        "ChainExecutionTable", back_populates="link_executions"
    )


class ExecutionCheckpointTable(SkillChainBase):
    __tablename__ = "skill_chain_checkpoints"
    __table_args__ = (
        UniqueConstraint(
            "execution_id", "position", name="uq_skill_chain_checkpoints_position"
        ),
    )

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    execution_id: Mapped[str] = mapped_column(
        Text,
        ForeignKey("skill_chain_executions.id", ondelete="CASCADE"),
        nullable=False,
    )
    link_id: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime, nullable=False, server_default=_NOW
    )

    execution: Mapped[ChainExecutionTable] = relationship(
        "ChainExecutionTable", back_populates="checkpoints"
    )


__all__ = [
    "ChainTable",
    "ChainLinkTable",
    "ChainExecutionTable",
    "LinkExecutionTable",
    "ExecutionCheckpointTable",
]
