"""Chain repository: skill_chains + skill_chain_links.

Tags:
    skillchain, repository, chains
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import exists, select
from sqlalchemy.orm import Session

from skillchain.chains.models import Chain, FailureTransition, Link, SuccessTransition
from skillchain.core.orm.tables import ChainExecutionTable, ChainLinkTable, ChainTable
from ._helpers import _apply_filters, scope_key_for


class ChainRepository:
    """Reads and writes chain definitions inside one unit of work."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # -- reads -----------------------------------------------------------------

    def get(self, chain_id: str) -> ChainTable | None:
        """Fetch a chain row by primary key."""
        return self.session.get(ChainTable, chain_id)

    def get_by_key(
        self,
        chain_key: str,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
    ) -> ChainTable | None:
        """Fetch a chain by key within exactly one scope."""
        return self.session.scalar(
            select(ChainTable).where(
                ChainTable.scope_key == scope_key_for(organization_id, project_id),
                ChainTable.chain_key == chain_key,
            )
        )

    def list_chains(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        published_only: bool = False,
    ) -> list[ChainTable]:
        """List chains ordered by key."""
        stmt = _apply_filters(
            select(ChainTable),
            {
                ChainTable.organization_id: organization_id,
                ChainTable.project_id: project_id,
            },
        )
        if published_only:
            stmt = stmt.where(ChainTable.is_published.is_(True))
        return list(self.session.scalars(stmt.order_by(ChainTable.chain_key)))

    def get_link(self, link_id: str) -> ChainLinkTable | None:
        """Fetch a link row by primary key."""
        return self.session.get(ChainLinkTable, link_id)

    def has_executions(self, chain_id: str) -> bool:
        """True if any execution references the chain."""
        return bool(
            self.session.scalar(
                select(exists().where(ChainExecutionTable.chain_id == chain_id))
            )
        )

    # -- writes ----------------------------------------------------------------

    def add(self, row: ChainTable | ChainLinkTable) -> None:
        self.session.add(row)

    def delete(self, row: ChainTable | ChainLinkTable) -> None:
        self.session.delete(row)

    def flush(self) -> None:
        self.session.flush()


def link_to_model(row: ChainLinkTable) -> Link:
    """Convert a link row into the domain dataclass."""
    return Link(
        id=row.id,
        chain_id=row.chain_id,
        position=row.position,
        name=row.name,
        description=row.description,
        skill_id=row.skill_id,
        agent_id=row.agent_id,
        max_retries=row.max_retries,
        on_success_transition=SuccessTransition(row.on_success_transition),
        on_success_target_link_id=row.on_success_target_link_id,
        on_failure_transition=FailureTransition(row.on_failure_transition),
        on_failure_target_link_id=row.on_failure_target_link_id,
        link_config=dict(row.link_config or {}),
    )


def chain_to_model(row: ChainTable) -> Chain:
    """Convert a chain row (with its links) into the domain dataclass."""
    return Chain(
        id=row.id,
        chain_key=row.chain_key,
        name=row.name,
        description=row.description,
        organization_id=row.organization_id,
        project_id=row.project_id,
        input_schema=row.input_schema,
        max_total_failures=row.max_total_failures,
        is_published=row.is_published,
        links=[link_to_model(link) for link in sorted(row.links, key=lambda l: l.position)],
        created_at=row.created_at,
        created_by=row.created_by,
        updated_at=row.updated_at,
        updated_by=row.updated_by,
    )


def apply_link_fields(row: ChainLinkTable, fields: dict[str, Any]) -> None:
    """Copy validated link fields onto *row*, storing enums by value."""
    for key, value in fields.items():
        if isinstance(value, (SuccessTransition, FailureTransition)):
            value = value.value
        setattr(row, key, value)
