"""Chain authoring: create, edit, publish and delete chain definitions.

Every method runs in its own :class:`UnitOfWork` and validates before it
writes.  Link positions are kept dense (1..n) after every insert, removal
and reorder; renumbering goes through negative scratch positions so the
``(chain_id, position)`` unique constraint never trips mid-flush.

Editing a published chain is allowed: running executions read the
definition pinned when they started, so only new runs see the change.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from skillchain.chains.models import (
    Chain,
    FailureTransition,
    Link,
    SuccessTransition,
    UNSET,
    coerce_enum,
    new_id,
    utcnow,
)
from skillchain.chains.validation import (
    validate_chain_fields,
    validate_link,
    validate_links,
    validate_scope,
)
from skillchain.core.config import SkillChainSettings, get_settings
from skillchain.core.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from skillchain.core.logging import get_logger
from skillchain.core.orm.session import UnitOfWork
from skillchain.core.orm.tables import ChainLinkTable, ChainTable
from skillchain.core.repositories import (
    ChainRepository,
    apply_link_fields,
    chain_to_model,
    link_to_model,
    scope_key_for,
)

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class LinkSpec:
    """Input for :meth:`ChainDefinitionService.add_link`.

    ``position`` ``None`` appends; otherwise the link is inserted there and
    later links shift down by one.  ``max_retries`` ``None`` takes the
    configured default.
    """

    name: str
    skill_id: str
    agent_id: str | None = None
    description: str | None = None
    max_retries: int | None = None
    on_success_transition: SuccessTransition | str = SuccessTransition.NEXT_LINK
    on_success_target_link_id: str | None = None
    on_failure_transition: FailureTransition | str = FailureTransition.RETRY
    on_failure_target_link_id: str | None = None
    link_config: dict[str, Any] = field(default_factory=dict)
    position: int | None = None


class ChainDefinitionService:
    """Authoring operations over the chain definition store."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        settings: SkillChainSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    def _uow(self) -> UnitOfWork:
        return UnitOfWork(self._session_factory)

    # ------------------------------------------------------------------ #
    # Chains
    # ------------------------------------------------------------------ #

    def create_chain(
        self,
        chain_key: str,
        name: str,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        max_total_failures: int | None = None,
        created_by: str | None = None,
    ) -> Chain:
        """Create an unpublished, link-less chain.

        Raises:
            InvalidArgumentError: Bad scope, bad fields, or the key is
                already used in the same scope.
        """
        if max_total_failures is None:
            max_total_failures = self._settings.default_max_total_failures
        validate_scope(organization_id, project_id)
        validate_chain_fields(
            chain_key=chain_key, name=name, max_total_failures=max_total_failures
        )

        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            if repo.get_by_key(
                chain_key, organization_id=organization_id, project_id=project_id
            ):
                raise InvalidArgumentError(
                    f"Chain with key '{chain_key}' already exists in this scope",
                    field="chain_key",
                )
            now = utcnow()
            row = ChainTable(
                id=new_id(),
                chain_key=chain_key,
                scope_key=scope_key_for(organization_id, project_id),
                organization_id=organization_id,
                project_id=project_id,
                name=name,
                description=description,
                input_schema=input_schema,
                max_total_failures=max_total_failures,
                is_published=False,
                created_at=now,
                created_by=created_by,
                updated_at=now,
                updated_by=created_by,
            )
            repo.add(row)
            repo.flush()
            chain = chain_to_model(row)

        logger.info("chain_created", chain_id=chain.id, chain_key=chain_key, scope=chain.scope)
        return chain

    def get_chain(self, chain_id: str) -> Chain:
        with self._uow() as uow:
            return chain_to_model(self._load_chain(ChainRepository(uow.session), chain_id))

    def get_chain_by_key(
        self,
        chain_key: str,
        *,
        project_id: str | None = None,
        organization_id: str | None = None,
    ) -> Chain:
        """Find a chain by key, checking the project scope before the organization."""
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = None
            if project_id:
                row = repo.get_by_key(chain_key, project_id=project_id)
            if row is None and organization_id:
                row = repo.get_by_key(chain_key, organization_id=organization_id)
            if row is None:
                raise NotFoundError(f"Chain with key '{chain_key}' not found")
            return chain_to_model(row)

    def list_chains(
        self,
        *,
        organization_id: str | None = None,
        project_id: str | None = None,
        published_only: bool = False,
    ) -> list[Chain]:
        with self._uow() as uow:
            rows = ChainRepository(uow.session).list_chains(
                organization_id=organization_id,
                project_id=project_id,
                published_only=published_only,
            )
            return [chain_to_model(row) for row in rows]

    def update_chain(
        self,
        chain_id: str,
        *,
        name: str | None = None,
        description: str | None = None,
        input_schema: dict[str, Any] | None = None,
        max_total_failures: int | None = None,
        updated_by: str | None = None,
    ) -> Chain:
        """Update chain-level fields; ``None`` leaves a field unchanged."""
        validate_chain_fields(name=name, max_total_failures=max_total_failures)

        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = self._load_chain(repo, chain_id)
            if name is not None:
                row.name = name
            if description is not None:
                row.description = description
            if input_schema is not None:
                row.input_schema = input_schema
            if max_total_failures is not None:
                row.max_total_failures = max_total_failures
            self._touch(row, updated_by)
            repo.flush()
            chain = chain_to_model(row)

        logger.info("chain_updated", chain_id=chain_id)
        return chain

    def delete_chain(self, chain_id: str) -> None:
        """Delete a chain and its links.

        Raises:
            InvalidStateError: If any execution references the chain.
        """
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = self._load_chain(repo, chain_id)
            if repo.has_executions(chain_id):
                raise InvalidStateError(
                    "Cannot delete a chain that has executions"
                ).with_context(chain_id=chain_id)
            repo.delete(row)

        logger.info("chain_deleted", chain_id=chain_id)

    def publish_chain(self, chain_id: str, *, published_by: str | None = None) -> Chain:
        """Allow new runs; requires at least one link and a valid link graph."""
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = self._load_chain(repo, chain_id)
            if not row.links:
                raise InvalidStateError(
                    "Cannot publish a chain with no links",
                    expected="at least one link",
                    actual="0 links",
                ).with_context(chain_id=chain_id)
            validate_links(link_to_model(link) for link in row.links)
            row.is_published = True
            self._touch(row, published_by)
            repo.flush()
            chain = chain_to_model(row)

        logger.info("chain_published", chain_id=chain_id, links=len(chain.links))
        return chain

    def unpublish_chain(self, chain_id: str, *, unpublished_by: str | None = None) -> Chain:
        """Block new runs; executions already started are unaffected."""
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = self._load_chain(repo, chain_id)
            row.is_published = False
            self._touch(row, unpublished_by)
            repo.flush()
            chain = chain_to_model(row)

        logger.info("chain_unpublished", chain_id=chain_id)
        return chain

    # ------------------------------------------------------------------ #
    # Links
    # ------------------------------------------------------------------ #

    def add_link(
        self, chain_id: str, spec: LinkSpec, *, updated_by: str | None = None
    ) -> Link:
        """Append a link, or insert it at ``spec.position``."""
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            chain_row = self._load_chain(repo, chain_id)
            existing = list(chain_row.links)

            position = spec.position if spec.position is not None else len(existing) + 1
            if not 1 <= position <= len(existing) + 1:
                raise InvalidArgumentError(
                    f"Position must be between 1 and {len(existing) + 1}, got {position}",
                    field="position",
                )

            link = Link(
                id=new_id(),
                chain_id=chain_id,
                position=position,
                name=spec.name,
                description=spec.description,
                skill_id=spec.skill_id,
                agent_id=spec.agent_id,
                max_retries=(
                    spec.max_retries
                    if spec.max_retries is not None
                    else self._settings.default_max_retries
                ),
                on_success_transition=coerce_enum(
                    SuccessTransition, spec.on_success_transition, "on_success_transition"
                ),
                on_success_target_link_id=spec.on_success_target_link_id,
                on_failure_transition=coerce_enum(
                    FailureTransition, spec.on_failure_transition, "on_failure_transition"
                ),
                on_failure_target_link_id=spec.on_failure_target_link_id,
                link_config=dict(spec.link_config),
            )
            validate_link(link, [row.id for row in existing] + [link.id])

            link_row = ChainLinkTable(id=link.id, chain_id=chain_id)
            apply_link_fields(link_row, _link_columns(link))

            ordered = existing[: position - 1] + [link_row] + existing[position - 1 :]
            _park_positions(repo, existing)
            chain_row.links.append(link_row)
            for index, row in enumerate(ordered, start=1):
                row.position = index
            self._touch(chain_row, updated_by)
            repo.flush()
            result = link_to_model(link_row)

        logger.info("link_added", chain_id=chain_id, link_id=result.id, position=result.position)
        return result

    def update_link(
        self,
        link_id: str,
        *,
        name: str | None = None,
        description: str | None = UNSET,
        skill_id: str | None = None,
        agent_id: str | None = UNSET,
        max_retries: int | None = None,
        on_success_transition: SuccessTransition | str | None = None,
        on_success_target_link_id: str | None = UNSET,
        on_failure_transition: FailureTransition | str | None = None,
        on_failure_target_link_id: str | None = UNSET,
        link_config: dict[str, Any] | None = None,
        updated_by: str | None = None,
    ) -> Link:
        """Update link fields.

        ``None`` leaves a required field unchanged.  The optional fields
        (``description``, ``agent_id`` and both GoToLink targets) are left
        alone when omitted and cleared when passed ``None``.  Switching a
        transition away from GoToLink clears its target.
        """
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = repo.get_link(link_id)
            if row is None:
                raise NotFoundError(f"Link '{link_id}' not found").with_context(link_id=link_id)

            link = link_to_model(row)
            if name is not None:
                link.name = name
            if description is not UNSET:
                link.description = description
            if skill_id is not None:
                link.skill_id = skill_id
            if agent_id is not UNSET:
                link.agent_id = agent_id
            if max_retries is not None:
                link.max_retries = max_retries
            if link_config is not None:
                link.link_config = dict(link_config)
            if on_success_transition is not None:
                link.on_success_transition = coerce_enum(
                    SuccessTransition, on_success_transition, "on_success_transition"
                )
                if link.on_success_transition != SuccessTransition.GO_TO_LINK:
                    link.on_success_target_link_id = None
            if on_success_target_link_id is not UNSET:
                link.on_success_target_link_id = on_success_target_link_id
            if on_failure_transition is not None:
                link.on_failure_transition = coerce_enum(
                    FailureTransition, on_failure_transition, "on_failure_transition"
                )
                if link.on_failure_transition != FailureTransition.GO_TO_LINK:
                    link.on_failure_target_link_id = None
            if on_failure_target_link_id is not UNSET:
                link.on_failure_target_link_id = on_failure_target_link_id

            chain_row = row.chain
            validate_link(link, [other.id for other in chain_row.links])
            apply_link_fields(row, _link_columns(link))
            self._touch(chain_row, updated_by)
            repo.flush()
            result = link_to_model(row)

        logger.info("link_updated", chain_id=result.chain_id, link_id=link_id)
        return result

    def remove_link(self, link_id: str, *, updated_by: str | None = None) -> None:
        """Remove a link and close the position gap.

        Raises:
            InvalidArgumentError: If another link jumps to this one.
        """
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            row = repo.get_link(link_id)
            if row is None:
                raise NotFoundError(f"Link '{link_id}' not found").with_context(link_id=link_id)
            chain_row = row.chain

            referrers = [
                other
                for other in chain_row.links
                if other.id != link_id
                and link_id in (other.on_success_target_link_id, other.on_failure_target_link_id)
            ]
            if referrers:
                names = ", ".join(f"'{other.name}'" for other in referrers)
                raise InvalidArgumentError(
                    f"Link is the GoToLink target of {names}; retarget them first",
                    field="link_id",
                ).with_context(chain_id=chain_row.id, link_id=link_id)

            remaining = [other for other in chain_row.links if other.id != link_id]
            chain_row.links.remove(row)
            repo.flush()
            _park_positions(repo, remaining)
            for index, other in enumerate(remaining, start=1):
                other.position = index
            self._touch(chain_row, updated_by)
            chain_id = chain_row.id

        logger.info("link_removed", chain_id=chain_id, link_id=link_id)

    def reorder_links(
        self,
        chain_id: str,
        ordered_link_ids: Sequence[str],
        *,
        updated_by: str | None = None,
    ) -> Chain:
        """Assign positions 1..n in the given order.

        Raises:
            InvalidArgumentError: Unless the ids are exactly the chain's links.
        """
        with self._uow() as uow:
            repo = ChainRepository(uow.session)
            chain_row = self._load_chain(repo, chain_id)
            by_id = {row.id: row for row in chain_row.links}
            if len(ordered_link_ids) != len(by_id) or set(ordered_link_ids) != set(by_id):
                raise InvalidArgumentError(
                    "ordered_link_ids must list every link of the chain exactly once",
                    field="ordered_link_ids",
                ).with_context(chain_id=chain_id)

            _park_positions(repo, list(by_id.values()))
            for index, link_id in enumerate(ordered_link_ids, start=1):
                by_id[link_id].position = index
            self._touch(chain_row, updated_by)
            repo.flush()
            chain = chain_to_model(chain_row)

        logger.info("links_reordered", chain_id=chain_id, links=len(ordered_link_ids))
        return chain

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _load_chain(repo: ChainRepository, chain_id: str) -> ChainTable:
        row = repo.get(chain_id)
        if row is None:
            raise NotFoundError(f"Chain '{chain_id}' not found").with_context(chain_id=chain_id)
        return row

    @staticmethod
    def _touch(row: ChainTable, actor: str | None) -> None:
        row.updated_at = utcnow()
        if actor:
            row.updated_by = actor


def _park_positions(repo: ChainRepository, rows: list[ChainLinkTable]) -> None:
    """Move rows to negative positions so the final renumbering cannot collide."""
    for index, row in enumerate(rows, start=1):
        row.position = -index
    repo.flush()


def _link_columns(link: Link) -> dict[str, Any]:
    return {
        "position": link.position,
        "name": link.name,
        "description": link.description,
        "skill_id": link.skill_id,
        "agent_id": link.agent_id,
        "max_retries": link.max_retries,
        "on_success_transition": link.on_success_transition,
        "on_success_target_link_id": link.on_success_target_link_id,
        "on_failure_transition": link.on_failure_transition,
        "on_failure_target_link_id": link.on_failure_target_link_id,
        "link_config": link.link_config,
    }


__all__ = ["ChainDefinitionService", "LinkSpec"]
