"""
Chain authoring operations.

Create, edit, publish and delete chain definitions and their links.
Wraps :class:`~skillchain.chains.definitions.ChainDefinitionService` with
typed request/response contracts.
"""

from __future__ import annotations

from skillchain.chains.definitions import LinkSpec
from skillchain.chains.models import Chain, Link
from skillchain.chains.registry import SkillRegistry
from skillchain.core.errors import SkillChainError
from skillchain.core.logging import get_logger
from skillchain.ops.context import OperationContext
from skillchain.ops.requests import (
    AddLinkRequest,
    ChainRequest,
    CreateChainRequest,
    ListChainsRequest,
    RemoveLinkRequest,
    ReorderLinksRequest,
    UpdateChainRequest,
    UpdateLinkRequest,
)
from skillchain.ops.responses import ChainDetail, ChainSummary, LinkView
from skillchain.ops.result import OperationResult, PagedResult, start_timer

logger = get_logger(__name__)


def create_chain(
    ctx: OperationContext, request: CreateChainRequest
) -> OperationResult[ChainDetail]:
    """Create an unpublished chain in one organization or project."""
    timer = start_timer()

    if not request.chain_key or not request.name:
        return OperationResult.fail(
            "INVALID_ARGUMENT",
            "chain_key and name are required",
            elapsed_ms=timer.elapsed_ms,
        )

    try:
        chain = ctx.definitions.create_chain(
            request.chain_key,
            request.name,
            organization_id=request.organization_id,
            project_id=request.project_id,
            description=request.description,
            input_schema=request.input_schema,
            max_total_failures=request.max_total_failures,
            created_by=ctx.actor,
        )
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("create chain", exc, timer.elapsed_ms)


def get_chain(ctx: OperationContext, request: ChainRequest) -> OperationResult[ChainDetail]:
    """Return a chain with its ordered links."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        chain = ctx.definitions.get_chain(request.chain_id)
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("get chain", exc, timer.elapsed_ms)


def list_chains(
    ctx: OperationContext, request: ListChainsRequest | None = None
) -> PagedResult[ChainSummary]:
    """List chains, optionally for one scope or only published ones."""
    request = request or ListChainsRequest()
    timer = start_timer()

    try:
        chains = ctx.definitions.list_chains(
            organization_id=request.organization_id,
            project_id=request.project_id,
            published_only=request.published_only,
        )
        summaries = [_chain_summary(chain) for chain in chains]
        return PagedResult.from_items(
            summaries,
            total=len(summaries),
            limit=len(summaries) or 1,
            elapsed_ms=timer.elapsed_ms,
        )
    except Exception as exc:
        logger.exception("op_failed", error=str(exc))
        return PagedResult(
            success=False,
            error=OperationResult.fail("INTERNAL", f"Failed to list chains: {exc}").error,
            elapsed_ms=timer.elapsed_ms,
        )


def update_chain(
    ctx: OperationContext, request: UpdateChainRequest
) -> OperationResult[ChainDetail]:
    """Update chain-level fields."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        chain = ctx.definitions.update_chain(
            request.chain_id,
            name=request.name,
            description=request.description,
            input_schema=request.input_schema,
            max_total_failures=request.max_total_failures,
            updated_by=ctx.actor,
        )
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("update chain", exc, timer.elapsed_ms)


def delete_chain(ctx: OperationContext, request: ChainRequest) -> OperationResult[None]:
    """Delete a chain that no execution references."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        ctx.definitions.delete_chain(request.chain_id)
        return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("delete chain", exc, timer.elapsed_ms)


def publish_chain(ctx: OperationContext, request: ChainRequest) -> OperationResult[ChainDetail]:
    """Allow new executions of a chain."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        chain = ctx.definitions.publish_chain(request.chain_id, published_by=ctx.actor)
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("publish chain", exc, timer.elapsed_ms)


def unpublish_chain(
    ctx: OperationContext, request: ChainRequest
) -> OperationResult[ChainDetail]:
    """Block new executions; running ones continue."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        chain = ctx.definitions.unpublish_chain(request.chain_id, unpublished_by=ctx.actor)
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("unpublish chain", exc, timer.elapsed_ms)


def add_link(ctx: OperationContext, request: AddLinkRequest) -> OperationResult[LinkView]:
    """Append a link to a chain, or insert it at ``request.position``."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        link = ctx.definitions.add_link(
            request.chain_id,
            LinkSpec(
                name=request.name,
                skill_id=request.skill_id,
                agent_id=request.agent_id,
                description=request.description,
                max_retries=request.max_retries,
                on_success_transition=request.on_success_transition,
                on_success_target_link_id=request.on_success_target_link_id,
                on_failure_transition=request.on_failure_transition,
                on_failure_target_link_id=request.on_failure_target_link_id,
                link_config=dict(request.link_config),
                position=request.position,
            ),
            updated_by=ctx.actor,
        )
        return OperationResult.ok(link_view(link, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("add link", exc, timer.elapsed_ms)


def update_link(ctx: OperationContext, request: UpdateLinkRequest) -> OperationResult[LinkView]:
    """Update link fields."""
    timer = start_timer()

    if not request.link_id:
        return _missing("link_id", timer.elapsed_ms)

    try:
        link = ctx.definitions.update_link(
            request.link_id,
            name=request.name,
            description=request.description,
            skill_id=request.skill_id,
            agent_id=request.agent_id,
            max_retries=request.max_retries,
            on_success_transition=request.on_success_transition,
            on_success_target_link_id=request.on_success_target_link_id,
            on_failure_transition=request.on_failure_transition,
            on_failure_target_link_id=request.on_failure_target_link_id,
            link_config=request.link_config,
            updated_by=ctx.actor,
        )
        return OperationResult.ok(link_view(link, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("update link", exc, timer.elapsed_ms)


def remove_link(ctx: OperationContext, request: RemoveLinkRequest) -> OperationResult[None]:
    """Remove a link that no other link jumps to."""
    timer = start_timer()

    if not request.link_id:
        return _missing("link_id", timer.elapsed_ms)

    try:
        ctx.definitions.remove_link(request.link_id, updated_by=ctx.actor)
        return OperationResult.ok(None, elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("remove link", exc, timer.elapsed_ms)


def reorder_links(
    ctx: OperationContext, request: ReorderLinksRequest
) -> OperationResult[ChainDetail]:
    """Give the chain's links positions 1..n in the requested order."""
    timer = start_timer()

    if not request.chain_id:
        return _missing("chain_id", timer.elapsed_ms)

    try:
        chain = ctx.definitions.reorder_links(
            request.chain_id, list(request.ordered_link_ids), updated_by=ctx.actor
        )
        return OperationResult.ok(chain_detail(chain, ctx.registry), elapsed_ms=timer.elapsed_ms)
    except SkillChainError as exc:
        return OperationResult.from_error(exc, elapsed_ms=timer.elapsed_ms)
    except Exception as exc:
        return _internal("reorder links", exc, timer.elapsed_ms)


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def link_view(link: Link, registry: SkillRegistry) -> LinkView:
    return LinkView(
        id=link.id,
        position=link.position,
        name=link.name,
        description=link.description,
        skill_id=link.skill_id,
        skill_name=registry.skill_name(link.skill_id),
        agent_id=link.agent_id,
        agent_name=registry.agent_name(link.agent_id) if link.agent_id else None,
        max_retries=link.max_retries,
        on_success_transition=link.on_success_transition.value,
        on_success_target_link_id=link.on_success_target_link_id,
        on_failure_transition=link.on_failure_transition.value,
        on_failure_target_link_id=link.on_failure_target_link_id,
        link_config=link.link_config,
    )


def chain_detail(chain: Chain, registry: SkillRegistry) -> ChainDetail:
    data = chain.to_dict()
    return ChainDetail(
        id=chain.id,
        chain_key=chain.chain_key,
        name=chain.name,
        description=chain.description,
        scope=chain.scope,
        scope_id=chain.organization_id or chain.project_id or "",
        is_published=chain.is_published,
        max_total_failures=chain.max_total_failures,
        input_schema=chain.input_schema,
        links=[link_view(link, registry) for link in chain.links],
        created_at=data["created_at"],
        created_by=chain.created_by,
        updated_at=data["updated_at"],
        updated_by=chain.updated_by,
    )


def _chain_summary(chain: Chain) -> ChainSummary:
    return ChainSummary(
        id=chain.id,
        chain_key=chain.chain_key,
        name=chain.name,
        scope=chain.scope,
        scope_id=chain.organization_id or chain.project_id or "",
        is_published=chain.is_published,
        link_count=len(chain.links),
        max_total_failures=chain.max_total_failures,
    )


def _missing(field_name: str, elapsed_ms: float) -> OperationResult:
    return OperationResult.fail(
        "INVALID_ARGUMENT", f"{field_name} is required", elapsed_ms=elapsed_ms
    )


def _internal(action: str, exc: Exception, elapsed_ms: float) -> OperationResult:
    logger.exception("op_failed", error=str(exc))
    return OperationResult.fail("INTERNAL", f"Failed to {action}: {exc}", elapsed_ms=elapsed_ms)
