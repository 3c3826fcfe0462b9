"""
CLI: ``skillchain chains``: chain authoring commands.
"""

from __future__ import annotations

import typer

from skillchain.cli.utils import make_context, output_paged, output_result, parse_json_option

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_chains(
    org: str | None = typer.Option(None, "--org", help="Organization id"),
    project: str | None = typer.Option(None, "--project", help="Project id"),
    published: bool = typer.Option(False, "--published", help="Only published chains"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List chain definitions."""
    from skillchain.ops.chains import list_chains as _list
    from skillchain.ops.requests import ListChainsRequest

    ctx = make_context(database)
    request = ListChainsRequest(organization_id=org, project_id=project, published_only=published)
    output_paged(_list(ctx, request), as_json=json_out, title="Chains")


@app.command("show")
def show_chain(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show a chain with its links."""
    from skillchain.ops.chains import get_chain
    from skillchain.ops.requests import ChainRequest

    ctx = make_context(database)
    result = get_chain(ctx, ChainRequest(chain_id=chain_id))
    output_result(result, as_json=json_out, title=f"Chain: {chain_id}")


@app.command("create")
def create_chain(
    chain_key: str = typer.Argument(..., help="Key, unique within the scope"),
    name: str = typer.Argument(..., help="Display name"),
    org: str | None = typer.Option(None, "--org", help="Organization id"),
    project: str | None = typer.Option(None, "--project", help="Project id"),
    description: str | None = typer.Option(None, "--description"),
    max_total_failures: int | None = typer.Option(None, "--max-total-failures"),
    user: str | None = typer.Option(None, "--user", "-u", help="Acting user"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Create an unpublished chain in an organization or a project."""
    from skillchain.ops.chains import create_chain as _create
    from skillchain.ops.requests import CreateChainRequest

    ctx = make_context(database, user=user)
    request = CreateChainRequest(
        chain_key=chain_key,
        name=name,
        organization_id=org,
        project_id=project,
        description=description,
        max_total_failures=max_total_failures,
    )
    output_result(_create(ctx, request), as_json=json_out, title="Chain Created")


@app.command("add-link")
def add_link(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    name: str = typer.Argument(..., help="Link name"),
    skill_id: str = typer.Option(..., "--skill", "-s", help="Skill id"),
    agent_id: str | None = typer.Option(None, "--agent", help="Agent id"),
    max_retries: int | None = typer.Option(None, "--max-retries"),
    on_success: str = typer.Option("next_link", "--on-success"),
    success_target: str | None = typer.Option(None, "--success-target"),
    on_failure: str = typer.Option("retry", "--on-failure"),
    failure_target: str | None = typer.Option(None, "--failure-target"),
    position: int | None = typer.Option(None, "--position", help="Insert at this position"),
    config: str | None = typer.Option(None, "--config", help="Link config as JSON"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Add a link to a chain."""
    from skillchain.ops.chains import add_link as _add
    from skillchain.ops.requests import AddLinkRequest

    ctx = make_context(database, user=user)
    request = AddLinkRequest(
        chain_id=chain_id,
        name=name,
        skill_id=skill_id,
        agent_id=agent_id,
        max_retries=max_retries,
        on_success_transition=on_success,
        on_success_target_link_id=success_target,
        on_failure_transition=on_failure,
        on_failure_target_link_id=failure_target,
        link_config=parse_json_option(config, "--config") or {},
        position=position,
    )
    output_result(_add(ctx, request), as_json=json_out, title="Link Added")


@app.command("remove-link")
def remove_link(
    link_id: str = typer.Argument(..., help="Link ID"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Remove a link no other link jumps to."""
    from skillchain.ops.chains import remove_link as _remove
    from skillchain.ops.requests import RemoveLinkRequest

    ctx = make_context(database, user=user)
    output_result(_remove(ctx, RemoveLinkRequest(link_id=link_id)), as_json=json_out, title="Link Removed")


@app.command()
def publish(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Publish a chain so it can be started."""
    from skillchain.ops.chains import publish_chain
    from skillchain.ops.requests import ChainRequest

    ctx = make_context(database, user=user)
    output_result(publish_chain(ctx, ChainRequest(chain_id=chain_id)), as_json=json_out, title="Published")


@app.command()
def unpublish(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Stop new executions of a chain."""
    from skillchain.ops.chains import unpublish_chain
    from skillchain.ops.requests import ChainRequest

    ctx = make_context(database, user=user)
    output_result(unpublish_chain(ctx, ChainRequest(chain_id=chain_id)), as_json=json_out, title="Unpublished")


@app.command()
def delete(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete a chain that has never been executed."""
    from skillchain.ops.chains import delete_chain
    from skillchain.ops.requests import ChainRequest

    if not yes:
        typer.confirm(f"Delete chain {chain_id}?", abort=True)
    ctx = make_context(database)
    output_result(delete_chain(ctx, ChainRequest(chain_id=chain_id)), as_json=json_out, title="Deleted")
