"""
CLI: ``skillchain interventions``: the human-intervention queue.
"""

from __future__ import annotations

import typer

from skillchain.cli.utils import make_context, output_paged, output_result

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_interventions(
    org: str | None = typer.Option(None, "--org"),
    project: str | None = typer.Option(None, "--project"),
    chain_id: str | None = typer.Option(None, "--chain", "-c"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List executions waiting for a human decision."""
    from skillchain.ops.interventions import list_pending_interventions
    from skillchain.ops.requests import ListInterventionsRequest

    ctx = make_context(database)
    request = ListInterventionsRequest(organization_id=org, project_id=project, chain_id=chain_id)
    output_paged(list_pending_interventions(ctx, request), as_json=json_out, title="Pending Interventions")


@app.command()
def resolve(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    action: str = typer.Argument(..., help="retry, go_to_link, complete, escalate or fail"),
    resolution: str = typer.Option("", "--resolution", "-r", help="What was decided"),
    target: str | None = typer.Option(None, "--target", help="Link id for go_to_link"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resolve a pending intervention."""
    from skillchain.ops.interventions import resolve_intervention
    from skillchain.ops.requests import ResolveInterventionRequest

    ctx = make_context(database, user=user)
    request = ResolveInterventionRequest(
        execution_id=execution_id,
        resolution=resolution,
        next_action=action,
        target_link_id=target,
    )
    output_result(resolve_intervention(ctx, request), as_json=json_out, title="Resolved")
