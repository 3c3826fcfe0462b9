"""
CLI: ``skillchain executions``: execution lifecycle commands.
"""

from __future__ import annotations

import typer

from skillchain.cli.utils import make_context, output_paged, output_result, parse_json_option

app = typer.Typer(no_args_is_help=True)


@app.command()
def start(
    chain_id: str = typer.Argument(..., help="Chain ID"),
    ticket: str | None = typer.Option(None, "--ticket", "-t", help="Ticket id"),
    inputs: str | None = typer.Option(None, "--input", "-i", help="Input values as JSON"),
    session_id: str | None = typer.Option(None, "--session-id", help="Session-state id to load and save"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Start an execution of a published chain."""
    from skillchain.ops.executions import start_execution
    from skillchain.ops.requests import StartExecutionRequest

    ctx = make_context(database, user=user)
    request = StartExecutionRequest(
        chain_id=chain_id,
        ticket_id=ticket,
        input_values=parse_json_option(inputs, "--input") or {},
        session_options={"session_id": session_id} if session_id else None,
    )
    output_result(start_execution(ctx, request), as_json=json_out, title="Execution Started")


@app.command("list")
def list_executions(
    chain_id: str | None = typer.Option(None, "--chain", "-c"),
    ticket: str | None = typer.Option(None, "--ticket", "-t"),
    status: str | None = typer.Option(None, "--status", "-s"),
    limit: int = typer.Option(50, "--limit", "-n"),
    offset: int = typer.Option(0, "--offset"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List executions with filtering."""
    from skillchain.ops.executions import list_executions as _list
    from skillchain.ops.requests import ListExecutionsRequest

    ctx = make_context(database)
    request = ListExecutionsRequest(
        chain_id=chain_id, ticket_id=ticket, status=status, limit=limit, offset=offset,
    )
    output_paged(_list(ctx, request), as_json=json_out, title="Executions")


@app.command("show")
def show_execution(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show detailed information about an execution."""
    from skillchain.ops.executions import get_execution
    from skillchain.ops.requests import ExecutionRequest

    ctx = make_context(database)
    result = get_execution(ctx, ExecutionRequest(execution_id=execution_id))
    output_result(result, as_json=json_out, title=f"Execution: {execution_id}")


@app.command()
def report(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    link_id: str = typer.Argument(..., help="Current link ID"),
    outcome: str = typer.Argument(..., help="success, failure or skipped"),
    output: str | None = typer.Option(None, "--output", "-o", help="Output as JSON"),
    error: str | None = typer.Option(None, "--error", "-e", help="Error details as JSON"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Record the outcome of the current link."""
    from skillchain.ops.executions import record_link_outcome
    from skillchain.ops.requests import RecordLinkOutcomeRequest

    ctx = make_context(database, user=user)
    request = RecordLinkOutcomeRequest(
        execution_id=execution_id,
        link_id=link_id,
        outcome=outcome,
        output=parse_json_option(output, "--output"),
        error_details=parse_json_option(error, "--error"),
    )
    output_result(record_link_outcome(ctx, request), as_json=json_out, title="Outcome Recorded")


@app.command()
def advance(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Apply the transition for the latest recorded outcome."""
    from skillchain.ops.executions import advance_execution
    from skillchain.ops.requests import ExecutionRequest

    ctx = make_context(database)
    result = advance_execution(ctx, ExecutionRequest(execution_id=execution_id))
    output_result(result, as_json=json_out, title="Advanced")


@app.command()
def pause(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    reason: str = typer.Option(..., "--reason", "-r"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Pause a running execution."""
    from skillchain.ops.executions import pause_execution
    from skillchain.ops.requests import PauseExecutionRequest

    ctx = make_context(database, user=user)
    result = pause_execution(ctx, PauseExecutionRequest(execution_id=execution_id, reason=reason))
    output_result(result, as_json=json_out, title="Paused")


@app.command()
def resume(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    context: str | None = typer.Option(None, "--context", help="Context to merge, as JSON"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resume a paused execution at the same link."""
    from skillchain.ops.executions import resume_execution
    from skillchain.ops.requests import ResumeExecutionRequest

    ctx = make_context(database, user=user)
    request = ResumeExecutionRequest(
        execution_id=execution_id,
        additional_context=parse_json_option(context, "--context"),
    )
    output_result(resume_execution(ctx, request), as_json=json_out, title="Resumed")


@app.command()
def cancel(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    reason: str = typer.Option(..., "--reason", "-r"),
    user: str | None = typer.Option(None, "--user", "-u"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the execution without cancelling"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Cancel an execution that has not finished."""
    from skillchain.ops.executions import cancel_execution
    from skillchain.ops.requests import CancelExecutionRequest

    ctx = make_context(database, user=user, dry_run=dry_run)
    result = cancel_execution(ctx, CancelExecutionRequest(execution_id=execution_id, reason=reason))
    output_result(result, as_json=json_out, title="Cancel")


@app.command()
def attempts(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the attempt history of an execution."""
    from skillchain.ops.executions import list_link_executions
    from skillchain.ops.requests import ExecutionRequest

    ctx = make_context(database)
    result = list_link_executions(ctx, ExecutionRequest(execution_id=execution_id))
    output_result(result, as_json=json_out, title="Attempts")


@app.command()
def checkpoints(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the checkpoints of an execution."""
    from skillchain.ops.executions import list_checkpoints
    from skillchain.ops.requests import ExecutionRequest

    ctx = make_context(database)
    result = list_checkpoints(ctx, ExecutionRequest(execution_id=execution_id))
    output_result(result, as_json=json_out, title="Checkpoints")


@app.command()
def rewind(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    position: int = typer.Argument(..., help="Checkpoint position"),
    user: str | None = typer.Option(None, "--user", "-u"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Move a paused execution back to an earlier checkpoint."""
    from skillchain.ops.executions import rewind_execution
    from skillchain.ops.requests import RewindExecutionRequest

    ctx = make_context(database, user=user)
    result = rewind_execution(ctx, RewindExecutionRequest(execution_id=execution_id, position=position))
    output_result(result, as_json=json_out, title="Rewound")


@app.command()
def delete(
    execution_id: str = typer.Argument(..., help="Execution ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Delete a finished execution and its history."""
    from skillchain.ops.executions import delete_execution
    from skillchain.ops.requests import ExecutionRequest

    if not yes:
        typer.confirm(f"Delete execution {execution_id}?", abort=True)
    ctx = make_context(database)
    result = delete_execution(ctx, ExecutionRequest(execution_id=execution_id))
    output_result(result, as_json=json_out, title="Deleted")
