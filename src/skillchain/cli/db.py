"""
CLI: ``skillchain db``: database management commands.
"""

from __future__ import annotations

import typer

from skillchain.cli.utils import make_context, output_result

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL or SQLite path"),
    drop: bool = typer.Option(False, "--drop", help="Drop existing skillchain tables first"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Preview without changes"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    from skillchain.ops.database import initialize_database
    from skillchain.ops.requests import DatabaseInitRequest

    if drop and not dry_run:
        typer.confirm("Drop all chains and execution history?", abort=True)

    ctx = make_context(database, dry_run=dry_run)
    result = initialize_database(ctx, DatabaseInitRequest(drop_existing=drop))
    output_result(result, as_json=json_out, title="Database Init")
