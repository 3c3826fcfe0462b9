"""
Root Typer application for the skillchain CLI.
"""

from __future__ import annotations

import sys

import typer
from typer import Typer

from skillchain.core.config import get_settings
from skillchain.core.logging import configure_logging

app = Typer(
    name="skillchain",
    help="skillchain: run skill chains one link at a time, with human intervention.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from skillchain import __version__

        try:
            v = pkg_version("skillchain-engine")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"skillchain {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "WARNING", "--log-level", help="Engine log level (logs go to stderr)."
    ),
) -> None:
    """skillchain CLI: manage chains, executions and interventions."""
    settings = get_settings()
    configure_logging(
        level=log_level,
        json_format=settings.log_format == "json",
        service=settings.service_name,
        stream=sys.stderr,
    )


# ── Sub-command registration ─────────────────────────────────────────────

from skillchain.cli.chains import app as chains_app  # noqa: E402
from skillchain.cli.db import app as db_app  # noqa: E402
from skillchain.cli.executions import app as executions_app  # noqa: E402
from skillchain.cli.interventions import app as interventions_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(chains_app, name="chains", help="Chain definitions and links.")
app.add_typer(executions_app, name="executions", help="Execution lifecycle.")
app.add_typer(interventions_app, name="interventions", help="Human-intervention queue.")
