"""
CLI utility helpers: output formatting and context management.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from skillchain.core.config import get_settings
from skillchain.core.orm.session import create_skillchain_engine
from skillchain.ops.context import OperationContext
from skillchain.ops.result import OperationResult, PagedResult

console = Console()
err_console = Console(stderr=True)


# ── Context helper ───────────────────────────────────────────────────────


def database_url(database: str | None = None) -> str:
    """Turn ``--database`` into a URL.  A bare path means a SQLite file.

    Without ``--database`` the configured ``SKILLCHAIN_DATABASE_URL`` is used.
    The parent directory of a SQLite file is created if needed.
    """
    url = database or get_settings().database_url
    if "://" not in url:
        url = f"sqlite:///{url}"
    if url.startswith("sqlite:///") and not url.endswith(":memory:"):
        Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    return url


def make_context(
    database: str | None = None,
    *,
    dry_run: bool = False,
    user: str | None = None,
) -> OperationContext:
    """Create an ``OperationContext`` bound to a fresh engine for CLI commands."""
    settings = get_settings()
    engine = create_skillchain_engine(database_url(database), echo=settings.database_echo)
    return OperationContext.from_engine(
        engine, settings=settings, caller="cli", user=user, dry_run=dry_run
    )


def parse_json_option(value: str | None, option: str) -> dict[str, Any] | None:
    """Parse a JSON-object option value, exiting with a message on bad input."""
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        err_console.print(f"[red]Error: Invalid JSON for {option}: {e}[/red]")
        raise typer.Exit(1) from e
    if not isinstance(parsed, dict):
        err_console.print(f"[red]Error: {option} must be a JSON object[/red]")
        raise typer.Exit(1)
    return parsed


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict to plain dict."""
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _fail(result: OperationResult) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    code = err.code if err else "ERROR"
    err_console.print(f"[bold red]Error[/bold red] ({code}): {msg}")
    raise typer.Exit(code=1)


def output_result(
    result: OperationResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render an ``OperationResult`` to the terminal."""
    if not result.success:
        _fail(result)

    data = result.data

    if as_json:
        if data is None:
            payload: Any = None
        elif isinstance(data, list | tuple):
            payload = [_to_dict(d) for d in data]
        else:
            payload = _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if data is None:
        console.print(f"[green]{title or 'Done'}[/green]")
    elif isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


def output_paged(
    result: PagedResult,
    *,
    as_json: bool = False,
    title: str = "",
) -> None:
    """Render a ``PagedResult`` to the terminal with pagination info."""
    if not result.success:
        _fail(result)

    items = result.data or []

    if as_json:
        payload = {
            "items": [_to_dict(d) for d in items],
            "total": result.total,
            "limit": result.limit,
            "offset": result.offset,
            "has_more": result.has_more,
        }
        console.print_json(json.dumps(payload, default=str))
        return

    if not items:
        console.print("[dim]No items.[/dim]")
        return

    _print_table(items, title=title)
    console.print(
        f"\n[dim]Showing {len(items)} of {result.total}"
        f" (offset {result.offset})[/dim]"
    )


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(_cell(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs; nested lists become tables."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    nested: dict[str, list] = {}
    for k, v in data.items():
        if isinstance(v, list) and v and isinstance(v[0], dict):
            nested[k] = v
            continue
        console.print(f"  [cyan]{k}[/cyan]: {_cell(v)}")
    for k, rows in nested.items():
        _print_table(rows, title=k)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)
