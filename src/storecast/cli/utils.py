"""
CLI utility helpers — output formatting, connections and store scopes.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from storecast.core.connection import SqliteConnection
from storecast.core.errors import StorecastError
from storecast.core.logging import configure_logging
from storecast.core.settings import StorecastSettings, get_settings
from storecast.core.tenancy import STORE_ID_HEADER, TenantScope, TenantScopeResolver

console = Console()
err_console = Console(stderr=True)


# ── Setup helpers ────────────────────────────────────────────────────────


def load_settings() -> StorecastSettings:
    """Settings plus logging configured from them."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format.value)
    return settings


def get_connection(database: str | None = None, settings: StorecastSettings | None = None) -> SqliteConnection:
    """Open the database.  Defaults to ``STORECAST_DATABASE_PATH``."""
    settings = settings or get_settings()
    return SqliteConnection(database or settings.database_path)


def store_scope(store: str) -> TenantScope:
    """Resolve ``--store`` exactly as an inbound ``X-Store-ID`` header."""
    return TenantScopeResolver().require({STORE_ID_HEADER: store})


def exit_with_error(error: Exception) -> NoReturn:
    """Print a storecast error (or any exception) and exit 1."""
    if isinstance(error, StorecastError):
        err_console.print(
            f"[bold red]Error[/bold red] ({error.category.value}): {error.message}"
        )
    else:
        err_console.print(f"[bold red]Error[/bold red]: {error}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / object with ``to_dict`` / dict to plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single object or a list to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*("" if v is None else str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
