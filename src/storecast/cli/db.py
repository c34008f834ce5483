"""
CLI: ``storecast db`` — database management commands.
"""

from __future__ import annotations

import typer

from storecast.cli.utils import exit_with_error, get_connection, load_settings, output

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Initialise database schema (create tables)."""
    from storecast.core.dialect import get_dialect
    from storecast.core.schema import apply_schema

    settings = load_settings()
    conn = get_connection(database, settings)
    try:
        tables = apply_schema(conn, get_dialect(settings.database_dialect))
    except Exception as e:
        exit_with_error(e)
    finally:
        conn.close()
    output(
        {"database": database or settings.database_path, "tables": ", ".join(tables)},
        as_json=json_out,
        title="Database Init",
    )
