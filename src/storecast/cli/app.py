"""
Root Typer application for the storecast CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="storecast",
    help="storecast — scheduled publishing for multi-store back offices.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from storecast import __version__

        typer.echo(f"storecast {__version__}")
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
) -> None:
    """storecast CLI — database setup and the publishing pipeline."""


# ── Sub-command registration ─────────────────────────────────────────────

from storecast.cli.db import app as db_app  # noqa: E402
from storecast.cli.publish import app as publish_app  # noqa: E402

app.add_typer(db_app, name="db", help="Database operations.")
app.add_typer(publish_app, name="publish", help="Run, serve and repair the publishing pipeline.")
