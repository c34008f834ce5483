"""
CLI: ``storecast publish`` — run, serve and repair the publishing pipeline.
"""

from __future__ import annotations

import asyncio
import json
import time
from datetime import timedelta

import typer

from storecast.cli.utils import (
    console,
    exit_with_error,
    get_connection,
    load_settings,
    output,
    store_scope,
)
from storecast.core.errors import StorecastError

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Use dry-run publishers; nothing leaves the process"
    ),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Run one publishing pass over every store's due items."""
    from storecast.publishing.factory import create_orchestrator

    settings = load_settings()
    conn = get_connection(database, settings)
    try:
        orchestrator = create_orchestrator(conn, settings, dry_run=dry_run)
        report = asyncio.run(orchestrator.run_once())
    except StorecastError as e:
        exit_with_error(e)
    finally:
        conn.close()

    if json_out:
        console.print_json(json.dumps(report.to_dict(), default=str))
        return

    if not report.lease_acquired:
        console.print("[yellow]Another publish run holds the lease; nothing done.[/yellow]")
        return

    console.print(
        f"[bold]Run {report.run_id}[/bold]{' (dry run)' if dry_run else ''}: "
        f"[green]{report.published} published[/green], "
        f"[red]{report.failed} failed[/red], "
        f"{report.skipped} skipped of {report.due} due"
    )
    if report.outcomes:
        output(report.outcomes, title="Outcomes")


@app.command("serve")
def serve(
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between ticks (default from settings)"
    ),
    backend: str | None = typer.Option(
        None, "--backend", "-b", help="Timing backend: thread | apscheduler"
    ),
) -> None:
    """Run the recurring publish trigger until interrupted.

    Example::

        storecast publish serve --interval 60
        storecast publish serve --backend apscheduler
    """
    from storecast.core.scheduling import create_backend
    from storecast.publishing.factory import create_trigger

    settings = load_settings()
    conn = get_connection(database, settings)
    try:
        trigger = create_trigger(
            conn,
            settings,
            backend=create_backend(backend or settings.scheduler_backend),
            interval_seconds=interval,
        )
    except StorecastError as e:
        conn.close()
        exit_with_error(e)

    console.print(
        f"[bold green]Starting storecast publisher[/bold green] "
        f"(backend={trigger.backend.name}, interval={trigger.interval}s, "
        f"cron={trigger.cron_expression or 'every tick'})"
    )
    trigger.start()
    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        console.print("\n[yellow]Publisher stopped by user[/yellow]")
    finally:
        trigger.stop()
        conn.close()


@app.command("sweep")
def sweep(
    store: str = typer.Option(..., "--store", "-s", help="Store (tenant) id"),
    grace: int | None = typer.Option(
        None, "--grace", help="Seconds in Publishing before an item counts as stuck"
    ),
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Return a store's items stuck in Publishing to Pending."""
    from storecast.core.repositories import PostTargetRepository
    from storecast.core.timestamps import utc_now

    settings = load_settings()
    grace_seconds = grace if grace is not None else settings.stuck_grace_seconds
    conn = get_connection(database, settings)
    try:
        scope = store_scope(store)
        cutoff = utc_now() - timedelta(seconds=grace_seconds)
        count = PostTargetRepository(conn).reset_stuck(scope, cutoff)
    except StorecastError as e:
        exit_with_error(e)
    finally:
        conn.close()
    output(
        {"store": scope.tenant_id, "grace_seconds": grace_seconds, "reset": count},
        as_json=json_out,
        title="Sweep",
    )


@app.command("retry")
def retry(
    post_target_id: str = typer.Argument(..., help="Failed post target id"),
    store: str = typer.Option(..., "--store", "-s", help="Store (tenant) id"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Reset a Failed post target to Pending so the next run retries it."""
    from storecast.core.repositories import PostRepository

    settings = load_settings()
    conn = get_connection(database, settings)
    try:
        scope = store_scope(store)
        posts = PostRepository(conn)
        target = posts.targets.reset_failed(scope, post_target_id)
        posts.reopen(scope, target.post_id)
    except StorecastError as e:
        exit_with_error(e)
    finally:
        conn.close()
    output(target, as_json=json_out, title=f"Post target {post_target_id}")


@app.command("due")
def due(
    store: str = typer.Option(..., "--store", "-s", help="Store (tenant) id"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database path"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List one store's items that are due now."""
    from storecast.core.repositories import PostTargetRepository
    from storecast.core.timestamps import utc_now

    settings = load_settings()
    conn = get_connection(database, settings)
    try:
        items = PostTargetRepository(conn).list_due(store_scope(store), utc_now())
    except StorecastError as e:
        exit_with_error(e)
    finally:
        conn.close()
    rows = [
        {
            "id": item.id,
            "store": item.tenant_id,
            "post": item.post_id,
            "target": item.target_id,
            "scheduled_at": item.scheduled_at,
        }
        for item in items
    ]
    output(rows, as_json=json_out, title="Due items")
