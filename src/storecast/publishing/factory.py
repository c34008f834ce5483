"""Wiring helpers: settings in, ready-to-run orchestrator or trigger out."""

from __future__ import annotations

from storecast.core.dialect import Dialect, get_dialect
from storecast.core.protocols import Connection
from storecast.core.scheduling import (
    LeaseManager,
    RecurringPublishTrigger,
    SchedulerBackend,
    create_backend,
)
from storecast.core.settings import StorecastSettings, get_settings
from storecast.publishing.orchestrator import DueWorkOrchestrator
from storecast.publishing.registry import PublisherRegistry, build_registry


def create_orchestrator(
    conn: Connection,
    settings: StorecastSettings | None = None,
    registry: PublisherRegistry | None = None,
    dialect: Dialect | None = None,
    *,
    dry_run: bool = False,
) -> DueWorkOrchestrator:
    """Orchestrator configured from settings.

    Example:
        >>> orchestrator = create_orchestrator(conn)
        >>> report = asyncio.run(orchestrator.run_once())
    """
    settings = settings or get_settings()
    dialect = dialect or get_dialect(settings.database_dialect)
    return DueWorkOrchestrator(
        conn,
        registry or build_registry(settings, dry_run=dry_run),
        LeaseManager(conn, dialect, instance_id=settings.instance_id),
        dialect=dialect,
        publish_timeout_seconds=settings.publish_timeout_seconds,
        max_concurrency=settings.max_concurrency,
        lease_ttl_seconds=settings.lease_ttl_seconds,
    )


def create_trigger(
    conn: Connection,
    settings: StorecastSettings | None = None,
    *,
    backend: SchedulerBackend | None = None,
    orchestrator: DueWorkOrchestrator | None = None,
    interval_seconds: float | None = None,
) -> RecurringPublishTrigger:
    """Recurring trigger with the configured backend, cadence and cron gate."""
    settings = settings or get_settings()
    return RecurringPublishTrigger(
        backend or create_backend(settings.scheduler_backend),
        orchestrator or create_orchestrator(conn, settings),
        interval_seconds or settings.scheduler_interval_seconds,
        settings.scheduler_cron,
    )
