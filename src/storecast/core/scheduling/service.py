"""Recurring publish trigger - beat-as-poller over the orchestrator.

Manifesto:
    The timing backend ticks at a fixed interval; each tick asks "does the
    cron gate allow a run now?" and, if so, runs the orchestrator once.
    ``fire()`` never raises: every failure is logged and counted, so a bad
    tick can never kill the backend's loop.  Whether two ticks overlap does
    not matter; the orchestrator's lease makes the second one a no-op.

Tags:
    storecast, scheduling, trigger, beat-as-poller, cron, croniter

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  RecurringPublishTrigger                                                      │
│                                                                               │
│   backend.start(self._tick, interval)                                         │
│        │                                                                      │
│        ▼                                                                      │
│   _tick()                                                                     │
│      ├── cron gate: has a cron slot passed since the last fire?               │
│      │      no  ─► runs_skipped += 1                                          │
│      └── fire()                                                               │
│             ├── orchestrator.run_once()                                       │
│             ├── lease held   ─► runs_skipped += 1                             │
│             ├── completed    ─► runs_completed += 1, last_report              │
│             └── exception    ─► runs_failed += 1, last_error (logged)         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from croniter import croniter

from storecast.core.enums import TriggerType
from storecast.core.scheduling.protocol import BackendHealth, SchedulerBackend
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import utc_now

if TYPE_CHECKING:
    from storecast.core.models import ScheduledTrigger
    from storecast.core.repositories.triggers import TriggerRepository
    from storecast.publishing.orchestrator import DueWorkOrchestrator, PublishRunReport

logger = logging.getLogger(__name__)


@dataclass
class TriggerStats:
    """Counters for one trigger instance."""

    tick_count: int = 0
    runs_completed: int = 0
    runs_skipped: int = 0
    runs_failed: int = 0
    last_tick: datetime | None = None
    last_fired: datetime | None = None
    last_error: str | None = None
    last_report: PublishRunReport | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tick_count": self.tick_count,
            "runs_completed": self.runs_completed,
            "runs_skipped": self.runs_skipped,
            "runs_failed": self.runs_failed,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_fired": self.last_fired.isoformat() if self.last_fired else None,
            "last_error": self.last_error,
        }


@dataclass
class TriggerHealth:
    """Health status for the recurring trigger."""

    healthy: bool
    backend: BackendHealth | dict
    interval_seconds: float
    cron_expression: str | None = None
    stats: TriggerStats = field(default_factory=TriggerStats)

    def to_dict(self) -> dict[str, Any]:
        return {
            "healthy": self.healthy,
            "backend": self.backend.to_dict() if isinstance(self.backend, BackendHealth) else self.backend,
            "interval_seconds": self.interval_seconds,
            "cron_expression": self.cron_expression,
            "stats": self.stats.to_dict(),
        }


class RecurringPublishTrigger:
    """Periodically runs the due-work orchestrator.

    Example:
        >>> trigger = RecurringPublishTrigger(
        ...     ThreadSchedulerBackend(), orchestrator, interval_seconds=60.0
        ... )
        >>> trigger.start()
        >>> # ... later ...
        >>> trigger.stop()
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        orchestrator: DueWorkOrchestrator,
        interval_seconds: float = 60.0,
        cron_expression: str | None = None,
        *,
        descriptor: ScheduledTrigger | None = None,
        triggers: TriggerRepository | None = None,
    ) -> None:
        """Initialize the trigger.

        Args:
            backend: Timing backend (thread, apscheduler)
            orchestrator: Orchestrator run on each fire
            interval_seconds: Tick interval
            cron_expression: Optional cron gate; ``None`` fires on every tick
            descriptor: ``ScheduledTrigger`` row this trigger was built from
            triggers: Repository used to record ``last_fired_at`` on the descriptor
        """
        if cron_expression is not None and not croniter.is_valid(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression!r}")
        self.backend = backend
        self.orchestrator = orchestrator
        self.interval = interval_seconds
        self.cron_expression = cron_expression
        self.descriptor = descriptor
        self.triggers = triggers

        self._stats = TriggerStats()
        self._running = False
        self._cron_anchor: datetime | None = None

    @classmethod
    def from_trigger(
        cls,
        descriptor: ScheduledTrigger,
        backend: SchedulerBackend,
        orchestrator: DueWorkOrchestrator,
        interval_seconds: float = 60.0,
        triggers: TriggerRepository | None = None,
    ) -> RecurringPublishTrigger:
        """Build a trigger from a persisted ``ScheduledTrigger`` descriptor.

        ``PublishDuePosts`` descriptors run the tenant's due items;
        ``PublishPost`` descriptors run only the related post.

        Raises:
            ValueError: If the descriptor is inactive.
        """
        if not descriptor.is_active:
            raise ValueError(f"Trigger {descriptor.id} is inactive")
        return cls(
            backend,
            orchestrator,
            interval_seconds,
            descriptor.cron_expression,
            descriptor=descriptor,
            triggers=triggers,
        )

    # === Lifecycle ===

    def start(self) -> None:
        """Start ticking via the backend."""
        if self._running:
            logger.warning("RecurringPublishTrigger already running")
            return

        logger.info(
            f"Starting RecurringPublishTrigger with {self.backend.name} backend "
            f"(interval={self.interval}s, cron={self.cron_expression or 'every tick'})"
        )
        self._cron_anchor = utc_now()
        self.backend.start(self._tick, self.interval)
        self._running = True

    def stop(self) -> None:
        """Stop ticking; waits for the current tick."""
        if not self._running:
            return

        logger.info("Stopping RecurringPublishTrigger...")
        self.backend.stop()
        self._running = False
        logger.info("RecurringPublishTrigger stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    # === Tick Processing ===

    async def _tick(self) -> None:
        """Backend callback: apply the cron gate, then fire."""
        now = utc_now()
        self._stats.tick_count += 1
        self._stats.last_tick = now

        if not self.cron_due(now):
            logger.debug("Cron gate closed; skipping tick")
            self._stats.runs_skipped += 1
            return
        await self.fire()

    def cron_due(self, now: datetime) -> bool:
        """True if a cron slot fell in ``(last fire or start, now]``."""
        if self.cron_expression is None:
            return True
        anchor = self._stats.last_fired or self._cron_anchor
        if anchor is None:
            self._cron_anchor = anchor = now
            return False
        next_slot = croniter(self.cron_expression, anchor).get_next(datetime)
        return next_slot <= now

    async def fire(self) -> None:
        """Run the orchestrator once; logs every error and never raises."""
        try:
            if not self._descriptor_active():
                self._stats.runs_skipped += 1
                logger.info(f"Trigger {self.descriptor.id} is inactive; skipping run")
                return
        except Exception as e:
            self._stats.runs_failed += 1
            self._stats.last_error = str(e)
            logger.exception(f"Could not reload trigger {self.descriptor.id}: {e}")
            return

        self._stats.last_fired = utc_now()
        try:
            report = await self.orchestrator.run_once(**self._run_kwargs())
        except Exception as e:
            self._stats.runs_failed += 1
            self._stats.last_error = str(e)
            logger.exception(f"Publish run failed: {e}")
            return

        self._stats.last_report = report
        if not report.lease_acquired:
            self._stats.runs_skipped += 1
            logger.info("Publish run skipped: lease held by another run")
            return

        self._stats.runs_completed += 1
        logger.info(
            f"Publish run {report.run_id}: {report.published} published, "
            f"{report.failed} failed, {report.skipped} skipped of {report.due} due"
        )
        self._record_descriptor_fire()

    def _descriptor_active(self) -> bool:
        """Re-read the descriptor so deactivating or deleting it stops the trigger."""
        if self.descriptor is None:
            return True
        if self.triggers is not None:
            current = self.triggers.get(
                TenantScope.for_tenant(self.descriptor.tenant_id), self.descriptor.id
            )
            if current is None:
                return False
            self.descriptor = current
        return self.descriptor.is_active

    def _run_kwargs(self) -> dict[str, Any]:
        if self.descriptor is None:
            return {}
        kwargs: dict[str, Any] = {"scope": TenantScope.for_tenant(self.descriptor.tenant_id)}
        if self.descriptor.trigger_type == TriggerType.PUBLISH_POST.value:
            kwargs["post_id"] = self.descriptor.related_post_id
        return kwargs

    def _record_descriptor_fire(self) -> None:
        if self.descriptor is None or self.triggers is None:
            return
        try:
            self.triggers.mark_fired(
                TenantScope.for_tenant(self.descriptor.tenant_id),
                self.descriptor.id,
                self._stats.last_fired,
            )
        except Exception as e:
            self._stats.last_error = str(e)
            logger.exception(f"Could not record fire of trigger {self.descriptor.id}: {e}")

    # === Health & Stats ===

    def health(self) -> TriggerHealth:
        backend_health = self.backend.health()
        return TriggerHealth(
            healthy=self._running and backend_health.get("healthy", False),
            backend=backend_health,
            interval_seconds=self.interval,
            cron_expression=self.cron_expression,
            stats=self._stats,
        )

    def get_stats(self) -> TriggerStats:
        return self._stats

    def reset_stats(self) -> None:
        self._stats = TriggerStats()
