"""APScheduler-based timing backend.

Wraps APScheduler 3.x ``BackgroundScheduler`` as a ``SchedulerBackend``.
Requires the ``apscheduler`` extra::

    pip install storecast[apscheduler]

The default ``ThreadSchedulerBackend`` is enough for a single process; use
this one where APScheduler already runs the host's other jobs.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from storecast.core.errors import ConfigError
from storecast.core.scheduling.protocol import TickCallback
from storecast.core.timestamps import utc_now

logger = logging.getLogger(__name__)

_JOB_ID = "storecast_publish_tick"


def _require_apscheduler():
    """Return ``BackgroundScheduler`` or raise ``ConfigError`` with install hint."""
    try:
        from apscheduler.schedulers.background import BackgroundScheduler

        return BackgroundScheduler
    except ImportError:
        raise ConfigError(
            "APScheduler is required for the apscheduler backend. "
            "Install it with: pip install storecast[apscheduler]"
        ) from None


class APSchedulerBackend:
    """APScheduler interval job that invokes the tick callback."""

    name: str = "apscheduler"

    def __init__(self) -> None:
        BackgroundScheduler = _require_apscheduler()  # noqa: N806
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._tick_count: int = 0
        self._last_tick: datetime | None = None

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        def _tick_wrapper() -> None:
            self._tick_count += 1
            self._last_tick = utc_now()
            try:
                asyncio.run(tick_callback())
            except Exception:
                logger.exception("APScheduler tick failed")

        self._scheduler.add_job(
            _tick_wrapper,
            "interval",
            seconds=interval_seconds,
            id=_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info("APSchedulerBackend started (interval=%.1fs)", interval_seconds)

    def stop(self) -> None:
        """Shut the scheduler down, waiting for a running tick."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("APSchedulerBackend stopped")

    def health(self) -> dict[str, Any]:
        running = bool(self._scheduler.running)
        return {
            "healthy": running,
            "backend": self.name,
            "tick_count": self._tick_count,
            "last_tick": self._last_tick.isoformat() if self._last_tick else None,
            "scheduled_jobs": len(self._scheduler.get_jobs()) if running else 0,
        }
