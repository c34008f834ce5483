"""Threading-based timing backend (the default).

┌──────────────────────────────────────────────────────────────────────────────┐
│  THREAD BACKEND                                                               │
│                                                                               │
│   start()                                                                     │
│      │                                                                        │
│      ▼                                                                        │
│   Daemon thread "storecast-trigger"                                           │
│      while not stop_event.wait(interval):                                     │
│          tick_count += 1                                                      │
│          last_tick = now()                                                    │
│          asyncio.run(tick_callback())                                         │
│                                                                               │
│   stop()  ─► stop_event.set(); thread.join(timeout)                           │
└──────────────────────────────────────────────────────────────────────────────┘

Each tick gets a fresh event loop via ``asyncio.run``, so the orchestrator's
async publisher calls work from a plain thread.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from datetime import datetime
from typing import Any

from storecast.core.scheduling.protocol import BackendHealth, TickCallback
from storecast.core.timestamps import utc_now

logger = logging.getLogger(__name__)


class ThreadSchedulerBackend:
    """Daemon-thread timing backend.

    Example:
        >>> backend = ThreadSchedulerBackend()
        >>> backend.start(trigger.fire, interval_seconds=60.0)
        >>> # ... later ...
        >>> backend.stop()
    """

    name = "thread"

    def __init__(self, join_timeout: float = 5.0) -> None:
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._tick_count = 0
        self._last_tick: datetime | None = None
        self._interval: float = 60.0
        self._join_timeout = join_timeout
        self._started = False
        self._lock = threading.Lock()

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        """Start the tick loop in a daemon thread."""
        if self._started:
            logger.warning("ThreadSchedulerBackend already started")
            return

        self._interval = interval_seconds
        self._stop_event.clear()

        def _loop() -> None:
            logger.info(f"ThreadSchedulerBackend started (interval={interval_seconds}s)")
            while not self._stop_event.wait(interval_seconds):
                with self._lock:
                    self._tick_count += 1
                    self._last_tick = utc_now()

                try:
                    asyncio.run(tick_callback())
                except Exception as e:
                    logger.exception(f"Tick failed: {e}")

            logger.info("ThreadSchedulerBackend stopped")

        self._thread = threading.Thread(target=_loop, daemon=True, name="storecast-trigger")
        self._thread.start()
        self._started = True

    def stop(self) -> None:
        """Stop the loop; waits up to ``join_timeout`` for the current tick."""
        if not self._started:
            return

        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._join_timeout)
            if self._thread.is_alive():
                logger.warning("Trigger thread did not stop cleanly")

        self._started = False
        logger.info("ThreadSchedulerBackend shutdown complete")

    def health(self) -> dict[str, Any]:
        return self.get_health().to_dict()

    def get_health(self) -> BackendHealth:
        """Return structured health status."""
        return BackendHealth(
            healthy=self.is_running,
            backend=self.name,
            tick_count=self._tick_count,
            last_tick=self._last_tick,
            extra={"interval_seconds": self._interval},
        )

    @property
    def is_running(self) -> bool:
        return self._started and self._thread is not None and self._thread.is_alive()

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def last_tick(self) -> datetime | None:
        return self._last_tick
