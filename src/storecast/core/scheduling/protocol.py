"""Timing backend protocol for the recurring publish trigger.

┌──────────────────────────────────────────────────────────────────────────────┐
│  TIMING BACKEND PROTOCOL                                                      │
│                                                                               │
│  Backends decide WHEN a tick happens; RecurringPublishTrigger decides WHAT    │
│  a tick does (cron gate, then one orchestrator run).                          │
│                                                                               │
│   ┌─────────────────┐      tick()      ┌───────────────────────────┐         │
│   │  Thread Backend │ ───────────────► │  RecurringPublishTrigger  │         │
│   │  (default)      │                  │                           │         │
│   └─────────────────┘                  │  - cron gate              │         │
│                                        │  - orchestrator.run_once  │         │
│   ┌─────────────────┐      tick()      │  - stats                  │         │
│   │  APScheduler    │ ───────────────► │                           │         │
│   │  Backend        │                  └───────────────────────────┘         │
│   └─────────────────┘                                                        │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

TickCallback = Callable[[], Awaitable[None]]


@runtime_checkable
class SchedulerBackend(Protocol):
    """Protocol for pluggable timing backends.

    A backend only calls the tick callback at an interval.  Implementations:

        - ThreadSchedulerBackend: stdlib threading (default)
        - APSchedulerBackend: APScheduler 3.x (``storecast[apscheduler]``)
    """

    name: str

    def start(
        self,
        tick_callback: TickCallback,
        interval_seconds: float = 60.0,
    ) -> None:
        """Start calling *tick_callback* every *interval_seconds*."""
        ...

    def stop(self) -> None:
        """Stop the loop, waiting for the current tick to complete."""
        ...

    def health(self) -> dict[str, Any]:
        """Return at least ``healthy``, ``backend``, ``tick_count``, ``last_tick``."""
        ...


@dataclass
class BackendHealth:
    """Structured backend health response."""

    healthy: bool
    backend: str
    tick_count: int = 0
    last_tick: datetime | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "healthy": self.healthy,
            "backend": self.backend,
            "tick_count": self.tick_count,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            **self.extra,
        }
