"""Scheduling package for storecast.

Manifesto:
    Publishing on a cadence needs more than ``time.sleep()`` in a loop: it
    needs a run that is exclusive across processes (the lease), a tick that
    can never die on an exception (the trigger), and timing that can be
    swapped without touching either (the backend).

┌──────────────────────────────────────────────────────────────────────────────┐
│  Quick Start:                                                                 │
│                                                                               │
│   from storecast.publishing.factory import create_trigger                     │
│                                                                               │
│   trigger = create_trigger(conn)      # thread backend, settings cadence      │
│   trigger.start()                                                             │
│   ...                                                                         │
│   trigger.stop()                                                              │
│                                                                               │
│  Components:                                                                  │
│   protocol.py             SchedulerBackend, BackendHealth                     │
│   thread_backend.py       ThreadSchedulerBackend (default)                    │
│   apscheduler_backend.py  APSchedulerBackend (storecast[apscheduler])         │
│   lease.py                LeaseManager, Lease                                 │
│   service.py              RecurringPublishTrigger, TriggerStats               │
└──────────────────────────────────────────────────────────────────────────────┘

Tags:
    storecast, scheduling, lease, beat-as-poller, pluggable-backends

Doc-Types:
    package-overview, module-index
"""

from __future__ import annotations

from storecast.core.errors import ConfigError
from storecast.core.scheduling.lease import PUBLISHER_LEASE, Lease, LeaseManager
from storecast.core.scheduling.protocol import BackendHealth, SchedulerBackend, TickCallback
from storecast.core.scheduling.service import (
    RecurringPublishTrigger,
    TriggerHealth,
    TriggerStats,
)
from storecast.core.scheduling.thread_backend import ThreadSchedulerBackend
from storecast.core.settings import SchedulerBackendKind

# APSchedulerBackend is imported lazily: it needs storecast[apscheduler]


def __getattr__(name: str):  # noqa: N807
    if name == "APSchedulerBackend":
        from storecast.core.scheduling.apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def create_backend(kind: SchedulerBackendKind | str = SchedulerBackendKind.THREAD) -> SchedulerBackend:
    """Instantiate a timing backend by name.

    Raises:
        ConfigError: Unknown backend, or the apscheduler extra is missing.
    """
    try:
        kind = SchedulerBackendKind(kind)
    except ValueError:
        raise ConfigError(f"Unknown scheduler backend: {kind!r}") from None

    if kind is SchedulerBackendKind.APSCHEDULER:
        from storecast.core.scheduling.apscheduler_backend import APSchedulerBackend

        return APSchedulerBackend()
    return ThreadSchedulerBackend()


__all__ = [
    "APSchedulerBackend",
    "BackendHealth",
    "Lease",
    "LeaseManager",
    "PUBLISHER_LEASE",
    "RecurringPublishTrigger",
    "SchedulerBackend",
    "ThreadSchedulerBackend",
    "TickCallback",
    "TriggerHealth",
    "TriggerStats",
    "create_backend",
]
