"""Publishing pipeline: publisher capabilities and the due-work orchestrator.

Architecture::

    protocol.py      PublisherCapability, PublishResult
    registry.py      PublisherRegistry, build_registry
    adapters/        FacebookPublisher, DryRunPublisher
    orchestrator.py  DueWorkOrchestrator, PublishRunReport
    factory.py       create_orchestrator, create_trigger
"""

from storecast.publishing.orchestrator import (
    DueWorkOrchestrator,
    ItemOutcome,
    OutcomeStatus,
    PublishRunReport,
)
from storecast.publishing.protocol import PublisherCapability, PublishResult
from storecast.publishing.registry import PublisherRegistry, build_registry

__all__ = [
    "DueWorkOrchestrator",
    "ItemOutcome",
    "OutcomeStatus",
    "PublishResult",
    "PublishRunReport",
    "PublisherCapability",
    "PublisherRegistry",
    "build_registry",
]
