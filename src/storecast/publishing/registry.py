"""Publisher registry - platform name to capability."""

from __future__ import annotations

from storecast.core.enums import Platform
from storecast.core.settings import StorecastSettings
from storecast.publishing.adapters import DryRunPublisher, FacebookPublisher
from storecast.publishing.protocol import PublisherCapability


class PublisherRegistry:
    """
    Registry of publisher capabilities keyed by lower-cased platform name.

    Registering a second publisher for a platform replaces the first.
    """

    def __init__(self, publishers: list[PublisherCapability] | None = None):
        self._publishers: dict[str, PublisherCapability] = {}
        for publisher in publishers or []:
            self.register(publisher)

    def register(self, publisher: PublisherCapability) -> None:
        """Register a publisher under its ``platform``."""
        self._publishers[publisher.platform.lower()] = publisher

    def unregister(self, platform: str) -> None:
        self._publishers.pop(platform.lower(), None)

    def resolve(self, platform: str) -> PublisherCapability | None:
        """Publisher for *platform* (case-insensitive), or None."""
        return self._publishers.get((platform or "").lower())

    def platforms(self) -> list[str]:
        return sorted(self._publishers)

    def __contains__(self, platform: str) -> bool:
        return self.resolve(platform) is not None

    def __len__(self) -> int:
        return len(self._publishers)


def build_registry(settings: StorecastSettings, dry_run: bool = False) -> PublisherRegistry:
    """Registry with the built-in publishers.

    With ``dry_run`` every known platform gets a :class:`DryRunPublisher`;
    otherwise only platforms with a real adapter are registered.
    """
    if dry_run:
        return PublisherRegistry([DryRunPublisher(p.value) for p in Platform])
    return PublisherRegistry(
        [
            FacebookPublisher(
                settings.graph_api_url,
                http_timeout=settings.publish_timeout_seconds,
            ),
        ]
    )
