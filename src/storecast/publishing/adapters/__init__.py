"""Built-in publisher adapters."""

from storecast.publishing.adapters.dry_run import DryRunPublisher
from storecast.publishing.adapters.facebook import FacebookPublisher

__all__ = ["DryRunPublisher", "FacebookPublisher"]
