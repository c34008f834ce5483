"""Publisher that records calls and never leaves the process.

Used by ``storecast publish run --dry-run`` to walk the due set end to end
against a real database without contacting any destination.
"""

from __future__ import annotations

import logging
from uuid import uuid4

from storecast.publishing.protocol import PublishResult

logger = logging.getLogger(__name__)


class DryRunPublisher:
    """Accepts every publish and returns a synthetic ``dryrun-<hex>`` id."""

    def __init__(self, platform: str) -> None:
        self.platform = platform.lower()
        self.calls: list[dict[str, str | None]] = []

    async def publish(
        self,
        caption: str,
        image_url: str | None,
        token: str,
        external_account_id: str,
    ) -> PublishResult:
        self.calls.append(
            {
                "caption": caption,
                "image_url": image_url,
                "external_account_id": external_account_id,
            }
        )
        external_id = f"dryrun-{uuid4().hex[:12]}"
        logger.info(
            f"[dry-run] {self.platform} -> {external_account_id}: "
            f"{len(caption)} chars, image={'yes' if image_url else 'no'} ({external_id})"
        )
        return PublishResult.success(external_id)
