"""Publisher capability protocol and result type.

Manifesto:
    The orchestrator knows nothing about any destination's API.  It asks
    the registry for the capability matching a target's platform and calls
    ``publish``.  Adding a destination means writing one class with a
    ``platform`` name and an async ``publish`` method, then registering it.

    Publishers report business failures as ``PublishResult.failure(msg)``;
    the message is stored on the post target verbatim.  Exceptions are for
    transport faults and are recorded by the orchestrator with their text.

Tags:
    storecast, publishing, protocol, adapters

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class PublishResult:
    """Outcome of one publish call.

    Examples:
        >>> PublishResult.success("123_456").ok
        True
        >>> PublishResult.failure("Token expired").message
        'Token expired'
    """

    ok: bool
    external_id: str | None = None
    message: str | None = None

    @classmethod
    def success(cls, external_id: str) -> PublishResult:
        return cls(ok=True, external_id=external_id)

    @classmethod
    def failure(cls, message: str) -> PublishResult:
        return cls(ok=False, message=message)


@runtime_checkable
class PublisherCapability(Protocol):
    """One destination family (``facebook``, ``instagram``, ...)."""

    platform: str

    async def publish(
        self,
        caption: str,
        image_url: str | None,
        token: str,
        external_account_id: str,
    ) -> PublishResult:
        """Publish *caption* (and optional image) to the account."""
        ...
