"""Campaign and publish-status state machines.

Campaign stages::

    Draft ⇄ InReview → Scheduled → Ready → Published
                 ▲          │         │
                 └──────────┴─────────┘   unschedule

Publish status (posts and post targets)::

    Pending → Publishing → Published        (terminal)
                        └→ Failed ─┐        (terminal for the orchestrator)
       ▲                           │
       └──── manual reset ─────────┘
       ▲
       └──── sweeper recovery ── Publishing (stale)

Nothing leaves ``Published``.  Manual reset and sweeper recovery are
separate allowances so that ordinary callers cannot use them by accident.
"""

from __future__ import annotations

from storecast.core.enums import CampaignStage, PublishStatus
from storecast.core.errors import InvalidTransitionError

# === Campaign ===

CAMPAIGN_EDITABLE_STAGES: frozenset[CampaignStage] = frozenset(
    {CampaignStage.DRAFT, CampaignStage.IN_REVIEW}
)

_CAMPAIGN_FORWARD: dict[CampaignStage, frozenset[CampaignStage]] = {
    CampaignStage.DRAFT: frozenset({CampaignStage.IN_REVIEW}),
    CampaignStage.IN_REVIEW: frozenset({CampaignStage.DRAFT, CampaignStage.SCHEDULED}),
    CampaignStage.SCHEDULED: frozenset({CampaignStage.READY}),
    CampaignStage.READY: frozenset({CampaignStage.PUBLISHED}),
    CampaignStage.PUBLISHED: frozenset(),
}

_CAMPAIGN_UNSCHEDULE: frozenset[CampaignStage] = frozenset(
    {CampaignStage.SCHEDULED, CampaignStage.READY}
)


def can_transition_campaign(
    current: CampaignStage | str,
    target: CampaignStage | str,
    *,
    unschedule: bool = False,
) -> bool:
    """Check a campaign stage change."""
    current, target = CampaignStage(current), CampaignStage(target)
    if unschedule:
        return current in _CAMPAIGN_UNSCHEDULE and target is CampaignStage.IN_REVIEW
    return target in _CAMPAIGN_FORWARD[current]


def ensure_campaign_transition(
    current: CampaignStage | str,
    target: CampaignStage | str,
    *,
    unschedule: bool = False,
) -> None:
    """Raise ``InvalidTransitionError`` unless the stage change is allowed."""
    if not can_transition_campaign(current, target, unschedule=unschedule):
        raise InvalidTransitionError(
            "campaign", CampaignStage(current).value, CampaignStage(target).value
        )


def is_campaign_editable(stage: CampaignStage | str) -> bool:
    return CampaignStage(stage) in CAMPAIGN_EDITABLE_STAGES


# === Publish status ===

_PUBLISH_FORWARD: dict[PublishStatus, frozenset[PublishStatus]] = {
    PublishStatus.PENDING: frozenset({PublishStatus.PUBLISHING}),
    PublishStatus.PUBLISHING: frozenset({PublishStatus.PUBLISHED, PublishStatus.FAILED}),
    PublishStatus.PUBLISHED: frozenset(),
    PublishStatus.FAILED: frozenset(),
}


def can_transition_publish(
    current: PublishStatus | str,
    target: PublishStatus | str,
    *,
    manual_reset: bool = False,
    recovery: bool = False,
) -> bool:
    """Check a publish status change.

    Args:
        manual_reset: Allow ``Failed → Pending`` (operator retry).
        recovery: Allow ``Publishing → Pending`` (stuck-item sweeper).
    """
    current, target = PublishStatus(current), PublishStatus(target)
    if target in _PUBLISH_FORWARD[current]:
        return True
    if manual_reset and current is PublishStatus.FAILED and target is PublishStatus.PENDING:
        return True
    if recovery and current is PublishStatus.PUBLISHING and target is PublishStatus.PENDING:
        return True
    return False


def ensure_publish_transition(
    current: PublishStatus | str,
    target: PublishStatus | str,
    *,
    manual_reset: bool = False,
    recovery: bool = False,
) -> None:
    """Raise ``InvalidTransitionError`` unless the status change is allowed."""
    if not can_transition_publish(
        current, target, manual_reset=manual_reset, recovery=recovery
    ):
        raise InvalidTransitionError(
            "publish status", PublishStatus(current).value, PublishStatus(target).value
        )


def is_terminal(status: PublishStatus | str) -> bool:
    return PublishStatus(status) in (PublishStatus.PUBLISHED, PublishStatus.FAILED)


__all__ = [
    "CAMPAIGN_EDITABLE_STAGES",
    "can_transition_campaign",
    "can_transition_publish",
    "ensure_campaign_transition",
    "ensure_publish_transition",
    "is_campaign_editable",
    "is_terminal",
]
