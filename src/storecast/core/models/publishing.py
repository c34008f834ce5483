"""Publishing table models.

Stores (tenants), campaigns, posts, the per-destination fan-out rows, the
distribution targets they point at, and recurring-task descriptors.

Tags:
    storecast, models, publishing, dataclasses, schema-mapping

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from dataclasses import dataclass

from storecast.core.enums import CampaignStage, PublishStatus


# ---------------------------------------------------------------------------
# stores
# ---------------------------------------------------------------------------


@dataclass
class Store:
    """Tenant record (``stores``). Tenant-agnostic."""

    id: str = ""
    name: str = ""
    created_at: str = ""


# ---------------------------------------------------------------------------
# campaigns
# ---------------------------------------------------------------------------


@dataclass
class Campaign:
    """Marketing initiative row (``campaigns``)."""

    id: str = ""
    tenant_id: str = ""
    name: str = ""
    stage: str = CampaignStage.DRAFT.value
    scheduled_start_at: str | None = None
    scheduled_end_at: str | None = None
    scheduling_enabled: bool = True
    owner_id: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.scheduling_enabled = bool(self.scheduling_enabled)


# ---------------------------------------------------------------------------
# posts
# ---------------------------------------------------------------------------


@dataclass
class Post:
    """Content row (``posts``). Status is coarse; targets carry the detail."""

    id: str = ""
    tenant_id: str = ""
    campaign_id: str = ""
    caption: str = ""
    image_url: str | None = None
    scheduled_at: str | None = None
    publish_status: str = PublishStatus.PENDING.value
    last_error: str | None = None
    published_at: str | None = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# post_targets
# ---------------------------------------------------------------------------


@dataclass
class PostTarget:
    """Fan-out unit (``post_targets``): one post on one distribution target."""

    id: str = ""
    tenant_id: str = ""
    post_id: str = ""
    target_id: str = ""
    external_post_id: str | None = None
    publish_status: str = PublishStatus.PENDING.value
    scheduled_at: str = ""
    error_message: str | None = None
    published_at: str | None = None
    publishing_started_at: str | None = None
    created_at: str = ""
    updated_at: str = ""


# ---------------------------------------------------------------------------
# distribution_targets
# ---------------------------------------------------------------------------


@dataclass
class DistributionTarget:
    """Tenant-owned external destination (``distribution_targets``)."""

    id: str = ""
    tenant_id: str = ""
    platform: str = ""
    external_account_id: str = ""
    display_name: str = ""
    access_token: str = ""
    is_connected: bool = True
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.is_connected = bool(self.is_connected)

    def __repr__(self) -> str:
        return (
            f"DistributionTarget(id={self.id!r}, platform={self.platform!r}, "
            f"external_account_id={self.external_account_id!r}, "
            f"is_connected={self.is_connected})"
        )


# ---------------------------------------------------------------------------
# scheduled_triggers
# ---------------------------------------------------------------------------


@dataclass
class ScheduledTrigger:
    """Recurring-task descriptor row (``scheduled_triggers``)."""

    id: str = ""
    tenant_id: str = ""
    trigger_type: str = ""
    related_post_id: str | None = None
    cron_expression: str = ""
    is_active: bool = True
    last_fired_at: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        self.is_active = bool(self.is_active)
