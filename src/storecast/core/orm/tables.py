"""Publishing table definitions.

Every tenant-scoped table carries ``tenant_id`` (posts and post targets
denormalise it from their campaign) so that each scoped statement filters
on a column of the table it touches.

Tags:
    storecast, orm, sqlalchemy, tables, publishing

Doc-Types:
    api-reference, data-model
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from storecast.core.orm.base import StorecastBase


class StoreTable(StorecastBase):
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(nullable=False)
    created_at: Mapped[str] = mapped_column(nullable=False)


class CampaignTable(StorecastBase):
    __tablename__ = "campaigns"
    __table_args__ = (Index("ix_campaigns_tenant", "tenant_id"),)

    id: Mapped[str] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    name: Mapped[str] = mapped_column(nullable=False)
    stage: Mapped[str] = mapped_column(nullable=False, default="Draft")
    scheduled_start_at: Mapped[str | None] = mapped_column()
    scheduled_end_at: Mapped[str | None] = mapped_column()
    scheduling_enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    owner_id: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)


class PostTable(StorecastBase):
    __tablename__ = "posts"
    __table_args__ = (Index("ix_posts_tenant_campaign", "tenant_id", "campaign_id"),)

    id: Mapped[str] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    campaign_id: Mapped[str] = mapped_column(ForeignKey("campaigns.id"), nullable=False)
    caption: Mapped[str] = mapped_column(nullable=False)
    image_url: Mapped[str | None] = mapped_column()
    scheduled_at: Mapped[str | None] = mapped_column()
    publish_status: Mapped[str] = mapped_column(nullable=False, default="Pending")
    last_error: Mapped[str | None] = mapped_column()
    published_at: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)


class DistributionTargetTable(StorecastBase):
    __tablename__ = "distribution_targets"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "platform", "external_account_id",
            name="uq_distribution_targets_account",
        ),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    platform: Mapped[str] = mapped_column(nullable=False)
    external_account_id: Mapped[str] = mapped_column(nullable=False)
    display_name: Mapped[str] = mapped_column(nullable=False, default="")
    access_token: Mapped[str] = mapped_column(nullable=False, default="")
    is_connected: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)


class PostTargetTable(StorecastBase):
    __tablename__ = "post_targets"
    __table_args__ = (
        # due scan: status + time, then id for a stable order
        Index("ix_post_targets_due", "publish_status", "scheduled_at", "id"),
        Index("ix_post_targets_tenant_post", "tenant_id", "post_id"),
    )

    id: Mapped[str] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"), nullable=False)
    target_id: Mapped[str] = mapped_column(
        ForeignKey("distribution_targets.id"), nullable=False
    )
    external_post_id: Mapped[str | None] = mapped_column()
    publish_status: Mapped[str] = mapped_column(nullable=False, default="Pending")
    scheduled_at: Mapped[str] = mapped_column(nullable=False)
    error_message: Mapped[str | None] = mapped_column()
    published_at: Mapped[str | None] = mapped_column()
    publishing_started_at: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)


class ScheduledTriggerTable(StorecastBase):
    __tablename__ = "scheduled_triggers"
    __table_args__ = (Index("ix_scheduled_triggers_tenant", "tenant_id"),)

    id: Mapped[str] = mapped_column(primary_key=True)
    tenant_id: Mapped[str] = mapped_column(ForeignKey("stores.id"), nullable=False)
    trigger_type: Mapped[str] = mapped_column(nullable=False)
    related_post_id: Mapped[str | None] = mapped_column()
    cron_expression: Mapped[str] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    last_fired_at: Mapped[str | None] = mapped_column()
    created_at: Mapped[str] = mapped_column(nullable=False)
    updated_at: Mapped[str] = mapped_column(nullable=False)


class PublisherLeaseTable(StorecastBase):
    __tablename__ = "publisher_leases"

    lease_name: Mapped[str] = mapped_column(primary_key=True)
    holder: Mapped[str] = mapped_column(nullable=False)
    acquired_at: Mapped[str] = mapped_column(nullable=False)
    expires_at: Mapped[str] = mapped_column(nullable=False)
