"""Campaign repository - scoped CRUD and stage transitions.

Stage changes are validated against :mod:`storecast.core.lifecycle` and
applied with an optimistic ``WHERE stage = <current>`` check, so two
reviewers advancing the same campaign cannot both succeed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from storecast.core.enums import CampaignStage
from storecast.core.errors import InvalidTransitionError, NotFoundError, ValidationError
from storecast.core.lifecycle import ensure_campaign_transition, is_campaign_editable
from storecast.core.models import Campaign
from storecast.core.repositories._base import ScopedRepository
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import ensure_utc, from_iso8601, to_iso8601, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, tenant_id, name, stage, scheduled_start_at, scheduled_end_at, "
    "scheduling_enabled, owner_id, created_at, updated_at"
)


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class CampaignCreate:
    """DTO for creating a campaign (always starts in Draft)."""

    name: str
    owner_id: str | None = None
    scheduled_start_at: datetime | None = None
    scheduled_end_at: datetime | None = None
    scheduling_enabled: bool = True


@dataclass
class CampaignUpdate:
    """DTO for editing a campaign; ``None`` leaves a field unchanged."""

    name: str | None = None
    owner_id: str | None = None
    scheduled_start_at: datetime | None = None
    scheduled_end_at: datetime | None = None
    clear_window: bool = False


def _check_window(start: datetime | None, end: datetime | None) -> None:
    if start is not None and end is not None and ensure_utc(end) <= ensure_utc(start):
        raise ValidationError(
            "Scheduling window end must be after its start",
            field="scheduled_end_at",
            value=end,
        )


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class CampaignRepository(ScopedRepository):
    """Repository for campaigns.

    Example:
        >>> repo = CampaignRepository(conn)
        >>> campaign = repo.create(scope, CampaignCreate(name="Spring sale"))
        >>> repo.advance(scope, campaign.id, CampaignStage.IN_REVIEW)
    """

    # === CRUD Operations ===

    def create(self, scope: TenantScope, data: CampaignCreate) -> Campaign:
        tenant_id = self._tenant(scope)
        if not data.name or not data.name.strip():
            raise ValidationError("Campaign name is required", field="name")
        _check_window(data.scheduled_start_at, data.scheduled_end_at)

        campaign_id = str(uuid4())
        now = to_iso8601(utc_now())
        self.conn.execute(
            f"INSERT INTO campaigns ({_COLUMNS}) VALUES ({self._ph(10)})",
            (
                campaign_id,
                tenant_id,
                data.name.strip(),
                CampaignStage.DRAFT.value,
                to_iso8601(data.scheduled_start_at),
                to_iso8601(data.scheduled_end_at),
                1 if data.scheduling_enabled else 0,
                data.owner_id,
                now,
                now,
            ),
        )
        self.conn.commit()
        return self.get_or_raise(scope, campaign_id)

    def get(self, scope: TenantScope, campaign_id: str) -> Campaign | None:
        tenant_id = self._tenant(scope)
        return self._fetch_one(
            Campaign,
            f"SELECT {_COLUMNS} FROM campaigns "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (campaign_id, tenant_id),
        )

    def get_or_raise(self, scope: TenantScope, campaign_id: str) -> Campaign:
        campaign = self.get(scope, campaign_id)
        if campaign is None:
            raise NotFoundError("Campaign", campaign_id).with_context(
                tenant_id=scope.tenant_id, campaign_id=campaign_id
            )
        return campaign

    def list_for_tenant(
        self, scope: TenantScope, stage: CampaignStage | None = None
    ) -> list[Campaign]:
        tenant_id = self._tenant(scope)
        sql = f"SELECT {_COLUMNS} FROM campaigns WHERE tenant_id = {self._ph()}"
        params: list[Any] = [tenant_id]
        if stage is not None:
            sql += f" AND stage = {self._ph()}"
            params.append(CampaignStage(stage).value)
        sql += " ORDER BY created_at, id"
        return self._fetch_all(Campaign, sql, tuple(params))

    def update(self, scope: TenantScope, campaign_id: str, updates: CampaignUpdate) -> Campaign:
        """Edit content fields; only allowed while Draft or InReview.

        Raises:
            NotFoundError: Campaign does not exist in this tenant.
            InvalidTransitionError: Campaign is Scheduled or later.
        """
        tenant_id = self._tenant(scope)
        campaign = self.get_or_raise(scope, campaign_id)
        if not is_campaign_editable(campaign.stage):
            raise InvalidTransitionError(
                "campaign",
                campaign.stage,
                campaign.stage,
                message=(
                    f"Campaign {campaign_id} is {campaign.stage}; "
                    "edits are only allowed in Draft or InReview"
                ),
            )

        start = updates.scheduled_start_at
        end = updates.scheduled_end_at
        if not updates.clear_window:
            start = start or from_iso8601(campaign.scheduled_start_at)
            end = end or from_iso8601(campaign.scheduled_end_at)
        _check_window(start, end)

        set_parts = []
        params: list[Any] = []
        if updates.name is not None:
            if not updates.name.strip():
                raise ValidationError("Campaign name is required", field="name")
            set_parts.append(f"name = {self._ph()}")
            params.append(updates.name.strip())
        if updates.owner_id is not None:
            set_parts.append(f"owner_id = {self._ph()}")
            params.append(updates.owner_id)
        if updates.clear_window or updates.scheduled_start_at or updates.scheduled_end_at:
            set_parts.append(f"scheduled_start_at = {self._ph()}")
            params.append(to_iso8601(start))
            set_parts.append(f"scheduled_end_at = {self._ph()}")
            params.append(to_iso8601(end))

        if not set_parts:
            return campaign

        set_parts.append(f"updated_at = {self._ph()}")
        params.append(to_iso8601(utc_now()))
        params.extend([campaign_id, tenant_id])

        self.conn.execute(
            f"UPDATE campaigns SET {', '.join(set_parts)} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            tuple(params),
        )
        self.conn.commit()
        return self.get_or_raise(scope, campaign_id)

    # === Stage Transitions ===

    def advance(
        self, scope: TenantScope, campaign_id: str, to_stage: CampaignStage | str
    ) -> Campaign:
        """Move a campaign along its lifecycle.

        Raises:
            InvalidTransitionError: Transition not allowed, or the stage changed
                concurrently.
        """
        return self._change_stage(scope, campaign_id, CampaignStage(to_stage), unschedule=False)

    def unschedule(self, scope: TenantScope, campaign_id: str) -> Campaign:
        """Return a Scheduled/Ready campaign to InReview so it can be edited."""
        return self._change_stage(
            scope, campaign_id, CampaignStage.IN_REVIEW, unschedule=True
        )

    def set_scheduling_enabled(
        self, scope: TenantScope, campaign_id: str, enabled: bool
    ) -> Campaign:
        """Pause or resume publishing for every post of the campaign."""
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE campaigns SET scheduling_enabled = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (1 if enabled else 0, to_iso8601(utc_now()), campaign_id, tenant_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("Campaign", campaign_id)
        return self.get_or_raise(scope, campaign_id)

    def _change_stage(
        self,
        scope: TenantScope,
        campaign_id: str,
        to_stage: CampaignStage,
        *,
        unschedule: bool,
    ) -> Campaign:
        tenant_id = self._tenant(scope)
        campaign = self.get_or_raise(scope, campaign_id)
        ensure_campaign_transition(campaign.stage, to_stage, unschedule=unschedule)

        cursor = self.conn.execute(
            f"UPDATE campaigns SET stage = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} AND stage = {self._ph()}",
            (to_stage.value, to_iso8601(utc_now()), campaign_id, tenant_id, campaign.stage),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise InvalidTransitionError(
                "campaign",
                campaign.stage,
                to_stage.value,
                message=f"Campaign {campaign_id} changed stage concurrently",
            )
        logger.info(f"Campaign {campaign_id}: {campaign.stage} -> {to_stage.value}")
        return self.get_or_raise(scope, campaign_id)
