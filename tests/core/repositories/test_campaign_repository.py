"""Tests for CampaignRepository — scoped CRUD and stage transitions."""

from __future__ import annotations

from datetime import timedelta

import pytest

from storecast.core.enums import CampaignStage
from storecast.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    ScopeViolation,
    ValidationError,
)
from storecast.core.repositories import CampaignCreate, CampaignUpdate
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import from_iso8601, utc_now


class TestCreate:
    def test_starts_in_draft(self, campaigns, scope_a, store_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="  Spring  "))
        assert campaign.tenant_id == store_a.id
        assert campaign.name == "Spring"
        assert campaign.stage == CampaignStage.DRAFT.value
        assert campaign.scheduling_enabled is True

    def test_requires_name(self, campaigns, scope_a):
        with pytest.raises(ValidationError):
            campaigns.create(scope_a, CampaignCreate(name="  "))

    def test_window_end_after_start(self, campaigns, scope_a):
        now = utc_now()
        with pytest.raises(ValidationError, match="end must be after"):
            campaigns.create(
                scope_a,
                CampaignCreate(name="x", scheduled_start_at=now, scheduled_end_at=now),
            )

    def test_window_stored_as_utc(self, campaigns, scope_a):
        start = utc_now()
        campaign = campaigns.create(
            scope_a,
            CampaignCreate(name="x", scheduled_start_at=start, scheduled_end_at=start + timedelta(days=1)),
        )
        assert from_iso8601(campaign.scheduled_start_at) == start


class TestIsolation:
    def test_other_tenant_cannot_read(self, campaigns, scope_a, scope_b):
        campaign = campaigns.create(scope_a, CampaignCreate(name="Mine"))
        assert campaigns.get(scope_b, campaign.id) is None
        with pytest.raises(NotFoundError):
            campaigns.get_or_raise(scope_b, campaign.id)

    def test_list_is_per_tenant(self, campaigns, scope_a, scope_b):
        campaigns.create(scope_a, CampaignCreate(name="A1"))
        campaigns.create(scope_a, CampaignCreate(name="A2"))
        campaigns.create(scope_b, CampaignCreate(name="B1"))
        assert [c.name for c in campaigns.list_for_tenant(scope_a)] == ["A1", "A2"]
        assert [c.name for c in campaigns.list_for_tenant(scope_b)] == ["B1"]

    @pytest.mark.parametrize("scope", [TenantScope.none(), TenantScope.all_tenants()])
    def test_scope_required(self, campaigns, scope):
        with pytest.raises(ScopeViolation):
            campaigns.list_for_tenant(scope)

    def test_update_cannot_cross_tenants(self, campaigns, scope_a, scope_b):
        campaign = campaigns.create(scope_a, CampaignCreate(name="Mine"))
        with pytest.raises(NotFoundError):
            campaigns.update(scope_b, campaign.id, CampaignUpdate(name="Theirs"))
        assert campaigns.get(scope_a, campaign.id).name == "Mine"


class TestUpdate:
    def test_rename(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="Old"))
        assert campaigns.update(scope_a, campaign.id, CampaignUpdate(name="New")).name == "New"

    def test_no_changes(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="Same"))
        assert campaigns.update(scope_a, campaign.id, CampaignUpdate()) == campaign

    def test_clear_window(self, campaigns, scope_a):
        start = utc_now()
        campaign = campaigns.create(
            scope_a,
            CampaignCreate(name="x", scheduled_start_at=start, scheduled_end_at=start + timedelta(hours=1)),
        )
        cleared = campaigns.update(scope_a, campaign.id, CampaignUpdate(clear_window=True))
        assert cleared.scheduled_start_at is None
        assert cleared.scheduled_end_at is None

    def test_locked_once_scheduled(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        campaigns.advance(scope_a, campaign.id, CampaignStage.IN_REVIEW)
        campaigns.advance(scope_a, campaign.id, CampaignStage.SCHEDULED)
        with pytest.raises(InvalidTransitionError, match="only allowed in Draft or InReview"):
            campaigns.update(scope_a, campaign.id, CampaignUpdate(name="late edit"))


class TestStages:
    def test_full_path(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        for stage in ("InReview", "Scheduled", "Ready", "Published"):
            campaign = campaigns.advance(scope_a, campaign.id, stage)
        assert campaign.stage == "Published"

    def test_illegal_jump(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        with pytest.raises(InvalidTransitionError):
            campaigns.advance(scope_a, campaign.id, CampaignStage.READY)

    def test_unschedule_returns_to_review(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        campaigns.advance(scope_a, campaign.id, "InReview")
        campaigns.advance(scope_a, campaign.id, "Scheduled")
        assert campaigns.unschedule(scope_a, campaign.id).stage == "InReview"

    def test_unschedule_draft_rejected(self, campaigns, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        with pytest.raises(InvalidTransitionError):
            campaigns.unschedule(scope_a, campaign.id)

    def test_scheduling_toggle(self, campaigns, scope_a, scope_b):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        assert campaigns.set_scheduling_enabled(scope_a, campaign.id, False).scheduling_enabled is False
        with pytest.raises(NotFoundError):
            campaigns.set_scheduling_enabled(scope_b, campaign.id, True)
