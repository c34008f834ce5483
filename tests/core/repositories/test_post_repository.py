"""Tests for PostRepository — fan-out, rescheduling, scoped deletes, post status."""

from __future__ import annotations

from datetime import timedelta

import pytest

from storecast.core.enums import CampaignStage, PublishStatus
from storecast.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    ScopeViolation,
    ValidationError,
)
from storecast.core.repositories import (
    CampaignCreate,
    PostCreate,
    PostRepository,
    PostUpdate,
    TargetConnect,
)
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import from_iso8601, utc_now


class TestCreate:
    """Creating a post fans out one Pending row per connected target."""

    def test_fan_out(self, seed, posts, scope_a):
        _, post, targets = seed(scope_a, platforms=("facebook", "instagram"))
        rows = posts.targets.list_for_post(scope_a, post.id)
        assert len(rows) == 2
        assert {r.target_id for r in rows} == {t.id for t in targets}
        assert all(r.publish_status == PublishStatus.PENDING.value for r in rows)
        assert {r.scheduled_at for r in rows} == {post.scheduled_at}

    def test_disconnected_targets_not_fanned_out(self, seed, posts, destinations, scope_a):
        _, first, targets = seed(scope_a, platforms=("facebook", "instagram"))
        destinations.disconnect(scope_a, targets[1].id)
        post = posts.create(scope_a, PostCreate(campaign_id=first.campaign_id, caption="Again"))
        rows = posts.targets.list_for_post(scope_a, post.id)
        assert [r.target_id for r in rows] == [targets[0].id]

    def test_no_scheduled_time_is_due_now(self, seed, posts, scope_a):
        campaign, _, _ = seed(scope_a)
        before = utc_now()
        post = posts.create(scope_a, PostCreate(campaign_id=campaign.id, caption="Now"))
        assert post.scheduled_at is None
        (row,) = posts.targets.list_for_post(scope_a, post.id)
        assert from_iso8601(row.scheduled_at) >= before

    def test_requires_connected_target(self, campaigns, posts, scope_a):
        campaign = campaigns.create(scope_a, CampaignCreate(name="x"))
        with pytest.raises(ValidationError, match="No connected distribution targets"):
            posts.create(scope_a, PostCreate(campaign_id=campaign.id, caption="Hi"))

    def test_caption_rules(self, conn, seed, scope_a):
        campaign, _, _ = seed(scope_a)
        short = PostRepository(conn, caption_max_length=10)
        with pytest.raises(ValidationError, match="Caption is required"):
            short.create(scope_a, PostCreate(campaign_id=campaign.id, caption="   "))
        with pytest.raises(ValidationError, match="exceeds 10"):
            short.create(scope_a, PostCreate(campaign_id=campaign.id, caption="x" * 11))

    def test_campaign_of_other_tenant(self, seed, posts, destinations, scope_a, scope_b):
        campaign, _, _ = seed(scope_a)
        destinations.connect(
            scope_b, TargetConnect(platform="facebook", external_account_id="b", access_token="t")
        )
        with pytest.raises(NotFoundError):
            posts.create(scope_b, PostCreate(campaign_id=campaign.id, caption="Hijack"))

    def test_campaign_must_be_editable(self, seed, posts, campaigns, scope_a):
        campaign, _, _ = seed(scope_a)
        campaigns.advance(scope_a, campaign.id, CampaignStage.IN_REVIEW)
        campaigns.advance(scope_a, campaign.id, CampaignStage.SCHEDULED)
        with pytest.raises(InvalidTransitionError):
            posts.create(scope_a, PostCreate(campaign_id=campaign.id, caption="Late"))


class TestUpdate:
    def test_reschedule_moves_open_targets(self, seed, posts, post_targets, scope_a):
        _, post, _ = seed(scope_a, platforms=("facebook", "instagram"))
        first, second = posts.targets.list_for_post(scope_a, post.id)
        now = utc_now()
        post_targets.try_begin_publishing(scope_a, first.id, now)
        post_targets.mark_failed(scope_a, first.id, "boom", now)
        post_targets.try_begin_publishing(scope_a, second.id, now)
        post_targets.mark_published(scope_a, second.id, "ext-1", now)

        new_time = utc_now() + timedelta(days=1)
        posts.update(scope_a, post.id, PostUpdate(scheduled_at=new_time))

        moved = post_targets.get(scope_a, first.id)
        kept = post_targets.get(scope_a, second.id)
        assert moved.publish_status == "Pending"
        assert moved.error_message is None
        assert from_iso8601(moved.scheduled_at) == new_time
        assert kept.publish_status == "Published"
        assert kept.scheduled_at == second.scheduled_at

    def test_reschedule_reopens_failed_post(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        posts.transition_status(scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHING)
        posts.transition_status(
            scope_a, post.id, PublishStatus.PUBLISHING, PublishStatus.FAILED, error="x"
        )
        updated = posts.update(scope_a, post.id, PostUpdate(scheduled_at=utc_now()))
        assert updated.publish_status == "Pending"
        assert updated.last_error is None

    def test_caption_edit(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        assert posts.update(scope_a, post.id, PostUpdate(caption="New")).caption == "New"


class TestDelete:
    def test_deletes_targets_too(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        assert posts.delete(scope_a, post.id) is True
        assert posts.get(scope_a, post.id) is None
        assert posts.targets.list_for_post(scope_a, post.id) == []

    def test_other_tenant_cannot_delete(self, seed, posts, scope_a, scope_b):
        _, post, _ = seed(scope_a)
        assert posts.delete(scope_b, post.id) is False
        assert posts.get(scope_a, post.id) is not None
        assert len(posts.targets.list_for_post(scope_a, post.id)) == 1

    def test_all_tenants_scope_rejected(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        with pytest.raises(ScopeViolation):
            posts.delete(TenantScope.all_tenants(), post.id)


class TestStatus:
    def test_transition_guarded_by_current_status(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        assert posts.transition_status(
            scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHING
        )
        assert not posts.transition_status(
            scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHING
        )

    def test_illegal_transition(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        with pytest.raises(InvalidTransitionError):
            posts.transition_status(scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHED)

    def test_published_sets_timestamp(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        when = utc_now()
        posts.transition_status(scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHING)
        posts.transition_status(
            scope_a, post.id, PublishStatus.PUBLISHING, PublishStatus.PUBLISHED, published_at=when
        )
        assert from_iso8601(posts.get(scope_a, post.id).published_at) == when

    def test_reopen_only_failed(self, seed, posts, scope_a):
        _, post, _ = seed(scope_a)
        assert posts.reopen(scope_a, post.id) is False
        posts.transition_status(scope_a, post.id, PublishStatus.PENDING, PublishStatus.PUBLISHING)
        posts.transition_status(scope_a, post.id, PublishStatus.PUBLISHING, PublishStatus.FAILED)
        assert posts.reopen(scope_a, post.id) is True
        assert posts.get(scope_a, post.id).publish_status == "Pending"
