"""Tests for DueWorkOrchestrator — one publishing pass over the due set.

Covers the lease, the optimistic claim, per-item isolation, the campaign
gate, post-level settlement, timeouts and verbatim rejection messages.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from storecast.core.errors import ScopeViolation
from storecast.core.repositories import CampaignCreate
from storecast.core.scheduling.lease import LeaseManager
from storecast.core.settings import StorecastSettings
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import from_iso8601, utc_now
from storecast.publishing.factory import create_orchestrator
from storecast.publishing.orchestrator import (
    DueWorkOrchestrator,
    OutcomeStatus,
    group_by_post,
)
from storecast.publishing.protocol import PublishResult
from storecast.publishing.registry import PublisherRegistry


# ── Fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def make_orchestrator(conn):
    def _make(*publishers, leases=None, **kwargs):
        return DueWorkOrchestrator(
            conn,
            PublisherRegistry(list(publishers)),
            leases or LeaseManager(conn, instance_id="test"),
            **kwargs,
        )

    return _make


def _rows(post_targets, scope, post):
    return post_targets.list_for_post(scope, post.id)


class TestPublish:
    """Happy path and post-level settlement."""

    @pytest.mark.asyncio
    async def test_due_item_published(
        self, make_orchestrator, fake_publisher, seed, posts, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a, image_url="https://cdn/img.jpg")
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.lease_acquired
        assert (report.due, report.published, report.failed) == (1, 1, 0)
        assert publisher.calls == [
            {
                "caption": "Spring sale starts today",
                "image_url": "https://cdn/img.jpg",
                "token": "token-facebook-0",
                "external_account_id": "facebook-page-0",
            }
        ]
        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Published"
        assert row.external_post_id == "facebook-1"
        assert row.published_at is not None

        settled = posts.get(scope_a, post.id)
        assert settled.publish_status == "Published"
        assert settled.published_at is not None

    @pytest.mark.asyncio
    async def test_future_item_untouched(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a, due_in=timedelta(hours=1))
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.due == 0
        assert publisher.calls == []
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_explicit_now(self, make_orchestrator, fake_publisher, seed, scope_a):
        seed(scope_a, due_in=timedelta(hours=1))
        report = await make_orchestrator(fake_publisher("facebook")).run_once(
            utc_now() + timedelta(hours=2)
        )
        assert report.published == 1

    @pytest.mark.asyncio
    async def test_published_at_is_call_time(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        """``published_at`` records when the call succeeded, not the evaluation time."""
        _, post, _ = seed(scope_a, due_in=-timedelta(hours=2))
        evaluated_at = utc_now() - timedelta(hours=1)

        await make_orchestrator(fake_publisher("facebook")).run_once(evaluated_at)

        (row,) = _rows(post_targets, scope_a, post)
        assert from_iso8601(row.published_at) > evaluated_at

    @pytest.mark.asyncio
    async def test_one_failed_target_fails_the_post(
        self, make_orchestrator, fake_publisher, seed, posts, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a, platforms=("facebook", "instagram"))
        facebook = fake_publisher("facebook", result=PublishResult.failure("Token expired"))
        instagram = fake_publisher("instagram")

        report = await make_orchestrator(facebook, instagram).run_once()

        assert (report.published, report.failed) == (1, 1)
        statuses = {r.target_id: r.publish_status for r in _rows(post_targets, scope_a, post)}
        assert sorted(statuses.values()) == ["Failed", "Published"]
        settled = posts.get(scope_a, post.id)
        assert settled.publish_status == "Failed"
        assert settled.last_error == "facebook: Token expired"

    @pytest.mark.asyncio
    async def test_max_concurrency(self, make_orchestrator, fake_publisher, seed, scope_a, scope_b):
        seed(scope_a, platforms=("facebook", "instagram"))
        seed(scope_b)
        seed(scope_b)
        facebook = fake_publisher("facebook", delay=0.01)
        instagram = fake_publisher("instagram", delay=0.01)

        report = await make_orchestrator(facebook, instagram, max_concurrency=3).run_once()

        assert report.due == 4
        assert report.published == 4

    def test_concurrency_must_be_positive(self, make_orchestrator):
        with pytest.raises(ValueError):
            make_orchestrator(max_concurrency=0)

    @pytest.mark.asyncio
    async def test_report_to_dict(self, make_orchestrator, fake_publisher, seed, scope_a):
        seed(scope_a)
        report = await make_orchestrator(fake_publisher("facebook")).run_once()
        data = report.to_dict()
        assert data["published"] == 1
        assert data["outcomes"][0]["status"] == "published"
        assert data["outcomes"][0]["platform"] == "facebook"
        assert report.duration_ms is not None


class TestFailures:
    """Every item failure is recorded on that item; the run continues."""

    @pytest.mark.asyncio
    async def test_disconnected_target(
        self, make_orchestrator, fake_publisher, seed, destinations, post_targets, scope_a
    ):
        _, post, targets = seed(scope_a)
        destinations.disconnect(scope_a, targets[0].id)
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.failed == 1
        assert publisher.calls == []
        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Failed"
        assert row.error_message == "Distribution target Facebook Page 0 (facebook) is disconnected"
        assert report.outcomes[0].error_type == "DestinationUnavailableError"

    @pytest.mark.asyncio
    async def test_no_publisher_for_platform(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a, platforms=("instagram",))
        await make_orchestrator(fake_publisher("facebook")).run_once()
        (row,) = _rows(post_targets, scope_a, post)
        assert row.error_message == "No publisher found for platform: instagram"

    @pytest.mark.asyncio
    async def test_rejection_stored_verbatim(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        message = "Facebook API error: (#200) Permissions error (Code: 200, Type: OAuthException)"
        publisher = fake_publisher("facebook", result=PublishResult.failure(message))

        await make_orchestrator(publisher).run_once()

        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Failed"
        assert row.error_message == message

    @pytest.mark.asyncio
    async def test_missing_external_id(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        publisher = fake_publisher("facebook", result=PublishResult(ok=True))
        await make_orchestrator(publisher).run_once()
        (row,) = _rows(post_targets, scope_a, post)
        assert row.error_message == "Publisher returned no external post id"

    @pytest.mark.asyncio
    async def test_timeout(self, make_orchestrator, fake_publisher, seed, post_targets, scope_a):
        _, post, _ = seed(scope_a)
        publisher = fake_publisher("facebook", delay=1.0)

        report = await make_orchestrator(publisher, publish_timeout_seconds=0.05).run_once()

        assert report.outcomes[0].error_type == "PublishTimeoutError"
        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Failed"
        assert row.error_message == "Publish timed out after 0.05s"

    @pytest.mark.asyncio
    async def test_failure_isolated_across_tenants(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a, scope_b
    ):
        _, post_a, _ = seed(scope_a)
        _, post_b, _ = seed(scope_b, platforms=("instagram",))
        facebook = fake_publisher("facebook", error=ConnectionResetError("connection reset"))
        instagram = fake_publisher("instagram")

        report = await make_orchestrator(facebook, instagram).run_once()

        assert (report.published, report.failed) == (1, 1)
        assert _rows(post_targets, scope_a, post_a)[0].error_message == "connection reset"
        assert _rows(post_targets, scope_b, post_b)[0].publish_status == "Published"

    @pytest.mark.asyncio
    async def test_crash_after_claim_recorded_as_failed(
        self, make_orchestrator, fake_publisher, seed, posts, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        publisher = fake_publisher("facebook")
        orchestrator = make_orchestrator(publisher)

        def broken(scope, target_id):
            raise RuntimeError("database disk image is malformed")

        orchestrator.destinations.get = broken

        report = await orchestrator.run_once()

        (outcome,) = report.outcomes
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.claimed is True
        assert outcome.error_type == "RuntimeError"
        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Failed"
        assert row.error_message == "database disk image is malformed"
        assert publisher.calls == []
        settled = posts.get(scope_a, post.id)
        assert settled.publish_status == "Failed"
        assert settled.last_error == "unknown: database disk image is malformed"

    @pytest.mark.asyncio
    async def test_crash_before_claim_leaves_item_pending(
        self, make_orchestrator, fake_publisher, seed, posts, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        orchestrator = make_orchestrator(fake_publisher("facebook"))

        def broken(scope, post_id):
            raise RuntimeError("database is locked")

        orchestrator.posts.get = broken

        report = await orchestrator.run_once()

        (outcome,) = report.outcomes
        assert outcome.status is OutcomeStatus.FAILED
        assert outcome.claimed is False
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"
        assert posts.get(scope_a, post.id).publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_unrecorded_crash_left_for_sweeper(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        orchestrator = make_orchestrator(fake_publisher("facebook"))

        def broken(*args, **kwargs):
            raise RuntimeError("database disk image is malformed")

        orchestrator.destinations.get = broken
        orchestrator.post_targets.mark_failed = broken

        report = await orchestrator.run_once()

        assert report.outcomes[0].status is OutcomeStatus.FAILED
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Publishing"
        assert post_targets.reset_stuck(scope_a, utc_now() + timedelta(seconds=1)) == 1
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_scope_violation_propagates(
        self, conn, make_orchestrator, fake_publisher, seed, scope_a
    ):
        seed(scope_a)
        leases = LeaseManager(conn, instance_id="test")
        publisher = fake_publisher("facebook", error=ScopeViolation("tenant leaked"))

        with pytest.raises(ScopeViolation, match="tenant leaked"):
            await make_orchestrator(publisher, leases=leases).run_once()

        assert not leases.is_held()


class TestCampaignGate:
    @pytest.mark.asyncio
    async def test_scheduling_disabled_defers(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a, campaign=CampaignCreate(name="Paused", scheduling_enabled=False))
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.skipped == 1
        assert report.outcomes[0].message == "Campaign scheduling is disabled"
        assert publisher.calls == []
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_window_not_open_defers(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        start = utc_now() + timedelta(days=1)
        _, post, _ = seed(
            scope_a,
            campaign=CampaignCreate(
                name="Later", scheduled_start_at=start, scheduled_end_at=start + timedelta(days=1)
            ),
        )

        report = await make_orchestrator(fake_publisher("facebook")).run_once()

        assert report.outcomes[0].message == "Campaign scheduling window has not opened"
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_window_closed_defers(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        end = utc_now() - timedelta(days=1)
        _, post, _ = seed(
            scope_a,
            campaign=CampaignCreate(
                name="Over", scheduled_start_at=end - timedelta(days=1), scheduled_end_at=end
            ),
        )
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.skipped == 1
        assert report.outcomes[0].message.startswith("Campaign scheduling window closed at")
        assert publisher.calls == []
        (row,) = _rows(post_targets, scope_a, post)
        assert row.publish_status == "Pending"
        assert row.error_message is None


class TestExactlyOnce:
    """Lease plus optimistic claim: an item is published at most once."""

    @pytest.mark.asyncio
    async def test_second_run_is_noop(self, make_orchestrator, fake_publisher, seed, scope_a):
        seed(scope_a)
        publisher = fake_publisher("facebook")
        orchestrator = make_orchestrator(publisher)

        first = await orchestrator.run_once()
        second = await orchestrator.run_once()

        assert first.published == 1
        assert second.due == 0
        assert len(publisher.calls) == 1

    @pytest.mark.asyncio
    async def test_overlapping_runs(self, conn, make_orchestrator, fake_publisher, seed, scope_a):
        seed(scope_a, platforms=("facebook", "instagram"))
        facebook = fake_publisher("facebook", delay=0.05)
        instagram = fake_publisher("instagram", delay=0.05)
        one = make_orchestrator(facebook, instagram, leases=LeaseManager(conn, instance_id="one"))
        two = make_orchestrator(facebook, instagram, leases=LeaseManager(conn, instance_id="two"))

        reports = await asyncio.gather(one.run_once(), two.run_once())

        assert sorted(r.lease_acquired for r in reports) == [False, True]
        assert len(facebook.calls) == 1
        assert len(instagram.calls) == 1

    @pytest.mark.asyncio
    async def test_held_lease_does_nothing(
        self, conn, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        LeaseManager(conn, instance_id="elsewhere").acquire()
        publisher = fake_publisher("facebook")

        report = await make_orchestrator(publisher).run_once()

        assert report.lease_acquired is False
        assert report.due == 0
        assert publisher.calls == []
        assert _rows(post_targets, scope_a, post)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_stale_snapshot_skips_claimed_item(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        snapshot = post_targets.list_due(TenantScope.all_tenants(), utc_now())
        now = utc_now()
        post_targets.try_begin_publishing(scope_a, snapshot[0].id, now)
        post_targets.mark_published(scope_a, snapshot[0].id, "elsewhere-1", now)

        publisher = fake_publisher("facebook")
        orchestrator = make_orchestrator(publisher)
        orchestrator.post_targets.list_due = lambda scope, now: snapshot

        report = await orchestrator.run_once()

        assert report.skipped == 1
        assert report.outcomes[0].message == "Item is no longer Pending"
        assert publisher.calls == []
        assert _rows(post_targets, scope_a, post)[0].external_post_id == "elsewhere-1"

    @pytest.mark.asyncio
    async def test_post_deleted_mid_run(
        self, make_orchestrator, fake_publisher, seed, posts, post_targets, scope_a
    ):
        _, post, _ = seed(scope_a)
        snapshot = post_targets.list_due(TenantScope.all_tenants(), utc_now())
        posts.delete(scope_a, post.id)

        publisher = fake_publisher("facebook")
        orchestrator = make_orchestrator(publisher)
        orchestrator.post_targets.list_due = lambda scope, now: snapshot

        report = await orchestrator.run_once()

        assert report.skipped == 1
        assert report.failed == 0
        assert publisher.calls == []
        assert report.outcomes[0].message == f"PostTarget not found: {snapshot[0].id}"

    @pytest.mark.asyncio
    async def test_lost_lease_stops_the_run(
        self, conn, make_orchestrator, fake_publisher, seed, post_targets, scope_a
    ):
        seed(scope_a)
        seed(scope_a)

        class LosingLeases(LeaseManager):
            def renew(self, lease, ttl_seconds=300):
                return False

        publisher = fake_publisher("facebook")
        report = await make_orchestrator(
            publisher, leases=LosingLeases(conn, instance_id="test")
        ).run_once()

        assert report.lease_lost is True
        assert report.due == 2
        assert len(report.outcomes) == 1
        assert len(post_targets.list_due(scope_a, utc_now())) == 1


class TestScoping:
    @pytest.mark.asyncio
    async def test_run_for_one_tenant(
        self, make_orchestrator, fake_publisher, seed, post_targets, scope_a, scope_b, store_a
    ):
        seed(scope_a)
        _, post_b, _ = seed(scope_b)

        report = await make_orchestrator(fake_publisher("facebook")).run_once(scope=scope_a)

        assert [o.tenant_id for o in report.outcomes] == [store_a.id]
        assert _rows(post_targets, scope_b, post_b)[0].publish_status == "Pending"

    @pytest.mark.asyncio
    async def test_run_for_one_post(self, make_orchestrator, fake_publisher, seed, scope_a):
        seed(scope_a)
        _, wanted, _ = seed(scope_a)

        report = await make_orchestrator(fake_publisher("facebook")).run_once(
            scope=scope_a, post_id=wanted.id
        )

        assert report.due == 1
        assert report.outcomes[0].post_id == wanted.id

    def test_group_by_post_keeps_due_order(self, seed, post_targets, scope_a):
        _, late, _ = seed(scope_a, platforms=("facebook", "instagram"), due_in=timedelta(minutes=-1))
        _, early, _ = seed(scope_a, platforms=("facebook", "instagram"), due_in=timedelta(minutes=-9))
        batches = group_by_post(post_targets.list_due(scope_a, utc_now()))
        assert [b.post_id for b in batches] == [early.id, late.id]
        assert [len(b.items) for b in batches] == [2, 2]


class TestFactory:
    @pytest.mark.asyncio
    async def test_dry_run_orchestrator(self, conn, seed, post_targets, scope_a):
        _, post, _ = seed(scope_a, platforms=("facebook", "instagram"))
        settings = StorecastSettings(_env_file=None, lease_ttl_seconds=60, max_concurrency=2)

        orchestrator = create_orchestrator(conn, settings, dry_run=True)
        report = await orchestrator.run_once()

        assert orchestrator.lease_ttl_seconds == 60
        assert orchestrator.max_concurrency == 2
        assert report.published == 2
        for row in _rows(post_targets, scope_a, post):
            assert row.external_post_id.startswith("dryrun-")
            assert from_iso8601(row.published_at) <= utc_now()
