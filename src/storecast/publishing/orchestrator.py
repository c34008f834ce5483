"""Due-work orchestrator - one publishing pass over every tenant's due items.

Manifesto:
    A run must be safe to start at any moment, from any process, any
    number of times.  Three mechanisms make that true:

    - **Lease:** one ``publisher`` lease row per run; a second run finds it
      held and returns an empty report.
    - **Optimistic claim:** an item is published only by the actor whose
      ``Pending → Publishing`` UPDATE matched, so a stale snapshot can never
      publish twice.
    - **Per-item isolation:** every item runs in its own tenant scope and
      its own error boundary.  A failure is recorded on that item (status
      plus message) and the run moves on.  Only ``ScopeViolation`` escapes.

Tags:
    storecast, publishing, orchestrator, lease, optimistic-concurrency,
    multi-tenant, asyncio

Doc-Types:
    api-reference, architecture-diagram


┌──────────────────────────────────────────────────────────────────────────────┐
│  run_once(now)                                                                │
│                                                                               │
│   acquire lease ── held ──► report(lease_acquired=False)                      │
│        │                                                                      │
│        ▼                                                                      │
│   list_due(ALL_TENANTS, now)  ─► group by post (due order kept)               │
│        │                                                                      │
│        ▼   per item, scope = for_tenant(item.tenant_id)                       │
│   ┌─────────────────────────────────────────────────────────────────────┐    │
│   │ campaign gate     disabled / window not open or over ─► SKIPPED     │    │
│   │ claim             Pending → Publishing, rowcount 0 ─► SKIPPED       │    │
│   │                   (row gone ─► SKIPPED, NotFound message)           │    │
│   │ post/campaign     vanished ─► Failed (NotFound)                     │    │
│   │ target            missing / disconnected / no publisher ─► Failed   │    │
│   │ publish           wait_for(timeout)                                 │    │
│   │                   ok ─► Published   reject/timeout/error ─► Failed  │    │
│   │ renew lease                                                         │    │
│   └─────────────────────────────────────────────────────────────────────┘    │
│        │                                                                      │
│        ▼   per post: Publishing → Published | Failed("platform: msg; ...")    │
│   release lease (finally)                                                     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from storecast.core.dialect import Dialect
from storecast.core.enums import PublishStatus
from storecast.core.errors import (
    DestinationUnavailableError,
    NotFoundError,
    PublishRejectedError,
    PublishTimeoutError,
    ScopeViolation,
    StorecastError,
)
from storecast.core.logging import get_logger, pop_context, push_context
from storecast.core.models import Campaign, PostTarget
from storecast.core.protocols import Connection
from storecast.core.repositories import PostRepository, PostTargetRepository
from storecast.core.scheduling.lease import PUBLISHER_LEASE, Lease, LeaseManager
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import ensure_utc, from_iso8601, utc_now
from storecast.publishing.registry import PublisherRegistry

log = get_logger(__name__)


# =============================================================================
# Report
# =============================================================================


class OutcomeStatus(str, Enum):
    PUBLISHED = "published"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class ItemOutcome:
    """What one run did with one due item."""

    post_target_id: str
    tenant_id: str
    post_id: str
    status: OutcomeStatus
    message: str | None = None
    platform: str | None = None
    error_type: str | None = None
    claimed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "post_target_id": self.post_target_id,
            "tenant_id": self.tenant_id,
            "post_id": self.post_id,
            "status": self.status.value,
            "message": self.message,
            "platform": self.platform,
            "error_type": self.error_type,
        }


@dataclass
class PublishRunReport:
    """Summary of one ``run_once`` call."""

    run_id: str
    started_at: datetime
    finished_at: datetime | None = None
    lease_acquired: bool = True
    lease_lost: bool = False
    due: int = 0
    outcomes: list[ItemOutcome] = field(default_factory=list)

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def published(self) -> int:
        return self._count(OutcomeStatus.PUBLISHED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "lease_acquired": self.lease_acquired,
            "lease_lost": self.lease_lost,
            "due": self.due,
            "published": self.published,
            "failed": self.failed,
            "skipped": self.skipped,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class _ItemState:
    """How far one item got before an unexpected error."""

    claimed: bool = False
    platform: str | None = None


@dataclass
class _PostBatch:
    """Due items of one post, plus whether this run moved the post to Publishing."""

    tenant_id: str
    post_id: str
    items: list[PostTarget] = field(default_factory=list)
    post_claimed: bool = False
    outcomes: list[ItemOutcome] = field(default_factory=list)


def group_by_post(items: Iterable[PostTarget]) -> list[_PostBatch]:
    """Group due items by post, keeping first-seen (due) order."""
    batches: dict[tuple[str, str], _PostBatch] = {}
    for item in items:
        key = (item.tenant_id, item.post_id)
        if key not in batches:
            batches[key] = _PostBatch(tenant_id=item.tenant_id, post_id=item.post_id)
        batches[key].items.append(item)
    return list(batches.values())


# =============================================================================
# Orchestrator
# =============================================================================


class DueWorkOrchestrator:
    """Publishes every due post target once.

    Example:
        >>> orchestrator = DueWorkOrchestrator(conn, build_registry(settings), LeaseManager(conn))
        >>> report = await orchestrator.run_once()
        >>> report.published, report.failed
        (3, 1)
    """

    def __init__(
        self,
        conn: Connection,
        registry: PublisherRegistry,
        lease_manager: LeaseManager,
        *,
        dialect: Dialect | None = None,
        publish_timeout_seconds: float = 30.0,
        max_concurrency: int = 1,
        lease_ttl_seconds: int = 300,
        lease_name: str = PUBLISHER_LEASE,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.conn = conn
        self.registry = registry
        self.leases = lease_manager
        self.posts = PostRepository(conn, dialect)
        self.post_targets = PostTargetRepository(conn, dialect)
        self.campaigns = self.posts.campaigns
        self.destinations = self.posts.destinations
        self.publish_timeout_seconds = publish_timeout_seconds
        self.max_concurrency = max_concurrency
        self.lease_ttl_seconds = lease_ttl_seconds
        self.lease_name = lease_name

    # === Run ===

    async def run_once(
        self,
        now: datetime | None = None,
        *,
        scope: TenantScope | None = None,
        post_id: str | None = None,
    ) -> PublishRunReport:
        """One publishing pass.

        Args:
            now: Evaluation time (default: current UTC time)
            scope: Due-scan scope; defaults to all tenants
            post_id: Restrict the pass to one post's due items

        Raises:
            ScopeViolation: A tenant-scoping contract was broken.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        report = PublishRunReport(run_id=uuid4().hex[:16], started_at=utc_now())
        token = push_context(run_id=report.run_id)
        try:
            lease = self.leases.acquire(self.lease_name, self.lease_ttl_seconds)
            if lease is None:
                report.lease_acquired = False
                log.info("publish_run_skipped", reason="lease_held", lease=self.lease_name)
                return report

            try:
                due_scope = scope or TenantScope.all_tenants()
                await self._run_leased(lease, now, due_scope, post_id, report)
            finally:
                self.leases.release(lease)
            return report
        finally:
            report.finished_at = utc_now()
            if report.lease_acquired:
                log.info(
                    "publish_run_finished",
                    due=report.due,
                    published=report.published,
                    failed=report.failed,
                    skipped=report.skipped,
                    duration_ms=round(report.duration_ms or 0.0, 1),
                )
            pop_context(token)

    async def _run_leased(
        self,
        lease: Lease,
        now: datetime,
        scope: TenantScope,
        post_id: str | None,
        report: PublishRunReport,
    ) -> None:
        due = self.post_targets.list_due(scope, now)
        if post_id is not None:
            due = [item for item in due if item.post_id == post_id]
        report.due = len(due)
        if not due:
            log.debug("publish_run_idle")
            return

        log.info("publish_run_started", due=len(due))
        batches = group_by_post(due)

        if self.max_concurrency == 1:
            for batch in batches:
                await self._run_batch(batch, lease, now, report)
            return

        semaphore = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(
            *(self._run_batch(batch, lease, now, report, semaphore) for batch in batches)
        )

    async def _run_batch(
        self,
        batch: _PostBatch,
        lease: Lease,
        now: datetime,
        report: PublishRunReport,
        semaphore: asyncio.Semaphore | None = None,
    ) -> None:
        scope = TenantScope.for_tenant(batch.tenant_id)

        async def _one(item: PostTarget) -> None:
            if report.lease_lost:
                return
            if semaphore is None:
                outcome = await self._process_item(scope, batch, item, now)
            else:
                async with semaphore:
                    outcome = await self._process_item(scope, batch, item, now)
            batch.outcomes.append(outcome)
            report.outcomes.append(outcome)
            if not self.leases.renew(lease, self.lease_ttl_seconds):
                report.lease_lost = True

        if semaphore is None:
            for item in batch.items:
                await _one(item)
        else:
            await asyncio.gather(*(_one(item) for item in batch.items))

        if batch.post_claimed:
            self._settle_post(scope, batch, now)

    # === Per Item ===

    async def _process_item(
        self,
        scope: TenantScope,
        batch: _PostBatch,
        item: PostTarget,
        now: datetime,
    ) -> ItemOutcome:
        token = push_context(
            tenant_id=item.tenant_id, post_id=item.post_id, post_target_id=item.id
        )
        state = _ItemState()
        try:
            return await self._publish_item(scope, batch, item, now, state)
        except ScopeViolation:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            log.exception("publish_item_crashed", error=message)
            if state.claimed:
                self._record_crash(scope, item, message, now)
            return self._outcome(
                item, OutcomeStatus.FAILED, message, platform=state.platform,
                error_type=type(e).__name__, claimed=state.claimed,
            )
        finally:
            pop_context(token)

    async def _publish_item(
        self,
        scope: TenantScope,
        batch: _PostBatch,
        item: PostTarget,
        now: datetime,
        state: _ItemState,
    ) -> ItemOutcome:
        post = self.posts.get(scope, item.post_id)
        campaign = self.campaigns.get(scope, post.campaign_id) if post is not None else None

        skip_reason = self._gate(campaign, now)
        if skip_reason is not None:
            log.debug("publish_item_deferred", reason=skip_reason)
            return self._outcome(item, OutcomeStatus.SKIPPED, skip_reason)

        if not self.post_targets.try_begin_publishing(scope, item.id, now):
            if self.post_targets.get(scope, item.id) is None:
                log.info("publish_item_skipped", reason="not_found")
                message = NotFoundError("PostTarget", item.id).message
                return self._outcome(item, OutcomeStatus.SKIPPED, message)
            log.info("publish_item_skipped", reason="not_pending")
            return self._outcome(item, OutcomeStatus.SKIPPED, "Item is no longer Pending")
        state.claimed = True

        if post is None:
            return self._fail(scope, item, NotFoundError("Post", item.post_id), now)
        self._claim_post(scope, batch)
        if campaign is None:
            return self._fail(scope, item, NotFoundError("Campaign", post.campaign_id), now)

        target = self.destinations.get(scope, item.target_id)
        if target is None:
            return self._fail(scope, item, NotFoundError("DistributionTarget", item.target_id), now)
        platform = state.platform = target.platform
        if not target.is_connected:
            error = DestinationUnavailableError(
                f"Distribution target {target.display_name or target.external_account_id} "
                f"({platform}) is disconnected"
            )
            return self._fail(scope, item, error, now, platform)

        publisher = self.registry.resolve(platform)
        if publisher is None:
            error = DestinationUnavailableError(f"No publisher found for platform: {platform}")
            return self._fail(scope, item, error, now, platform)

        try:
            result = await asyncio.wait_for(
                publisher.publish(
                    post.caption, post.image_url, target.access_token, target.external_account_id
                ),
                timeout=self.publish_timeout_seconds,
            )
        except TimeoutError:
            error = PublishTimeoutError(self.publish_timeout_seconds)
            return self._fail(scope, item, error, now, platform)
        except ScopeViolation:
            raise
        except Exception as e:
            error = StorecastError(str(e) or type(e).__name__, cause=e)
            return self._fail(scope, item, error, now, platform)

        if not result.ok:
            error = PublishRejectedError(result.message or "Publish rejected without a message")
            return self._fail(scope, item, error, now, platform)
        if not result.external_id:
            error = PublishRejectedError("Publisher returned no external post id")
            return self._fail(scope, item, error, now, platform)

        self.post_targets.mark_published(scope, item.id, result.external_id, utc_now())
        log.info("publish_item_published", platform=platform, external_post_id=result.external_id)
        return self._outcome(item, OutcomeStatus.PUBLISHED, platform=platform, claimed=True)

    @staticmethod
    def _gate(campaign: Campaign | None, now: datetime) -> str | None:
        """Reason to leave the item Pending this run, or None to proceed."""
        if campaign is None:
            return None
        if not campaign.scheduling_enabled:
            return "Campaign scheduling is disabled"
        window_start = from_iso8601(campaign.scheduled_start_at)
        if window_start is not None and now < window_start:
            return "Campaign scheduling window has not opened"
        window_end = from_iso8601(campaign.scheduled_end_at)
        if window_end is not None and now > window_end:
            return f"Campaign scheduling window closed at {window_end.isoformat()}"
        return None

    # === Post Status ===

    def _claim_post(self, scope: TenantScope, batch: _PostBatch) -> None:
        if batch.post_claimed:
            return
        batch.post_claimed = self.posts.transition_status(
            scope, batch.post_id, PublishStatus.PENDING, PublishStatus.PUBLISHING
        )

    def _settle_post(self, scope: TenantScope, batch: _PostBatch, now: datetime) -> None:
        claimed = [o for o in batch.outcomes if o.claimed]
        failures = [o for o in claimed if o.status is OutcomeStatus.FAILED]
        if claimed and not failures:
            self.posts.transition_status(
                scope, batch.post_id, PublishStatus.PUBLISHING, PublishStatus.PUBLISHED,
                published_at=now,
            )
            return
        summary = "; ".join(f"{o.platform or 'unknown'}: {o.message}" for o in failures)
        self.posts.transition_status(
            scope, batch.post_id, PublishStatus.PUBLISHING, PublishStatus.FAILED,
            error=summary or "No target was published",
        )

    # === Helpers ===

    def _record_crash(
        self, scope: TenantScope, item: PostTarget, message: str, now: datetime
    ) -> None:
        """Best-effort ``Publishing → Failed`` after an unexpected error."""
        try:
            self.conn.rollback()
            recorded = self.post_targets.mark_failed(scope, item.id, message, now)
        except Exception as e:
            # Still Publishing; the sweeper returns it to Pending.
            log.error("publish_item_crash_not_recorded", error=str(e))
            return
        if not recorded:
            log.warning("publish_item_crash_not_recorded", reason="status_changed")

    def _fail(
        self,
        scope: TenantScope,
        item: PostTarget,
        error: StorecastError,
        now: datetime,
        platform: str | None = None,
    ) -> ItemOutcome:
        error.with_context(
            tenant_id=item.tenant_id,
            post_id=item.post_id,
            post_target_id=item.id,
            target_id=item.target_id,
            platform=platform,
        )
        if not self.post_targets.mark_failed(scope, item.id, error.message, now):
            log.warning("publish_item_fail_not_recorded", reason="status_changed")
        log.warning("publish_item_failed", **error.to_dict())
        return self._outcome(
            item, OutcomeStatus.FAILED, error.message, platform=platform,
            error_type=type(error).__name__, claimed=True,
        )

    @staticmethod
    def _outcome(
        item: PostTarget,
        status: OutcomeStatus,
        message: str | None = None,
        *,
        platform: str | None = None,
        error_type: str | None = None,
        claimed: bool = False,
    ) -> ItemOutcome:
        return ItemOutcome(
            post_target_id=item.id,
            tenant_id=item.tenant_id,
            post_id=item.post_id,
            status=status,
            message=message,
            platform=platform,
            error_type=error_type,
            claimed=claimed,
        )


__all__ = [
    "DueWorkOrchestrator",
    "ItemOutcome",
    "OutcomeStatus",
    "PublishRunReport",
    "group_by_post",
]
