"""Post repository - content CRUD with fan-out.

Creating a post fans it out: one Pending post target per connected
distribution target of the tenant, all due at the post's scheduled time
(or immediately when none is given).  Editing the scheduled time moves
every Pending or Failed target with it and gives Failed targets another
chance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from storecast.core.dialect import Dialect
from storecast.core.enums import PublishStatus
from storecast.core.errors import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from storecast.core.lifecycle import ensure_publish_transition, is_campaign_editable
from storecast.core.models import Post
from storecast.core.protocols import Connection
from storecast.core.repositories._base import ScopedRepository
from storecast.core.repositories.campaigns import CampaignRepository
from storecast.core.repositories.post_targets import PostTargetRepository
from storecast.core.repositories.targets import DistributionTargetRepository
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import to_iso8601, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CAPTION_MAX_LENGTH = 2200

_COLUMNS = (
    "id, tenant_id, campaign_id, caption, image_url, scheduled_at, "
    "publish_status, last_error, published_at, created_at, updated_at"
)


# ---------------------------------------------------------------------------
# Create/Update DTOs
# ---------------------------------------------------------------------------


@dataclass
class PostCreate:
    """DTO for creating a post."""

    campaign_id: str
    caption: str
    image_url: str | None = None
    scheduled_at: datetime | None = None


@dataclass
class PostUpdate:
    """DTO for editing a post; ``None`` leaves a field unchanged."""

    caption: str | None = None
    image_url: str | None = None
    scheduled_at: datetime | None = None


# ---------------------------------------------------------------------------
# Repository Implementation
# ---------------------------------------------------------------------------


class PostRepository(ScopedRepository):
    """Repository for posts.

    Example:
        >>> posts = PostRepository(conn)
        >>> post = posts.create(scope, PostCreate(campaign_id=c.id, caption="Hello"))
        >>> len(posts.targets.list_for_post(scope, post.id))
        2
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        caption_max_length: int = DEFAULT_CAPTION_MAX_LENGTH,
    ) -> None:
        super().__init__(conn, dialect)
        self.caption_max_length = caption_max_length
        self.campaigns = CampaignRepository(conn, self.dialect)
        self.destinations = DistributionTargetRepository(conn, self.dialect)
        self.targets = PostTargetRepository(conn, self.dialect)

    def _validate_caption(self, caption: str | None) -> str:
        if caption is None or not caption.strip():
            raise ValidationError("Caption is required", field="caption")
        if len(caption) > self.caption_max_length:
            raise ValidationError(
                f"Caption exceeds {self.caption_max_length} characters",
                field="caption",
                value=len(caption),
            )
        return caption

    def _require_editable_campaign(self, scope: TenantScope, campaign_id: str) -> None:
        campaign = self.campaigns.get_or_raise(scope, campaign_id)
        if not is_campaign_editable(campaign.stage):
            raise InvalidTransitionError(
                "campaign",
                campaign.stage,
                campaign.stage,
                message=(
                    f"Campaign {campaign_id} is {campaign.stage}; "
                    "posts can only change in Draft or InReview"
                ),
            )

    # === CRUD Operations ===

    def create(self, scope: TenantScope, data: PostCreate) -> Post:
        """Create a post and one post target per connected distribution target.

        Raises:
            NotFoundError: Campaign not in this tenant.
            InvalidTransitionError: Campaign is past InReview.
            ValidationError: Bad caption, or no connected targets.
        """
        tenant_id = self._tenant(scope)
        caption = self._validate_caption(data.caption)
        self._require_editable_campaign(scope, data.campaign_id)

        destinations = self.destinations.list_connected(scope)
        if not destinations:
            raise ValidationError(
                "No connected distribution targets found. "
                "Connect at least one destination before creating posts."
            ).with_context(tenant_id=tenant_id)

        post_id = str(uuid4())
        now = utc_now()
        stamp = to_iso8601(now)
        try:
            self.conn.execute(
                f"INSERT INTO posts ({_COLUMNS}) VALUES ({self._ph(11)})",
                (
                    post_id,
                    tenant_id,
                    data.campaign_id,
                    caption,
                    data.image_url,
                    to_iso8601(data.scheduled_at),
                    PublishStatus.PENDING.value,
                    None,
                    None,
                    stamp,
                    stamp,
                ),
            )
            self.targets.add_for_post(
                scope, post_id, destinations, data.scheduled_at or now
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        logger.info(f"Created post {post_id} with {len(destinations)} target(s)")
        return self.get_or_raise(scope, post_id)

    def get(self, scope: TenantScope, post_id: str) -> Post | None:
        tenant_id = self._tenant(scope)
        return self._fetch_one(
            Post,
            f"SELECT {_COLUMNS} FROM posts WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (post_id, tenant_id),
        )

    def get_or_raise(self, scope: TenantScope, post_id: str) -> Post:
        post = self.get(scope, post_id)
        if post is None:
            raise NotFoundError("Post", post_id).with_context(
                tenant_id=scope.tenant_id, post_id=post_id
            )
        return post

    def list_for_campaign(self, scope: TenantScope, campaign_id: str) -> list[Post]:
        tenant_id = self._tenant(scope)
        return self._fetch_all(
            Post,
            f"SELECT {_COLUMNS} FROM posts "
            f"WHERE campaign_id = {self._ph()} AND tenant_id = {self._ph()} "
            "ORDER BY created_at, id",
            (campaign_id, tenant_id),
        )

    def update(self, scope: TenantScope, post_id: str, updates: PostUpdate) -> Post:
        """Edit a post; a new scheduled time propagates to its open targets."""
        tenant_id = self._tenant(scope)
        post = self.get_or_raise(scope, post_id)
        self._require_editable_campaign(scope, post.campaign_id)

        set_parts = []
        params: list[Any] = []
        if updates.caption is not None:
            set_parts.append(f"caption = {self._ph()}")
            params.append(self._validate_caption(updates.caption))
        if updates.image_url is not None:
            set_parts.append(f"image_url = {self._ph()}")
            params.append(updates.image_url or None)
        if updates.scheduled_at is not None:
            set_parts.append(f"scheduled_at = {self._ph()}")
            params.append(to_iso8601(updates.scheduled_at))

        if not set_parts:
            return post

        set_parts.append(f"updated_at = {self._ph()}")
        params.append(to_iso8601(utc_now()))
        params.extend([post_id, tenant_id])

        try:
            self.conn.execute(
                f"UPDATE posts SET {', '.join(set_parts)} "
                f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
                tuple(params),
            )
            if updates.scheduled_at is not None:
                moved = self.targets.reschedule_for_post(scope, post_id, updates.scheduled_at)
                self._reopen(tenant_id, post_id)
                logger.info(f"Rescheduled {moved} target(s) of post {post_id}")
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return self.get_or_raise(scope, post_id)

    def delete(self, scope: TenantScope, post_id: str) -> bool:
        """Delete a post and its post targets, within this tenant only.

        Returns:
            True if the post existed
        """
        tenant_id = self._tenant(scope)
        try:
            self.targets.delete_for_post(scope, post_id)
            cursor = self.conn.execute(
                f"DELETE FROM posts WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
                (post_id, tenant_id),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return cursor.rowcount > 0

    # === Status ===

    def reopen(self, scope: TenantScope, post_id: str) -> bool:
        """Manual reset of the post-level status: ``Failed → Pending``.

        Returns:
            True if the post was Failed and is now Pending
        """
        tenant_id = self._tenant(scope)
        reopened = self._reopen(tenant_id, post_id)
        self.conn.commit()
        return reopened

    def _reopen(self, tenant_id: str, post_id: str) -> bool:
        cursor = self.conn.execute(
            f"UPDATE posts SET publish_status = {self._ph()}, last_error = NULL, "
            f"updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (
                PublishStatus.PENDING.value,
                to_iso8601(utc_now()),
                post_id,
                tenant_id,
                PublishStatus.FAILED.value,
            ),
        )
        return cursor.rowcount == 1

    def transition_status(
        self,
        scope: TenantScope,
        post_id: str,
        from_status: PublishStatus,
        to_status: PublishStatus,
        *,
        error: str | None = None,
        published_at: datetime | None = None,
    ) -> bool:
        """Optimistic post-level status change; False if the status moved on."""
        tenant_id = self._tenant(scope)
        ensure_publish_transition(from_status, to_status)
        cursor = self.conn.execute(
            f"UPDATE posts SET publish_status = {self._ph()}, last_error = {self._ph()}, "
            f"published_at = COALESCE({self._ph()}, published_at), updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (
                to_status.value,
                error,
                to_iso8601(published_at),
                to_iso8601(utc_now()),
                post_id,
                tenant_id,
                from_status.value,
            ),
        )
        self.conn.commit()
        return cursor.rowcount == 1
