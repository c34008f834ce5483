"""Post target repository - the due-item table.

Manifesto:
    Every state change on a post target is a single conditional UPDATE
    guarded by the status the caller expects to find.  A zero rowcount
    means another actor got there first (or the row vanished), and the
    caller skips.  That guard replaces any cross-item locking: concurrent
    runs may read the same due set, but only one can move an item out of
    ``Pending``, so an item is published at most once.

Tags:
    storecast, repository, optimistic-concurrency, due-items

Doc-Types:
    api-reference


┌──────────────────────────────────────────────────────────────────────────────┐
│  POST TARGET TRANSITIONS                                                      │
│                                                                               │
│   list_due(ALL_TENANTS, now)       Pending AND scheduled_at <= now           │
│                                    ORDER BY scheduled_at, id                 │
│                                                                               │
│   try_begin_publishing  ─► UPDATE ... SET Publishing WHERE status=Pending    │
│   mark_published        ─► UPDATE ... SET Published  WHERE status=Publishing │
│   mark_failed           ─► UPDATE ... SET Failed     WHERE status=Publishing │
│   reset_failed          ─► UPDATE ... SET Pending    WHERE status=Failed     │
│   reset_stuck           ─► UPDATE ... SET Pending    WHERE status=Publishing │
│                                       AND publishing_started_at < cutoff     │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from uuid import uuid4

from storecast.core.enums import PublishStatus
from storecast.core.errors import InvalidTransitionError, NotFoundError
from storecast.core.lifecycle import ensure_publish_transition
from storecast.core.models import DistributionTarget, PostTarget
from storecast.core.repositories._base import ScopedRepository
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import to_iso8601, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, tenant_id, post_id, target_id, external_post_id, publish_status, "
    "scheduled_at, error_message, published_at, publishing_started_at, "
    "created_at, updated_at"
)

_PENDING = PublishStatus.PENDING.value
_PUBLISHING = PublishStatus.PUBLISHING.value
_PUBLISHED = PublishStatus.PUBLISHED.value
_FAILED = PublishStatus.FAILED.value


class PostTargetRepository(ScopedRepository):
    """Repository for post targets (fan-out units)."""

    # === Due Scan ===

    def list_due(
        self,
        scope: TenantScope,
        now: datetime,
        limit: int | None = None,
    ) -> list[PostTarget]:
        """Pending items whose scheduled time has passed.

        This is the only method that accepts ``TenantScope.all_tenants()``;
        with a tenant scope it returns that tenant's items only.  Each
        returned row carries its ``tenant_id`` so callers can build the
        per-item scope.
        """
        sql = (
            f"SELECT {_COLUMNS} FROM post_targets "
            f"WHERE publish_status = {self._ph()} AND scheduled_at <= {self._ph()}"
        )
        params: list = [_PENDING, to_iso8601(now)]
        if not scope.is_all_tenants:
            sql += f" AND tenant_id = {self._ph()}"
            params.append(self._tenant(scope))
        sql += " ORDER BY scheduled_at, id"
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        return self._fetch_all(PostTarget, sql, tuple(params))

    # === Reads ===

    def get(self, scope: TenantScope, post_target_id: str) -> PostTarget | None:
        tenant_id = self._tenant(scope)
        return self._fetch_one(
            PostTarget,
            f"SELECT {_COLUMNS} FROM post_targets "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (post_target_id, tenant_id),
        )

    def list_for_post(self, scope: TenantScope, post_id: str) -> list[PostTarget]:
        tenant_id = self._tenant(scope)
        return self._fetch_all(
            PostTarget,
            f"SELECT {_COLUMNS} FROM post_targets "
            f"WHERE post_id = {self._ph()} AND tenant_id = {self._ph()} "
            "ORDER BY created_at, id",
            (post_id, tenant_id),
        )

    # === Fan-out (used by PostRepository, caller commits) ===

    def add_for_post(
        self,
        scope: TenantScope,
        post_id: str,
        targets: Iterable[DistributionTarget],
        scheduled_at: datetime,
    ) -> list[str]:
        """Insert one Pending row per target. Does not commit."""
        tenant_id = self._tenant(scope)
        now = to_iso8601(utc_now())
        due = to_iso8601(scheduled_at)
        ids: list[str] = []
        for target in targets:
            if target.tenant_id != tenant_id:
                raise NotFoundError("DistributionTarget", target.id)
            post_target_id = str(uuid4())
            self.conn.execute(
                f"INSERT INTO post_targets ({_COLUMNS}) VALUES ({self._ph(12)})",
                (
                    post_target_id, tenant_id, post_id, target.id, None, _PENDING,
                    due, None, None, None, now, now,
                ),
            )
            ids.append(post_target_id)
        return ids

    def reschedule_for_post(
        self, scope: TenantScope, post_id: str, scheduled_at: datetime
    ) -> int:
        """Move Pending/Failed rows of a post to a new time; Failed becomes Pending.

        Does not commit.

        Returns:
            Number of rows rescheduled
        """
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE post_targets SET scheduled_at = {self._ph()}, "
            f"publish_status = {self._ph()}, error_message = NULL, updated_at = {self._ph()} "
            f"WHERE post_id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status IN ({self._ph(2)})",
            (
                to_iso8601(scheduled_at), _PENDING, to_iso8601(utc_now()),
                post_id, tenant_id, _PENDING, _FAILED,
            ),
        )
        return cursor.rowcount

    def delete_for_post(self, scope: TenantScope, post_id: str) -> int:
        """Delete every row of a post in this tenant. Does not commit."""
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"DELETE FROM post_targets WHERE post_id = {self._ph()} AND tenant_id = {self._ph()}",
            (post_id, tenant_id),
        )
        return cursor.rowcount

    # === Optimistic Transitions ===

    def try_begin_publishing(
        self, scope: TenantScope, post_target_id: str, now: datetime
    ) -> bool:
        """``Pending → Publishing``; False if the row was not Pending (or is gone)."""
        tenant_id = self._tenant(scope)
        stamp = to_iso8601(now)
        cursor = self.conn.execute(
            f"UPDATE post_targets SET publish_status = {self._ph()}, "
            f"publishing_started_at = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (_PUBLISHING, stamp, stamp, post_target_id, tenant_id, _PENDING),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def mark_published(
        self,
        scope: TenantScope,
        post_target_id: str,
        external_post_id: str,
        now: datetime,
    ) -> bool:
        """``Publishing → Published`` with the destination's id."""
        tenant_id = self._tenant(scope)
        stamp = to_iso8601(now)
        cursor = self.conn.execute(
            f"UPDATE post_targets SET publish_status = {self._ph()}, "
            f"external_post_id = {self._ph()}, published_at = {self._ph()}, "
            f"error_message = NULL, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (_PUBLISHED, external_post_id, stamp, stamp, post_target_id, tenant_id, _PUBLISHING),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    def mark_failed(
        self,
        scope: TenantScope,
        post_target_id: str,
        message: str,
        now: datetime,
    ) -> bool:
        """``Publishing → Failed`` with the error message."""
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE post_targets SET publish_status = {self._ph()}, "
            f"error_message = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (_FAILED, message, to_iso8601(now), post_target_id, tenant_id, _PUBLISHING),
        )
        self.conn.commit()
        return cursor.rowcount == 1

    # === Recovery ===

    def reset_failed(self, scope: TenantScope, post_target_id: str) -> PostTarget:
        """Operator retry: ``Failed → Pending``.

        Raises:
            NotFoundError: No such row in this tenant.
            InvalidTransitionError: Row is not Failed.
        """
        tenant_id = self._tenant(scope)
        current = self.get(scope, post_target_id)
        if current is None:
            raise NotFoundError("PostTarget", post_target_id).with_context(
                tenant_id=tenant_id, post_target_id=post_target_id
            )
        ensure_publish_transition(current.publish_status, _PENDING, manual_reset=True)

        cursor = self.conn.execute(
            f"UPDATE post_targets SET publish_status = {self._ph()}, error_message = NULL, "
            f"publishing_started_at = NULL, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()} "
            f"AND publish_status = {self._ph()}",
            (_PENDING, to_iso8601(utc_now()), post_target_id, tenant_id, _FAILED),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise InvalidTransitionError(
                "publish status", current.publish_status, _PENDING,
                message=f"PostTarget {post_target_id} changed status concurrently",
            )
        logger.info(f"Reset failed post target {post_target_id} to Pending")
        return self.get(scope, post_target_id)  # type: ignore[return-value]

    def reset_stuck(self, scope: TenantScope, older_than: datetime) -> int:
        """Sweeper: return Publishing rows started before *older_than* to Pending.

        Returns:
            Number of rows reset
        """
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE post_targets SET publish_status = {self._ph()}, "
            f"publishing_started_at = NULL, updated_at = {self._ph()} "
            f"WHERE tenant_id = {self._ph()} AND publish_status = {self._ph()} "
            f"AND publishing_started_at < {self._ph()}",
            (_PENDING, to_iso8601(utc_now()), tenant_id, _PUBLISHING, to_iso8601(older_than)),
        )
        self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.warning(f"Reset {count} stuck post target(s) for tenant {tenant_id}")
        return count
