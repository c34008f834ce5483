"""Recurring-task descriptor repository - CRUD and cron evaluation.

A ``ScheduledTrigger`` row records what a tenant wants run on a cron
cadence (publish every due post, or one specific post).  Cron expressions
are validated with croniter on create, and ``next_fire_time`` answers
"when does this descriptor fire next" for the recurring trigger.

Tags:
    storecast, scheduling, repository, CRUD, cron, croniter

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from croniter import croniter

from storecast.core.enums import TriggerType
from storecast.core.errors import NotFoundError, ValidationError
from storecast.core.models import ScheduledTrigger
from storecast.core.repositories._base import ScopedRepository
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import ensure_utc, from_iso8601, to_iso8601, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, tenant_id, trigger_type, related_post_id, cron_expression, "
    "is_active, last_fired_at, created_at, updated_at"
)


@dataclass
class TriggerCreate:
    """DTO for creating a recurring-task descriptor."""

    cron_expression: str
    trigger_type: TriggerType | str = TriggerType.PUBLISH_DUE_POSTS
    related_post_id: str | None = None
    is_active: bool = True


def validate_cron(expression: str) -> str:
    """Return the stripped expression, or raise ``ValidationError``."""
    expression = (expression or "").strip()
    if not expression or not croniter.is_valid(expression):
        raise ValidationError(
            f"Invalid cron expression: {expression!r}",
            field="cron_expression",
            value=expression,
        )
    return expression


class TriggerRepository(ScopedRepository):
    """Repository for ``scheduled_triggers``."""

    # === CRUD Operations ===

    def create(self, scope: TenantScope, data: TriggerCreate) -> ScheduledTrigger:
        """Create a descriptor.

        Raises:
            ValidationError: Bad cron expression, unknown trigger type, or a
                ``PublishPost`` descriptor without a post id.
        """
        tenant_id = self._tenant(scope)
        expression = validate_cron(data.cron_expression)
        try:
            trigger_type = TriggerType(data.trigger_type)
        except ValueError:
            raise ValidationError(
                f"Unknown trigger type: {data.trigger_type}",
                field="trigger_type",
                value=data.trigger_type,
            ) from None
        if trigger_type is TriggerType.PUBLISH_POST and not data.related_post_id:
            raise ValidationError(
                "PublishPost triggers need a related post", field="related_post_id"
            )

        trigger_id = str(uuid4())
        now = to_iso8601(utc_now())
        self.conn.execute(
            f"INSERT INTO scheduled_triggers ({_COLUMNS}) VALUES ({self._ph(9)})",
            (
                trigger_id,
                tenant_id,
                trigger_type.value,
                data.related_post_id,
                expression,
                1 if data.is_active else 0,
                None,
                now,
                now,
            ),
        )
        self.conn.commit()
        logger.info(f"Created {trigger_type.value} trigger {trigger_id} ({expression})")
        return self.get_or_raise(scope, trigger_id)

    def get(self, scope: TenantScope, trigger_id: str) -> ScheduledTrigger | None:
        tenant_id = self._tenant(scope)
        return self._fetch_one(
            ScheduledTrigger,
            f"SELECT {_COLUMNS} FROM scheduled_triggers "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (trigger_id, tenant_id),
        )

    def get_or_raise(self, scope: TenantScope, trigger_id: str) -> ScheduledTrigger:
        trigger = self.get(scope, trigger_id)
        if trigger is None:
            raise NotFoundError("ScheduledTrigger", trigger_id).with_context(
                tenant_id=scope.tenant_id
            )
        return trigger

    def list_for_tenant(
        self, scope: TenantScope, *, active_only: bool = False
    ) -> list[ScheduledTrigger]:
        tenant_id = self._tenant(scope)
        sql = f"SELECT {_COLUMNS} FROM scheduled_triggers WHERE tenant_id = {self._ph()}"
        if active_only:
            sql += " AND is_active = 1"
        sql += " ORDER BY created_at, id"
        return self._fetch_all(ScheduledTrigger, sql, (tenant_id,))

    def set_active(self, scope: TenantScope, trigger_id: str, active: bool) -> ScheduledTrigger:
        """Pause or resume a descriptor."""
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE scheduled_triggers SET is_active = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (1 if active else 0, to_iso8601(utc_now()), trigger_id, tenant_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("ScheduledTrigger", trigger_id)
        return self.get_or_raise(scope, trigger_id)

    def mark_fired(
        self, scope: TenantScope, trigger_id: str, fired_at: datetime | None = None
    ) -> bool:
        """Record the time a descriptor last fired."""
        tenant_id = self._tenant(scope)
        stamp = to_iso8601(fired_at or utc_now())
        cursor = self.conn.execute(
            f"UPDATE scheduled_triggers SET last_fired_at = {self._ph()}, updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (stamp, stamp, trigger_id, tenant_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    def delete(self, scope: TenantScope, trigger_id: str) -> bool:
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"DELETE FROM scheduled_triggers WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (trigger_id, tenant_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    # === Cron Evaluation ===

    @staticmethod
    def next_fire_time(trigger: ScheduledTrigger, after: datetime | None = None) -> datetime:
        """Next fire time strictly after *after* (default: last fire, else now), in UTC."""
        base = after or from_iso8601(trigger.last_fired_at) or utc_now()
        return croniter(trigger.cron_expression, ensure_utc(base)).get_next(datetime)
