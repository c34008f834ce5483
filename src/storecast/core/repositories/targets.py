"""Distribution target registry.

Per-tenant list of external destinations.  A target is created on first
connect, refreshed on reconnect (same tenant, platform and account), and
never hard-deleted: disconnect clears the token and the connectivity flag
so existing post targets keep a valid reference.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import uuid4

from storecast.core.errors import NotFoundError, ValidationError
from storecast.core.models import DistributionTarget
from storecast.core.repositories._base import ScopedRepository
from storecast.core.tenancy import TenantScope
from storecast.core.timestamps import to_iso8601, utc_now

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id, tenant_id, platform, external_account_id, display_name, "
    "access_token, is_connected, created_at, updated_at"
)


@dataclass
class TargetConnect:
    """DTO for connecting (or reconnecting) a destination account."""

    platform: str
    external_account_id: str
    access_token: str
    display_name: str = ""


class DistributionTargetRepository(ScopedRepository):
    """Registry of tenant-owned distribution targets."""

    def connect(self, scope: TenantScope, data: TargetConnect) -> DistributionTarget:
        """Connect a destination account, or reconnect it if already known.

        Reconnect replaces the token and display name and sets the
        connectivity flag; the target id is preserved.
        """
        tenant_id = self._tenant(scope)
        platform = (data.platform or "").strip().lower()
        if not platform:
            raise ValidationError("Platform is required", field="platform")
        if not data.external_account_id:
            raise ValidationError("External account id is required", field="external_account_id")
        if not data.access_token:
            raise ValidationError("Access token is required", field="access_token")

        now = to_iso8601(utc_now())
        existing = self._fetch_one(
            DistributionTarget,
            f"SELECT {_COLUMNS} FROM distribution_targets "
            f"WHERE tenant_id = {self._ph()} AND platform = {self._ph()} "
            f"AND external_account_id = {self._ph()}",
            (tenant_id, platform, data.external_account_id),
        )

        if existing is not None:
            self.conn.execute(
                f"UPDATE distribution_targets SET access_token = {self._ph()}, "
                f"display_name = {self._ph()}, is_connected = 1, updated_at = {self._ph()} "
                f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
                (
                    data.access_token,
                    data.display_name or existing.display_name,
                    now,
                    existing.id,
                    tenant_id,
                ),
            )
            self.conn.commit()
            logger.info(f"Reconnected {platform} target {existing.id}")
            return self.get_or_raise(scope, existing.id)

        target_id = str(uuid4())
        self.conn.execute(
            f"INSERT INTO distribution_targets ({_COLUMNS}) VALUES ({self._ph(9)})",
            (
                target_id,
                tenant_id,
                platform,
                data.external_account_id,
                data.display_name,
                data.access_token,
                1,
                now,
                now,
            ),
        )
        self.conn.commit()
        logger.info(f"Connected {platform} target {target_id}")
        return self.get_or_raise(scope, target_id)

    def disconnect(self, scope: TenantScope, target_id: str) -> DistributionTarget:
        """Soft-disconnect: clear the token and the connectivity flag."""
        tenant_id = self._tenant(scope)
        cursor = self.conn.execute(
            f"UPDATE distribution_targets SET is_connected = 0, access_token = '', "
            f"updated_at = {self._ph()} "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (to_iso8601(utc_now()), target_id, tenant_id),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError("DistributionTarget", target_id).with_context(
                tenant_id=tenant_id, target_id=target_id
            )
        logger.info(f"Disconnected target {target_id}")
        return self.get_or_raise(scope, target_id)

    def get(self, scope: TenantScope, target_id: str) -> DistributionTarget | None:
        tenant_id = self._tenant(scope)
        return self._fetch_one(
            DistributionTarget,
            f"SELECT {_COLUMNS} FROM distribution_targets "
            f"WHERE id = {self._ph()} AND tenant_id = {self._ph()}",
            (target_id, tenant_id),
        )

    def get_or_raise(self, scope: TenantScope, target_id: str) -> DistributionTarget:
        target = self.get(scope, target_id)
        if target is None:
            raise NotFoundError("DistributionTarget", target_id).with_context(
                tenant_id=scope.tenant_id, target_id=target_id
            )
        return target

    def list_for_tenant(
        self, scope: TenantScope, *, connected_only: bool = False
    ) -> list[DistributionTarget]:
        tenant_id = self._tenant(scope)
        sql = f"SELECT {_COLUMNS} FROM distribution_targets WHERE tenant_id = {self._ph()}"
        if connected_only:
            sql += " AND is_connected = 1"
        sql += " ORDER BY platform, created_at, id"
        return self._fetch_all(DistributionTarget, sql, (tenant_id,))

    def list_connected(self, scope: TenantScope) -> list[DistributionTarget]:
        return self.list_for_tenant(scope, connected_only=True)
