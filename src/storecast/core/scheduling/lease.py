"""Exclusivity lease for publish runs.

Manifesto:
    Two orchestrator runs must never work the due set at the same time,
    whether they come from two processes, two trigger ticks, or an operator
    running ``storecast publish run`` next to the server.  A lease is one
    row in ``publisher_leases``: insert-or-ignore decides who holds it, and
    a TTL makes a crashed holder's lease reclaimable instead of permanent.

    Each acquisition gets its own holder token (``instance_id:<hex>``), so
    two overlapping runs inside one process still exclude each other.

Tags:
    storecast, scheduling, lease, TTL, concurrency

Doc-Types:
    api-reference


    Lease Flow::

        acquire(name, ttl)
            DELETE expired row for name
            INSERT OR IGNORE (name, holder, acquired_at, expires_at)
            rowcount == 1  ─► Lease
            rowcount == 0  ─► None (someone else holds it)

        renew(lease, ttl)    UPDATE expires_at WHERE name AND holder
        release(lease)       DELETE WHERE name AND holder
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import uuid4

from storecast.core.dialect import Dialect, SQLiteDialect
from storecast.core.protocols import Connection
from storecast.core.timestamps import from_iso8601, to_iso8601, utc_now

logger = logging.getLogger(__name__)

PUBLISHER_LEASE = "publisher"


@dataclass(frozen=True)
class Lease:
    """A held lease; pass it back to ``renew``/``release``."""

    name: str
    holder: str
    acquired_at: datetime
    expires_at: datetime


class LeaseManager:
    """Database-backed leases with TTL expiry.

    Example:
        >>> leases = LeaseManager(conn, instance_id="worker-1")
        >>> lease = leases.acquire("publisher", ttl_seconds=300)
        >>> if lease is not None:
        ...     try:
        ...         ...
        ...     finally:
        ...         leases.release(lease)
    """

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect | None = None,
        instance_id: str | None = None,
    ) -> None:
        """Initialize lease manager.

        Args:
            conn: Database connection
            dialect: SQL dialect for portable queries
            instance_id: Prefix of every holder token. Auto-generated if not provided.
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()
        self.instance_id = instance_id or str(uuid4())

    def _ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def _new_holder(self) -> str:
        return f"{self.instance_id}:{uuid4().hex[:12]}"

    # === Acquire / Renew / Release ===

    def acquire(self, name: str = PUBLISHER_LEASE, ttl_seconds: int = 300) -> Lease | None:
        """Take the lease if it is free or expired.

        Returns:
            The held ``Lease``, or None if another holder has it
        """
        now = utc_now()
        expires = now + timedelta(seconds=ttl_seconds)
        holder = self._new_holder()

        try:
            self.conn.execute(
                f"DELETE FROM publisher_leases WHERE lease_name = {self._ph()} "
                f"AND expires_at < {self._ph()}",
                (name, to_iso8601(now)),
            )
            insert_sql = self.dialect.insert_or_ignore(
                "publisher_leases",
                ["lease_name", "holder", "acquired_at", "expires_at"],
            )
            cursor = self.conn.execute(
                insert_sql, (name, holder, to_iso8601(now), to_iso8601(expires))
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise

        if cursor.rowcount > 0:
            logger.debug(f"Acquired lease {name} as {holder}")
            return Lease(name=name, holder=holder, acquired_at=now, expires_at=expires)

        logger.debug(f"Lease {name} already held")
        return None

    def renew(self, lease: Lease, ttl_seconds: int = 300) -> bool:
        """Push the expiry of a held lease forward.

        Returns:
            False if the lease was lost (expired and taken over)
        """
        expires = utc_now() + timedelta(seconds=ttl_seconds)
        cursor = self.conn.execute(
            f"UPDATE publisher_leases SET expires_at = {self._ph()} "
            f"WHERE lease_name = {self._ph()} AND holder = {self._ph()}",
            (to_iso8601(expires), lease.name, lease.holder),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            logger.warning(f"Lease {lease.name} lost by {lease.holder}")
            return False
        return True

    def release(self, lease: Lease) -> bool:
        """Release a lease; only the holder's own row is deleted."""
        cursor = self.conn.execute(
            f"DELETE FROM publisher_leases WHERE lease_name = {self._ph()} "
            f"AND holder = {self._ph()}",
            (lease.name, lease.holder),
        )
        self.conn.commit()
        if cursor.rowcount > 0:
            logger.debug(f"Released lease {lease.name}")
            return True
        return False

    # === Inspection ===

    def is_held(self, name: str = PUBLISHER_LEASE) -> bool:
        """True if an unexpired lease row exists for *name*."""
        return self.get_holder(name) is not None

    def get_holder(self, name: str = PUBLISHER_LEASE) -> str | None:
        cursor = self.conn.execute(
            f"SELECT holder FROM publisher_leases WHERE lease_name = {self._ph()} "
            f"AND expires_at > {self._ph()}",
            (name, to_iso8601(utc_now())),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    def list_active(self) -> list[Lease]:
        cursor = self.conn.execute(
            "SELECT lease_name, holder, acquired_at, expires_at FROM publisher_leases "
            f"WHERE expires_at > {self._ph()} ORDER BY acquired_at",
            (to_iso8601(utc_now()),),
        )
        return [
            Lease(
                name=row[0],
                holder=row[1],
                acquired_at=from_iso8601(row[2]),
                expires_at=from_iso8601(row[3]),
            )
            for row in cursor.fetchall()
        ]

    # === Maintenance ===

    def cleanup_expired(self) -> int:
        """Remove every expired lease row.

        Returns:
            Number of leases removed
        """
        cursor = self.conn.execute(
            f"DELETE FROM publisher_leases WHERE expires_at < {self._ph()}",
            (to_iso8601(utc_now()),),
        )
        self.conn.commit()
        count = cursor.rowcount
        if count > 0:
            logger.info(f"Cleaned up {count} expired lease(s)")
        return count
