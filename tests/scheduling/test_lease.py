"""Tests for storecast.core.scheduling.lease — exclusive publish-run leases."""

from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from storecast.core.scheduling.lease import PUBLISHER_LEASE, LeaseManager
from storecast.core.timestamps import to_iso8601, utc_now


# ── Fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def leases(conn):
    return LeaseManager(conn, instance_id="worker-1")


@pytest.fixture()
def other(conn):
    return LeaseManager(conn, instance_id="worker-2")


class TestAcquireRelease:
    """Basic acquire / release cycle."""

    def test_acquire_free_lease(self, leases):
        lease = leases.acquire()
        assert lease is not None
        assert lease.name == PUBLISHER_LEASE
        assert lease.holder.startswith("worker-1:")
        assert leases.is_held()

    def test_second_acquire_blocked(self, leases, other):
        assert leases.acquire() is not None
        assert other.acquire() is None

    def test_same_instance_twice_blocked(self, leases):
        """Two runs in one process still exclude each other."""
        assert leases.acquire() is not None
        assert leases.acquire() is None

    def test_release_frees(self, leases, other):
        lease = leases.acquire()
        assert leases.release(lease) is True
        assert not leases.is_held()
        assert other.acquire() is not None

    def test_release_only_own(self, leases):
        lease = leases.acquire()
        forged = replace(lease, holder="worker-9:deadbeef")
        assert leases.release(forged) is False
        assert leases.is_held()
        assert leases.release(lease) is True
        assert leases.release(lease) is False

    def test_names_are_independent(self, leases):
        assert leases.acquire("a") is not None
        assert leases.acquire("b") is not None
        assert len(leases.list_active()) == 2


class TestExpiry:
    """Crashed holders lose the lease after the TTL."""

    def _expire(self, conn, name=PUBLISHER_LEASE):
        conn.execute(
            "UPDATE publisher_leases SET expires_at = ? WHERE lease_name = ?",
            (to_iso8601(utc_now() - timedelta(seconds=1)), name),
        )
        conn.commit()

    def test_expired_lease_reclaimed(self, conn, leases, other):
        leases.acquire()
        self._expire(conn)
        assert not leases.is_held()
        lease = other.acquire()
        assert lease is not None
        assert other.get_holder() == lease.holder

    def test_renew_after_takeover_fails(self, conn, leases, other):
        lease = leases.acquire()
        self._expire(conn)
        other.acquire()
        assert leases.renew(lease) is False

    def test_renew_extends(self, leases):
        lease = leases.acquire(ttl_seconds=5)
        assert leases.renew(lease, ttl_seconds=600) is True
        (active,) = leases.list_active()
        assert active.expires_at > utc_now() + timedelta(seconds=500)

    def test_cleanup_expired(self, conn, leases):
        leases.acquire("a")
        leases.acquire("b")
        self._expire(conn, "a")
        assert leases.cleanup_expired() == 1
        assert [lease.name for lease in leases.list_active()] == ["b"]
