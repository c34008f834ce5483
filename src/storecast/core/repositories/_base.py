"""Shared plumbing for storecast repositories.

``ScopedRepository`` is the only way repositories reach tenant data: its
``_tenant(scope)`` helper is the source of every ``tenant_id`` predicate,
and it raises ``ScopeViolation`` for a missing or all-tenants scope.
"""

from __future__ import annotations

from typing import Any, TypeVar

from storecast.core.dialect import Dialect, SQLiteDialect
from storecast.core.protocols import Connection
from storecast.core.tenancy import TenantScope

T = TypeVar("T")


def rows_as_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Materialize all cursor rows as column-name dicts."""
    columns = [d[0] for d in cursor.description]
    return [dict(zip(columns, row, strict=True)) for row in cursor.fetchall()]


def row_as_dict(cursor: Any) -> dict[str, Any] | None:
    """Materialize the next cursor row as a column-name dict."""
    row = cursor.fetchone()
    if row is None:
        return None
    columns = [d[0] for d in cursor.description]
    return dict(zip(columns, row, strict=True))


class Repository:
    """Connection + dialect holder for tenant-agnostic tables."""

    def __init__(self, conn: Connection, dialect: Dialect | None = None) -> None:
        """Initialize repository with database connection.

        Args:
            conn: Database connection (any backend satisfying Connection protocol)
            dialect: SQL dialect for portable queries. Defaults to SQLiteDialect.
        """
        self.conn = conn
        self.dialect: Dialect = dialect or SQLiteDialect()

    def _ph(self, count: int = 1) -> str:
        """Generate placeholder string for this dialect."""
        return self.dialect.placeholders(count)

    def _fetch_one(self, model: type[T], sql: str, params: tuple) -> T | None:
        row = row_as_dict(self.conn.execute(sql, params))
        return model(**row) if row is not None else None

    def _fetch_all(self, model: type[T], sql: str, params: tuple) -> list[T]:
        return [model(**row) for row in rows_as_dicts(self.conn.execute(sql, params))]


class ScopedRepository(Repository):
    """Base for tenant-scoped tables."""

    def _tenant(self, scope: TenantScope) -> str:
        """Tenant id for the ``tenant_id = ?`` predicate; raises ``ScopeViolation``."""
        return scope.require_tenant()
