"""SQL dialect abstraction for database-agnostic repositories.

Repositories build SQL with ``Dialect`` helpers (placeholders, insert-or-
ignore) and never import a driver.  The dialect ``name`` also selects the
SQLAlchemy dialect used to compile DDL in :mod:`storecast.core.schema`.

Architecture::

    Repository code:
    ┌────────────────────────────────────────────────────────────────┐
    │  sql = f"UPDATE post_targets SET ... WHERE id = {d.placeholder(0)}"
    │  conn.execute(sql, params)                                     │
    └────────────────────────────────────────────────────────────────┘
                              │
                              ▼
             ┌──────────┐          ┌──────────────┐
             │ SQLite   │          │ PostgreSQL   │
             │ ?, ?, ?  │          │ %s, %s, %s   │
             └──────────┘          └──────────────┘

Tags:
    dialect, sql, portability, storecast
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Dialect(Protocol):
    """Generates backend-specific SQL fragments."""

    @property
    def name(self) -> str:
        """Short identifier (``'sqlite'``, ``'postgresql'``)."""
        ...

    def placeholder(self, index: int) -> str:
        """Positional placeholder for the parameter at 0-based *index*."""
        ...

    def placeholders(self, count: int) -> str:
        """Comma-separated placeholders for *count* parameters."""
        ...

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        """INSERT that silently does nothing on a key conflict."""
        ...


# =========================================================================
# Concrete Dialect Implementations
# =========================================================================


class SQLiteDialect:
    """SQLite dialect — ``?`` placeholders."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "?"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT OR IGNORE INTO {table} ({cols}) VALUES ({ph})"


class PostgreSQLDialect:
    """PostgreSQL dialect — ``%s`` placeholders (psycopg)."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholder(self, index: int) -> str:  # noqa: ARG002
        return "%s"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def insert_or_ignore(self, table: str, columns: list[str]) -> str:
        cols = ", ".join(columns)
        ph = self.placeholders(len(columns))
        return f"INSERT INTO {table} ({cols}) VALUES ({ph}) ON CONFLICT DO NOTHING"


# =========================================================================
# Registry / Factory
# =========================================================================

_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower()
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
]
