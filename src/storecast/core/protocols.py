"""
Canonical database protocol for storecast.

Repositories, the lease manager and the schema installer all depend on the
shape below rather than on a driver.  ``sqlite3.Connection`` satisfies it
natively; :class:`storecast.core.connection.SqliteConnection` adds the
connection-level ``fetchone``/``fetchall`` used by the CLI.

Guardrails:
    ❌ DON'T: Duplicate Connection(Protocol) in other modules
    ✅ DO: Import from storecast.core.protocols

    ❌ DON'T: Add async methods to the Connection protocol
    ✅ DO: Keep data access sync; the orchestrator awaits only publishers

Tags:
    protocol, connection, database, storecast
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Connection(Protocol):
    """
    Minimal SYNCHRONOUS connection interface.

    ``execute`` returns a cursor-like object exposing ``fetchone()``,
    ``fetchall()`` and ``rowcount``; the optimistic status transitions rely
    on ``rowcount`` to detect a lost race.

    Examples:
        >>> cursor = conn.execute("SELECT id FROM stores WHERE id = ?", (store_id,))
        >>> row = cursor.fetchone()
    """

    def execute(self, sql: str, params: tuple = ()) -> Any:
        """Execute SQL statement with optional parameters. SYNC."""
        ...

    def commit(self) -> None:
        """Commit current transaction. SYNC."""
        ...

    def rollback(self) -> None:
        """Rollback current transaction. SYNC."""
        ...


__all__ = ["Connection"]
