"""Schema installation from the ORM metadata.

Compiles ``CREATE TABLE IF NOT EXISTS`` / ``CREATE INDEX IF NOT EXISTS``
statements for every table in :class:`~storecast.core.orm.StorecastBase`
metadata with the SQLAlchemy dialect matching the connection's
:class:`~storecast.core.dialect.Dialect`, and executes them through the
plain ``Connection`` protocol.  Running it twice is harmless.

Usage::

    conn = SqliteConnection(":memory:")
    apply_schema(conn)
"""

from __future__ import annotations

import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine.interfaces import Dialect as SADialect
from sqlalchemy.schema import CreateIndex, CreateTable

from storecast.core.dialect import Dialect, SQLiteDialect
from storecast.core.errors import ConfigError
from storecast.core.orm import StorecastBase
from storecast.core.protocols import Connection

logger = logging.getLogger(__name__)


def _sa_dialect(dialect: Dialect) -> SADialect:
    if dialect.name == "sqlite":
        return sqlite.dialect()
    if dialect.name == "postgresql":
        return postgresql.dialect()
    raise ConfigError(f"No DDL compiler for dialect: {dialect.name}")


def create_schema_statements(dialect: Dialect = SQLiteDialect()) -> list[str]:
    """Return the DDL statements for every storecast table, in FK order."""
    sa_dialect = _sa_dialect(dialect)
    statements: list[str] = []
    for table in StorecastBase.metadata.sorted_tables:
        statements.append(
            str(CreateTable(table, if_not_exists=True).compile(dialect=sa_dialect)).strip()
        )
        for index in sorted(table.indexes, key=lambda ix: ix.name or ""):
            statements.append(
                str(CreateIndex(index, if_not_exists=True).compile(dialect=sa_dialect)).strip()
            )
    return statements


def apply_schema(conn: Connection, dialect: Dialect = SQLiteDialect()) -> list[str]:
    """Create all tables and indexes.

    Returns:
        Names of the tables in the metadata.
    """
    for statement in create_schema_statements(dialect):
        conn.execute(statement)
    conn.commit()
    tables = [t.name for t in StorecastBase.metadata.sorted_tables]
    logger.info(f"Schema applied ({len(tables)} tables)")
    return tables


__all__ = ["apply_schema", "create_schema_statements"]
