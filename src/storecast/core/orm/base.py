"""Declarative base and type-map for all storecast ORM models.

Uses SQLAlchemy 2.0 ``DeclarativeBase`` with a ``type_annotation_map`` that
maps Python built-in types to portable column types.  The metadata is only
used to emit DDL; repositories talk to the database through the
``Connection`` protocol.

* ``str``  → ``Text``  (timestamps included: fixed-width UTC ISO-8601)
* ``int``  → ``Integer``
* ``bool`` → ``Integer`` (SQLite has no native BOOLEAN)
"""

from __future__ import annotations

from sqlalchemy import Integer, Text
from sqlalchemy.orm import DeclarativeBase


class StorecastBase(DeclarativeBase):
    """Shared declarative base for every storecast table."""

    type_annotation_map = {
        str: Text,
        int: Integer,
        bool: Integer,  # SQLite compat: 0/1
    }
