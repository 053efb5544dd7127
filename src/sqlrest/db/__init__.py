"""Database backends and SQL dialects.

Usage:
    from sqlrest.db import SqliteBackend

    backend = SqliteBackend("/data/app.db")
    await backend.connect()
    dataset = await backend.sql_select("SELECT * FROM [employees];")
    await backend.disconnect()
"""

from .backend import DatabaseBackend, DatabaseEngine, DataSet, MemoryDataSet
from .dialects import (
    DIALECTS,
    MariadbDialect,
    MssqlDialect,
    PostgresDialect,
    SqlDialect,
    SqliteDialect,
    dialect_for,
)
from .sqlite_backend import SqliteBackend

__all__ = [
    "DIALECTS",
    "DataSet",
    "DatabaseBackend",
    "DatabaseEngine",
    "MariadbDialect",
    "MemoryDataSet",
    "MssqlDialect",
    "PostgresDialect",
    "SqlDialect",
    "SqliteBackend",
    "SqliteDialect",
    "dialect_for",
]
