"""SQLite database backend implementation.

This module provides the SQLite backend for the API layer, using the stdlib
sqlite3 module with asyncio run_in_executor for async operation.

Features:
    - WAL mode by default for concurrent reads
    - Automatic busy_timeout for lock contention handling
    - Foreign key enforcement enabled
    - Path validation and parent directory creation
    - Data model introspection from the stored CREATE TABLE statement
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

from ..encoding import split_excluding_brackets
from ..exceptions import SqlConnectionError, SqlSchemaError
from ..fields import FieldKind, FieldParams
from ..result import ERROR_PREFIX
from .backend import DatabaseBackend, DatabaseEngine, DataSet, MemoryDataSet
from .dialects import SqliteDialect

if TYPE_CHECKING:
    from ..fields import DataField
    from ..model import DataModel

logger = logging.getLogger(__name__)

_TABLE_DESCRIPTION_REGEX = re.compile(
    r"^CREATE TABLE\s*(?:IF NOT EXISTS\s*)?(?:\"[^\"]+\"|\[[^\]]+\]|`[^`]+`|\w+)\s*"
    r"\(\s*(.*)\s*\)\s*(WITHOUT ROWID)?\s*;?\s*$",
    re.IGNORECASE | re.DOTALL,
)
_TABLE_PRIMARY_KEY_REGEX = re.compile(r"PRIMARY KEY\s*\(([^)]+)\)", re.IGNORECASE)
_TABLE_FOREIGN_KEY_REGEX = re.compile(r"FOREIGN KEY\s*\(([^)]+)\)", re.IGNORECASE)
_FIELD_TYPE_REGEX = re.compile(
    r"^[\"\[`]?(\w+)[\"\]`]?\s+(\w+)(\s*\(\s*(\d+)\s*,?\s*(\d*)\s*\))?", re.IGNORECASE
)
_TABLE_CONSTRAINT_REGEX = re.compile(
    r"^(PRIMARY\s+KEY|FOREIGN\s+KEY|CONSTRAINT|UNIQUE|CHECK)\b", re.IGNORECASE
)

_NUMBER_TYPES = frozenset({"INTEGER", "INT", "REAL", "FLOAT", "DOUBLE", "NUMERIC", "DECIMAL"})
_STRING_TYPES = frozenset({"TEXT", "VARCHAR", "CHAR", "NVARCHAR", "CLOB"})
_DATE_TYPES = frozenset({"DATETIME", "DATE"})


@dataclass
class _ColumnDefinition:
    name: str
    sql_type: str
    max_length: int
    params: FieldParams


def _split_key_names(names: str) -> list[str]:
    return [name.strip().strip("\"[]`") for name in names.split(",") if name.strip()]


class SqliteBackend(DatabaseBackend):
    """SQLite backend using stdlib sqlite3 with async executor.

    This backend wraps the synchronous sqlite3 module in asyncio's
    run_in_executor to provide async operation. It configures SQLite
    for optimal performance with WAL mode and appropriate timeouts.

    Attributes:
        engine: DatabaseEngine.SQLITE
        DEFAULT_PRAGMAS: Default PRAGMA settings applied on connection

    Example:
        backend = SqliteBackend("/data/app.db")
        await backend.connect()
        api = await create_api(backend, ApiConfig(table_name="employees"))
        await backend.disconnect()
    """

    engine = DatabaseEngine.SQLITE

    DEFAULT_PRAGMAS: dict[str, str | int] = {
        "journal_mode": "WAL",
        "busy_timeout": 30000,
        "synchronous": "NORMAL",
        "foreign_keys": "ON",
    }

    def __init__(
        self,
        path: str = ":memory:",
        name: str = "",
        pragmas: dict[str, str | int] | None = None,
    ) -> None:
        """Initialize SQLite backend.

        Args:
            path: Database file path (or ":memory:" for in-memory)
            name: Logical database name (defaults to the file stem)
            pragmas: PRAGMA settings overriding the defaults
        """
        self.path = path
        self.name = name or (Path(path).stem if not path.startswith(":") else "memory")
        self.dialect = SqliteDialect()
        self._pragmas = {**self.DEFAULT_PRAGMAS, **(pragmas or {})}
        self._conn: sqlite3.Connection | None = None

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """Connect to SQLite database.

        Creates the database file and parent directories if they don't exist.

        Raises:
            SqlConnectionError: If connection fails
        """

        def _connect() -> sqlite3.Connection:
            # Handle special paths
            if not self.path.startswith(":"):
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(self.path, check_same_thread=False)
            for pragma, value in self._pragmas.items():
                try:
                    conn.execute(f"PRAGMA {pragma}={value}")
                except sqlite3.Error as e:
                    logger.warning(f"Failed to set PRAGMA {pragma}={value}: {e}")

            logger.debug(f"Connected to SQLite database: {self.path}")
            return conn

        loop = asyncio.get_event_loop()
        try:
            self._conn = await loop.run_in_executor(None, _connect)
        except sqlite3.Error as e:
            raise SqlConnectionError(
                f"Failed to connect to SQLite database {self.path}: {e}"
            ) from e

    async def disconnect(self) -> None:
        """Close SQLite connection.

        Safe to call multiple times or if not connected.
        """
        if self._conn is None:
            return

        conn = self._conn
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, conn.close)
        self._conn = None
        logger.debug("Disconnected from SQLite database")

    async def sql_select(self, sql: str) -> DataSet:
        """Execute a SELECT statement.

        Returns:
            Cursor over the result rows, errors are reported in its messages

        Raises:
            SqlConnectionError: If not connected
        """
        self._ensure_connected()

        def _select() -> DataSet:
            assert self._conn is not None
            try:
                cursor = self._conn.execute(sql)
                return MemoryDataSet([list(row) for row in cursor.fetchall()])
            except sqlite3.Error as e:
                return MemoryDataSet([], [f"{ERROR_PREFIX} (sql_select): {e}"])

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _select)

    async def sql_exec(self, sql: str) -> DataSet:
        """Execute one or more statements as a script.

        Returns:
            Empty cursor, errors are reported in its messages

        Raises:
            SqlConnectionError: If not connected
        """
        self._ensure_connected()

        def _exec() -> DataSet:
            assert self._conn is not None
            try:
                self._conn.executescript(sql)
                self._conn.commit()
                return MemoryDataSet()
            except sqlite3.Error as e:
                return MemoryDataSet([], [f"{ERROR_PREFIX} (sql_exec): {e}"])

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _exec)

    async def _get_table_sql(self, table_name: str) -> str | None:
        self._ensure_connected()

        def _query() -> str | None:
            assert self._conn is not None
            row = self._conn.execute(
                "SELECT sql FROM sqlite_master WHERE type='table' AND name=?", (table_name,)
            ).fetchone()
            return row[0] if row else None

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, _query)

    async def initialize_datamodel(self, model: DataModel) -> None:
        """Populate the model fields from the table's CREATE TABLE statement.

        Raises:
            SqlSchemaError: If the table does not exist, is not recognized or
                an excluded field is part of the primary key
        """
        table_sql = await self._get_table_sql(model.table_name)
        if not table_sql:
            raise SqlSchemaError(f"Table {model.table_name} not found")
        table_match = _TABLE_DESCRIPTION_REGEX.match(table_sql.strip())
        if not table_match:
            raise SqlSchemaError(f"Table {model.table_name} not recognized as a valid SQLite table")

        columns: list[_ColumnDefinition] = []
        primary_keys: list[str] = []
        foreign_keys: list[str] = []
        for field_str in split_excluding_brackets(table_match.group(1), ",", "(", ")"):
            field_str = field_str.strip()
            upper = field_str.upper()
            if _TABLE_CONSTRAINT_REGEX.match(field_str):
                primary_key_match = _TABLE_PRIMARY_KEY_REGEX.search(field_str)
                foreign_key_match = _TABLE_FOREIGN_KEY_REGEX.search(field_str)
                if primary_key_match:
                    primary_keys.extend(_split_key_names(primary_key_match.group(1)))
                elif foreign_key_match:
                    foreign_keys.extend(_split_key_names(foreign_key_match.group(1)))
                else:
                    logger.info(f"Unsupported table constraint skipped: {field_str}")
                continue

            field_match = _FIELD_TYPE_REGEX.match(field_str)
            if not field_match:
                logger.info(f"Unsupported field definition skipped: {field_str}")
                continue
            columns.append(
                _ColumnDefinition(
                    name=field_match.group(1),
                    sql_type=field_match.group(2).upper(),
                    max_length=int(field_match.group(4) or 0),
                    params=FieldParams(
                        is_primary_key="PRIMARY KEY" in upper,
                        is_foreign_key="REFERENCES" in upper,
                        is_auto_inc="AUTOINCREMENT" in upper,
                        is_not_null="NOT NULL" in upper,
                    ),
                )
            )

        for column in columns:
            if column.name in primary_keys:
                column.params = replace(column.params, is_primary_key=True)
            if column.name in foreign_keys:
                column.params = replace(column.params, is_foreign_key=True)

            if not model.config.is_field_included(column.name):
                if column.params.is_primary_key:
                    raise SqlSchemaError(
                        f"Primary key field {column.name} excluded in API configuration"
                    )
                logger.info(f"Field {column.name} excluded in API configuration")
                continue
            model.add_field(self._create_field(model, column))

        logger.info(f"Initialized data model\n{model.print_debug(chr(10))}")

    @staticmethod
    def _create_field(model: DataModel, column: _ColumnDefinition) -> DataField:
        sql_type = column.sql_type
        if sql_type in _NUMBER_TYPES:
            kind = FieldKind.NUMBER
            max_length = 0
        elif sql_type == "BLOB":
            kind = FieldKind.BLOB
            max_length = column.max_length
        elif sql_type in _STRING_TYPES:
            kind = FieldKind.STRING
            max_length = column.max_length
        elif sql_type in _DATE_TYPES:
            kind = FieldKind.STRING if model.config.use_dates_as_string else FieldKind.DATETIME
            max_length = 0
        elif sql_type == "BOOLEAN":
            kind = FieldKind.BOOLEAN
            max_length = 0
        else:
            logger.info(f"Unrecognized type {sql_type} of field {column.name} treated as string")
            kind = FieldKind.STRING
            max_length = 0
        return model.create_field(column.name, kind, sql_type, max_length, column.params)
