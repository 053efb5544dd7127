"""Database backend interface, engines and result cursors.

This module defines the abstract interface that database backends implement
for the API layer: executing SQL text, returning rows through a forward-only
cursor and describing a table as a data model.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import TYPE_CHECKING

from ..cells import Cell, Row
from ..exceptions import SqlConnectionError
from ..result import ERROR_PREFIX

if TYPE_CHECKING:
    from ..model import DataModel
    from .dialects import SqlDialect


class DatabaseEngine(Enum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MARIADB = "mariadb"
    MSSQL = "mssql"


class DataSet(ABC):
    """Forward-only cursor over SQL result rows.

    Rows may be held in memory or streamed in chunks by the backend; callers
    only move forward with ``next()``. A cursor is owned by one consumer at a
    time and must not be advanced concurrently.

    Attributes:
        messages: Error messages reported by the database for the statement
    """

    def __init__(self, messages: list[str] | None = None) -> None:
        self.messages: list[str] = list(messages or [])

    @abstractmethod
    def is_empty(self) -> bool:
        """Check if the result has no rows."""
        pass

    @abstractmethod
    def is_eof(self) -> bool:
        """Check if the cursor has moved past the last row."""
        pass

    @abstractmethod
    async def next(self) -> bool:
        """Move to the next row.

        Returns:
            True if a row is available after moving
        """
        pass

    @abstractmethod
    def get_row(self) -> Row:
        """Get the current row (an empty row when past the end)."""
        pass

    @abstractmethod
    async def get_all_rows(self) -> list[Row]:
        """Consume the remaining rows."""
        pass

    @abstractmethod
    def first(self) -> None:
        """Rewind to the first row."""
        pass

    def has_errors(self) -> bool:
        """Check if the database reported errors."""
        return any(message.startswith(ERROR_PREFIX) for message in self.messages)

    def get_first_error(self) -> str:
        """Get the first error message or an empty string."""
        for message in self.messages:
            if message.startswith(ERROR_PREFIX):
                return message
        return ""


class MemoryDataSet(DataSet):
    """Cursor over rows already fetched into memory."""

    def __init__(self, rows: list[Row] | None = None, messages: list[str] | None = None) -> None:
        super().__init__(messages)
        self._rows: list[Row] = list(rows or [])
        self._index = 0

    def is_empty(self) -> bool:
        return len(self._rows) == 0

    def is_eof(self) -> bool:
        return self._index >= len(self._rows)

    async def next(self) -> bool:
        if self._index < len(self._rows):
            self._index += 1
        return self._index < len(self._rows)

    def get_row(self) -> Row:
        if self._index < len(self._rows):
            return self._rows[self._index]
        return []

    async def get_all_rows(self) -> list[Row]:
        rows = self._rows[self._index :]
        self._index = len(self._rows)
        return rows

    def first(self) -> None:
        self._index = 0


class DatabaseBackend(ABC):
    """Abstract base class for database backends.

    A backend owns its connection handling and exposes the SQL dialect used
    to print identifiers and literals for its engine. Statement failures are
    reported through the returned cursor's messages instead of raising, so
    the API layer can turn them into a result status.

    Attributes:
        engine: Database engine of the backend
        dialect: SQL printer for the engine
        name: Logical database name (used as hashing context)
    """

    engine: DatabaseEngine
    dialect: SqlDialect
    name: str = ""

    @abstractmethod
    async def connect(self) -> None:
        """Establish the database connection."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the database connection. Safe to call multiple times."""
        pass

    @abstractmethod
    async def sql_select(self, sql: str) -> DataSet:
        """Execute a SELECT statement and return its rows as a cursor."""
        pass

    @abstractmethod
    async def sql_exec(self, sql: str) -> DataSet:
        """Execute one or more modifying statements."""
        pass

    @abstractmethod
    async def initialize_datamodel(self, model: DataModel) -> None:
        """Populate the fields of a data model from the table schema.

        Raises:
            SqlSchemaError: If the table cannot be described
        """
        pass

    def parse_sql_value_as_cell(self, value: Cell, sql_type: str) -> Cell:
        """Convert a driver value into a cell using the backend dialect."""
        return self.dialect.parse_sql_value_as_cell(value, sql_type)

    @property
    def is_connected(self) -> bool:
        """Check if the backend holds an open connection."""
        return False

    def _ensure_connected(self) -> None:
        """Raise if the backend is not connected.

        Raises:
            SqlConnectionError: If there is no open connection
        """
        if not self.is_connected:
            raise SqlConnectionError(f"{self.engine.value} database is not connected")
