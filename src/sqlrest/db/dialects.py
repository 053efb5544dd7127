"""SQL dialect printers.

Each dialect knows how to quote identifiers, print a cell as a literal for
a column of a given native type, convert a driver value back to a cell and
compose a SELECT statement. Column types are compared case-insensitively.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

from ..cells import UNDEFINED, Cell
from ..exceptions import InvalidValueError
from ..fields import parse_datetime
from .backend import DatabaseEngine

logger = logging.getLogger(__name__)

_FALSE_STRINGS = ("", "false", "0")


def format_number(value: Cell) -> str:
    """Print a numeric cell, writing integral floats without a fraction.

    Raises:
        InvalidValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as e:
        raise InvalidValueError(f"Value '{value}' is not a number") from e
    if not math.isfinite(number):
        raise InvalidValueError(f"Value '{value}' is not a finite number")
    if number.is_integer():
        return str(int(number))
    return repr(number)


def _is_false(value: Cell) -> bool:
    return value is None or value is False or str(value).lower() in _FALSE_STRINGS


class SqlDialect:
    """SQL printing rules shared by all dialects.

    Subclasses override identifier quoting and the literal printers of their
    native column types. Printing an ``UNDEFINED`` cell yields the bare token
    ``UNDEFINED`` so that a missing value can never silently become a valid
    literal.
    """

    engine: DatabaseEngine
    number_types: frozenset[str] = frozenset()
    blob_types: frozenset[str] = frozenset()
    date_types: frozenset[str] = frozenset()
    boolean_types: frozenset[str] = frozenset()

    def print_sql_table_name(self, table_name: str) -> str:
        """Quote a table name."""
        raise NotImplementedError

    def print_sql_column_name(self, column_name: str) -> str:
        """Quote a column name."""
        raise NotImplementedError

    def print_sql_string(self, value: str) -> str:
        """Print a string literal with quotes escaped."""
        return "'" + value.replace("'", "''") + "'"

    def print_cell_as_sql_value(self, cell: Cell, sql_type: str) -> str:
        """Print a cell as an SQL literal for a column of the given native type.

        Args:
            cell: Cell value
            sql_type: Native column type name

        Returns:
            SQL literal

        Raises:
            InvalidValueError: If a numeric column gets a non-numeric value
        """
        if cell is None:
            return "NULL"
        if cell is UNDEFINED:
            return "UNDEFINED"
        kind = sql_type.upper()
        if kind in self.number_types:
            return format_number(cell)
        if kind in self.blob_types:
            if isinstance(cell, (bytes, bytearray, memoryview)):
                return self.print_blob(bytes(cell))
            return self.print_sql_string(str(cell))
        if kind in self.boolean_types:
            return self.print_boolean(cell)
        if kind in self.date_types and isinstance(cell, datetime):
            return self.print_datetime(cell)
        if isinstance(cell, bool):
            return self.print_sql_string("true" if cell else "false")
        return self.print_sql_string(str(cell))

    def print_blob(self, value: bytes) -> str:
        """Print a byte string literal."""
        return "X'" + value.hex() + "'"

    def print_boolean(self, value: Cell) -> str:
        """Print a boolean literal."""
        return "0" if _is_false(value) else "1"

    def print_datetime(self, value: datetime) -> str:
        """Print a datetime literal."""
        return "'" + value.isoformat(timespec="milliseconds") + "'"

    def parse_sql_value_as_cell(self, value: Cell, sql_type: str) -> Cell:
        """Convert a driver value into a cell.

        Args:
            value: Value returned by the driver
            sql_type: Native column type name

        Returns:
            Cell value
        """
        if value is None or value == "NULL":
            return None
        if value is UNDEFINED:
            return UNDEFINED
        kind = sql_type.upper()
        if kind in self.date_types and isinstance(value, str) and value != "":
            return parse_datetime(value)
        if kind in self.boolean_types and not isinstance(value, str):
            if isinstance(value, (int, float)):
                return value != 0
            return not _is_false(value)
        if isinstance(value, (bytearray, memoryview)):
            return bytes(value)
        return value

    def print_sql_select(
        self,
        table_name: str,
        column_names: str,
        where: str,
        order: str,
        limit: str,
        group_by: str,
    ) -> str:
        """Compose a SELECT statement from printed fragments.

        Empty fragments are left out.
        """
        sql = f"SELECT {column_names} FROM {table_name}"
        if where:
            sql += f" WHERE {where}"
        if group_by:
            sql += f" GROUP BY {group_by}"
        if order:
            sql += f" ORDER BY {order}"
        if limit:
            sql += f" LIMIT {limit}"
        return sql + ";"


class SqliteDialect(SqlDialect):
    """SQLite printing rules."""

    engine = DatabaseEngine.SQLITE
    number_types = frozenset({"INTEGER", "INT", "REAL", "FLOAT", "DOUBLE", "NUMERIC", "DECIMAL"})
    blob_types = frozenset({"BLOB"})
    date_types = frozenset({"DATETIME", "DATE"})
    boolean_types = frozenset({"BOOLEAN"})

    def print_sql_table_name(self, table_name: str) -> str:
        return f"[{table_name}]"

    def print_sql_column_name(self, column_name: str) -> str:
        return f'"{column_name}"'


class PostgresDialect(SqlDialect):
    """PostgreSQL printing rules."""

    engine = DatabaseEngine.POSTGRESQL
    number_types = frozenset(
        {"INTEGER", "SMALLINT", "BIGINT", "REAL", "DOUBLE PRECISION", "NUMERIC"}
    )
    blob_types = frozenset({"BYTEA"})
    date_types = frozenset({"DATE", "TIMESTAMP", "TIMESTAMPTZ"})
    boolean_types = frozenset({"BOOLEAN"})

    def print_sql_table_name(self, table_name: str) -> str:
        return f'"{table_name.lower()}"'

    def print_sql_column_name(self, column_name: str) -> str:
        return f'"{column_name}"'

    def print_blob(self, value: bytes) -> str:
        return "'\\x" + value.hex() + "'"

    def print_boolean(self, value: Cell) -> str:
        return "false" if _is_false(value) else "true"


class MariadbDialect(SqlDialect):
    """MariaDB / MySQL printing rules."""

    engine = DatabaseEngine.MARIADB
    number_types = frozenset({"INT", "SMALLINT", "BIGINT", "FLOAT", "DOUBLE", "DECIMAL"})
    blob_types = frozenset({"LONGBLOB", "BLOB", "BINARY", "VARBINARY"})
    date_types = frozenset({"DATE", "DATETIME", "TIMESTAMP"})
    boolean_types = frozenset({"BIT"})

    def print_sql_table_name(self, table_name: str) -> str:
        return f"`{table_name}`"

    def print_sql_column_name(self, column_name: str) -> str:
        return f"`{column_name}`"

    def print_sql_string(self, value: str) -> str:
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\r", "\\r")
            .replace("\n", "\\n")
            .replace("\t", "\\t")
        )
        return f'"{escaped}"'

    def print_blob(self, value: bytes) -> str:
        return "x'" + value.hex() + "'"

    def print_boolean(self, value: Cell) -> str:
        if _is_false(value):
            return "b'0'"
        text = str(value).lower()
        if text == "true":
            return "b'1'"
        if not set(text) <= {"0", "1"}:
            raise InvalidValueError(f"Value '{value}' is not a bit string")
        return f"b'{text}'"

    def print_datetime(self, value: datetime) -> str:
        return '"' + value.isoformat(sep=" ", timespec="milliseconds")[:23] + '"'

    def parse_sql_value_as_cell(self, value: Cell, sql_type: str) -> Cell:
        if sql_type.upper() == "BIT" and isinstance(value, (bytes, bytearray)):
            return "".join(format(byte, "08b") for byte in value)
        return super().parse_sql_value_as_cell(value, sql_type)


class MssqlDialect(SqlDialect):
    """Microsoft SQL Server printing rules."""

    engine = DatabaseEngine.MSSQL
    number_types = frozenset({"INT", "SMALLINT", "BIGINT", "FLOAT", "REAL", "DECIMAL"})
    blob_types = frozenset({"BINARY", "VARBINARY", "IMAGE"})
    date_types = frozenset({"DATE", "DATETIME", "DATETIME2", "TIMESTAMP"})
    boolean_types = frozenset({"BIT"})

    def print_sql_table_name(self, table_name: str) -> str:
        return f"[{table_name}]"

    def print_sql_column_name(self, column_name: str) -> str:
        return f"[{column_name}]"

    def print_blob(self, value: bytes) -> str:
        return "0x" + value.hex()

    def print_datetime(self, value: datetime) -> str:
        return "'" + value.isoformat(timespec="milliseconds")[:23] + "'"

    def print_sql_select(
        self,
        table_name: str,
        column_names: str,
        where: str,
        order: str,
        limit: str,
        group_by: str,
    ) -> str:
        """Compose a SELECT using TOP or OFFSET / FETCH for the limit.

        Raises:
            InvalidValueError: If a paged limit has no ORDER BY to page over
        """
        limit_parts = limit.split(" OFFSET ") if limit else []
        sql = "SELECT "
        if len(limit_parts) == 1:
            sql += f"TOP {limit_parts[0]} "
        sql += f"{column_names} FROM {table_name}"
        if where:
            sql += f" WHERE {where}"
        if group_by:
            sql += f" GROUP BY {group_by}"
        if order:
            sql += f" ORDER BY {order}"
        if len(limit_parts) == 2:
            if not order:
                message = "Paged limit without ORDER BY is not supported by SQL Server"
                logger.error(message)
                raise InvalidValueError(message)
            sql += f" OFFSET {limit_parts[1]} ROWS FETCH NEXT {limit_parts[0]} ROWS ONLY"
        return sql + ";"


DIALECTS: dict[DatabaseEngine, type[SqlDialect]] = {
    DatabaseEngine.SQLITE: SqliteDialect,
    DatabaseEngine.POSTGRESQL: PostgresDialect,
    DatabaseEngine.MARIADB: MariadbDialect,
    DatabaseEngine.MSSQL: MssqlDialect,
}


def dialect_for(engine: DatabaseEngine) -> SqlDialect:
    """Create the dialect printer for an engine."""
    return DIALECTS[engine]()
