"""Column codecs for serializing, deserializing and printing cell values.

Every column of a data model is a ``DataField`` whose ``kind`` selects the
conversion rules:

    string    pass-through
    boolean   "", "false", "0", "00".. read as false, anything else as true
    number    parsed as float, non-numeric input rejected
    blob      bytes on the SQL side, base64 on the wire
    datetime  ``datetime`` on the SQL side, ISO-8601 on the wire

Serialization turns a cell read from the database into its wire string.
Deserialization turns a wire string into the cell used to build SQL.
"""

from __future__ import annotations

import base64
import binascii
import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Protocol, assert_never

from .cells import UNDEFINED, Cell, _Undefined
from .exceptions import InvalidValueError

if TYPE_CHECKING:
    from .db.dialects import SqlDialect

_ZEROS_REGEX = re.compile(r"^0+$")

Serialized = str | None | _Undefined


class FieldKind(str, Enum):
    """Semantic type of a column."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    BLOB = "blob"
    DATETIME = "datetime"


class DateFormatter(Protocol):
    """Locale-aware date formatting capability."""

    def format(self, value: datetime) -> str:
        """Format a datetime for display."""
        ...


@dataclass(frozen=True, slots=True)
class FieldParams:
    """Column constraints."""

    is_primary_key: bool = False
    is_foreign_key: bool = False
    is_auto_inc: bool = False
    is_not_null: bool = False


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 style date or datetime string.

    Raises:
        InvalidValueError: If the string is not a valid date
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError as e:
        raise InvalidValueError(f"Invalid date '{value}'") from e


def _number_to_str(value: Cell) -> str:
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        return str(int(value))
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _boolean_to_str(value: Cell) -> str:
    text = str(value) if value else ""
    if text == "" or text.lower() == "false" or _ZEROS_REGEX.match(text):
        return "false"
    return "true"


@dataclass(frozen=True, slots=True)
class DataField:
    """One table column and its value codec.

    Attributes:
        dialect: SQL dialect used for printing column names and literals
        name: Column name
        kind: Semantic type selecting the codec rules
        sql_type: Native column type of the database
        max_length: Maximum value length, 0 if unbounded
        params: Column constraints
    """

    dialect: SqlDialect = field(compare=False, repr=False)
    name: str
    kind: FieldKind
    sql_type: str
    max_length: int = 0
    params: FieldParams = field(default_factory=FieldParams)

    def print_column_debug(self, length: int = 0) -> str:
        """Print a compact description of the column.

        Args:
            length: Pad or truncate the output to this width (0 for no limit)

        Returns:
            String like ``[number:id:INTEGER{PK AUTOINC NOTNUL}]``
        """
        flags = []
        if self.params.is_primary_key:
            flags.append("PK")
        if self.params.is_foreign_key:
            flags.append("FK")
        if self.params.is_auto_inc:
            flags.append("AUTOINC")
        if self.params.is_not_null:
            flags.append("NOTNUL")
        params = "{" + " ".join(flags) + "}" if flags else ""
        if self.max_length > 0:
            params = f"{self.sql_type}({self.max_length}){params}"
        else:
            params = f"{self.sql_type}{params}"
        if length > 0:
            name_length = length - 3 - len(params)
            name = self.name
            if len(name) > name_length:
                name = name[: name_length - 2] + ".."
            return "[" + f"{name}:{params}".ljust(length - 2) + "]"
        return f"[{self.kind.value}:{self.name}:{params}]"

    def print_column_name(self) -> str:
        """Print the quoted column name."""
        return self.dialect.print_sql_column_name(self.name)

    def print_cell_as_sql_value(self, cell: Cell) -> str:
        """Print a cell as an SQL literal for this column."""
        return self.dialect.print_cell_as_sql_value(cell, self.sql_type)

    def serialize_cell(self, cell: Cell) -> Serialized:
        """Convert a database cell to its wire string.

        Args:
            cell: Cell as read from the database

        Returns:
            Serialized string, None for NULL or UNDEFINED for a missing value
        """
        if self.kind == FieldKind.STRING and isinstance(cell, str):
            return cell
        cell = self.dialect.parse_sql_value_as_cell(cell, self.sql_type)
        match self.kind:
            case FieldKind.STRING:
                if cell is None or cell is UNDEFINED:
                    return cell
                return str(cell)
            case FieldKind.BOOLEAN:
                if cell is None or cell is UNDEFINED:
                    return cell
                return _boolean_to_str(cell)
            case FieldKind.NUMBER:
                if cell is None or cell is UNDEFINED or cell == "":
                    return None
                return _number_to_str(cell)
            case FieldKind.BLOB:
                if cell is None or cell is UNDEFINED:
                    return cell
                if isinstance(cell, (bytes, bytearray, memoryview)):
                    return base64.b64encode(bytes(cell)).decode("ascii")
                return str(cell)
            case FieldKind.DATETIME:
                if cell is None or cell is UNDEFINED:
                    return cell
                if isinstance(cell, datetime):
                    return cell.isoformat(timespec="milliseconds")
                return str(cell)
            case _:
                assert_never(self.kind)

    def serialize_cell_with_locale(self, cell: Cell, formatter: DateFormatter) -> Serialized:
        """Serialize a cell, formatting datetimes with the given formatter.

        Non-datetime columns serialize as usual.
        """
        if self.kind != FieldKind.DATETIME:
            return self.serialize_cell(cell)
        cell = self.dialect.parse_sql_value_as_cell(cell, self.sql_type)
        if isinstance(cell, datetime):
            return formatter.format(cell)
        return self.serialize_cell(cell)

    def deserialize_cell(self, value: Cell) -> Cell:
        """Convert a wire value to the cell used for SQL printing.

        Args:
            value: Decoded wire value, None or UNDEFINED

        Returns:
            Cell value

        Raises:
            InvalidValueError: If a number, blob or datetime value is malformed
        """
        match self.kind:
            case FieldKind.STRING:
                return value
            case FieldKind.BOOLEAN:
                if value is UNDEFINED:
                    return value
                if value is None or value is False:
                    return False
                text = str(value)
                return not (text == "" or text.lower() == "false" or text == "0")
            case FieldKind.NUMBER:
                if value is UNDEFINED:
                    return value
                if value is None or value == "":
                    return None
                return self._parse_number(value)
            case FieldKind.BLOB:
                if value is UNDEFINED:
                    return value
                if value is None:
                    return b""
                if isinstance(value, (bytes, bytearray)):
                    return bytes(value)
                try:
                    return base64.b64decode(str(value), validate=True)
                except binascii.Error as e:
                    raise InvalidValueError(f"Field '{self.name}' value is not valid base64") from e
            case FieldKind.DATETIME:
                if value is None or value is UNDEFINED or isinstance(value, datetime):
                    return value
                return parse_datetime(str(value))
            case _:
                assert_never(self.kind)

    def _parse_number(self, value: Cell) -> float:
        try:
            number = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise InvalidValueError(f"Field '{self.name}' value '{value}' is not a number") from e
        if math.isnan(number) or math.isinf(number):
            raise InvalidValueError(f"Field '{self.name}' value '{value}' is not a number")
        return number
