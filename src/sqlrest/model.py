"""Data model of one table and SQL statement printing.

The model is an ordered list of fields. Rows are plain lists indexed by
field position, so row index ``i`` always holds the value of field ``i``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from .cells import UNDEFINED, Row
from .config import ApiConfig, RestSettings
from .exceptions import InvalidValueError
from .fields import DataField, FieldKind, FieldParams
from .sql_params import SqlParams, filter_to_sql, is_empty_filter

if TYPE_CHECKING:
    from .db.backend import DatabaseBackend
    from .db.dialects import SqlDialect
    from .hashid import IdHasher

logger = logging.getLogger(__name__)


class DataModel:
    """Ordered fields of a table exposed through an API.

    Attributes:
        db: Database backend owning the table
        config: API options of the table
        settings: Shared id and parameter settings
        hashid: Optional id hashing capability for numeric keys
        fields: Fields in column order
    """

    def __init__(
        self,
        db: DatabaseBackend,
        config: ApiConfig,
        settings: RestSettings | None = None,
        hashid: IdHasher | None = None,
    ):
        self.db = db
        self.config = config
        self.settings = settings or RestSettings()
        self.hashid = hashid
        self.fields: list[DataField] = []
        self._column_lookup: dict[str, int] = {}

    @property
    def table_name(self) -> str:
        return self.config.table_name

    @property
    def dialect(self) -> SqlDialect:
        return self.db.dialect

    def create_field(
        self,
        name: str,
        kind: FieldKind,
        sql_type: str,
        max_length: int = 0,
        params: FieldParams | None = None,
    ) -> DataField:
        """Create a field bound to the model's dialect (not added to the model)."""
        return DataField(
            dialect=self.dialect,
            name=name,
            kind=kind,
            sql_type=sql_type,
            max_length=max_length,
            params=params or FieldParams(),
        )

    def add_field(self, field: DataField) -> None:
        """Append a field to the model."""
        self.fields.append(field)
        self._column_lookup[field.name] = len(self.fields) - 1

    def find_field_by_name(self, name: str) -> DataField | None:
        """Find a field by name, None if there is no such field."""
        index = self._column_lookup.get(name)
        return self.fields[index] if index is not None else None

    def find_field_index_by_name(self, name: str) -> int:
        """Find the position of a field, -1 if there is no such field."""
        return self._column_lookup.get(name, -1)

    def filter_fields(self, predicate: Callable[[DataField], bool]) -> list[DataField]:
        """Get the fields matching a predicate."""
        return [f for f in self.fields if predicate(f)]

    def is_hashed(self, field: DataField) -> bool:
        """Check if the field's values pass through id hashing."""
        return (
            self.hashid is not None
            and field.kind == FieldKind.NUMBER
            and (field.params.is_primary_key or field.params.is_foreign_key)
        )

    def get_row_primary_key_values(self, row: Row, hash_values: bool = False) -> list[str]:
        """Get the serialized primary key values of a row.

        Args:
            row: Row in model order
            hash_values: Encode numeric keys with the id hasher

        Returns:
            Primary key values as strings ("" for missing values)
        """
        values = []
        for i, f in enumerate(self.fields):
            if not f.params.is_primary_key:
                continue
            serialized = f.serialize_cell(row[i] if i < len(row) else UNDEFINED)
            value = serialized if isinstance(serialized, str) else ""
            if hash_values and value and self.hashid is not None and f.kind == FieldKind.NUMBER:
                value = self.hashid.encode(value)
            values.append(value)
        return values

    def print_row_id(self, row: Row, hash_values: bool = False) -> str:
        """Print the row id of a row from its primary key values."""
        return self.settings.print_row_id(self.get_row_primary_key_values(row, hash_values))

    def print_debug(self, separator: str = "") -> str:
        """Print the table name and the debug form of every field."""
        return (
            f"{self.table_name}:{separator}"
            + "".join(f.print_column_debug() + separator for f in self.fields)
        )

    def _print_sql_column_names(self, params: SqlParams) -> str:
        if params.aggregate is not None and not params.aggregate.is_empty():
            return params.aggregate.print_sql_column_names(self, params.select)
        columns = []
        for f in self.fields:
            if params.select is not None and not params.select.is_selected(f):
                columns.append(f"{self.dialect.print_sql_string('')} as {f.print_column_name()}")
            else:
                columns.append(f.print_column_name())
        return ",".join(columns)

    def _print_sql_primary_key_condition(self, row_id: str) -> str:
        id_parts = self.settings.split_row_id(row_id)
        primary_keys = self.filter_fields(lambda f: f.params.is_primary_key)
        if len(id_parts) != len(primary_keys):
            raise InvalidValueError(f"Id '{row_id}' is not a valid key for table {self.table_name}")
        conditions = []
        for f, value in zip(primary_keys, id_parts, strict=True):
            if self.hashid is not None and f.kind == FieldKind.NUMBER:
                value = self.hashid.decode(value)
            cell = f.deserialize_cell(value)
            if cell is None or cell == "":
                raise InvalidValueError(f"Id '{row_id}' has an empty value for '{f.name}'")
            conditions.append(f.print_column_name() + "=" + f.print_cell_as_sql_value(cell))
        return "(" + " AND ".join(conditions) + ")"

    def print_sql_select(self, row_id: str | None, params: SqlParams) -> str:
        """Print a SELECT statement.

        Args:
            row_id: Row id restricting the result to one row (optional)
            params: Filter, order, limit, aggregate and select modifiers

        Returns:
            SQL statement

        Raises:
            InvalidFieldError: If a modifier names an unknown field
            InvalidValueError: If the row id or a filter value is invalid
        """
        if params.select is not None:
            params.select.validate(self)
        column_names = self._print_sql_column_names(params)
        order_sql = (
            params.order.to_sql(self) if params.order and not params.order.is_empty() else ""
        )
        limit_sql = (
            params.limit.to_sql(self) if params.limit and not params.limit.is_empty() else ""
        )
        filter_sql = (
            filter_to_sql(params.filter, self)  # type: ignore[arg-type]
            if not is_empty_filter(params.filter)
            else ""
        )
        group_by_sql = (
            params.aggregate.to_sql(self, params.select)
            if params.aggregate and not params.aggregate.is_empty()
            else ""
        )
        where_parts = []
        if row_id:
            where_parts.append(self._print_sql_primary_key_condition(row_id))
        if filter_sql:
            where_parts.append(filter_sql)

        sql = self.dialect.print_sql_select(
            self.dialect.print_sql_table_name(self.table_name),
            column_names,
            " AND ".join(where_parts),
            order_sql,
            limit_sql,
            group_by_sql,
        )
        logger.debug(f"Printed select: {sql}")
        return sql

    def print_sql_insert(self, row: Row) -> str:
        """Print an INSERT statement, leaving out undefined cells."""
        columns = []
        values = []
        for f, cell in zip(self.fields, row, strict=False):
            if cell is UNDEFINED:
                continue
            columns.append(f.print_column_name())
            values.append(f.print_cell_as_sql_value(cell))
        table = self.dialect.print_sql_table_name(self.table_name)
        sql = f"INSERT INTO {table} ({','.join(columns)}) VALUES ({','.join(values)});"
        logger.debug(f"Printed insert: {sql}")
        return sql

    def print_sql_update(self, row_id: str, row: Row) -> str:
        """Print an UPDATE statement for the row with the given id.

        Primary keys and undefined cells are not updated.

        Raises:
            InvalidValueError: If the id is invalid or the row sets no values
        """
        assignments = [
            f.print_column_name() + "=" + f.print_cell_as_sql_value(cell)
            for f, cell in zip(self.fields, row, strict=False)
            if not f.params.is_primary_key and cell is not UNDEFINED
        ]
        if not assignments:
            raise InvalidValueError(f"Row '{row_id}' has no values to update")
        table = self.dialect.print_sql_table_name(self.table_name)
        condition = self._print_sql_primary_key_condition(row_id)
        sql = f"UPDATE {table} SET {','.join(assignments)} WHERE {condition};"
        logger.debug(f"Printed update: {sql}")
        return sql

    def print_sql_delete(self, row_id: str) -> str:
        """Print a DELETE statement for the row with the given id.

        Raises:
            InvalidValueError: If the id is invalid
        """
        table = self.dialect.print_sql_table_name(self.table_name)
        sql = f"DELETE FROM {table} WHERE {self._print_sql_primary_key_condition(row_id)};"
        logger.debug(f"Printed delete: {sql}")
        return sql
