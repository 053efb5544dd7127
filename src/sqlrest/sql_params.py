"""Query parameters parsed from HTTP strings and printed as SQL fragments.

Filter grammar (whole string must match one form):

    (field)-lt|le|eq|ge|gt|like(value)   comparison
    -not(filter)  or  -(filter)          negation
    filter-and|or(filter)                boolean combination
    (filter)                             grouping

Order:      ``field[ ASC|DESC|+|-],...``
Limit:      ``N``, ``N page P`` or ``N.P``
Aggregate:  ``count|sum|avg|min|max(field),...``
Select:     ``field,...``

Malformed strings raise ``FilterSyntaxError`` and unknown columns raise
``InvalidFieldError`` before any SQL text is produced.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, assert_never

from .encoding import split_by_brackets
from .exceptions import FilterSyntaxError, InvalidFieldError, InvalidValueError
from .fields import DataField

if TYPE_CHECKING:
    from .model import DataModel

logger = logging.getLogger(__name__)

# ============================================================================
# Filter
# ============================================================================

_COMPARISON_REGEX = re.compile(
    r"^\(([^'\"()]+)\)\s?-(lt|le|eq|ge|gt|like)\s?\(([^'\"()]+)\)$", re.IGNORECASE
)
_NEGATION_REGEX = re.compile(r"^-(not|)\((.+)\)$", re.IGNORECASE)
_BOOLEAN_OPERATOR_REGEX = re.compile(r"\s?-(and|or)\s?(?=\()", re.IGNORECASE)


class ComparisonOp(str, Enum):
    """Comparison operators of a filter leaf."""

    LT = "lt"
    LE = "le"
    EQ = "eq"
    GE = "ge"
    GT = "gt"
    LIKE = "like"

    @property
    def sql(self) -> str:
        return _COMPARISON_SQL[self]


_COMPARISON_SQL = {
    ComparisonOp.LT: " < ",
    ComparisonOp.LE: " <= ",
    ComparisonOp.EQ: " = ",
    ComparisonOp.GE: " >= ",
    ComparisonOp.GT: " > ",
    ComparisonOp.LIKE: " LIKE ",
}


class BooleanOp(str, Enum):
    """Operators joining two filters."""

    AND = "and"
    OR = "or"

    @property
    def sql(self) -> str:
        return " AND " if self == BooleanOp.AND else " OR "


@dataclass(frozen=True, slots=True)
class Comparison:
    """Leaf comparing a column to a value."""

    field_name: str
    op: ComparisonOp
    value: str


@dataclass(frozen=True, slots=True)
class Negation:
    """Negated filter."""

    inner: SqlFilter


@dataclass(frozen=True, slots=True)
class Conjunction:
    """Two filters joined with AND / OR."""

    left: SqlFilter
    op: BooleanOp
    right: SqlFilter


@dataclass(frozen=True, slots=True)
class EmptyFilter:
    """Filter that matches everything and prints no SQL."""


SqlFilter = Comparison | Negation | Conjunction | EmptyFilter

EMPTY_FILTER = EmptyFilter()


def _find_boolean_operation(text: str) -> tuple[str, BooleanOp, str] | None:
    """Split at the first top level ``-and(`` / ``-or(`` operator."""
    depth = 0
    for pos, char in enumerate(text):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        elif depth == 0 and pos > 0 and char in " -":
            match = _BOOLEAN_OPERATOR_REGEX.match(text, pos)
            if match:
                return text[:pos], BooleanOp(match.group(1).lower()), text[match.end() :]
    return None


def parse_filter(text: str) -> SqlFilter:
    """Parse a filter string into a filter tree.

    Args:
        text: Filter string from an HTTP parameter

    Returns:
        Filter tree, ``EMPTY_FILTER`` for an empty string

    Raises:
        FilterSyntaxError: If the string does not match the grammar
    """
    if not text:
        return EMPTY_FILTER

    match = _COMPARISON_REGEX.match(text)
    if match:
        return Comparison(match.group(1), ComparisonOp(match.group(2).lower()), match.group(3))

    operation = _find_boolean_operation(text)
    if operation is not None:
        left, op, right = operation
        if _find_boolean_operation(right) is not None:
            raise FilterSyntaxError(f"Ambiguous filter '{text}', group chained operations")
        return Conjunction(parse_filter(left), op, parse_filter(right))

    match = _NEGATION_REGEX.match(text)
    if match:
        return Negation(parse_filter(match.group(2)))

    parts = split_by_brackets(text, include_between=True, include_trailing=False)
    if len(parts) == 1 and parts[0] and text.startswith("(") and text.endswith(")"):
        return parse_filter(parts[0])

    raise FilterSyntaxError(f"Invalid filter '{text}'")


def is_empty_filter(sql_filter: SqlFilter | None) -> bool:
    """Check if a filter is missing or empty."""
    return sql_filter is None or isinstance(sql_filter, EmptyFilter)


def combine_filters(
    left: SqlFilter | None, op: BooleanOp, right: SqlFilter | None
) -> SqlFilter | None:
    """Combine two optional filters.

    Returns:
        Both sides joined with ``op`` if both are non-empty, otherwise the
        non-empty side, or None if both are empty
    """
    if not is_empty_filter(left) and not is_empty_filter(right):
        return Conjunction(left, op, right)  # type: ignore[arg-type]
    if not is_empty_filter(left):
        return left
    if not is_empty_filter(right):
        return right
    return None


def filter_to_sql(sql_filter: SqlFilter, model: DataModel) -> str:
    """Print a filter as a fully parenthesized SQL condition.

    Args:
        sql_filter: Filter tree
        model: Data model resolving field names

    Returns:
        SQL condition, empty string for the empty filter

    Raises:
        InvalidFieldError: If a comparison names an unknown field
        InvalidValueError: If a comparison value does not convert to a value
            of the field type
    """
    match sql_filter:
        case EmptyFilter():
            return ""
        case Comparison(field_name=field_name, op=op, value=value):
            data_field = model.find_field_by_name(field_name)
            if data_field is None:
                raise InvalidFieldError(f"Invalid field '{field_name}' in filter")
            cell = data_field.deserialize_cell(value)
            if cell is None or cell == "":
                raise InvalidValueError(
                    f"Invalid value '{value}' for field '{field_name}' in filter"
                )
            literal = data_field.print_cell_as_sql_value(cell)
            return "(" + data_field.print_column_name() + op.sql + literal + ")"
        case Negation(inner=inner):
            return "(NOT " + filter_to_sql(inner, model) + ")"
        case Conjunction(left=left, op=op, right=right):
            return "(" + filter_to_sql(left, model) + op.sql + filter_to_sql(right, model) + ")"
        case _:
            assert_never(sql_filter)


# ============================================================================
# Order, Limit, Aggregate, Select
# ============================================================================

_ORDER_REGEX = re.compile(r"^\s*(\w+)\s?(ASC|DESC|\+|-)?\s*?$", re.IGNORECASE)
_LIMIT_REGEX = re.compile(r"^(\d+)(\spage\s|\.)?(\d+)?$", re.IGNORECASE)
_AGGREGATE_REGEX = re.compile(r"^(count|sum|avg|min|max)\(([\w\s\-#]+)\)$", re.IGNORECASE)


def _find_field(model: DataModel, name: str, context: str) -> DataField:
    data_field = model.find_field_by_name(name)
    if data_field is None:
        raise InvalidFieldError(f"Invalid field '{name}' in {context}")
    return data_field


@dataclass(frozen=True, slots=True)
class SqlOrder:
    """Ordered columns with directions."""

    columns: tuple[str, ...] = ()
    descending: tuple[bool, ...] = ()

    @classmethod
    def parse(cls, text: str) -> SqlOrder:
        """Parse ``field[ ASC|DESC|+|-],...``.

        Raises:
            FilterSyntaxError: If a token is not a column with optional direction
        """
        columns: list[str] = []
        descending: list[bool] = []
        if not text:
            return cls()
        for token in text.split(","):
            match = _ORDER_REGEX.match(token)
            if not match:
                raise FilterSyntaxError(f"Invalid order '{token}'")
            direction = (match.group(2) or "").upper()
            columns.append(match.group(1))
            descending.append(direction in ("DESC", "-"))
        return cls(tuple(columns), tuple(descending))

    def is_empty(self) -> bool:
        return len(self.columns) == 0

    def to_sql(self, model: DataModel) -> str:
        """Print the ORDER BY list.

        Raises:
            InvalidFieldError: If a column does not exist
        """
        parts = []
        for column, desc in zip(self.columns, self.descending, strict=True):
            data_field = _find_field(model, column, "order")
            parts.append(data_field.print_column_name() + (" DESC" if desc else " ASC"))
        return ",".join(parts)


@dataclass(frozen=True, slots=True)
class SqlLimit:
    """Row limit with an optional 1-based page number."""

    limit: int = -1
    page: int = -1

    @classmethod
    def parse(cls, text: str) -> SqlLimit:
        """Parse ``N``, ``N page P`` or ``N.P``.

        Raises:
            FilterSyntaxError: If the string is not one of the accepted forms
        """
        if not text:
            return cls()
        match = _LIMIT_REGEX.match(text)
        if not match:
            raise FilterSyntaxError(f"Invalid limit '{text}'")
        page = int(match.group(3)) if match.group(3) else -1
        return cls(int(match.group(1)), page)

    def is_empty(self) -> bool:
        return self.limit <= 0

    def to_sql(self, model: DataModel | None = None) -> str:
        """Print the LIMIT clause value.

        A page P skips ``N*(P-1)+1`` rows.
        """
        result = str(self.limit)
        if self.page > 0:
            result += f" OFFSET {self.limit * (self.page - 1) + 1}"
        return result


class AggregateFunction(str, Enum):
    """Supported aggregate functions."""

    COUNT = "count"
    SUM = "sum"
    AVG = "avg"
    MIN = "min"
    MAX = "max"


@dataclass(frozen=True, slots=True)
class SqlAggregate:
    """Aggregate functions applied to fields."""

    functions: tuple[AggregateFunction, ...] = ()
    fields: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> SqlAggregate:
        """Parse ``function(field),...``.

        Raises:
            FilterSyntaxError: If a token is not a supported function call
        """
        functions: list[AggregateFunction] = []
        fields: list[str] = []
        if not text:
            return cls()
        for token in text.split(","):
            match = _AGGREGATE_REGEX.match(token.strip())
            if not match:
                raise FilterSyntaxError(f"Invalid aggregate '{token}'")
            functions.append(AggregateFunction(match.group(1).lower()))
            fields.append(match.group(2).strip())
        return cls(tuple(functions), tuple(fields))

    def is_empty(self) -> bool:
        return len(self.functions) == 0

    def is_aggregated(self, data_field: DataField) -> bool:
        """Check if an aggregate function applies to the field."""
        return data_field.name in self.fields

    def _validate(self, model: DataModel) -> None:
        for name in self.fields:
            _find_field(model, name, "aggregate")

    def to_sql(self, model: DataModel, select: SqlSelect | None = None) -> str:
        """Print the GROUP BY list of selected, non-aggregated fields.

        Raises:
            InvalidFieldError: If an aggregated field does not exist
        """
        self._validate(model)
        return ",".join(
            f.print_column_name()
            for f in model.fields
            if (select is None or select.is_selected(f)) and not self.is_aggregated(f)
        )

    def print_sql_column_names(self, model: DataModel, select: SqlSelect | None = None) -> str:
        """Print the projection, one column per model field.

        Aggregated fields become ``func(col) as col`` and fields that are not
        selected become a constant ``min('') as col`` so the column count and
        order match the model without adding them to GROUP BY.

        Raises:
            InvalidFieldError: If an aggregated field does not exist
        """
        self._validate(model)
        columns = []
        for f in model.fields:
            column = f.print_column_name()
            if select is not None and not select.is_selected(f):
                columns.append(f"min({f.dialect.print_sql_string('')}) as {column}")
            elif self.is_aggregated(f):
                function = self.functions[self.fields.index(f.name)]
                columns.append(f"{function.value}({column}) as {column}")
            else:
                columns.append(column)
        return ",".join(columns)


@dataclass(frozen=True, slots=True)
class SqlSelect:
    """Names of the fields to return."""

    columns: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str) -> SqlSelect:
        if not text:
            return cls()
        return cls(tuple(name.strip() for name in text.split(",") if name.strip()))

    def is_empty(self) -> bool:
        return len(self.columns) == 0

    def is_selected(self, data_field: DataField) -> bool:
        """Check if a field is returned; primary keys always are."""
        return (
            self.is_empty()
            or data_field.params.is_primary_key
            or data_field.name in self.columns
        )

    def validate(self, model: DataModel) -> None:
        """Check that every selected name is a model field.

        Raises:
            InvalidFieldError: If a name is not a field
        """
        for name in self.columns:
            _find_field(model, name, "select")


@dataclass(frozen=True, slots=True)
class SqlParams:
    """Parsed query modifiers of one request."""

    filter: SqlFilter | None = None
    order: SqlOrder | None = None
    limit: SqlLimit | None = None
    aggregate: SqlAggregate | None = None
    select: SqlSelect | None = None
