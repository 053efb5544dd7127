"""Exception hierarchy for request translation and database access.

Parse and lookup errors fail closed: a filter, order or id that does not
match its grammar, names an unknown column or carries a value the column
codec rejects is never partially interpreted into SQL.
"""

from __future__ import annotations


class SqlRestError(Exception):
    """Base exception for sqlrest errors."""

    pass


class FilterSyntaxError(SqlRestError):
    """Parameter string does not match its grammar."""

    pass


class InvalidFieldError(SqlRestError):
    """Referenced column does not exist in the data model."""

    pass


class InvalidValueError(SqlRestError):
    """Value could not be converted by the column codec."""

    pass


class RowValidationError(SqlRestError):
    """Row violates a column constraint.

    Attributes:
        field_name: Name of the offending field
        status_code: HTTP status code reported for the violation
    """

    def __init__(self, message: str, field_name: str, status_code: int = 405):
        super().__init__(message)
        self.field_name = field_name
        self.status_code = status_code


class SqlConnectionError(SqlRestError):
    """Failed to establish database connection."""

    pass


class SqlSchemaError(SqlRestError):
    """Schema introspection failed or produced an unusable data model."""

    pass
