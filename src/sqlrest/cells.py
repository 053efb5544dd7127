"""Cell and row types shared by the codec, parser and writer.

A cell holds one column value. ``None`` is an explicit SQL NULL while
``UNDEFINED`` marks a value that was never supplied and must be left out
of both SQL statements and serialized output.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Final


class _Undefined:
    """Falsy singleton for a missing cell value."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __copy__(self) -> _Undefined:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> _Undefined:
        return self

    def __reduce__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Final = _Undefined()

# Values a row may carry in one position
Cell = str | int | float | bool | datetime | bytes | _Undefined | None

# Positionally indexed cells, index i matching DataModel field i
Row = list[Cell]


def empty_row(size: int) -> Row:
    """Create a row of ``size`` undefined cells."""
    return [UNDEFINED] * size
