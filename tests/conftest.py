"""Shared test configuration for sqlrest tests.

Provides:
- A reversible prefix id hasher
- An in-memory employee data model with every field kind
- A connected SQLite backend with a populated employees table
"""

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from sqlrest.config import ApiConfig, RestSettings
from sqlrest.db.backend import DatabaseBackend, DataSet, MemoryDataSet
from sqlrest.db.dialects import SqliteDialect
from sqlrest.db.sqlite_backend import SqliteBackend
from sqlrest.fields import FieldKind, FieldParams
from sqlrest.hashid import IdHasher
from sqlrest.model import DataModel

EMPLOYEES_SCHEMA = """CREATE TABLE employees (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name VARCHAR(10) NOT NULL,
    age INTEGER,
    active BOOLEAN,
    photo BLOB,
    hired DATETIME,
    _secret TEXT
)"""

EMPLOYEES_DATA = """
INSERT INTO employees (id, name, age, active, photo, hired, _secret)
    VALUES (1, 'Alice', 30, 1, NULL, '2024-01-02T03:04:05.000', 'x');
INSERT INTO employees (id, name, age, active, photo, hired, _secret)
    VALUES (2, 'Bob', 45, 0, X'0001', NULL, 'y');
"""


class PrefixHasher:
    """Reversible hasher writing ids as ``H<value>``."""

    def encode(self, value: str, seed: str = "") -> str:
        return "H" + value

    def decode(self, value: str) -> str:
        return value.removeprefix("H")


class MemoryBackend(DatabaseBackend):
    """Backend that returns canned rows and records executed SQL."""

    engine = SqliteDialect.engine

    def __init__(self, rows: list[list] | None = None) -> None:
        self.dialect = SqliteDialect()
        self.rows = rows or []
        self.statements: list[str] = []

    @property
    def is_connected(self) -> bool:
        return True

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def sql_select(self, sql: str) -> DataSet:
        self.statements.append(sql)
        return MemoryDataSet(self.rows)

    async def sql_exec(self, sql: str) -> DataSet:
        self.statements.append(sql)
        return MemoryDataSet()

    async def initialize_datamodel(self, model: DataModel) -> None:
        pass


def build_employee_model(
    hashid: IdHasher | None = None,
    config: ApiConfig | None = None,
    settings: RestSettings | None = None,
) -> DataModel:
    """Build the employees model by hand, one field of every kind."""
    model = DataModel(
        MemoryBackend(), config or ApiConfig(table_name="employees"), settings, hashid
    )
    model.add_field(
        model.create_field(
            "id",
            FieldKind.NUMBER,
            "INTEGER",
            params=FieldParams(is_primary_key=True, is_auto_inc=True, is_not_null=True),
        )
    )
    model.add_field(
        model.create_field(
            "name", FieldKind.STRING, "TEXT", 20, FieldParams(is_not_null=True)
        )
    )
    model.add_field(model.create_field("age", FieldKind.NUMBER, "INTEGER"))
    model.add_field(model.create_field("active", FieldKind.BOOLEAN, "BOOLEAN"))
    model.add_field(model.create_field("photo", FieldKind.BLOB, "BLOB"))
    model.add_field(model.create_field("hired", FieldKind.DATETIME, "DATETIME"))
    model.add_field(
        model.create_field(
            "manager_id", FieldKind.NUMBER, "INTEGER", params=FieldParams(is_foreign_key=True)
        )
    )
    return model


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def hasher() -> PrefixHasher:
    """Create a reversible id hasher."""
    return PrefixHasher()


@pytest.fixture
def model() -> DataModel:
    """Create the employees model without id hashing."""
    return build_employee_model()


@pytest.fixture
def hashed_model(hasher: PrefixHasher) -> DataModel:
    """Create the employees model with id hashing."""
    return build_employee_model(hashid=hasher)


@pytest.fixture
def make_model() -> Callable[..., DataModel]:
    """Factory for employee models with custom options."""
    return build_employee_model


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    """Create temporary database path."""
    return str(tmp_path / "employees.db")


@pytest.fixture
async def sqlite_db(db_path: str) -> AsyncIterator[SqliteBackend]:
    """Create a connected SQLite backend with a populated employees table."""
    backend = SqliteBackend(db_path)
    await backend.connect()
    await backend.sql_exec(EMPLOYEES_SCHEMA + ";" + EMPLOYEES_DATA)
    yield backend
    await backend.disconnect()
