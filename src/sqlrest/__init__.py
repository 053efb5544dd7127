"""REST access to SQL tables.

sqlrest turns HTTP requests into SQL statements for one table per API and
serializes the results as JSON, CSV, multipart form-data or urlencoded
rows.

Usage:
    from sqlrest import ApiConfig, create_api, create_params_from_request
    from sqlrest.db import SqliteBackend

    backend = SqliteBackend("/data/app.db")
    await backend.connect()
    api = await create_api(backend, ApiConfig(table_name="employees"))

    request = create_params_from_request(http_request)
    result = await api.do_request("GET", "", None, request)
    if result.data is not None:
        body = await result.data.write_string(request.response_type)
"""

from .api import Api, create_api
from .cells import UNDEFINED, Cell, Row
from .config import ApiConfig, ApiConfigLoader, RestSettings, SqlRestConfig, configure_logging
from .encoding import ContentType
from .exceptions import (
    FilterSyntaxError,
    InvalidFieldError,
    InvalidValueError,
    RowValidationError,
    SqlConnectionError,
    SqlRestError,
    SqlSchemaError,
)
from .fields import DataField, FieldKind, FieldParams
from .hashid import IdHasher
from .model import DataModel
from .model_set import ModelSet
from .parser import create_rows
from .request import ApiRequest, create_params_from_mapping, create_params_from_request
from .result import ApiResult
from .sql_params import (
    SqlAggregate,
    SqlFilter,
    SqlLimit,
    SqlOrder,
    SqlParams,
    SqlSelect,
    parse_filter,
)
from .swagger import get_api_definition

__version__ = "0.1.0"

__all__ = [
    "UNDEFINED",
    "Api",
    "ApiConfig",
    "ApiConfigLoader",
    "ApiRequest",
    "ApiResult",
    "Cell",
    "ContentType",
    "DataField",
    "DataModel",
    "FieldKind",
    "FieldParams",
    "FilterSyntaxError",
    "IdHasher",
    "InvalidFieldError",
    "InvalidValueError",
    "ModelSet",
    "RestSettings",
    "Row",
    "RowValidationError",
    "SqlAggregate",
    "SqlConnectionError",
    "SqlFilter",
    "SqlLimit",
    "SqlOrder",
    "SqlParams",
    "SqlRestConfig",
    "SqlRestError",
    "SqlSchemaError",
    "SqlSelect",
    "configure_logging",
    "create_api",
    "create_params_from_mapping",
    "create_params_from_request",
    "create_rows",
    "get_api_definition",
    "parse_filter",
]
