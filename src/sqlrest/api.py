"""Request orchestrator.

``Api`` maps REST requests on one table to SQL:

    GET     select, result rows returned as a ModelSet
    POST    validate and insert each row of the body
    PUT     validate and update the row of the URL id (or every row in a batch)
    DELETE  delete the row of the URL id (or every row in a batch)

Failures never escape as exceptions; they are recorded in the returned
``ApiResult`` with an HTTP status code.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from .cells import UNDEFINED, Row
from .config import ApiConfig, RestSettings
from .db.backend import DatabaseBackend, DataSet
from .exceptions import RowValidationError, SqlConnectionError, SqlRestError
from .fields import DateFormatter, FieldKind
from .hashid import IdHasher
from .model import DataModel
from .model_set import ModelSet
from .parser import create_rows
from .request import ApiRequest
from .result import ApiResult

logger = logging.getLogger(__name__)

RequestData = str | bytes | dict[str, Any] | list[Any] | None


class Api:
    """REST API of one database table.

    The data model is empty until the backend has initialized it, use
    ``create_api`` to get a ready API.

    Attributes:
        db: Database backend
        config: API options
        settings: Id and parameter settings
        hashid: Optional id hashing capability
        model: Data model of the table
        date_formatter: Optional formatter for datetime output
    """

    def __init__(
        self,
        db: DatabaseBackend,
        config: ApiConfig,
        settings: RestSettings | None = None,
        hashid: IdHasher | None = None,
        date_formatter: DateFormatter | None = None,
    ):
        self.db = db
        self.config = config
        self.settings = settings or RestSettings()
        self.hashid = hashid
        self.date_formatter = date_formatter
        self.model = DataModel(db, config, self.settings, hashid)

    # ========================================================================
    # Validation
    # ========================================================================

    def _row_errors(self, row: Row, require_primary_key: bool) -> Iterator[tuple[str, str, bool]]:
        """Yield (field name, message, is_warning) for each problem of a row."""
        for i, f in enumerate(self.model.fields):
            value = row[i] if i < len(row) else UNDEFINED
            if value is None and (f.params.is_not_null or f.params.is_primary_key):
                yield f.name, f"Field '{f.name}' is not allowed to be NULL", False
            elif (
                value is UNDEFINED
                and require_primary_key
                and f.params.is_primary_key
                and not f.params.is_auto_inc
            ):
                message = f"Primary key '{f.name}' is not autoinc and missing from the data"
                yield f.name, message, False
            elif (
                value is not UNDEFINED
                and self.config.fail_on_update_on_autoinc
                and f.params.is_auto_inc
            ):
                yield f.name, f"Autoinc field '{f.name}' can't be updated", False
            elif f.kind == FieldKind.STRING and f.max_length > 0:
                length = len(str(value)) if value is not None and value is not UNDEFINED else 0
                if length > f.max_length:
                    message = f"Field '{f.name}' length ({length}) exceeds maximum ({f.max_length})"
                    if self.config.fail_on_oversized_values:
                        yield f.name, message + " and can't be set", False
                    else:
                        yield f.name, message + " and might truncate or fail", True

    def _validate_row(self, result: ApiResult, row: Row, require_primary_key: bool) -> None:
        for _, message, is_warning in self._row_errors(row, require_primary_key):
            if is_warning:
                result.add_warning(message, "validate_row")
            else:
                result.set_error(405, message, "validate_row")

    def validate_row(self, row: Row, require_primary_key: bool = False) -> None:
        """Validate a row against the field constraints.

        Oversized values only fail when ``fail_on_oversized_values`` is set.

        Raises:
            RowValidationError: On the first violated constraint
        """
        for field_name, message, is_warning in self._row_errors(row, require_primary_key):
            if not is_warning:
                raise RowValidationError(message, field_name)

    def _collect_valid_row(
        self, result: ApiResult, row: Row, require_primary_key: bool, operation: str
    ) -> bool:
        """Validate one row of a batch and record the outcome in the result.

        Returns:
            True if the row can be written
        """
        row_result = ApiResult()
        self._validate_row(row_result, row, require_primary_key)
        result.messages.extend(row_result.messages)
        if row_result.success:
            return True
        if self.config.fail_on_any_invalid_rows:
            result.set_error(row_result.status_code, row_result.status_message, operation)
        else:
            result.add_warning(f"Invalid row skipped: {row_result.status_message}", operation)
        return False

    # ========================================================================
    # Operations
    # ========================================================================

    def _parse_data(self, result: ApiResult, data: RequestData, request: ApiRequest) -> list[Row]:
        if data is None:
            return []
        try:
            return create_rows(self.model, data, request.request_type, request.multipart_boundary)
        except (ValueError, TypeError, SqlRestError) as e:
            result.set_error(400, f"Invalid data: {e}", "do_request")
            return []

    def _add_debug_sql(
        self, result: ApiResult, sql: str, operation: str, dataset: DataSet | None = None
    ) -> None:
        if not self.config.debug_on_error:
            return
        if dataset is not None:
            result.add_debug(f"SQL MESSAGES [{'|'.join(dataset.messages)}]", operation)
        result.add_debug(f"SQL [{sql}]", operation)

    def _handle_exception(self, result: ApiResult, e: Exception, sql: str, operation: str) -> None:
        if isinstance(e, SqlConnectionError):
            result.set_error(500, str(e), operation)
        elif isinstance(e, SqlRestError):
            result.set_error(400, f"Invalid request: {e}", operation)
        else:
            logger.exception(f"Unhandled exception in {operation}")
            result.set_error(500, f"Unhandled exception in {operation}: {e}", operation)
        self._add_debug_sql(result, sql, operation)

    async def _exec(self, result: ApiResult, sql: str, operation: str) -> None:
        dataset = await self.db.sql_exec(sql)
        if dataset.has_errors():
            result.set_error(500, dataset.get_first_error(), operation)
            self._add_debug_sql(result, sql, operation, dataset)

    async def _do_get(self, result: ApiResult, row_id: str, request: ApiRequest) -> None:
        sql = ""
        try:
            sql = self.model.print_sql_select(row_id, request.sql_params)
            dataset = await self.db.sql_select(sql)
            if dataset.has_errors():
                result.set_error(500, dataset.get_first_error(), "do_get")
                self._add_debug_sql(result, sql, "do_get", dataset)
            else:
                result.data = ModelSet(self.model, dataset, request.sql_params, self.date_formatter)
        except Exception as e:
            self._handle_exception(result, e, sql, "do_get")

    async def _do_post(self, result: ApiResult, rows: list[Row]) -> None:
        sql = ""
        try:
            for row in rows:
                require_key = self.config.fail_on_insert_without_key
                if self._collect_valid_row(result, row, require_key, "do_post"):
                    sql += self.model.print_sql_insert(row)
            if not result.success:
                return
            if not sql:
                result.set_error(405, "No valid rows for POST", "do_post")
                return
            await self._exec(result, sql, "do_post")
        except Exception as e:
            self._handle_exception(result, e, sql, "do_post")

    async def _do_put(self, result: ApiResult, row_id: str | None, rows: list[Row]) -> None:
        sql = ""
        try:
            for row in rows:
                if not self._collect_valid_row(result, row, False, "do_put"):
                    continue
                update_id = row_id or self.model.print_row_id(row, hash_values=True)
                sql += self.model.print_sql_update(update_id, row)
            if not result.success:
                return
            if not sql:
                result.set_error(405, "No valid rows for PUT", "do_put")
                return
            await self._exec(result, sql, "do_put")
        except Exception as e:
            self._handle_exception(result, e, sql, "do_put")

    async def _do_delete(
        self, result: ApiResult, row_id: str | None, rows: list[Row] | None
    ) -> None:
        sql = ""
        try:
            if rows is not None:
                for row in rows:
                    key_values = self.model.get_row_primary_key_values(row, hash_values=True)
                    if key_values and all(key_values):
                        sql += self.model.print_sql_delete(self.settings.print_row_id(key_values))
                    elif self.config.fail_on_any_invalid_rows:
                        result.set_error(
                            405, "Row without primary key values can't be deleted", "do_delete"
                        )
                    else:
                        result.add_warning("Row without primary key values skipped", "do_delete")
            elif row_id:
                sql = self.model.print_sql_delete(row_id)
            if not result.success:
                return
            if not sql:
                result.set_error(405, "No valid rows for DELETE", "do_delete")
                return
            await self._exec(result, sql, "do_delete")
        except Exception as e:
            self._handle_exception(result, e, sql, "do_delete")

    # ========================================================================
    # Public API
    # ========================================================================

    async def do_request(
        self,
        method: str,
        row_id: str = "",
        data: RequestData = None,
        request: ApiRequest | None = None,
    ) -> ApiResult:
        """Handle a REST request.

        Args:
            method: HTTP method (GET, POST, PUT or DELETE)
            row_id: Row id from the URL (required for PUT and DELETE,
                forbidden for POST)
            data: Request body as text, bytes, an object or a list of rows
            request: Parsed request parameters (defaults if not given)

        Returns:
            Result with status, messages and for GET the result rows
        """
        request = request or ApiRequest()
        method = method.upper()
        logger.debug(f"Request {method} {self.model.table_name} id='{row_id}'")
        result = ApiResult()

        rows: list[Row] = []
        if method in ("POST", "PUT"):
            rows = self._parse_data(result, data, request)
            if not result.success:
                return result

        if method == "GET":
            await self._do_get(result, row_id, request)
        elif method == "PUT":
            if not row_id:
                result.set_error(
                    400, "HTTP PUT method requires an URL id of the updated row", "do_request"
                )
            elif len(rows) != 1:
                result.set_error(
                    400, "HTTP PUT method requires exactly one row in the body data", "do_request"
                )
            else:
                await self._do_put(result, row_id, rows)
        elif method == "POST":
            if row_id:
                result.set_error(
                    400,
                    "HTTP POST method must not have an URL id as it creates a new row",
                    "do_request",
                )
            elif not rows:
                result.set_error(
                    400, "HTTP POST method requires at least one row in the body data", "do_request"
                )
            else:
                await self._do_post(result, rows)
        elif method == "DELETE":
            if not row_id:
                result.set_error(400, "HTTP DELETE method requires an id", "do_request")
            else:
                await self._do_delete(result, row_id, None)
        else:
            result.set_error(
                405, f"Unsupported HTTP method '{method}' for REST request", "do_request"
            )

        if not result.success:
            logger.info(result.print_log())
        return result

    async def do_batch_update(
        self,
        method: str,
        data: RequestData,
        request: ApiRequest | None = None,
    ) -> ApiResult:
        """Update or delete every row of the body, located by its primary key values.

        Args:
            method: HTTP method (PUT or DELETE)
            data: Request body with the rows
            request: Parsed request parameters (defaults if not given)

        Returns:
            Result with status and messages
        """
        request = request or ApiRequest()
        method = method.upper()
        logger.debug(f"Batch {method} {self.model.table_name}")
        result = ApiResult()
        if method not in ("PUT", "DELETE"):
            return result.set_error(
                405, f"Unsupported HTTP method '{method}' for batch update", "do_batch_update"
            )

        rows = self._parse_data(result, data, request)
        if not result.success:
            return result
        if method == "PUT":
            await self._do_put(result, None, rows)
        else:
            await self._do_delete(result, None, rows)

        if not result.success:
            logger.info(result.print_log())
        return result


async def create_api(
    db: DatabaseBackend,
    config: ApiConfig,
    settings: RestSettings | None = None,
    hashid: IdHasher | None = None,
    date_formatter: DateFormatter | None = None,
) -> Api:
    """Create an API and initialize its data model from the database schema.

    Raises:
        SqlSchemaError: If the table schema can't be read
    """
    api = Api(db, config, settings, hashid, date_formatter)
    await db.initialize_datamodel(api.model)
    logger.info(f"API for table {config.table_name}: {len(api.model.fields)} fields")
    return api
