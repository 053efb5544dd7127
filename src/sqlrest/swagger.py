"""OpenAPI (Swagger) definition of REST APIs.

Builds an OpenAPI 3.1 document describing the collection and row paths of
each API together with a component schema of its data model:

    /<table>         GET (row array), POST (insert rows)
    /<table>/{id}    GET (one row), PUT (update), DELETE

Usage:
    definition = get_api_definition([employees_api, orders_api], title="HR")
    body = json.dumps(definition)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from .fields import DataField, FieldKind

if TYPE_CHECKING:
    from .api import Api

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.1.0"
RESULT_SCHEMA = "ApiResult"


def _schema_ref(name: str) -> dict[str, Any]:
    return {"$ref": f"#/components/schemas/{name}"}


def _json_content(schema: dict[str, Any]) -> dict[str, Any]:
    return {"application/json": {"schema": schema}}


def _result_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "success": {"type": "boolean"},
            "status_code": {"type": "number"},
            "status_message": {"type": "string"},
            "messages": {"type": "array", "items": {"type": "string"}},
        },
        "required": ["success", "status_code", "status_message", "messages"],
    }


def _field_schema(field: DataField, is_hashed: bool) -> dict[str, Any]:
    """Map a field kind to a JSON schema type, nullable unless NOT NULL."""
    if field.kind == FieldKind.BOOLEAN:
        type_name = "boolean"
    elif field.kind == FieldKind.NUMBER and not is_hashed:
        type_name = "number"
    else:
        type_name = "string"
    if field.params.is_not_null:
        return {"type": type_name}
    return {"anyOf": [{"type": type_name}, {"type": "null"}]}


def get_model_schema(api: Api) -> dict[str, Any]:
    """Build the component schema of an API's rows.

    The row id field is included as a read-only string. Primary key fields
    are required.

    Args:
        api: API whose data model is described

    Returns:
        JSON schema object
    """
    properties: dict[str, Any] = {
        api.settings.id_field: {"type": "string", "readOnly": True},
    }
    required: list[str] = []
    for field in api.model.fields:
        properties[field.name] = _field_schema(field, api.model.is_hashed(field))
        if field.params.is_primary_key:
            required.append(field.name)
    return {"type": "object", "properties": properties, "required": required}


def _id_parameter() -> dict[str, Any]:
    return {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}


def _operation(
    method: str, table_name: str, has_id: bool, has_body: bool, has_result_data: bool
) -> dict[str, Any]:
    if has_id:
        description = f"{method.upper()} {table_name} object"
        operation_id = method + table_name
    else:
        description = f"{method.upper()} {table_name} object array"
        operation_id = method + table_name + "All"

    if not has_result_data:
        response_schema = _schema_ref(RESULT_SCHEMA)
    elif has_id:
        response_schema = _schema_ref(table_name)
    else:
        response_schema = {"type": "array", "items": _schema_ref(table_name)}

    operation: dict[str, Any] = {
        "operationId": operation_id,
        "parameters": [_id_parameter()] if has_id else [],
        "responses": {
            "200": {"description": description, "content": _json_content(response_schema)}
        },
    }
    if has_body:
        operation["requestBody"] = {
            "required": True,
            "content": _json_content(_schema_ref(table_name)),
        }
    return operation


def _path_item(table_name: str, has_id: bool) -> dict[str, Any]:
    if has_id:
        return {
            "get": _operation("get", table_name, has_id, False, True),
            "put": _operation("put", table_name, has_id, True, False),
            "delete": _operation("delete", table_name, has_id, False, False),
        }
    return {
        "get": _operation("get", table_name, has_id, False, True),
        "post": _operation("post", table_name, has_id, True, False),
    }


def get_api_definition(
    apis: Iterable[Api], title: str = "", description: str = "", version: str = ""
) -> dict[str, Any]:
    """Build the OpenAPI definition of a set of APIs.

    Args:
        apis: APIs to describe, one table each
        title: Document title
        description: Document description
        version: Version of the described service

    Returns:
        OpenAPI document ready for ``json.dumps``
    """
    definition: dict[str, Any] = {
        "openapi": OPENAPI_VERSION,
        "info": {"title": title, "description": description, "version": version},
        "paths": {},
        "components": {"schemas": {RESULT_SCHEMA: _result_schema()}},
    }
    for api in apis:
        table_name = api.config.table_name
        if table_name in definition["components"]["schemas"]:
            logger.warning(f"Table '{table_name}' described twice, last API wins")
        definition["paths"][f"/{table_name}"] = _path_item(table_name, False)
        definition["paths"][f"/{table_name}/{{id}}"] = _path_item(table_name, True)
        definition["components"]["schemas"][table_name] = get_model_schema(api)
    return definition
