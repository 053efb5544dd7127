"""HTTP request adapter.

Extracts the query modifiers and the request / response content types from
an incoming HTTP request.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from .config import RestSettings
from .encoding import ContentType
from .sql_params import SqlAggregate, SqlLimit, SqlOrder, SqlParams, SqlSelect, parse_filter

logger = logging.getLogger(__name__)


@dataclass
class ApiRequest:
    """Parsed parameters of one API request.

    Attributes:
        sql_params: Filter, order, limit, aggregate and select modifiers
        request_type: Content type of the request body
        response_type: Preferred content type of the response
        multipart_boundary: Boundary of a multipart body
    """

    sql_params: SqlParams = field(default_factory=SqlParams)
    request_type: ContentType = ContentType.JSON
    response_type: ContentType = ContentType.JSON
    multipart_boundary: str = ""


def _parse_request_type(content_type: str | None) -> tuple[ContentType, str]:
    request_type = ContentType.from_header(content_type)
    if request_type == ContentType.FORMDATA and content_type:
        parts = content_type.split("boundary=", 1)
        boundary = parts[1].split(";", 1)[0].strip().strip('"') if len(parts) == 2 else ""
        return request_type, boundary
    if request_type in (ContentType.CSV, ContentType.URLENCODE):
        return request_type, ""
    return ContentType.JSON, ""


def _parse_response_type(accept: str | None) -> ContentType:
    for accept_type in (accept or "").split(","):
        response_type = ContentType.from_header(accept_type)
        if response_type is not None:
            return response_type
    return ContentType.JSON


def create_params_from_mapping(
    params: Mapping[str, str],
    headers: Mapping[str, str] | None = None,
    settings: RestSettings | None = None,
) -> ApiRequest:
    """Create request parameters from query parameters and headers.

    Args:
        params: Query parameters
        headers: Request headers with case-insensitive lookup of
            ``content-type`` and ``accept`` (e.g. ``httpx.Headers``)
        settings: Parameter names (defaults if not given)

    Returns:
        Parsed request parameters

    Raises:
        FilterSyntaxError: If a modifier string is malformed
    """
    settings = settings or RestSettings()
    headers = headers or {}

    sql_filter = params.get(settings.filter_param)
    order = params.get(settings.order_param)
    limit = params.get(settings.limit_param)
    aggregate = params.get(settings.aggregate_param)
    select = params.get(settings.select_param)
    sql_params = SqlParams(
        filter=parse_filter(sql_filter) if sql_filter else None,
        order=SqlOrder.parse(order) if order else None,
        limit=SqlLimit.parse(limit) if limit else None,
        aggregate=SqlAggregate.parse(aggregate) if aggregate else None,
        select=SqlSelect.parse(select) if select else None,
    )

    request_type, boundary = _parse_request_type(
        headers.get("content-type") or headers.get("Content-Type")
    )
    response_type = _parse_response_type(headers.get("accept") or headers.get("Accept"))
    logger.debug(f"Request type {request_type.value}, response type {response_type.value}")
    return ApiRequest(
        sql_params=sql_params,
        request_type=request_type,
        response_type=response_type,
        multipart_boundary=boundary,
    )


def create_params_from_request(
    request: httpx.Request, settings: RestSettings | None = None
) -> ApiRequest:
    """Create request parameters from an HTTP request.

    Raises:
        FilterSyntaxError: If a modifier string is malformed
    """
    return create_params_from_mapping(request.url.params, request.headers, settings)
