"""Row parser for request bodies.

Turns a request body into rows of the data model. Supported bodies are
JSON (object or array of objects), CSV with a header line, multipart
form-data and urlencoded parameters. Every string value passes through the
content type decoder, the id hasher (numeric primary and foreign keys) and
finally the field codec. Rows without any supplied value are dropped with a
warning.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from .cells import UNDEFINED, Cell, Row, empty_row
from .encoding import ContentType, decode
from .exceptions import InvalidValueError
from .fields import DataField
from .model import DataModel

logger = logging.getLogger(__name__)

_MULTIPART_HEADER_REGEX = re.compile(
    r'Content-Disposition: (form-data|file); name="([^"]+)"(; filename=.*)?', re.IGNORECASE
)


def create_rows(
    model: DataModel,
    data: str | bytes | bytearray | dict[str, Any] | list[Any],
    request_type: ContentType | None = None,
    multipart_boundary: str = "",
) -> list[Row]:
    """Create rows from a request body.

    Args:
        model: Data model of the API
        data: Body as text, raw bytes, an already decoded object or a list of
            rows and objects
        request_type: Content type of the body (JSON if not given)
        multipart_boundary: Boundary of a multipart body

    Returns:
        Parsed rows in model order

    Raises:
        ValueError: If the body is not valid for its content type
        InvalidValueError: If a value does not convert to its field type
    """
    if isinstance(data, dict):
        return [_create_row_from_object(model, data)]
    if isinstance(data, list):
        return [
            _create_row_from_object(model, item) if isinstance(item, dict) else list(item)
            for item in data
        ]
    if request_type is not None and not request_type.is_input_type():
        logger.error(f"Content type {request_type.value} can't be used as an input content type")
        return []
    if isinstance(data, (bytes, bytearray)):
        if request_type == ContentType.FORMDATA:
            return _create_rows_from_formdata(model, bytes(data), multipart_boundary)
        data = bytes(data).decode("utf-8")

    if request_type is None or request_type == ContentType.JSON:
        return _create_rows_from_json(model, data)
    if request_type == ContentType.CSV:
        return _create_rows_from_csv(model, data)
    if request_type == ContentType.FORMDATA:
        return _create_rows_from_formdata(model, data.encode("utf-8"), multipart_boundary)
    return _create_rows_from_urlencoded(model, data)


def _decode_value(
    model: DataModel, field: DataField, value: str, content_type: ContentType
) -> Cell:
    value = decode(value, content_type)
    if value and model.hashid is not None and model.is_hashed(field):
        value = model.hashid.decode(value)
    return field.deserialize_cell(value)


def _has_data(row: Row) -> bool:
    return any(cell is not UNDEFINED for cell in row)


def _create_row_from_object(model: DataModel, data: dict[str, Any]) -> Row:
    """Map an object of native values into a row without conversion."""
    return [data.get(f.name, UNDEFINED) for f in model.fields]


# ============================================================================
# JSON
# ============================================================================


def _create_row_from_json_object(model: DataModel, obj: Any) -> Row | None:
    if not isinstance(obj, dict):
        raise InvalidValueError(f"JSON row must be an object, got {type(obj).__name__}")
    row = empty_row(len(model.fields))
    for i, field in enumerate(model.fields):
        value = obj.get(field.name, UNDEFINED)
        if value is None or value is UNDEFINED:
            row[i] = value
        elif isinstance(value, (dict, list)):
            # one level only, nested values are stored as JSON text
            row[i] = json.dumps(value, ensure_ascii=False)
        elif isinstance(value, str):
            row[i] = _decode_value(model, field, value, ContentType.JSON)
        else:
            row[i] = value
    if not _has_data(row):
        logger.warning("Empty row skipped")
        return None
    return row


def _create_rows_from_json(model: DataModel, data: str) -> list[Row]:
    obj = json.loads(data)
    objects = obj if isinstance(obj, list) else [obj]
    rows = []
    for item in objects:
        row = _create_row_from_json_object(model, item)
        if row is not None:
            rows.append(row)
    return rows


# ============================================================================
# CSV
# ============================================================================


def _find_csv_line_end(data: str, start: int) -> int:
    """Find the end of a CSV line, ignoring line breaks inside quotes."""
    n = len(data)
    pos = start
    quote_open = False
    while pos < n:
        char = data[pos]
        if char == '"':
            if not quote_open:
                quote_open = True
            elif pos < n - 1 and data[pos + 1] == '"':
                pos += 1
            else:
                quote_open = False
        elif not quote_open and char in "\r\n":
            return pos
        pos += 1
    return n


def _csv_field(line: str, start: int, end: int, has_quotes: bool) -> str | None | Any:
    if has_quotes:
        return line[start + 1 : end - 1]
    if start == end:
        return UNDEFINED
    value = line[start:end]
    return None if value == "null" else value


def _parse_csv_line(line: str) -> list[Any]:
    """Split a CSV line into fields.

    Quoted fields lose their quotes (inner ``""`` is left for decoding), an
    empty field is UNDEFINED and an unquoted ``null`` is None.
    """
    fields: list[Any] = []
    n = len(line)
    start = 0
    quote_open = False
    has_quotes = False
    pos = 0
    while pos < n:
        char = line[pos]
        if char == '"':
            if not quote_open:
                quote_open = True
            elif pos < n - 1 and line[pos + 1] == '"':
                pos += 1
            else:
                quote_open = False
                has_quotes = True
        elif char == "," and not quote_open:
            fields.append(_csv_field(line, start, pos, has_quotes))
            start = pos + 1
            has_quotes = False
        pos += 1
    if n > 0:
        fields.append(_csv_field(line, start, n, has_quotes))
    return fields


def _create_rows_from_csv(model: DataModel, data: str) -> list[Row]:
    rows: list[Row] = []
    n = len(data)
    end = _find_csv_line_end(data, 0)
    headers = _parse_csv_line(data[:end])
    mapping = [headers.index(f.name) if f.name in headers else -1 for f in model.fields]
    if all(index < 0 for index in mapping):
        logger.warning("No CSV header matches a field, no rows parsed")
        return rows

    start = end
    while start < n:
        while start < n and data[start] in "\r\n":
            start += 1
        if start >= n:
            break
        end = _find_csv_line_end(data, start)
        values = _parse_csv_line(data[start:end])
        row = empty_row(len(model.fields))
        for i, field in enumerate(model.fields):
            j = mapping[i]
            if j < 0 or j >= len(values):
                continue
            value = values[j]
            if value is None or value is UNDEFINED:
                row[i] = value
            else:
                row[i] = _decode_value(model, field, value, ContentType.CSV)
        if _has_data(row):
            rows.append(row)
        else:
            logger.warning("Empty row skipped")
        start = end
    return rows


# ============================================================================
# Multipart form-data
# ============================================================================


def _create_rows_from_formdata(model: DataModel, data: bytes, multipart_boundary: str) -> list[Row]:
    if not multipart_boundary:
        logger.warning("Multipart body without a boundary skipped")
        return []
    delimiter = multipart_boundary.encode("utf-8")
    pos = data.find(delimiter)
    if pos < 0:
        logger.warning("Multipart boundary not found in body")
        return []
    if pos >= 2 and data[pos - 2 : pos] == b"--":
        delimiter = b"--" + delimiter
        pos -= 2

    row = empty_row(len(model.fields))
    while pos >= 0:
        part_start = pos + len(delimiter)
        if data.startswith(b"--", part_start):
            break
        part_start += 2
        next_pos = data.find(delimiter, part_start)
        part_end = next_pos if next_pos >= 0 else len(data)
        _parse_formdata_part(model, data[part_start:part_end], row)
        pos = next_pos

    if not _has_data(row):
        logger.warning("Empty row skipped")
        return []
    return [row]


def _parse_formdata_part(model: DataModel, part: bytes, row: Row) -> None:
    header_end = part.find(b"\r\n\r\n")
    if header_end < 0:
        logger.warning("Unsupported block without headers skipped")
        return
    header_lines = part[:header_end].decode("utf-8").split("\r\n")
    header_match = _MULTIPART_HEADER_REGEX.match(header_lines[0])
    if not header_match:
        logger.warning(f"Unsupported block skipped: {header_lines[0]}")
        return

    field_name = header_match.group(2)
    is_file = header_match.group(3) is not None
    field_index = model.find_field_index_by_name(field_name)
    if field_index < 0:
        logger.warning(f"Form field '{field_name}' not found and skipped")
        return

    is_base64 = False
    for line in header_lines[1:]:
        if line.lower().startswith("content-type:") and "multipart/mixed" in line.lower():
            logger.warning(f"Mixed multipart block for '{field_name}' not supported and skipped")
            return
        if line.lower().startswith("content-transfer-encoding:") and "BASE64" in line.upper():
            is_base64 = True

    field = model.fields[field_index]
    body = part[header_end + 4 :]
    if body.endswith(b"\r\n"):
        body = body[:-2]
    if not body:
        row[field_index] = None
    elif is_file and not is_base64:
        row[field_index] = bytes(body)
    elif is_file:
        value = decode(body.decode("utf-8").strip(), ContentType.FORMDATA)
        row[field_index] = field.deserialize_cell(value)
    else:
        value = body.decode("utf-8").strip()
        row[field_index] = _decode_value(model, field, value, ContentType.FORMDATA)


# ============================================================================
# URL-encoded
# ============================================================================


def _create_rows_from_urlencoded(model: DataModel, data: str) -> list[Row]:
    row = empty_row(len(model.fields))
    for param in data.strip().split("&"):
        parts = param.split("=")
        if len(parts) != 2:
            continue
        key = decode(parts[0].replace("+", "%20"), ContentType.URLENCODE)
        field_index = model.find_field_index_by_name(key)
        if field_index < 0:
            logger.info(f"Param field '{key}' not found")
            continue
        if parts[1] == "null":
            row[field_index] = None
            continue
        field = model.fields[field_index]
        value = parts[1].replace("+", "%20")
        row[field_index] = _decode_value(model, field, value, ContentType.URLENCODE)
    if not _has_data(row):
        logger.warning("Empty row skipped")
        return []
    return [row]
