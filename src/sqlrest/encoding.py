"""Content types and per-content-type string encoding.

Serialized cell values are plain strings (or ``None`` / ``UNDEFINED``).
Each wire format has its own way of writing those three states, for
example CSV writes ``null`` for ``None`` and nothing for ``UNDEFINED``
while JSON writes ``null`` for both.
"""

from __future__ import annotations

import html
import json
from enum import Enum
from urllib.parse import quote, unquote

from .cells import UNDEFINED, _Undefined

# Characters JavaScript's encodeURIComponent leaves untouched besides alphanumerics
URI_COMPONENT_SAFE = "-_.!~*'()"


class ContentType(str, Enum):
    """Supported wire content types."""

    JSON = "application/json"
    CSV = "text/csv"
    FORMDATA = "multipart/form-data"
    URLENCODE = "application/x-www-form-urlencoded"
    HTML = "text/html"

    def is_input_type(self) -> bool:
        """Check if the content type can be parsed from a request body."""
        return self != ContentType.HTML

    @classmethod
    def from_header(cls, value: str | None) -> ContentType | None:
        """Match a header value (parameters such as boundary ignored)."""
        if not value:
            return None
        media_type = value.split(";", 1)[0].strip().lower()
        for content_type in cls:
            if content_type.value == media_type:
                return content_type
        return None


def encode_uri_component(value: str) -> str:
    """Percent-encode like JavaScript's ``encodeURIComponent``."""
    return quote(value, safe=URI_COMPONENT_SAFE)


def encode(value: str | None | _Undefined, content_type: ContentType) -> str:
    """Encode a serialized cell value for the given content type.

    Args:
        value: Serialized value, ``None`` for NULL or ``UNDEFINED``
        content_type: Target content type

    Returns:
        Encoded string
    """
    if content_type == ContentType.JSON:
        if value is None or value is UNDEFINED:
            return "null"
        return json.dumps(value, ensure_ascii=False)

    if content_type == ContentType.CSV:
        if value is UNDEFINED:
            return ""
        if value is None:
            return "null"
        return '"' + str(value).replace('"', '""') + '"'

    if content_type == ContentType.FORMDATA:
        if value is None or value is UNDEFINED:
            return ""
        return str(value)

    if content_type == ContentType.URLENCODE:
        if value is UNDEFINED:
            return ""
        if value is None:
            return "null"
        return encode_uri_component(str(value))

    if content_type == ContentType.HTML:
        if value is None or value is UNDEFINED:
            return ""
        return html.escape(str(value), quote=True).replace("&#x27;", "&#039;")

    return str(value) if value else ""


def decode(value: str, content_type: ContentType) -> str:
    """Decode a content type formatted string back to a serialized value."""
    if content_type == ContentType.CSV:
        return value.replace('""', '"')
    if content_type == ContentType.URLENCODE:
        return unquote(value)
    if content_type == ContentType.HTML:
        return html.unescape(value)
    return value


def split_by_brackets(
    text: str,
    include_between: bool,
    include_trailing: bool,
    start_bracket: str = "(",
    end_bracket: str = ")",
) -> list[str]:
    """Split a string by its top level brackets.

    ``split_by_brackets("a(bc(d))ef(gh)kl", True, True)`` returns
    ``["a", "bc(d)", "ef", "gh", "kl"]``.

    Args:
        text: String to split
        include_between: Include the top level text between bracket blocks
        include_trailing: Include a final block that lacks its end bracket
        start_bracket: Opening bracket character
        end_bracket: Closing bracket character

    Returns:
        Inner contents of top level blocks, optionally interleaved with the
        text between them
    """
    result: list[str] = []
    depth = 0
    start = 0
    for pos, char in enumerate(text):
        if char == start_bracket:
            if depth == 0:
                if pos > start and include_between:
                    result.append(text[start:pos])
                start = pos + 1
            depth += 1
        elif char == end_bracket:
            depth -= 1
            if depth == 0:
                result.append(text[start:pos])
                start = pos + 1
    end = len(text)
    if end > start and (
        (include_between and depth == 0) or (include_trailing and depth > 0)
    ):
        result.append(text[start:end])
    return result


def split_excluding_brackets(
    text: str, delimiter: str, start_bracket: str = "(", end_bracket: str = ")"
) -> list[str]:
    """Split by delimiter, ignoring delimiters inside brackets.

    ``split_excluding_brackets("a,(b,c),d", ",")`` returns ``["a", "(b,c)", "d"]``.
    """
    result: list[str] = []
    depth = 0
    start = 0
    for pos, char in enumerate(text):
        if char == start_bracket:
            depth += 1
        elif char == end_bracket:
            depth -= 1
        elif char == delimiter and depth == 0:
            result.append(text[start:pos])
            start = pos + 1
    if len(text) > start:
        result.append(text[start:])
    return result
