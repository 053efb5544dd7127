"""Model set writer.

A ``ModelSet`` binds a data model to a result cursor and serializes the
rows as JSON, CSV, multipart form-data, urlencoded parameters or an HTML
template. Every serialized row starts with the synthesized row id built
from the primary key values.
"""

from __future__ import annotations

import logging
import math

from .cells import UNDEFINED, Cell, Row
from .db.backend import DataSet
from .encoding import ContentType, encode
from .fields import DataField, DateFormatter, FieldKind, Serialized
from .model import DataModel
from .sql_params import SqlParams

logger = logging.getLogger(__name__)

MULTIPART_BOUNDARY = "---------SqlRestMultipartBoundary35424568"

_ID_PLACEHOLDER = "###sqlrest_temporary_row_id###"


def _is_number_text(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


class ModelSet:
    """Rows of a data model ready for serialization.

    The cursor is forward-only, so each ``write_*`` call consumes the rows it
    writes.

    Attributes:
        model: Data model of the rows
        dataset: Result cursor
        params: Query modifiers used to produce the rows (select, aggregate)
        date_formatter: Optional formatter for datetime fields
    """

    def __init__(
        self,
        model: DataModel,
        dataset: DataSet,
        params: SqlParams | None = None,
        date_formatter: DateFormatter | None = None,
    ):
        self.model = model
        self.dataset = dataset
        self.params = params or SqlParams()
        self.date_formatter = date_formatter

    @property
    def messages(self) -> list[str]:
        return self.dataset.messages

    def _is_selected(self, field: DataField) -> bool:
        return self.params.select is None or self.params.select.is_selected(field)

    def _is_aggregated(self, field: DataField) -> bool:
        return self.params.aggregate is not None and self.params.aggregate.is_aggregated(field)

    def _is_hashed(self, field: DataField) -> bool:
        return self.model.is_hashed(field) and not self._is_aggregated(field)

    def _serialize(self, field: DataField, cell: Cell) -> Serialized:
        if cell is UNDEFINED:
            return UNDEFINED
        if self.date_formatter is not None:
            value = field.serialize_cell_with_locale(cell, self.date_formatter)
        else:
            value = field.serialize_cell(cell)
        decimals = self.model.config.number_decimals
        if (
            isinstance(value, str)
            and decimals is not None
            and field.kind == FieldKind.NUMBER
            and not field.params.is_primary_key
            and not self._is_hashed(field)
            and _is_number_text(value)
        ):
            value = f"{float(value):.{decimals}f}"
        return value

    def _encode_and_hash_field_value(
        self,
        field: DataField,
        value: str,
        content_type: ContentType,
        primary_key_values: list[str],
        row_id_seed: str,
    ) -> str:
        if value and self._is_hashed(field) and self.model.hashid is not None:
            value = self.model.hashid.encode(value, field.name + " " + row_id_seed)
        if field.params.is_primary_key:
            primary_key_values.append(value)
        return encode(value, content_type)

    def _row_id_seed(self, row: Row) -> str:
        return " ".join(self.model.get_row_primary_key_values(row))

    # ========================================================================
    # JSON
    # ========================================================================

    def _write_row_json(self, row: Row) -> str:
        row_id_seed = self._row_id_seed(row)
        primary_key_values: list[str] = []
        json_row = ""
        for i, f in enumerate(self.model.fields):
            if not self._is_selected(f):
                continue
            value = self._serialize(f, row[i] if i < len(row) else UNDEFINED)
            if not isinstance(value, str) and f.params.is_primary_key:
                primary_key_values.append("")
            if value is UNDEFINED:
                logger.debug(f"Undefined value of '{f.name}' skipped")
            elif value is None:
                json_row += "," + encode(f.name, ContentType.JSON) + ":null"
            else:
                is_value = f.kind == FieldKind.BOOLEAN or (
                    f.kind == FieldKind.NUMBER
                    and not self._is_hashed(f)
                    and _is_number_text(value)
                )
                encoded = self._encode_and_hash_field_value(
                    f, value, ContentType.JSON, primary_key_values, row_id_seed
                )
                if is_value:
                    encoded = encoded[1:-1]
                json_row += "," + encode(f.name, ContentType.JSON) + ":" + encoded
        row_id = self.model.settings.print_row_id(primary_key_values)
        return (
            "{"
            + encode(self.model.settings.id_field, ContentType.JSON)
            + ":"
            + encode(row_id, ContentType.JSON)
            + json_row
            + "}"
        )

    async def _write_string_json(self) -> str:
        rows = []
        while not self.dataset.is_eof():
            rows.append(self._write_row_json(self.dataset.get_row()))
            await self.dataset.next()
        return "[\r\n" + ",\r\n".join(rows) + "\r\n]"

    # ========================================================================
    # CSV
    # ========================================================================

    def _write_header_csv(self) -> str:
        names = [self.model.settings.id_field]
        names.extend(f.name for f in self.model.fields if self._is_selected(f))
        return ",".join(encode(name, ContentType.CSV) for name in names)

    def _write_row_csv(self, row: Row) -> str:
        row_id_seed = self._row_id_seed(row)
        primary_key_values: list[str] = []
        csv_row = ""
        for i, f in enumerate(self.model.fields):
            if not self._is_selected(f):
                continue
            value = self._serialize(f, row[i] if i < len(row) else UNDEFINED)
            if not isinstance(value, str) and f.params.is_primary_key:
                primary_key_values.append("")
            if value is None or value is UNDEFINED:
                csv_row += "," + encode(value, ContentType.CSV)
            else:
                csv_row += "," + self._encode_and_hash_field_value(
                    f, value, ContentType.CSV, primary_key_values, row_id_seed
                )
        row_id = self.model.settings.print_row_id(primary_key_values)
        return encode(row_id, ContentType.CSV) + csv_row

    async def _write_string_csv(self) -> str:
        lines = [self._write_header_csv()]
        while not self.dataset.is_eof():
            lines.append(self._write_row_csv(self.dataset.get_row()))
            await self.dataset.next()
        return "\r\n".join(lines)

    # ========================================================================
    # Multipart form-data
    # ========================================================================

    @staticmethod
    def _write_formdata_parameter_block(name: str, value: str | None) -> str:
        block = f'{MULTIPART_BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n'
        if value is not None:
            block += value + "\r\n"
        return block

    @staticmethod
    def _write_formdata_file_block(name: str, value: str) -> str:
        return (
            f"{MULTIPART_BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"; filename="{name}"\r\n'
            "Content-Type: application/octet-stream\r\n"
            "Content-Transfer-Encoding: BASE64\r\n\r\n"
            f"{value}\r\n"
        )

    def _write_row_formdata(self, row: Row) -> str:
        row_id_seed = self._row_id_seed(row)
        primary_key_values: list[str] = []
        blocks = []
        for i, f in enumerate(self.model.fields):
            if not self._is_selected(f):
                continue
            value = self._serialize(f, row[i] if i < len(row) else UNDEFINED)
            if not isinstance(value, str) and f.params.is_primary_key:
                primary_key_values.append("")
            if value is UNDEFINED:
                logger.debug(f"Undefined value of '{f.name}' skipped")
            elif value is None:
                blocks.append(self._write_formdata_parameter_block(f.name, None))
            else:
                encoded = self._encode_and_hash_field_value(
                    f, value, ContentType.FORMDATA, primary_key_values, row_id_seed
                )
                if f.kind == FieldKind.BLOB:
                    blocks.append(self._write_formdata_file_block(f.name, encoded))
                else:
                    blocks.append(self._write_formdata_parameter_block(f.name, encoded))
        row_id = self.model.settings.print_row_id(primary_key_values)
        id_block = self._write_formdata_parameter_block(self.model.settings.id_field, row_id)
        return id_block + "".join(blocks) + MULTIPART_BOUNDARY + "--\r\n"

    async def _write_string_formdata(self) -> str:
        if self.dataset.is_eof():
            return ""
        result = self._write_row_formdata(self.dataset.get_row())
        await self.dataset.next()
        if not self.dataset.is_eof():
            logger.warning(
                f"Content type {ContentType.FORMDATA.value} has no multirow form, "
                "only the first row was written"
            )
        return result

    # ========================================================================
    # URL-encoded
    # ========================================================================

    def _write_row_urlencode(self, row: Row) -> str:
        row_id_seed = self._row_id_seed(row)
        primary_key_values: list[str] = []
        params = []
        for i, f in enumerate(self.model.fields):
            if not self._is_selected(f):
                continue
            value = self._serialize(f, row[i] if i < len(row) else UNDEFINED)
            if not isinstance(value, str) and f.params.is_primary_key:
                primary_key_values.append("")
            if value is UNDEFINED:
                continue
            if value is None:
                encoded = encode(None, ContentType.URLENCODE)
            else:
                encoded = self._encode_and_hash_field_value(
                    f, value, ContentType.URLENCODE, primary_key_values, row_id_seed
                )
            params.append(encode(f.name, ContentType.URLENCODE) + "=" + encoded)
        row_id = self.model.settings.print_row_id(primary_key_values)
        id_param = (
            encode(self.model.settings.id_field, ContentType.URLENCODE)
            + "="
            + encode(row_id, ContentType.URLENCODE)
        )
        return "&".join([id_param, *params])

    async def _write_string_urlencode(self) -> str:
        result = ""
        line_count = 0
        while not self.dataset.is_eof():
            result += self._write_row_urlencode(self.dataset.get_row()) + "\r\n"
            await self.dataset.next()
            line_count += 1
        if line_count > 1:
            logger.warning(
                f"Content type {ContentType.URLENCODE.value} does not officially "
                "support multiline content"
            )
        return result

    # ========================================================================
    # Public API
    # ========================================================================

    async def write_string(self, content_type: ContentType = ContentType.JSON) -> str:
        """Serialize the remaining rows in the given format.

        Multipart form-data only writes the current row.

        Args:
            content_type: Output content type

        Returns:
            Serialized rows, empty string for an unsupported content type
        """
        if content_type == ContentType.JSON:
            return await self._write_string_json()
        if content_type == ContentType.CSV:
            return await self._write_string_csv()
        if content_type == ContentType.FORMDATA:
            return await self._write_string_formdata()
        if content_type == ContentType.URLENCODE:
            return await self._write_string_urlencode()
        logger.error(
            f"Content type {content_type.value} can't be written as a string, use write_html"
        )
        return ""

    async def write_html(self, template: str) -> str:
        """Render the remaining rows through an HTML template.

        The template is repeated for each row with ``###field###`` tags
        replaced by the HTML-escaped field values and ``###<id field>###`` by
        the row id. Tags of fields that are not selected are removed.

        Args:
            template: HTML template of one row

        Returns:
            Rendered rows, each followed by CRLF
        """
        html = ""
        id_tag = f"###{self.model.settings.id_field}###"
        while not self.dataset.is_eof():
            row = self.dataset.get_row()
            row_id_seed = self._row_id_seed(row)
            primary_key_values: list[str] = []
            html_row = template.replace(id_tag, _ID_PLACEHOLDER)
            for i, f in enumerate(self.model.fields):
                tag = f"###{f.name}###"
                if not self._is_selected(f):
                    html_row = html_row.replace(tag, "")
                    continue
                value = self._serialize(f, row[i] if i < len(row) else UNDEFINED)
                if not isinstance(value, str) and f.params.is_primary_key:
                    primary_key_values.append("")
                if isinstance(value, str):
                    encoded = self._encode_and_hash_field_value(
                        f, value, ContentType.HTML, primary_key_values, row_id_seed
                    )
                else:
                    encoded = encode(value, ContentType.HTML)
                html_row = html_row.replace(tag, encoded)
            row_id = self.model.settings.print_row_id(primary_key_values)
            html += html_row.replace(_ID_PLACEHOLDER, encode(row_id, ContentType.HTML)) + "\r\n"
            await self.dataset.next()
        return html

    def get_value_by_field_name(self, field_name: str, serialize: bool = False) -> Cell:
        """Get a field value of the current row.

        Args:
            field_name: Name of the field
            serialize: Return the serialized string instead of the raw cell

        Returns:
            Value, UNDEFINED if there are no more rows or no such field
        """
        if self.dataset.is_eof():
            return UNDEFINED
        field_index = self.model.find_field_index_by_name(field_name)
        if field_index < 0:
            return UNDEFINED
        row = self.dataset.get_row()
        cell = row[field_index] if field_index < len(row) else UNDEFINED
        if serialize:
            return self.model.fields[field_index].serialize_cell(cell)
        return cell
