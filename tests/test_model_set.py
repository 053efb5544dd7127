"""Tests for serializing result rows with the model set writer."""

import json
from collections.abc import Callable

import pytest

from sqlrest.cells import UNDEFINED
from sqlrest.config import ApiConfig
from sqlrest.db.backend import MemoryDataSet
from sqlrest.encoding import ContentType
from sqlrest.model import DataModel
from sqlrest.model_set import MULTIPART_BOUNDARY, ModelSet
from sqlrest.parser import create_rows
from sqlrest.sql_params import SqlAggregate, SqlParams, SqlSelect

# Rows as read from SQLite
ALICE = [1, "Alice", 30, 1, b"\x00\x01", "2024-01-02T03:04:05", 7]
BOB = [2, 'Bob "B" <b>', UNDEFINED, 0, None, None, None]


def model_set(model: DataModel, *rows: list, params: SqlParams | None = None) -> ModelSet:
    return ModelSet(model, MemoryDataSet([list(row) for row in rows]), params)


def assert_same_values(model: DataModel, parsed: list, original: list) -> None:
    for i, f in enumerate(model.fields):
        assert f.serialize_cell(parsed[i]) == f.serialize_cell(original[i]), f.name


class TestWriteJson:
    """Test JSON output."""

    async def test_rows(self, model: DataModel) -> None:
        """Test value types, null and undefined."""
        result = await model_set(model, ALICE, BOB).write_string(ContentType.JSON)
        assert result == (
            '[\r\n{"_id_":"1","id":1,"name":"Alice","age":30,"active":true,"photo":"AAE=",'
            '"hired":"2024-01-02T03:04:05.000","manager_id":7},\r\n'
            '{"_id_":"2","id":2,"name":"Bob \\"B\\" <b>","active":false,"photo":null,'
            '"hired":null,"manager_id":null}\r\n]'
        )

    async def test_valid_json(self, model: DataModel) -> None:
        """Test the output parses as JSON."""
        result = await model_set(model, ALICE, BOB).write_string()
        rows = json.loads(result)
        assert rows[1]["name"] == 'Bob "B" <b>'
        assert "age" not in rows[1]
        assert rows[1]["photo"] is None

    async def test_empty(self, model: DataModel) -> None:
        """Test no rows writes an empty array."""
        assert json.loads(await model_set(model).write_string()) == []

    async def test_select(self, model: DataModel) -> None:
        """Test only selected fields and the key are written."""
        params = SqlParams(select=SqlSelect.parse("name"))
        result = await model_set(model, ALICE, params=params).write_string()
        assert json.loads(result) == [{"_id_": "1", "id": 1, "name": "Alice"}]

    async def test_hashed_keys(self, hashed_model: DataModel) -> None:
        """Test numeric keys are hashed and written as strings."""
        result = await model_set(hashed_model, ALICE).write_string()
        [row] = json.loads(result)
        assert row["_id_"] == "H1"
        assert row["id"] == "H1"
        assert row["manager_id"] == "H7"
        assert row["age"] == 30

    async def test_aggregated_key_not_hashed(self, hashed_model: DataModel) -> None:
        """Test an aggregated key is a count and not hashed."""
        params = SqlParams(aggregate=SqlAggregate.parse("count(id)"))
        result = await model_set(hashed_model, [2, *ALICE[1:]], params=params).write_string()
        [row] = json.loads(result)
        assert row["id"] == 2
        assert row["_id_"] == "2"

    async def test_number_decimals(self, make_model: Callable[..., DataModel]) -> None:
        """Test numbers are rounded to the configured decimals."""
        model = make_model(config=ApiConfig(table_name="employees", number_decimals=2))
        result = await model_set(model, ALICE).write_string()
        assert '"age":30.00' in result
        assert '"id":1,' in result

    async def test_non_numeric_text_in_number_column(self, model: DataModel) -> None:
        """Test text stored in a number column stays a JSON string."""
        row = [1, "A", "abc", 1, None, None, None]
        [written] = json.loads(await model_set(model, row).write_string())
        assert written["age"] == "abc"

    async def test_non_numeric_text_not_rounded(
        self, make_model: Callable[..., DataModel]
    ) -> None:
        """Test rounding leaves non-numeric text unchanged."""
        model = make_model(config=ApiConfig(table_name="employees", number_decimals=2))
        row = [1, "A", "abc", 1, None, None, None]
        [written] = json.loads(await model_set(model, row).write_string())
        assert written["age"] == "abc"

    async def test_date_formatter(self, model: DataModel) -> None:
        """Test a date formatter is applied to datetime fields."""

        class DayFormatter:
            def format(self, value):
                return value.strftime("%d.%m.%Y")

        writer = ModelSet(model, MemoryDataSet([list(ALICE)]), date_formatter=DayFormatter())
        [row] = json.loads(await writer.write_string())
        assert row["hired"] == "02.01.2024"


class TestWriteCsv:
    """Test CSV output."""

    async def test_rows(self, model: DataModel) -> None:
        """Test header, quoting, null and undefined."""
        result = await model_set(model, ALICE, BOB).write_string(ContentType.CSV)
        assert result == (
            '"_id_","id","name","age","active","photo","hired","manager_id"\r\n'
            '"1","1","Alice","30","true","AAE=","2024-01-02T03:04:05.000","7"\r\n'
            '"2","2","Bob ""B"" <b>",,"false",null,null,null'
        )

    async def test_header_respects_select(self, model: DataModel) -> None:
        """Test the header lists only selected fields."""
        params = SqlParams(select=SqlSelect.parse("age"))
        result = await model_set(model, ALICE, params=params).write_string(ContentType.CSV)
        assert result == '"_id_","id","age"\r\n"1","1","30"'

    async def test_round_trip(self, model: DataModel) -> None:
        """Test parsing written CSV reproduces the rows."""
        result = await model_set(model, ALICE, BOB).write_string(ContentType.CSV)
        parsed = create_rows(model, result, ContentType.CSV)
        assert len(parsed) == 2
        assert_same_values(model, parsed[0], ALICE)
        assert_same_values(model, parsed[1], BOB)


class TestWriteFormdata:
    """Test multipart form-data output."""

    async def test_row(self, model: DataModel) -> None:
        """Test id block, parameter blocks and a base64 file block."""
        result = await model_set(model, ALICE).write_string(ContentType.FORMDATA)
        assert result.startswith(
            f'{MULTIPART_BOUNDARY}\r\nContent-Disposition: form-data; name="_id_"\r\n\r\n1\r\n'
        )
        assert (
            'Content-Disposition: form-data; name="photo"; filename="photo"\r\n'
            "Content-Type: application/octet-stream\r\n"
            "Content-Transfer-Encoding: BASE64\r\n\r\nAAE=\r\n"
        ) in result
        assert result.endswith(f"{MULTIPART_BOUNDARY}--\r\n")

    async def test_only_first_row(self, model: DataModel) -> None:
        """Test only the current row is written."""
        result = await model_set(model, ALICE, BOB).write_string(ContentType.FORMDATA)
        assert "Alice" in result
        assert "Bob" not in result

    async def test_round_trip(self, model: DataModel) -> None:
        """Test parsing written form-data reproduces the row."""
        result = await model_set(model, ALICE).write_string(ContentType.FORMDATA)
        [parsed] = create_rows(model, result, ContentType.FORMDATA, MULTIPART_BOUNDARY)
        assert_same_values(model, parsed, ALICE)


class TestWriteUrlencode:
    """Test urlencoded output."""

    async def test_row(self, model: DataModel) -> None:
        """Test parameters are percent-encoded and null is written."""
        result = await model_set(model, ALICE, BOB).write_string(ContentType.URLENCODE)
        lines = result.split("\r\n")
        assert lines[0] == (
            "_id_=1&id=1&name=Alice&age=30&active=true&photo=AAE%3D"
            "&hired=2024-01-02T03%3A04%3A05.000&manager_id=7"
        )
        assert lines[1] == (
            "_id_=2&id=2&name=Bob%20%22B%22%20%3Cb%3E&active=false&photo=null"
            "&hired=null&manager_id=null"
        )
        assert lines[2] == ""

    async def test_round_trip(self, model: DataModel) -> None:
        """Test parsing a written line reproduces the row."""
        result = await model_set(model, BOB).write_string(ContentType.URLENCODE)
        [parsed] = create_rows(model, result, ContentType.URLENCODE)
        assert_same_values(model, parsed, [2, 'Bob "B" <b>', UNDEFINED, 0, None, None, None])


class TestWriteHtml:
    """Test HTML template output."""

    async def test_template(self, model: DataModel) -> None:
        """Test tags are replaced with escaped values."""
        result = await model_set(model, ALICE, BOB).write_html(
            "<li>###_id_###:###name###:###age###</li>"
        )
        assert result == (
            "<li>1:Alice:30</li>\r\n<li>2:Bob &quot;B&quot; &lt;b&gt;:</li>\r\n"
        )

    async def test_unselected_tags_removed(self, model: DataModel) -> None:
        """Test tags of unselected fields are removed."""
        params = SqlParams(select=SqlSelect.parse("name"))
        result = await model_set(model, ALICE, params=params).write_html("###name###|###age###")
        assert result == "Alice|\r\n"

    async def test_html_not_a_string_type(self, model: DataModel) -> None:
        """Test write_string refuses HTML."""
        assert await model_set(model, ALICE).write_string(ContentType.HTML) == ""


class TestGetValue:
    """Test reading values of the current row."""

    def test_get_value_by_field_name(self, model: DataModel) -> None:
        """Test raw and serialized values."""
        writer = model_set(model, ALICE)
        assert writer.get_value_by_field_name("name") == "Alice"
        assert writer.get_value_by_field_name("active", serialize=True) == "true"
        assert writer.get_value_by_field_name("salary") is UNDEFINED

    async def test_past_end(self, model: DataModel) -> None:
        """Test values past the last row are undefined."""
        writer = model_set(model, ALICE)
        await writer.write_string()
        assert writer.get_value_by_field_name("name") is UNDEFINED


@pytest.mark.parametrize("content_type", [ContentType.JSON, ContentType.CSV])
async def test_messages_from_dataset(model: DataModel, content_type: ContentType) -> None:
    """Test database messages are exposed by the writer."""
    writer = ModelSet(model, MemoryDataSet([list(ALICE)], ["SQLREST INFO (x): note"]))
    await writer.write_string(content_type)
    assert writer.messages == ["SQLREST INFO (x): note"]
