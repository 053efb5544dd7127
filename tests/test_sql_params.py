"""Tests for filter, order, limit, aggregate and select parameters."""

import pytest

from sqlrest.exceptions import FilterSyntaxError, InvalidFieldError, InvalidValueError
from sqlrest.model import DataModel
from sqlrest.sql_params import (
    EMPTY_FILTER,
    BooleanOp,
    Comparison,
    ComparisonOp,
    Conjunction,
    Negation,
    SqlAggregate,
    SqlLimit,
    SqlOrder,
    SqlSelect,
    combine_filters,
    filter_to_sql,
    is_empty_filter,
    parse_filter,
)


class TestParseFilter:
    """Test filter parsing into a filter tree."""

    def test_comparison(self) -> None:
        """Test a single comparison."""
        assert parse_filter("(age)-gt(18)") == Comparison("age", ComparisonOp.GT, "18")

    def test_operator_case_insensitive(self) -> None:
        """Test operators are matched case-insensitively."""
        assert parse_filter("(name)-LIKE(B%)") == Comparison("name", ComparisonOp.LIKE, "B%")

    def test_conjunction(self) -> None:
        """Test a comparison joined with a bracketed filter."""
        assert parse_filter("(age)-gt(18)-and((name)-eq(Bob))") == Conjunction(
            Comparison("age", ComparisonOp.GT, "18"),
            BooleanOp.AND,
            Comparison("name", ComparisonOp.EQ, "Bob"),
        )

    def test_negation(self) -> None:
        """Test both negation spellings."""
        expected = Negation(Comparison("age", ComparisonOp.LT, "30"))
        assert parse_filter("-not((age)-lt(30))") == expected
        assert parse_filter("-((age)-lt(30))") == expected

    def test_grouping(self) -> None:
        """Test a fully bracketed filter is the filter itself."""
        assert parse_filter("((age)-gt(18))") == Comparison("age", ComparisonOp.GT, "18")

    def test_empty(self) -> None:
        """Test an empty string is the empty filter."""
        assert parse_filter("") is EMPTY_FILTER
        assert is_empty_filter(parse_filter(""))
        assert is_empty_filter(None)

    @pytest.mark.parametrize(
        "text",
        [
            "garbage(((",
            "(age)-xx(18)",
            "(age)-gt(18)-and(",
            "()",
            "age > 18",
            "(name)-eq(x' OR 1=1 --)",
            '(name)-eq(x" OR 1=1 --)',
            "(age)-eq(1)-and((age)-eq(2))-or((age)-eq(3))",
            "(age)-eq(1)-or(-not((age)-eq(2)))-and((age)-eq(3))",
        ],
    )
    def test_malformed_fails_closed(self, text: str) -> None:
        """Test strings outside the grammar are rejected."""
        with pytest.raises(FilterSyntaxError):
            parse_filter(text)


class TestFilterToSql:
    """Test filter printing as SQL conditions."""

    def test_comparison(self, model: DataModel) -> None:
        """Test a comparison prints column, operator and literal."""
        assert filter_to_sql(parse_filter("(age)-gt(18)"), model) == '("age" > 18)'

    def test_conjunction(self, model: DataModel) -> None:
        """Test a conjunction is fully parenthesized."""
        sql = filter_to_sql(parse_filter("(age)-gt(18)-and((name)-eq(Bob))"), model)
        assert sql == "((\"age\" > 18) AND (\"name\" = 'Bob'))"

    def test_disjunction_of_groups(self, model: DataModel) -> None:
        """Test two bracketed filters joined with OR."""
        sql = filter_to_sql(parse_filter("((age)-gt(18))-or((name)-like(B%))"), model)
        assert sql == "((\"age\" > 18) OR (\"name\" LIKE 'B%'))"

    def test_negation(self, model: DataModel) -> None:
        """Test negation wraps its operand."""
        assert filter_to_sql(parse_filter("-not((age)-lt(30))"), model) == '(NOT ("age" < 30))'

    def test_negation_in_conjunction(self, model: DataModel) -> None:
        """Test a negation binds only its own bracket."""
        sql = filter_to_sql(parse_filter("-not((age)-lt(30))-and((name)-eq(Bob))"), model)
        assert sql == "((NOT (\"age\" < 30)) AND (\"name\" = 'Bob'))"

    def test_balanced_parentheses(self, model: DataModel) -> None:
        """Test nested filters always print balanced parentheses."""
        text = "((age)-ge(18)-and((age)-le(65)))-or(-not((name)-like(A%)))"
        sql = filter_to_sql(parse_filter(text), model)
        assert sql.count("(") == sql.count(")")
        assert sql == (
            "(((\"age\" >= 18) AND (\"age\" <= 65)) OR (NOT (\"name\" LIKE 'A%')))"
        )

    def test_empty_filter(self, model: DataModel) -> None:
        """Test the empty filter prints nothing."""
        assert filter_to_sql(EMPTY_FILTER, model) == ""

    def test_unknown_field(self, model: DataModel) -> None:
        """Test an unknown field is rejected."""
        with pytest.raises(InvalidFieldError, match="salary"):
            filter_to_sql(parse_filter("(salary)-gt(1)"), model)

    def test_invalid_number(self, model: DataModel) -> None:
        """Test a value that is not valid for the field type is rejected."""
        with pytest.raises(InvalidValueError):
            filter_to_sql(parse_filter("(age)-gt(abc)"), model)

    def test_string_value_escaped(self, model: DataModel) -> None:
        """Test string values are printed as escaped literals."""
        sql = filter_to_sql(parse_filter("(name)-eq(a;b)"), model)
        assert sql == "(\"name\" = 'a;b')"

    def test_hashed_key_not_decoded(self, hashed_model: DataModel) -> None:
        """Test filter values are used as given."""
        assert filter_to_sql(parse_filter("(id)-eq(5)"), hashed_model) == '("id" = 5)'

    def test_combine_filters(self, model: DataModel) -> None:
        """Test combining optional filters."""
        left = parse_filter("(age)-gt(18)")
        right = parse_filter("(name)-eq(Bob)")
        combined = combine_filters(left, BooleanOp.OR, right)
        assert filter_to_sql(combined, model) == "((\"age\" > 18) OR (\"name\" = 'Bob'))"
        assert combine_filters(None, BooleanOp.AND, right) is right
        assert combine_filters(left, BooleanOp.AND, EMPTY_FILTER) is left
        assert combine_filters(None, BooleanOp.AND, None) is None


class TestSqlOrder:
    """Test order parsing and printing."""

    def test_directions(self, model: DataModel) -> None:
        """Test default, word and symbol directions."""
        order = SqlOrder.parse("name,age DESC,id -,active +")
        assert order.columns == ("name", "age", "id", "active")
        assert order.descending == (False, True, True, False)
        assert order.to_sql(model) == '"name" ASC,"age" DESC,"id" DESC,"active" ASC'

    def test_malformed(self) -> None:
        """Test tokens that are not a column with direction are rejected."""
        with pytest.raises(FilterSyntaxError):
            SqlOrder.parse("age;drop")
        with pytest.raises(FilterSyntaxError):
            SqlOrder.parse("age SIDEWAYS")

    def test_unknown_field(self, model: DataModel) -> None:
        """Test an unknown column is rejected."""
        with pytest.raises(InvalidFieldError):
            SqlOrder.parse("salary").to_sql(model)

    def test_empty(self) -> None:
        """Test an empty order."""
        assert SqlOrder.parse("").is_empty()


class TestSqlLimit:
    """Test limit parsing and printing."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("10", "10"),
            ("10 page 3", "10 OFFSET 21"),
            ("10.3", "10 OFFSET 21"),
            ("5 PAGE 1", "5 OFFSET 1"),
        ],
    )
    def test_to_sql(self, text: str, expected: str) -> None:
        """Test limit and page offsets."""
        assert SqlLimit.parse(text).to_sql() == expected

    @pytest.mark.parametrize("text", ["ten", "10 page", "-1", "10 pages 2"])
    def test_malformed(self, text: str) -> None:
        """Test strings outside the limit forms are rejected."""
        with pytest.raises(FilterSyntaxError):
            SqlLimit.parse(text)

    def test_zero_is_empty(self) -> None:
        """Test a zero limit imposes nothing."""
        assert SqlLimit.parse("0").is_empty()
        assert SqlLimit.parse("").is_empty()


class TestSqlAggregate:
    """Test aggregate parsing and printing."""

    def test_parse(self) -> None:
        """Test functions and fields are parsed."""
        aggregate = SqlAggregate.parse("count(id),SUM(age)")
        assert [f.value for f in aggregate.functions] == ["count", "sum"]
        assert aggregate.fields == ("id", "age")

    def test_column_names_keep_model_order(self, model: DataModel) -> None:
        """Test one projected column per field in model order."""
        aggregate = SqlAggregate.parse("sum(age)")
        columns = aggregate.print_sql_column_names(model, SqlSelect.parse("name,age"))
        assert columns == (
            '"id","name",sum("age") as "age",min(\'\') as "active",min(\'\') as "photo",'
            'min(\'\') as "hired",min(\'\') as "manager_id"'
        )

    def test_group_by(self, model: DataModel) -> None:
        """Test GROUP BY lists selected non-aggregated fields."""
        aggregate = SqlAggregate.parse("sum(age)")
        assert aggregate.to_sql(model, SqlSelect.parse("name,age")) == '"id","name"'

    def test_group_by_without_select(self, model: DataModel) -> None:
        """Test GROUP BY lists every non-aggregated field without a select."""
        aggregate = SqlAggregate.parse("count(id)")
        assert aggregate.to_sql(model) == (
            '"name","age","active","photo","hired","manager_id"'
        )

    def test_unsupported_function(self) -> None:
        """Test unknown functions are rejected."""
        with pytest.raises(FilterSyntaxError):
            SqlAggregate.parse("median(age)")

    def test_unknown_field(self, model: DataModel) -> None:
        """Test unknown aggregated fields are rejected."""
        with pytest.raises(InvalidFieldError):
            SqlAggregate.parse("sum(salary)").print_sql_column_names(model)


class TestSqlSelect:
    """Test field selection."""

    def test_primary_key_always_selected(self, model: DataModel) -> None:
        """Test primary keys are selected even when not listed."""
        select = SqlSelect.parse("name")
        assert select.is_selected(model.fields[0])
        assert select.is_selected(model.fields[1])
        assert not select.is_selected(model.fields[2])

    def test_empty_selects_all(self, model: DataModel) -> None:
        """Test an empty select selects everything."""
        assert all(SqlSelect.parse("").is_selected(f) for f in model.fields)

    def test_unknown_field(self, model: DataModel) -> None:
        """Test unknown selected fields are rejected."""
        with pytest.raises(InvalidFieldError):
            SqlSelect.parse("name,salary").validate(model)
