from datetime import date, datetime
from decimal import Decimal

import pytest

from tablescope.database.models import ColumnInfo
from tablescope.state.models import SortConfig, SortDirection
from tablescope.utils.row_processing import (
    compare_values,
    filter_rows,
    format_value_for_display,
    is_date_like,
    is_numeric,
    parse_value,
    process_rows,
    sort_rows,
    truncate_string,
)

COLUMNS = [ColumnInfo(name="name", data_type="text", nullable=True),
           ColumnInfo(name="email", data_type="text", nullable=True)]


@pytest.mark.parametrize("value,expected", [
    (None, ""),
    (True, "true"),
    (False, "false"),
    (42, 42),
    (Decimal("1.5"), Decimal("1.5")),
    ("3.25", 3.25),
    ("-7", -7.0),
    ("hello", "hello"),
    ("2024-01-15", datetime(2024, 1, 15)),
    ("01/15/2024", datetime(2024, 1, 15)),
    ("13/45/2024", "13/45/2024"),
])
def test_parse_value(value, expected):
    assert parse_value(value) == expected


def test_parse_value_keeps_date_objects():
    assert parse_value(date(2024, 1, 15)) == datetime(2024, 1, 15)


def test_type_predicates():
    assert is_numeric("1e3") and is_numeric(5) and not is_numeric(True) and not is_numeric("1a")
    assert is_date_like("2024-01-15T10:00:00Z") and not is_date_like("2024-1-5")


def test_compare_values():
    assert compare_values(2, "10") < 0
    assert compare_values("2024-01-02", "2024-01-01") > 0
    assert compare_values("apple", "Banana") < 0
    assert compare_values("apple", "Banana", SortDirection.DESC) > 0
    assert compare_values("2024-01-01", "zebra") < 0
    assert compare_values("zebra", "2024-01-01") > 0


def test_sort_off_returns_copy_in_original_order():
    rows = [{'a': 3}, {'a': 1}]
    for config in (SortConfig(), SortConfig("a", SortDirection.OFF), SortConfig(None, SortDirection.ASC)):
        result = sort_rows(rows, config)
        assert result == rows
        assert result is not rows


def test_sort_does_not_mutate_input():
    rows = [{'a': 3}, {'a': 1}, {'a': 2}]
    assert sort_rows(rows, SortConfig("a", SortDirection.DESC)) == [{'a': 3}, {'a': 2}, {'a': 1}]
    assert rows == [{'a': 3}, {'a': 1}, {'a': 2}]


def test_filter_identity_on_empty_term():
    rows = [{'name': 'Alice'}, {'name': 'Bob'}]
    assert filter_rows(rows, "", COLUMNS) == rows
    assert filter_rows(rows, "   ", COLUMNS) == rows


def test_filter_matches_any_column_case_insensitively():
    rows = [
        {'name': 'Alice', 'email': None},
        {'name': 'Bob', 'email': 'bob@ALI.example'},
        {'name': 'Carol', 'email': 'carol@example.com'},
    ]
    assert filter_rows(rows, "ali", COLUMNS) == rows[:2]


def test_process_rows_filters_then_sorts():
    rows = [{'a': 3}, {'a': 1}, {'a': 2}]
    columns = [ColumnInfo(name="a", data_type="integer", nullable=False)]
    assert process_rows(rows, SortConfig("a", SortDirection.ASC), "", columns) == [{'a': 1}, {'a': 2}, {'a': 3}]
    assert process_rows(rows, SortConfig("a", SortDirection.ASC), "3", columns) == [{'a': 3}]


def test_display_helpers():
    assert format_value_for_display(None) == "NULL"
    assert format_value_for_display({'k': 1}) == '{"k": 1}'
    assert truncate_string("abcdefgh", 6) == "abc..."
    assert truncate_string("abc", 6) == "abc"
