"""
In-memory filtering and type-aware sorting of fetched rows
"""

import json
import re
from datetime import date, datetime, time
from decimal import Decimal
from functools import cmp_to_key
from numbers import Number
from typing import Any, Dict, List, Sequence, Union

from ..database.models import ColumnInfo
from ..state.models import SortConfig, SortDirection

DataRow = Dict[str, Any]
ParsedValue = Union[float, int, Decimal, datetime, str]

NUMERIC_PATTERN = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)([eE][-+]?\d+)?\s*$")
DATE_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),                     # YYYY-MM-DD
    re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}"),    # ISO 8601
    re.compile(r"^\d{2}/\d{2}/\d{4}$"),                     # MM/DD/YYYY
)


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, Number):
        return True
    if not isinstance(value, str):
        return False
    return bool(NUMERIC_PATTERN.match(value))


def is_date_like(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    return any(pattern.match(value) for pattern in DATE_PATTERNS)


def _to_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    return None


def _parse_date(text: str) -> Any:
    if DATE_PATTERNS[2].match(text):
        try:
            return datetime.strptime(text, "%m/%d/%Y")
        except ValueError:
            return None
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None


def parse_value(value: Any) -> ParsedValue:
    """Coerce a cell into a number, a datetime or a string for comparison"""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Number):
        return value
    parsed_date = _to_datetime(value)
    if parsed_date is not None:
        return parsed_date

    text = str(value)

    if is_numeric(text):
        return float(text)

    if is_date_like(text):
        parsed_date = _parse_date(text)
        if parsed_date is not None:
            return parsed_date

    return text


def _timestamp(value: datetime) -> float:
    # Naive datetimes are compared as if they were UTC
    if value.tzinfo is None:
        return (value - datetime(1970, 1, 1)).total_seconds()
    return value.timestamp()


def _sign(value: Any) -> int:
    return (value > 0) - (value < 0)


def compare_values(a: Any, b: Any, direction: Union[SortDirection, str] = SortDirection.ASC) -> int:
    """Compare two cells; dates order ahead of non-dates in ascending order"""
    parsed_a = parse_value(a)
    parsed_b = parse_value(b)

    a_is_number = isinstance(parsed_a, Number) and not isinstance(parsed_a, str)
    b_is_number = isinstance(parsed_b, Number) and not isinstance(parsed_b, str)

    if a_is_number and b_is_number:
        comparison = _sign(float(parsed_a) - float(parsed_b))
    elif isinstance(parsed_a, datetime) and isinstance(parsed_b, datetime):
        comparison = _sign(_timestamp(parsed_a) - _timestamp(parsed_b))
    elif isinstance(parsed_a, datetime):
        comparison = -1
    elif isinstance(parsed_b, datetime):
        comparison = 1
    else:
        text_a = str(parsed_a).casefold()
        text_b = str(parsed_b).casefold()
        comparison = (text_a > text_b) - (text_a < text_b)

    return comparison if SortDirection(direction) is SortDirection.ASC else -comparison


def sort_rows(rows: Sequence[DataRow], sort_config: SortConfig) -> List[DataRow]:
    """Sorted copy of rows; the input list is never reordered"""
    if not sort_config.column or SortDirection(sort_config.direction) is SortDirection.OFF:
        return list(rows)

    column = sort_config.column
    direction = sort_config.direction
    return sorted(rows, key=cmp_to_key(lambda a, b: compare_values(a.get(column), b.get(column), direction)))


def filter_rows(rows: Sequence[DataRow], filter_value: str, columns: Sequence[ColumnInfo]) -> List[DataRow]:
    """Rows where any column contains the filter, case-insensitively"""
    if not filter_value or not filter_value.strip():
        return list(rows)

    needle = filter_value.casefold()

    def matches(row: DataRow) -> bool:
        for column in columns:
            value = row.get(column.name)
            if value is None:
                continue
            if needle in format_cell(value).casefold():
                return True
        return False

    return [row for row in rows if matches(row)]


def process_rows(
    rows: Sequence[DataRow],
    sort_config: SortConfig,
    filter_value: str,
    columns: Sequence[ColumnInfo],
) -> List[DataRow]:
    """Filter first, then sort"""
    return sort_rows(filter_rows(rows, filter_value, columns), sort_config)


def format_cell(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def format_value_for_display(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return format_cell(value)


def truncate_string(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[:max(max_length - 3, 0)] + "..."
