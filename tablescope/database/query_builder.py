"""
Dialect-aware SQL construction for table previews and searches
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Union

from .models import ColumnInfo, Dialect, TableInfo


def quote_identifier(dialect: Union[Dialect, str], identifier: str) -> str:
    """Quote a table, schema or column name"""
    if Dialect.parse(dialect) is Dialect.MYSQL:
        return "`" + identifier.replace("`", "``") + "`"
    return '"' + identifier.replace('"', '""') + '"'


def table_reference(dialect: Union[Dialect, str], table: TableInfo) -> str:
    """schema.table when the table has a schema, else just the table"""
    name = quote_identifier(dialect, table.name)
    if table.schema:
        return f"{quote_identifier(dialect, table.schema)}.{name}"
    return name


def _page_clause(dialect: Dialect, limit: int, offset: int) -> str:
    if dialect is Dialect.MYSQL:
        return f"LIMIT {offset}, {limit}"
    return f"LIMIT {limit} OFFSET {offset}"


def build_table_data_query(
    dialect: Union[Dialect, str],
    table: TableInfo,
    limit: int,
    offset: int,
) -> str:
    """SELECT one page of a table"""
    dialect = Dialect.parse(dialect)
    limit = max(int(limit), 1)
    offset = max(int(offset), 0)
    return f"SELECT * FROM {table_reference(dialect, table)} {_page_clause(dialect, limit, offset)}"


def build_search_expression(dialect: Union[Dialect, str], column_name: str, placeholder: str = "$1") -> str:
    """Case-insensitive text match of one column against a LIKE pattern"""
    dialect = Dialect.parse(dialect)
    column_ref = quote_identifier(dialect, column_name)
    if dialect is Dialect.MYSQL:
        return f"LOWER(CAST({column_ref} AS CHAR)) LIKE LOWER({placeholder})"
    if dialect is Dialect.SQLITE:
        return f"LOWER(CAST({column_ref} AS TEXT)) LIKE LOWER({placeholder})"
    return f"({column_ref})::TEXT ILIKE {placeholder}"


def build_search_where_clause(dialect: Union[Dialect, str], columns: Sequence[ColumnInfo]) -> str:
    """OR together one comparison per column.

    Column k uses placeholder $k, so the clause is bound with the search
    pattern repeated once per column. No columns gives `1=1`.
    """
    expressions = [
        build_search_expression(dialect, column.name, f"${index}")
        for index, column in enumerate(columns, start=1)
    ]
    if not expressions:
        return "1=1"
    return " OR ".join(expressions)


def select_search_order_column(dialect: Union[Dialect, str], columns: Sequence[ColumnInfo]) -> Optional[str]:
    """Quoted primary key column, else the first column, else None"""
    if not columns:
        return None
    primary = next((column for column in columns if column.is_primary_key), None)
    chosen = primary or columns[0]
    return quote_identifier(dialect, chosen.name)


def like_pattern(term: str) -> str:
    return f"%{term}%"


@dataclass
class SearchQueries:
    """Count and page queries sharing one WHERE clause"""
    count_query: str
    data_query: str
    params: List[Any] = field(default_factory=list)


def build_search_queries(
    dialect: Union[Dialect, str],
    table: TableInfo,
    columns: Sequence[ColumnInfo],
    term: str,
    limit: int,
    offset: int,
) -> SearchQueries:
    """Build the paired count/data queries for a search over every column"""
    dialect = Dialect.parse(dialect)
    limit = max(int(limit), 1)
    offset = max(int(offset), 0)

    table_ref = table_reference(dialect, table)
    where_clause = build_search_where_clause(dialect, columns)
    order_column = select_search_order_column(dialect, columns)
    order_clause = f" ORDER BY {order_column}" if order_column else ""

    return SearchQueries(
        count_query=f"SELECT COUNT(*) AS total_count FROM {table_ref} WHERE {where_clause}",
        data_query=(
            f"SELECT * FROM {table_ref} WHERE {where_clause}{order_clause} "
            f"{_page_clause(dialect, limit, offset)}"
        ),
        params=[like_pattern(term)] * len(columns),
    )


def extract_count(row: Any) -> int:
    """Pull the total out of a COUNT(*) row whatever the driver named it"""
    if not isinstance(row, dict) or not row:
        return 0

    value = None
    for key in ("total_count", "count", "COUNT", "COUNT(*)"):
        if key in row:
            value = row[key]
            break
    else:
        value = next(iter(row.values()))

    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, Decimal)):
        return int(value)
    if isinstance(value, float):
        return 0 if value != value else int(value)
    if isinstance(value, str):
        try:
            return int(float(value))
        except ValueError:
            return 0
    return 0
