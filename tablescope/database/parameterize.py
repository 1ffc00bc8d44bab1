"""
Placeholder rewriting between the positional `$N` form and each driver's style

Callers write SQL with PostgreSQL-style `$1, $2, ...` placeholders.
`parameterize` turns that into what each dialect accepts at the adapter
boundary; the adapters then bind to their DBAPI paramstyle.

For MySQL and SQLite every `$N` becomes `?` left to right and params are
passed through unchanged, so params must already be in token order.
Renumbered or repeated `$N` tokens are not supported for those dialects.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

from .models import Dialect

POSTGRES_PLACEHOLDER = re.compile(r"\$(\d+)")

# Quoted literals and identifiers are matched first so placeholders inside
# them are skipped when binding to a driver.
_QUOTED = r"'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|`(?:[^`]|``)*`"
_DOLLAR_TOKEN = re.compile(rf"{_QUOTED}|\$(\d+)")
_QMARK_TOKEN = re.compile(rf"{_QUOTED}|(\?)")


@dataclass
class ParameterizedQuery:
    sql: str
    params: List[Any] = field(default_factory=list)


def parameterize(
    sql: str,
    dialect: Union[Dialect, str],
    params: Optional[Sequence[Any]] = None,
) -> ParameterizedQuery:
    """Rewrite `$N` placeholders into the dialect's native form"""
    params = list(params or [])
    dialect = Dialect.parse(dialect)

    if dialect is Dialect.POSTGRESQL:
        return ParameterizedQuery(sql, params)

    if dialect in (Dialect.MYSQL, Dialect.SQLITE):
        return ParameterizedQuery(POSTGRES_PLACEHOLDER.sub("?", sql), params)

    return ParameterizedQuery(sql, params)


def bind_dollar_placeholders(sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
    """Bind `$N` placeholders to psycopg2's `%s` style.

    Each token pulls its own argument, so `$2 ... $1 ... $2` works here.
    """
    if not params:
        return sql, []

    bound: List[Any] = []

    def replace(match: "re.Match[str]") -> str:
        if match.group(1) is None:
            return match.group(0)
        index = int(match.group(1)) - 1
        if index < 0 or index >= len(params):
            raise IndexError(f"Placeholder ${index + 1} has no matching parameter")
        bound.append(params[index])
        return "%s"

    escaped = sql.replace("%", "%%")
    return _DOLLAR_TOKEN.sub(replace, escaped), bound


def bind_qmark_placeholders(sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
    """Bind `?` placeholders to PyMySQL's `%s` style"""
    if not params:
        return sql, []

    def replace(match: "re.Match[str]") -> str:
        if match.group(1) is None:
            return match.group(0)
        return "%s"

    escaped = sql.replace("%", "%%")
    return _QMARK_TOKEN.sub(replace, escaped), list(params)
