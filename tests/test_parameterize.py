import pytest

from tablescope.database.models import Dialect
from tablescope.database.parameterize import (
    bind_dollar_placeholders,
    bind_qmark_placeholders,
    parameterize,
)

SQL = "SELECT * FROM users WHERE id = $1 AND name = $2"


def test_postgres_is_unchanged():
    result = parameterize(SQL, Dialect.POSTGRESQL, [1, "alice"])
    assert result.sql == SQL
    assert result.params == [1, "alice"]


@pytest.mark.parametrize("dialect", [Dialect.MYSQL, Dialect.SQLITE, "mysql", "sqlite"])
def test_mysql_and_sqlite_use_question_marks(dialect):
    result = parameterize(SQL, dialect, [1, "alice"])
    assert result.sql == "SELECT * FROM users WHERE id = ? AND name = ?"
    assert result.params == [1, "alice"]


def test_params_default_to_empty_list():
    assert parameterize("SELECT 1", Dialect.SQLITE).params == []


def test_multi_digit_placeholders():
    sql = " ".join(f"${i}" for i in range(1, 12))
    assert parameterize(sql, Dialect.MYSQL, list(range(11))).sql == " ".join(["?"] * 11)


def test_unknown_dialect_is_rejected():
    with pytest.raises(ValueError):
        parameterize(SQL, "oracle", [])


def test_dollar_binding_reorders_and_repeats():
    sql, params = bind_dollar_placeholders("SELECT $2, $1, $2", ["a", "b"])
    assert sql == "SELECT %s, %s, %s"
    assert params == ["b", "a", "b"]


def test_dollar_binding_skips_literals_and_escapes_percent():
    sql, params = bind_dollar_placeholders("SELECT '$1', name FROM t WHERE name LIKE '%x' AND id = $1", [7])
    assert sql == "SELECT '$1', name FROM t WHERE name LIKE '%%x' AND id = %s"
    assert params == [7]


def test_dollar_binding_without_params_leaves_sql_alone():
    assert bind_dollar_placeholders("SELECT '100%'", []) == ("SELECT '100%'", [])


def test_dollar_binding_missing_param():
    with pytest.raises(IndexError):
        bind_dollar_placeholders("SELECT $3", [1])


def test_qmark_binding():
    sql, params = bind_qmark_placeholders("SELECT '?' , `a?` FROM t WHERE x = ? AND y = ?", [1, 2])
    assert sql == "SELECT '?' , `a?` FROM t WHERE x = %s AND y = %s"
    assert params == [1, 2]
