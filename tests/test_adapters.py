import asyncio
import sqlite3
import threading
import time

import pytest

from conftest import run
from tablescope.database.adapters import MySQLAdapter, PostgreSQLAdapter, SQLiteAdapter, sqlite_path
from tablescope.database.errors import DatabaseConnectionError, DatabaseError
from tablescope.database.models import ConnectionConfig, Dialect, PoolOptions


@pytest.fixture()
def sqlite_file(tmp_path):
    path = tmp_path / "app.db"
    with sqlite3.connect(path) as conn:
        conn.execute("CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT)")
        conn.executemany("INSERT INTO users (name) VALUES (?)", [("Alice",), ("Bob",)])
    return str(path)


def test_sqlite_path_accepts_urls():
    assert sqlite_path("/tmp/a.db") == "/tmp/a.db"
    assert sqlite_path("sqlite:////tmp/a.db") == "/tmp/a.db"
    assert sqlite_path("sqlite://") == ":memory:"


def test_sqlite_query_returns_dict_rows(sqlite_file):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, sqlite_file))
        await adapter.connect()
        try:
            return await adapter.query("SELECT id, name FROM users WHERE name = ?", ["Alice"])
        finally:
            await adapter.close()

    result = run(scenario())
    assert result.rows == [{'id': 1, 'name': 'Alice'}]
    assert result.row_count == 1
    assert result.fields == ['id', 'name']


def test_sqlite_uses_wal(sqlite_file):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, sqlite_file))
        await adapter.connect()
        try:
            return await adapter.query("PRAGMA journal_mode")
        finally:
            await adapter.close()

    assert run(scenario()).rows[0]['journal_mode'].lower() == 'wal'


def test_sqlite_execute_commits(sqlite_file):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, sqlite_file))
        await adapter.execute("INSERT INTO users (name) VALUES (?)", ["Carol"])
        await adapter.close()

    run(scenario())
    with sqlite3.connect(sqlite_file) as conn:
        assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 3


def test_sqlite_query_error_is_wrapped(sqlite_file):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, sqlite_file))
        await adapter.connect()
        try:
            await adapter.query("SELECT * FROM missing")
        finally:
            await adapter.close()

    with pytest.raises(DatabaseError) as excinfo:
        run(scenario())
    assert excinfo.value.message == "SQLite query failed."
    assert "no such table" in excinfo.value.detail


def test_sqlite_connect_failure(tmp_path):
    adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, str(tmp_path / "missing" / "dir" / "x.db")))
    with pytest.raises(DatabaseConnectionError):
        run(adapter.connect())


def test_close_twice_is_harmless(sqlite_file):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, sqlite_file))
        await adapter.connect()
        await adapter.close()
        await adapter.close()
        return adapter.connection

    assert run(scenario()) is None


def test_pooled_url_is_rewritten_to_driver():
    pg = PostgreSQLAdapter(ConnectionConfig(Dialect.POSTGRESQL, "postgres://u:p@localhost:5432/app"))
    mysql = MySQLAdapter(ConnectionConfig(Dialect.MYSQL, "mysql://u:p@localhost:3306/app"))
    assert pg._build_url().drivername == "postgresql+psycopg2"
    assert mysql._build_url().drivername == "mysql+pymysql"


def test_pooled_connect_rejects_foreign_scheme():
    adapter = PostgreSQLAdapter(ConnectionConfig(Dialect.POSTGRESQL, "mysql://u@localhost/app"))
    with pytest.raises(DatabaseConnectionError, match="Failed to connect to PostgreSQL database."):
        run(adapter.connect())


def test_pool_options_reach_engine():
    options = PoolOptions(max=3, idle_timeout_ms=60_000, connect_timeout_ms=2_000)
    adapter = PostgreSQLAdapter(ConnectionConfig(Dialect.POSTGRESQL, "postgresql://u@localhost/app", options))
    engine = adapter._create_engine()
    try:
        assert engine.pool.size() == 3
        assert engine.pool._recycle == 60
    finally:
        engine.dispose()


class SlowEngine:
    def __init__(self, delay):
        self.delay = delay
        self.disposed = threading.Event()

    def dispose(self):
        time.sleep(self.delay)
        self.disposed.set()


def test_mysql_close_does_not_wait_past_timeout():
    adapter = MySQLAdapter(ConnectionConfig(
        Dialect.MYSQL, "mysql://u@localhost/app", PoolOptions(close_timeout_ms=50)))
    engine = SlowEngine(0.5)
    adapter.engine = engine
    adapter.connected = True

    async def scenario():
        started = time.monotonic()
        await adapter.close()
        return time.monotonic() - started

    elapsed = run(scenario())
    assert elapsed < 0.4
    assert adapter.engine is None
    assert not adapter.connected
    assert engine.disposed.wait(2)


def test_mysql_close_waits_for_fast_dispose():
    adapter = MySQLAdapter(ConnectionConfig(Dialect.MYSQL, "mysql://u@localhost/app"))
    engine = SlowEngine(0)
    adapter.engine = engine
    run(adapter.close())
    assert engine.disposed.is_set()
