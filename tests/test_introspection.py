import sqlite3

import pytest

from conftest import run
from tablescope.database.adapters import SQLiteAdapter
from tablescope.database.introspection import (
    SchemaIntrospector,
    build_columns_query,
    build_tables_query,
    map_column_row,
    map_relationship_row,
    map_table_row,
    mark_foreign_keys,
    primary_key_column_name,
    table_kind,
)
from tablescope.database.models import ColumnInfo, ConnectionConfig, Dialect, RelationshipInfo, TableInfo, TableKind


@pytest.fixture()
def shop_db(tmp_path):
    path = tmp_path / "shop.db"
    with sqlite3.connect(path) as conn:
        conn.executescript("""
            CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT);
            CREATE TABLE orders (
                id INTEGER PRIMARY KEY,
                user_id INTEGER NOT NULL REFERENCES users(id),
                total REAL DEFAULT 0
            );
            CREATE UNIQUE INDEX orders_user_total ON orders (user_id, total);
            CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100;
        """)
    return str(path)


def introspect(path, method, *args):
    async def scenario():
        adapter = SQLiteAdapter(ConnectionConfig(Dialect.SQLITE, path))
        await adapter.connect()
        try:
            return await getattr(SchemaIntrospector(adapter), method)(*args)
        finally:
            await adapter.close()
    return run(scenario())


def test_sqlite_users_columns(shop_db):
    columns = introspect(shop_db, 'list_columns', TableInfo("users"))
    assert [(c.name, c.data_type, c.nullable, c.is_primary_key) for c in columns] == [
        ("id", "integer", False, True),
        ("name", "text", True, False),
    ]


def test_sqlite_lists_tables_and_views(shop_db):
    tables = introspect(shop_db, 'list_tables')
    assert [(t.name, t.kind, t.schema) for t in tables] == [
        ("big_orders", TableKind.VIEW, None),
        ("orders", TableKind.TABLE, None),
        ("users", TableKind.TABLE, None),
    ]


def test_sqlite_relationships(shop_db):
    relationships = introspect(shop_db, 'list_relationships', TableInfo("orders"))
    assert len(relationships) == 1
    rel = relationships[0]
    assert (rel.source_table, rel.source_column, rel.target_table, rel.target_column) == (
        "orders", "user_id", "users", "id")


def test_sqlite_indexes(shop_db):
    indexes = {index.name: index for index in introspect(shop_db, 'list_indexes', TableInfo("orders"))}
    assert indexes["orders_user_total"].columns == ["user_id", "total"]
    assert indexes["orders_user_total"].is_unique
    assert not indexes["orders_user_total"].is_primary


def test_tables_query_excludes_system_schemas():
    assert "'pg_catalog', 'information_schema'" in build_tables_query(Dialect.POSTGRESQL)
    mysql = build_tables_query(Dialect.MYSQL)
    for schema in ("information_schema", "performance_schema", "mysql", "sys"):
        assert f"'{schema}'" in mysql
    assert "sqlite_master" in build_tables_query(Dialect.SQLITE)


@pytest.mark.parametrize("raw,kind", [
    ("BASE TABLE", TableKind.TABLE),
    ("VIEW", TableKind.VIEW),
    ("MATERIALIZED VIEW", TableKind.MATERIALIZED_VIEW),
    ("materialized", TableKind.TABLE),
    (None, TableKind.TABLE),
])
def test_table_kind(raw, kind):
    assert table_kind(raw) is kind


def test_map_table_row_reads_uppercase_labels():
    table = map_table_row({'TABLE_SCHEMA': 'shop', 'TABLE_NAME': 'orders', 'TABLE_TYPE': 'BASE TABLE'})
    assert table == TableInfo("orders", TableKind.TABLE, "shop")


def test_columns_query_params():
    sql, params = build_columns_query(Dialect.POSTGRESQL, TableInfo("orders"))
    assert "PRIMARY KEY" in sql and params == ["orders", "public"]

    sql, params = build_columns_query(Dialect.MYSQL, TableInfo("orders"))
    assert "DATABASE()" in sql and params == ["orders"]

    sql, params = build_columns_query(Dialect.MYSQL, TableInfo("orders", schema="shop"))
    assert params == ["shop", "orders"]

    sql, params = build_columns_query(Dialect.SQLITE, TableInfo('we"ird'))
    assert sql == 'PRAGMA table_info("we""ird")' and params == []


def test_map_mysql_column():
    column = map_column_row(Dialect.MYSQL, {
        'COLUMN_NAME': 'id', 'DATA_TYPE': 'int', 'IS_NULLABLE': 'NO', 'COLUMN_DEFAULT': None, 'COLUMN_KEY': 'PRI'})
    assert column == ColumnInfo(name="id", data_type="int", nullable=False, is_primary_key=True)


def test_map_postgres_column():
    column = map_column_row(Dialect.POSTGRESQL, {
        'column_name': 'email', 'data_type': 'text', 'is_nullable': 'YES',
        'column_default': "''::text", 'is_primary_key': False})
    assert column.nullable is True
    assert column.is_primary_key is False
    assert column.default_value == "''::text"


def test_map_relationship_row_defaults_source_table():
    rel = map_relationship_row(Dialect.POSTGRESQL, TableInfo("orders", schema="public"), {
        'constraint_name': 'orders_pkey', 'source_column': 'id', 'constraint_type': 'PRIMARY KEY'})
    assert rel.source_table == "orders"
    assert rel.target_table is None


def test_mark_foreign_keys_only_touches_foreign_columns():
    columns = [
        ColumnInfo(name="id", data_type="integer", nullable=False, is_primary_key=True),
        ColumnInfo(name="user_id", data_type="integer", nullable=False),
    ]
    relationships = [
        RelationshipInfo("orders_pkey", "orders", "id", constraint_type="PRIMARY KEY"),
        RelationshipInfo("orders_user_fk", "orders", "user_id", "users", "id"),
    ]
    marked = mark_foreign_keys(columns, relationships)
    assert marked[0] == columns[0]
    assert marked[1].is_foreign_key
    assert (marked[1].foreign_table, marked[1].foreign_column) == ("users", "id")
    assert primary_key_column_name(marked) == "id"
