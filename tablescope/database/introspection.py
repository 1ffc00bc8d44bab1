"""
Schema introspection: catalog queries per dialect, mapped to canonical models
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .adapters import DatabaseAdapter
from .models import ColumnInfo, Dialect, IndexInfo, RelationshipInfo, TableInfo, TableKind
from .parameterize import parameterize
from .query_builder import quote_identifier

POSTGRES_SYSTEM_SCHEMAS = ('pg_catalog', 'information_schema')
MYSQL_SYSTEM_SCHEMAS = ('information_schema', 'performance_schema', 'mysql', 'sys')

CatalogQuery = Tuple[str, List[Any]]


def _field(row: Dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a catalog column whatever case the server labelled it with"""
    if key in row:
        return row[key]
    lowered = key.lower()
    for name, value in row.items():
        if str(name).lower() == lowered:
            return value
    return default


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        return value.decode('utf-8', errors='replace')
    return str(value)


def _excluded(schemas: Sequence[str]) -> str:
    return ", ".join(f"'{schema}'" for schema in schemas)


def build_tables_query(dialect: Union[Dialect, str]) -> str:
    """Catalog query listing user tables and views"""
    dialect = Dialect.parse(dialect)
    if dialect is Dialect.SQLITE:
        return """
            SELECT
              NULL AS table_schema,
              name AS table_name,
              type AS table_type
            FROM sqlite_master
            WHERE type IN ('table', 'view')
            ORDER BY name
        """
    excluded = MYSQL_SYSTEM_SCHEMAS if dialect is Dialect.MYSQL else POSTGRES_SYSTEM_SCHEMAS
    return f"""
            SELECT
              table_schema AS table_schema,
              table_name AS table_name,
              table_type AS table_type
            FROM information_schema.tables
            WHERE table_schema NOT IN ({_excluded(excluded)})
            ORDER BY table_schema, table_name
        """


def table_kind(raw_type: Any) -> TableKind:
    """Map a catalog type string to a TableKind"""
    value = _text(raw_type).lower()
    if "view" in value and "materialized" in value:
        return TableKind.MATERIALIZED_VIEW
    if "view" in value:
        return TableKind.VIEW
    return TableKind.TABLE


def map_table_row(row: Dict[str, Any]) -> TableInfo:
    schema = _field(row, 'table_schema')
    return TableInfo(
        name=_text(_field(row, 'table_name')),
        kind=table_kind(_field(row, 'table_type')),
        schema=_text(schema) if schema is not None else None,
    )


def build_columns_query(dialect: Union[Dialect, str], table: TableInfo) -> CatalogQuery:
    """Catalog query describing a table's columns, with `$N` placeholders"""
    dialect = Dialect.parse(dialect)

    if dialect is Dialect.SQLITE:
        return f"PRAGMA table_info({quote_identifier(dialect, table.name)})", []

    if dialect is Dialect.MYSQL:
        if table.schema:
            schema_filter, params = "table_schema = $1 AND table_name = $2", [table.schema, table.name]
        else:
            schema_filter, params = "table_schema = DATABASE() AND table_name = $1", [table.name]
        return f"""
            SELECT
              COLUMN_NAME AS column_name,
              DATA_TYPE AS data_type,
              IS_NULLABLE AS is_nullable,
              COLUMN_DEFAULT AS column_default,
              COLUMN_KEY AS column_key
            FROM information_schema.columns
            WHERE {schema_filter}
            ORDER BY ORDINAL_POSITION
        """, params

    return """
            SELECT
              cols.column_name,
              cols.data_type,
              cols.is_nullable,
              cols.column_default,
              cols.ordinal_position,
              EXISTS (
                SELECT 1
                FROM information_schema.table_constraints tc
                JOIN information_schema.key_column_usage kcu
                  ON tc.constraint_name = kcu.constraint_name
                 AND tc.table_schema = kcu.table_schema
                 AND tc.table_name = kcu.table_name
                WHERE tc.constraint_type = 'PRIMARY KEY'
                  AND kcu.table_schema = cols.table_schema
                  AND kcu.table_name = cols.table_name
                  AND kcu.column_name = cols.column_name
              ) AS is_primary_key
            FROM information_schema.columns cols
            WHERE cols.table_name = $1
              AND cols.table_schema = $2
            ORDER BY cols.ordinal_position
        """, [table.name, table.schema or 'public']


def _default(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return _text(value)


def map_column_row(dialect: Union[Dialect, str], row: Dict[str, Any]) -> ColumnInfo:
    """Normalize one catalog row into a ColumnInfo"""
    dialect = Dialect.parse(dialect)

    if dialect is Dialect.SQLITE:
        pk_position = int(_field(row, 'pk') or 0)
        # A primary key column cannot hold NULL even when notnull is 0
        return ColumnInfo(
            name=_text(_field(row, 'name')),
            data_type=(_text(_field(row, 'type')) or "text").lower(),
            nullable=not _field(row, 'notnull') and pk_position == 0,
            default_value=_default(_field(row, 'dflt_value')),
            is_primary_key=pk_position > 0,
        )

    nullable = _text(_field(row, 'is_nullable')).upper() != "NO"
    if dialect is Dialect.MYSQL:
        is_primary_key = _text(_field(row, 'column_key')).upper() == "PRI"
    else:
        is_primary_key = bool(_field(row, 'is_primary_key'))

    return ColumnInfo(
        name=_text(_field(row, 'column_name')),
        data_type=_text(_field(row, 'data_type')),
        nullable=nullable,
        default_value=_default(_field(row, 'column_default')),
        is_primary_key=is_primary_key,
    )


def build_relationships_query(dialect: Union[Dialect, str], table: TableInfo) -> CatalogQuery:
    """Key constraints (primary, unique, foreign) of one table"""
    dialect = Dialect.parse(dialect)

    if dialect is Dialect.SQLITE:
        return f"PRAGMA foreign_key_list({quote_identifier(dialect, table.name)})", []

    if dialect is Dialect.MYSQL:
        schema_filter = "kcu.TABLE_SCHEMA = $1" if table.schema else "kcu.TABLE_SCHEMA = DATABASE()"
        table_placeholder = "$2" if table.schema else "$1"
        params = [table.schema, table.name] if table.schema else [table.name]
        return f"""
            SELECT
              kcu.CONSTRAINT_NAME AS constraint_name,
              kcu.TABLE_NAME AS source_table,
              kcu.COLUMN_NAME AS source_column,
              kcu.REFERENCED_TABLE_NAME AS target_table,
              kcu.REFERENCED_COLUMN_NAME AS target_column,
              tc.CONSTRAINT_TYPE AS constraint_type
            FROM information_schema.KEY_COLUMN_USAGE kcu
            LEFT JOIN information_schema.TABLE_CONSTRAINTS tc
              ON kcu.CONSTRAINT_NAME = tc.CONSTRAINT_NAME
             AND kcu.TABLE_SCHEMA = tc.TABLE_SCHEMA
             AND kcu.TABLE_NAME = tc.TABLE_NAME
            WHERE {schema_filter}
              AND kcu.TABLE_NAME = {table_placeholder}
            ORDER BY tc.CONSTRAINT_TYPE, kcu.CONSTRAINT_NAME, kcu.ORDINAL_POSITION
        """, params

    return """
            SELECT
              tc.constraint_name,
              tc.table_name AS source_table,
              kcu.column_name AS source_column,
              ccu.table_name AS target_table,
              ccu.column_name AS target_column,
              tc.constraint_type
            FROM information_schema.table_constraints tc
            JOIN information_schema.key_column_usage kcu
              ON tc.constraint_name = kcu.constraint_name
             AND tc.table_schema = kcu.table_schema
            LEFT JOIN information_schema.constraint_column_usage ccu
              ON ccu.constraint_name = tc.constraint_name
             AND ccu.table_schema = tc.table_schema
             AND tc.constraint_type = 'FOREIGN KEY'
            WHERE tc.table_schema = $1
              AND tc.table_name = $2
            ORDER BY tc.constraint_type, tc.constraint_name
        """, [table.schema or 'public', table.name]


def map_relationship_row(dialect: Union[Dialect, str], table: TableInfo, row: Dict[str, Any]) -> RelationshipInfo:
    if Dialect.parse(dialect) is Dialect.SQLITE:
        target = _field(row, 'table')
        return RelationshipInfo(
            constraint_name=f"fk_{_text(target)}_{_field(row, 'id', 0)}",
            source_table=table.name,
            source_column=_text(_field(row, 'from')),
            target_table=_text(target) or None,
            target_column=_text(_field(row, 'to')) or None,
            constraint_type="FOREIGN KEY",
        )

    return RelationshipInfo(
        constraint_name=_text(_field(row, 'constraint_name')),
        source_table=_text(_field(row, 'source_table')) or table.name,
        source_column=_text(_field(row, 'source_column')),
        target_table=_text(_field(row, 'target_table')) or None,
        target_column=_text(_field(row, 'target_column')) or None,
        constraint_type=_text(_field(row, 'constraint_type')) or "FOREIGN KEY",
    )


def build_indexes_query(dialect: Union[Dialect, str], table: TableInfo) -> CatalogQuery:
    """Indexes of one table; for SQLite only the index list (columns come per index)"""
    dialect = Dialect.parse(dialect)

    if dialect is Dialect.SQLITE:
        return f"PRAGMA index_list({quote_identifier(dialect, table.name)})", []

    if dialect is Dialect.MYSQL:
        schema_filter = "TABLE_SCHEMA = $1" if table.schema else "TABLE_SCHEMA = DATABASE()"
        table_placeholder = "$2" if table.schema else "$1"
        params = [table.schema, table.name] if table.schema else [table.name]
        return f"""
            SELECT
              INDEX_NAME AS index_name,
              COLUMN_NAME AS column_name,
              NON_UNIQUE = 0 AS is_unique,
              INDEX_NAME = 'PRIMARY' AS is_primary,
              INDEX_TYPE AS index_type
            FROM information_schema.STATISTICS
            WHERE {schema_filter}
              AND TABLE_NAME = {table_placeholder}
            ORDER BY INDEX_NAME, SEQ_IN_INDEX
        """, params

    return """
            SELECT
              i.relname AS index_name,
              a.attname AS column_name,
              ix.indisunique AS is_unique,
              ix.indisprimary AS is_primary,
              am.amname AS index_type
            FROM pg_class t
            JOIN pg_index ix ON t.oid = ix.indrelid
            JOIN pg_class i ON i.oid = ix.indexrelid
            JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
            JOIN pg_am am ON i.relam = am.oid
            JOIN pg_namespace n ON n.oid = t.relnamespace
            WHERE t.relkind IN ('r', 'm', 'p')
              AND t.relname = $1
              AND n.nspname = $2
            ORDER BY i.relname, a.attnum
        """, [table.name, table.schema or 'public']


def group_index_rows(table: TableInfo, rows: Sequence[Dict[str, Any]]) -> List[IndexInfo]:
    """Fold one-row-per-column catalog output into IndexInfo objects"""
    indexes: Dict[str, IndexInfo] = {}
    for row in rows:
        name = _text(_field(row, 'index_name'))
        index = indexes.get(name)
        if index is None:
            index = IndexInfo(
                name=name,
                table_name=table.name,
                is_unique=bool(_field(row, 'is_unique')),
                is_primary=bool(_field(row, 'is_primary')),
                index_type=_text(_field(row, 'index_type')) or None,
            )
            indexes[name] = index
        column = _text(_field(row, 'column_name'))
        if column and column not in index.columns:
            index.columns.append(column)
    return list(indexes.values())


def mark_foreign_keys(columns: Sequence[ColumnInfo], relationships: Sequence[RelationshipInfo]) -> List[ColumnInfo]:
    """Copy foreign-key targets onto the matching columns"""
    targets = {
        rel.source_column: rel
        for rel in relationships
        if rel.constraint_type.upper() == "FOREIGN KEY" and rel.target_table
    }
    marked = []
    for column in columns:
        rel = targets.get(column.name)
        if rel is None:
            marked.append(column)
            continue
        marked.append(column.model_copy(update={
            'is_foreign_key': True,
            'foreign_table': rel.target_table,
            'foreign_column': rel.target_column,
        }))
    return marked


def primary_key_columns(columns: Sequence[ColumnInfo]) -> List[ColumnInfo]:
    return [column for column in columns if column.is_primary_key]


def primary_key_column_name(columns: Sequence[ColumnInfo]) -> Optional[str]:
    """Name of the first primary key column, or None"""
    primary = primary_key_columns(columns)
    return primary[0].name if primary else None


class SchemaIntrospector:
    """Runs catalog queries through an adapter and maps the results"""

    def __init__(self, adapter: DatabaseAdapter):
        self.adapter = adapter
        self.dialect = Dialect.parse(adapter.dialect)

    async def _catalog(self, query: CatalogQuery) -> List[Dict[str, Any]]:
        sql, params = query
        prepared = parameterize(sql, self.dialect, params)
        result = await self.adapter.query(prepared.sql, prepared.params)
        return result.rows

    async def list_tables(self) -> List[TableInfo]:
        rows = await self._catalog((build_tables_query(self.dialect), []))
        return [map_table_row(row) for row in rows]

    async def list_columns(self, table: TableInfo) -> List[ColumnInfo]:
        rows = await self._catalog(build_columns_query(self.dialect, table))
        return [map_column_row(self.dialect, row) for row in rows]

    async def list_relationships(self, table: TableInfo) -> List[RelationshipInfo]:
        rows = await self._catalog(build_relationships_query(self.dialect, table))
        return [map_relationship_row(self.dialect, table, row) for row in rows]

    async def list_indexes(self, table: TableInfo) -> List[IndexInfo]:
        rows = await self._catalog(build_indexes_query(self.dialect, table))
        if self.dialect is not Dialect.SQLITE:
            return group_index_rows(table, rows)

        indexes = []
        for row in rows:
            name = _text(_field(row, 'name'))
            info_rows = await self._catalog((f"PRAGMA index_info({quote_identifier(self.dialect, name)})", []))
            indexes.append(IndexInfo(
                name=name,
                table_name=table.name,
                columns=[_text(_field(info, 'name')) for info in info_rows],
                is_unique=bool(_field(row, 'unique')),
                is_primary=_text(_field(row, 'origin')) == 'pk',
            ))
        return indexes
