"""
Effects orchestrator: connect, introspect, fetch, cache and persist

Every operation opens a fresh adapter through the factory, closes it in
`finally`, and turns failures into one user-visible error.
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..config import Settings, load_settings
from ..database.adapters import DatabaseAdapter
from ..database.errors import DatabaseConnectionError, DatabaseError
from ..database.factory import DatabaseFactory
from ..database.introspection import SchemaIntrospector, mark_foreign_keys
from ..database.models import (
    ColumnInfo,
    ConnectionConfig,
    Dialect,
    IndexInfo,
    QueryResult,
    RelationshipInfo,
    TableInfo,
)
from ..database.parameterize import parameterize
from ..database.query_builder import build_search_queries, build_table_data_query, extract_count
from ..utils.logger import get_logger, set_level
from ..utils.notification import NotificationManager
from ..utils.persistence import PersistenceError, PersistenceStore, now_iso
from ..utils.row_processing import process_rows
from .app_state import AppState
from .cache import RefreshThrottle, TableCache, table_cache_key
from .models import ConnectionInfo, DataRow, QueryHistoryItem

logger = get_logger(__name__)

THROTTLED_MESSAGE = "Please wait before refreshing this table again."


def _plural(count: int, singular: str, plural: str) -> str:
    return singular if count == 1 else plural


class EffectsOrchestrator:
    """Sequences every side effect the UI asks for"""

    def __init__(
        self,
        store: PersistenceStore,
        factory: Optional[DatabaseFactory] = None,
        notifications: Optional[NotificationManager] = None,
        settings: Optional[Settings] = None,
        state: Optional[AppState] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.factory = factory or DatabaseFactory()
        self.notifications = notifications or NotificationManager()
        self.settings = settings or load_settings()
        set_level(self.settings.log_level)
        self.state = state or AppState()
        self.throttle = RefreshThrottle(self.settings.refresh_throttle_ms, clock=clock)
        self.active_config: Optional[ConnectionConfig] = None

    # Plumbing

    @asynccontextmanager
    async def _session(self, config: Optional[ConnectionConfig] = None) -> AsyncIterator[DatabaseAdapter]:
        """A connected adapter that is always closed on exit"""
        config = config or self.active_config
        if config is None:
            raise DatabaseConnectionError("No active connection.")

        adapter = self.factory.create(config)
        try:
            await adapter.connect()
            yield adapter
        finally:
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Ignoring close failure: {e}")

    @asynccontextmanager
    async def _busy(self) -> AsyncIterator[None]:
        self.state.pending_operations += 1
        try:
            yield
        finally:
            self.state.pending_operations -= 1

    def _fail(self, error: BaseException, fallback: str) -> str:
        """Record an error for the user and return its message"""
        if isinstance(error, (DatabaseError, PersistenceError)):
            message = str(error)
        else:
            logger.exception(fallback)
            message = str(error) or fallback
        self.state.error_message = message
        self.notifications.error(message)
        return message

    def _info(self, message: str) -> None:
        self.state.info_message = message
        self.notifications.info(message)

    def _persist_connections(self, connections: Sequence[ConnectionInfo]) -> None:
        self.state.saved_connections = list(connections)
        self.store.save_connections(self.state.saved_connections)

    async def _persist_table_cache(self) -> None:
        if self.state.active_connection is None:
            return
        await self.store.save_table_cache(self.state.active_connection.id, self.state.table_cache.snapshot())

    def _dialect(self, config: Optional[ConnectionConfig]) -> Dialect:
        config = config or self.active_config
        if config is None:
            raise DatabaseConnectionError("No active connection.")
        return Dialect.parse(config.dialect)

    # Startup and connections

    async def initialize(self) -> None:
        """Load saved connections and query history"""
        async with self._busy():
            try:
                result = await self.store.load_connections()
                history = await self.store.load_query_history()
                self.state.saved_connections = result.connections
                self.state.query_history = history

                if result.normalized:
                    self._info(
                        f"Normalized {result.normalized} legacy "
                        f"{_plural(result.normalized, 'connection', 'connections')}.")
                if result.skipped:
                    self.notifications.warning(
                        f"Skipped {result.skipped} invalid connection "
                        f"{_plural(result.skipped, 'entry', 'entries')}.")
                if result.needs_rewrite:
                    self.store.save_connections(result.connections)
            except Exception as e:
                self._fail(e, "Initialization failed.")

    async def connect(self, config: ConnectionConfig) -> bool:
        """Verify the target, remember it as a saved connection and list its tables"""
        async with self._busy():
            try:
                async with self._session(config):
                    pass

                dialect = Dialect.parse(config.dialect)
                existing = next(
                    (c for c in self.state.saved_connections
                     if c.natural_key == (dialect, config.connection_string)),
                    None,
                )
                now = now_iso()
                if existing is not None:
                    info = existing.model_copy(update={'updated_at': now})
                    connections = [info if c.id == info.id else c for c in self.state.saved_connections]
                else:
                    info = ConnectionInfo(
                        id=uuid.uuid4().hex,
                        name=f"{dialect.value} connection",
                        dialect=dialect,
                        connection_string=config.connection_string,
                        created_at=now,
                        updated_at=now,
                    )
                    connections = [*self.state.saved_connections, info]

                self.active_config = config
                self.state.active_connection = info
                self.state.dialect = dialect
                self.state.selected_table = None
                self.state.reset_preview()
                self.state.clear_search()
                self.state.table_cache = TableCache(await self.store.load_table_cache(info.id))
                self.throttle.reset()
                self._info("Database connection established.")
                self._persist_connections(connections)
            except (DatabaseError, PersistenceError) as e:
                self._fail(e, "Failed to connect to database.")
                return False
            except Exception:
                logger.exception("Failed to connect to database.")
                self.state.error_message = "Failed to connect to database."
                self.notifications.error(self.state.error_message)
                return False

            await self.fetch_tables(config)
            return True

    async def disconnect(self) -> None:
        self.active_config = None
        self.state.clear_active_connection()
        self.throttle.reset()

    async def remove_saved_connection(self, connection_id: str) -> bool:
        """Forget a saved connection; the active one cannot be removed"""
        active = self.state.active_connection
        if active is not None and active.id == connection_id:
            self.notifications.warning("Disconnect before removing the active connection.")
            return False

        remaining = [c for c in self.state.saved_connections if c.id != connection_id]
        if len(remaining) == len(self.state.saved_connections):
            return False

        try:
            self._persist_connections(remaining)
            await self.store.drop_table_cache(connection_id)
        except Exception as e:
            self._fail(e, "Failed to save connections.")
            return False
        self._info("Removed saved connection.")
        return True

    async def update_saved_connection(
        self,
        connection_id: str,
        name: Optional[str] = None,
        connection_string: Optional[str] = None,
        dialect: Optional[Union[Dialect, str]] = None,
    ) -> bool:
        """Rename or retarget a saved connection, reconnecting if it is active"""
        existing = next((c for c in self.state.saved_connections if c.id == connection_id), None)
        if existing is None:
            return False

        name = name.strip() if name is not None else None
        connection_string = connection_string.strip() if connection_string is not None else None

        if name is not None:
            if not name:
                self.notifications.warning("Connection name cannot be empty.")
                return False
            if any(c.id != connection_id and c.name.lower() == name.lower() for c in self.state.saved_connections):
                self.notifications.warning("Another saved connection already uses that name.")
                return False

        if connection_string is not None and not connection_string:
            self.notifications.warning("Connection string cannot be empty.")
            return False

        new_dialect = None
        if dialect is not None:
            try:
                new_dialect = Dialect.parse(dialect)
            except ValueError:
                self.notifications.warning("Unsupported database type.")
                return False

        name_changed = name is not None and name != existing.name
        target_changed = connection_string is not None and connection_string != existing.connection_string
        dialect_changed = new_dialect is not None and new_dialect is not existing.dialect

        if not (name_changed or target_changed or dialect_changed):
            self._info("No changes detected.")
            return False

        updates: Dict[str, Any] = {'updated_at': now_iso()}
        if name_changed:
            updates['name'] = name
        if target_changed:
            updates['connection_string'] = connection_string
        if dialect_changed:
            updates['dialect'] = new_dialect
        updated = existing.model_copy(update=updates)

        is_active = self.state.active_connection is not None and self.state.active_connection.id == connection_id
        if is_active:
            self.state.active_connection = updated
        self._persist_connections([updated if c.id == connection_id else c for c in self.state.saved_connections])
        self._info("Saved connection updated.")

        if is_active and (target_changed or dialect_changed):
            self._info("Connection details changed; reconnecting…")
            await self.connect(ConnectionConfig(
                dialect=updated.dialect,
                connection_string=updated.connection_string,
                pool_options=self.active_config.pool_options if self.active_config else None,
            ))
        return True

    # Catalog

    async def fetch_tables(self, config: Optional[ConnectionConfig] = None) -> List[TableInfo]:
        async with self._busy():
            try:
                async with self._session(config) as adapter:
                    tables = await SchemaIntrospector(adapter).list_tables()
            except Exception as e:
                self._fail(e, "Failed to fetch tables.")
                return []
            self.state.tables = tables
            return tables

    def select_table(self, table: Optional[TableInfo]) -> None:
        self.state.select_table(table)

    async def _load_columns(self, table: TableInfo, config: Optional[ConnectionConfig]) -> List[ColumnInfo]:
        async with self._session(config) as adapter:
            columns = await SchemaIntrospector(adapter).list_columns(table)

        self.state.columns = columns
        key = table_cache_key(table)
        if key and self.state.active_connection is not None:
            self.state.table_cache.update_columns(key, columns)
            await self._persist_table_cache()
        return columns

    async def _load_rows(
        self,
        table: TableInfo,
        offset: int,
        limit: int,
        config: Optional[ConnectionConfig],
    ) -> List[DataRow]:
        offset = max(int(offset), 0)
        limit = max(int(limit), 1)
        sql = build_table_data_query(self._dialect(config), table, limit, offset)
        async with self._session(config) as adapter:
            result = await adapter.query(sql)

        rows = list(result.rows)
        # A full page is assumed to have a successor
        has_more = len(rows) == limit
        self.state.data_rows = rows
        self.state.has_more_rows = has_more
        self.state.current_offset = offset

        key = table_cache_key(table)
        if key and self.state.active_connection is not None:
            self.state.table_cache.update_rows(key, rows, has_more, offset)
            await self._persist_table_cache()
        return rows

    def _throttled(self, table: TableInfo) -> bool:
        if self.throttle.can_proceed(table_cache_key(table)):
            return False
        self.notifications.warning(THROTTLED_MESSAGE)
        return True

    async def _refresh(
        self,
        table: TableInfo,
        fetch: Callable[[], Awaitable[Any]],
        fallback: str,
        force: bool = False,
    ) -> bool:
        """Run one throttled refresh of a table, recording its timestamp however it ends"""
        key = table_cache_key(table)
        if not force and self._throttled(table):
            return False

        async with self._busy():
            self.state.refreshing_table_key = key
            try:
                await fetch()
                return True
            except Exception as e:
                self._fail(e, fallback)
                return False
            finally:
                self.state.refreshing_table_key = None
                self.throttle.mark(key)

    async def fetch_columns(self, table: TableInfo, config: Optional[ConnectionConfig] = None) -> bool:
        return await self._refresh(
            table, lambda: self._load_columns(table, config), "Failed to fetch columns.")

    async def fetch_table_data(
        self,
        table: TableInfo,
        offset: int = 0,
        limit: Optional[int] = None,
        config: Optional[ConnectionConfig] = None,
    ) -> bool:
        limit = limit or self.settings.page_size
        return await self._refresh(
            table, lambda: self._load_rows(table, offset, limit, config), "Failed to fetch table data.")

    async def load_table(self, table: TableInfo, config: Optional[ConnectionConfig] = None, force: bool = False) -> bool:
        """Select a table and refresh its columns and first page as one refresh"""
        self.select_table(table)

        async def fetch() -> None:
            await self._load_columns(table, config)
            await self._load_rows(table, 0, self.settings.page_size, config)

        return await self._refresh(table, fetch, "Failed to load table.", force=force)

    async def fetch_relationships(self, table: TableInfo, config: Optional[ConnectionConfig] = None) -> List[RelationshipInfo]:
        """Key constraints of a table; foreign keys are copied onto the selected table's columns"""
        async with self._busy():
            try:
                async with self._session(config) as adapter:
                    relationships = await SchemaIntrospector(adapter).list_relationships(table)
            except Exception as e:
                self._fail(e, "Failed to fetch relationships.")
                return []

            self.state.relationships = relationships
            if table == self.state.selected_table and self.state.columns:
                self.state.columns = mark_foreign_keys(self.state.columns, relationships)
                key = table_cache_key(table)
                if key in self.state.table_cache:
                    self.state.table_cache.update_columns(key, self.state.columns)
                    await self._persist_table_cache()
            return relationships

    async def fetch_indexes(self, table: TableInfo, config: Optional[ConnectionConfig] = None) -> List[IndexInfo]:
        async with self._busy():
            try:
                async with self._session(config) as adapter:
                    indexes = await SchemaIntrospector(adapter).list_indexes(table)
            except Exception as e:
                self._fail(e, "Failed to fetch indexes.")
                return []
            self.state.indexes = indexes
            return indexes

    # Search and ad-hoc queries

    async def search_table_rows(
        self,
        table: TableInfo,
        term: str,
        offset: int = 0,
        limit: Optional[int] = None,
        columns: Optional[Sequence[ColumnInfo]] = None,
        config: Optional[ConnectionConfig] = None,
    ) -> List[DataRow]:
        """Page through rows where any column contains the term"""
        normalized = term.strip()
        self.state.search_term = normalized
        if not normalized:
            self.state.clear_search()
            self._info("Enter a search term to find matching rows.")
            return []

        columns = list(self.state.columns if columns is None else columns)
        if not columns:
            self.state.error_message = "Column metadata is required before searching."
            self.notifications.error(self.state.error_message)
            return []

        offset = max(int(offset), 0)
        limit = max(int(limit or self.settings.search_page_size), 1)

        async with self._busy():
            try:
                dialect = self._dialect(config)
                queries = build_search_queries(dialect, table, columns, normalized, limit, offset)
                count_query = parameterize(queries.count_query, dialect, queries.params)
                data_query = parameterize(queries.data_query, dialect, queries.params)

                async with self._session(config) as adapter:
                    count_result = await adapter.query(count_query.sql, count_query.params)
                    total = extract_count(count_result.rows[0] if count_result.rows else None)
                    data_result = await adapter.query(data_query.sql, data_query.params)
            except Exception as e:
                self._fail(e, "Search execution failed.")
                return []

            rows = list(data_result.rows)
            self.state.search_results = rows
            self.state.search_total_count = total
            self.state.search_offset = offset
            self.state.search_has_more = offset + len(rows) < total
            return rows

    async def execute_query(
        self,
        sql: str,
        params: Optional[Sequence[Any]] = None,
        config: Optional[ConnectionConfig] = None,
    ) -> Optional[QueryResult]:
        """Run one statement on the active connection and record it in history"""
        active = self.state.active_connection
        if active is None or self.state.dialect is None:
            self.state.error_message = "No active connection."
            self.notifications.error(self.state.error_message)
            return None

        result: Optional[QueryResult] = None
        error: Optional[str] = None
        duration_ms = 0

        async with self._busy():
            try:
                prepared = parameterize(sql, self._dialect(config), params)
                async with self._session(config) as adapter:
                    start = time.perf_counter()
                    result = await adapter.query(prepared.sql, prepared.params)
                    duration_ms = round((time.perf_counter() - start) * 1000)
            except Exception as e:
                error = self._fail(e, "Query execution failed.")

            self.state.last_query_result = result
            await self._record_history(QueryHistoryItem(
                id=uuid.uuid4().hex,
                connection_id=active.id,
                query=sql,
                executed_at=now_iso(),
                duration_ms=duration_ms if error is None else 0,
                row_count=result.row_count if result is not None else 0,
                error=error,
            ))
        return result

    async def _record_history(self, item: QueryHistoryItem) -> None:
        try:
            self.state.query_history = await self.store.add_history_item(item)
        except PersistenceError as e:
            self.state.query_history = [item, *self.state.query_history][:self.settings.history_limit]
            self._fail(e, "Failed to save query history.")

    def query_stats(self) -> Dict[str, Any]:
        """Totals over the recorded query history"""
        history = self.state.query_history
        if not history:
            return {
                'total_executions': 0,
                'successful_executions': 0,
                'failed_executions': 0,
                'average_duration_ms': 0,
                'success_rate': 0,
            }

        total = len(history)
        failed = sum(1 for item in history if item.error)
        successful = total - failed
        durations = [item.duration_ms for item in history if not item.error]
        return {
            'total_executions': total,
            'successful_executions': successful,
            'failed_executions': failed,
            'average_duration_ms': sum(durations) / len(durations) if durations else 0,
            'success_rate': successful / total * 100,
        }

    # Cache maintenance

    async def clear_table_cache_entry(self, table: TableInfo, config: Optional[ConnectionConfig] = None) -> bool:
        """Drop one table's cached preview and fetch it again"""
        key = table_cache_key(table)
        if self.state.active_connection is None or key is None:
            return False

        self.state.table_cache.remove(key)
        try:
            await self._persist_table_cache()
        except PersistenceError as e:
            self._fail(e, "Failed to clear cache.")
            return False

        refreshed = await self.load_table(table, config, force=True)
        if refreshed:
            self._info("Table cache cleared and refreshed.")
        return refreshed

    async def clear_connection_cache(self) -> bool:
        active = self.state.active_connection
        if active is None:
            return False

        try:
            await self.store.clear_table_cache(active.id)
        except PersistenceError as e:
            self._fail(e, "Failed to clear cache.")
            return False
        self.state.table_cache.clear()
        self.state.refreshing_table_key = None
        self._info("Cleared cached tables for current connection.")
        return True

    # View helpers

    def visible_rows(self) -> List[DataRow]:
        """Current page after the filter and sort the UI has set"""
        return process_rows(self.state.data_rows, self.state.sort_config, self.state.filter_value, self.state.columns)

    async def shutdown(self) -> None:
        await self.store.flush()
