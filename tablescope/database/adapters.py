"""
Database adapters for different database types

Every adapter exposes the same awaitable contract (connect, query, execute,
close). The DBAPI drivers are blocking, so each call runs in a worker thread;
one adapter instance never runs two statements at once.
"""

import asyncio
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import ArgumentError, DBAPIError, SQLAlchemyError

from ..utils.logger import get_logger
from .errors import DatabaseConnectionError, DatabaseError
from .models import ConnectionConfig, Dialect, QueryResult
from .parameterize import bind_dollar_placeholders, bind_qmark_placeholders

logger = get_logger(__name__)


class DatabaseAdapter(ABC):
    """Abstract base class for database adapters"""

    dialect: Dialect

    def __init__(self, config: ConnectionConfig):
        self.config = config

    @abstractmethod
    async def connect(self) -> None:
        """Open the session, raising DatabaseConnectionError on failure"""

    @abstractmethod
    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """Run a statement and return its rows"""

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        """Run a statement, discarding any rows"""
        await self.query(sql, params)

    @abstractmethod
    async def close(self) -> None:
        """Release the session; never raises"""


def _driver_error(exc: BaseException) -> BaseException:
    """Unwrap the DBAPI exception SQLAlchemy wraps around driver failures"""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return exc.orig
    return exc


class PooledAdapter(DatabaseAdapter):
    """Shared SQLAlchemy pool handling for server-based dialects"""

    driver_name: str = ""
    display_name: str = ""
    url_schemes: Tuple[str, ...] = ()

    def __init__(self, config: ConnectionConfig):
        super().__init__(config)
        self.engine: Optional[Engine] = None
        self.connected = False

    def _build_url(self):
        url = make_url(self.config.connection_string.strip())
        if url.drivername in self.url_schemes or url.drivername.split("+")[0] in self.url_schemes:
            return url.set(drivername=self.driver_name)
        raise ArgumentError(
            f"Expected a {'/'.join(self.url_schemes)} URL, got scheme {url.drivername!r}"
        )

    def _create_engine(self) -> Engine:
        pool = self.config.pool
        connect_timeout = max(int(pool.connect_timeout_ms / 1000), 1)
        return create_engine(
            self._build_url(),
            pool_size=pool.max,
            max_overflow=0,
            pool_timeout=pool.connect_timeout_ms / 1000,
            pool_recycle=max(int(pool.idle_timeout_ms / 1000), 1),
            connect_args={'connect_timeout': connect_timeout},
        )

    @abstractmethod
    def _bind(self, sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
        """Translate placeholders to the driver's paramstyle"""

    @abstractmethod
    def _error_code(self, exc: BaseException) -> Optional[str]:
        """Driver-specific diagnostic code"""

    def _ping(self) -> None:
        with self.engine.connect() as connection:
            connection.exec_driver_sql("SELECT 1")

    async def connect(self) -> None:
        """Create the pool and prove a connection can be checked out"""
        try:
            if self.engine is None:
                self.engine = self._create_engine()
            await asyncio.to_thread(self._ping)
            self.connected = True
        except (SQLAlchemyError, OSError) as e:
            orig = _driver_error(e)
            raise DatabaseConnectionError(
                f"Failed to connect to {self.display_name} database.",
                self._error_code(orig),
                str(orig),
            ) from e

    def _run(self, sql: str, params: Sequence[Any]) -> QueryResult:
        statement, bound = self._bind(sql, params)
        raw = self.engine.raw_connection()
        cursor = raw.cursor()
        try:
            if bound:
                cursor.execute(statement, bound)
            else:
                cursor.execute(statement)

            if cursor.description:
                fields = [desc[0] for desc in cursor.description]
                rows = [dict(zip(fields, row)) for row in cursor.fetchall()]
                raw.commit()
                return QueryResult(rows=rows, row_count=len(rows), fields=fields)

            raw.commit()
            return QueryResult(rows=[], row_count=max(cursor.rowcount, 0), fields=None)
        except Exception:
            raw.rollback()
            raise
        finally:
            cursor.close()
            raw.close()

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        if not self.connected:
            await self.connect()

        try:
            return await asyncio.to_thread(self._run, sql, list(params or []))
        except DatabaseError:
            raise
        except Exception as e:
            orig = _driver_error(e)
            raise DatabaseError(
                f"{self.display_name} query failed.",
                self._error_code(orig),
                str(orig),
            ) from e

    async def close(self) -> None:
        engine, self.engine = self.engine, None
        self.connected = False
        if engine is None:
            return
        try:
            await asyncio.to_thread(engine.dispose)
        except Exception as e:
            logger.warning(f"Failed to close {self.display_name} pool cleanly: {e}")


class PostgreSQLAdapter(PooledAdapter):
    """PostgreSQL database adapter"""

    dialect = Dialect.POSTGRESQL
    driver_name = "postgresql+psycopg2"
    display_name = "PostgreSQL"
    url_schemes = ("postgres", "postgresql")

    def _bind(self, sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
        return bind_dollar_placeholders(sql, params)

    def _error_code(self, exc: BaseException) -> Optional[str]:
        return getattr(exc, 'pgcode', None)


def _log_late_close(future: "asyncio.Future[Any]") -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning(f"MySQL pool close eventually failed: {exc}")


class MySQLAdapter(PooledAdapter):
    """MySQL database adapter"""

    dialect = Dialect.MYSQL
    driver_name = "mysql+pymysql"
    display_name = "MySQL"
    url_schemes = ("mysql", "mariadb")

    def _bind(self, sql: str, params: Sequence[Any]) -> Tuple[str, List[Any]]:
        return bind_qmark_placeholders(sql, params)

    def _error_code(self, exc: BaseException) -> Optional[str]:
        if exc.args and isinstance(exc.args[0], int):
            return str(exc.args[0])
        return None

    async def close(self) -> None:
        """Dispose the pool, giving up waiting after close_timeout_ms.

        A dispose that outlives the timeout keeps running in its thread and
        only its eventual failure is logged.
        """
        engine, self.engine = self.engine, None
        self.connected = False
        if engine is None:
            return

        timeout = self.config.pool.close_timeout_ms / 1000
        dispose = asyncio.ensure_future(asyncio.to_thread(engine.dispose))
        try:
            await asyncio.wait_for(asyncio.shield(dispose), timeout)
        except asyncio.TimeoutError:
            logger.warning("MySQL pool close timed out; continuing shutdown asynchronously.")
            dispose.add_done_callback(_log_late_close)
        except Exception as e:
            logger.warning(f"Failed to close MySQL pool cleanly: {e}")


def _sqlite_code(exc: BaseException) -> Optional[str]:
    return getattr(exc, 'sqlite_errorname', None)


def sqlite_path(connection_string: str) -> str:
    """Accept a bare path or a sqlite:/// URL"""
    path = connection_string.strip()
    for prefix in ("sqlite:///", "sqlite://"):
        if path.startswith(prefix):
            return path[len(prefix):] or ":memory:"
    return path


class SQLiteAdapter(DatabaseAdapter):
    """SQLite database adapter backed by a single file handle"""

    dialect = Dialect.SQLITE

    def __init__(self, config: ConnectionConfig):
        super().__init__(config)
        self.connection: Optional[sqlite3.Connection] = None

    def _open(self) -> sqlite3.Connection:
        connection = sqlite3.connect(sqlite_path(self.config.connection_string), check_same_thread=False)
        try:
            connection.row_factory = sqlite3.Row
            connection.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error:
            connection.close()
            raise
        return connection

    async def connect(self) -> None:
        """Open the database file, creating it if missing"""
        try:
            self.connection = await asyncio.to_thread(self._open)
        except (sqlite3.Error, OSError) as e:
            raise DatabaseConnectionError(
                "Failed to open SQLite database.", _sqlite_code(e), str(e)
            ) from e

    def _run(self, sql: str, params: Sequence[Any]) -> QueryResult:
        try:
            cursor = self.connection.execute(sql, tuple(params))
        except sqlite3.Error:
            if self.connection.in_transaction:
                self.connection.rollback()
            raise
        try:
            if cursor.description:
                fields = [desc[0] for desc in cursor.description]
                rows = [dict(row) for row in cursor.fetchall()]
                self.connection.commit()
                return QueryResult(rows=rows, row_count=len(rows), fields=fields)
            self.connection.commit()
            return QueryResult(rows=[], row_count=max(cursor.rowcount, 0), fields=None)
        finally:
            cursor.close()

    async def _call(self, sql: str, params: Optional[Sequence[Any]], failure: str) -> QueryResult:
        if self.connection is None:
            await self.connect()
        try:
            return await asyncio.to_thread(self._run, sql, list(params or []))
        except sqlite3.Error as e:
            raise DatabaseError(failure, _sqlite_code(e), str(e)) from e

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        return await self._call(sql, params, "SQLite query failed.")

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> None:
        await self._call(sql, params, "SQLite statement execution failed.")

    async def close(self) -> None:
        connection, self.connection = self.connection, None
        if connection is None:
            return
        try:
            await asyncio.to_thread(connection.close)
        except Exception as e:
            logger.warning(f"Failed to close SQLite database cleanly: {e}")


AdapterConstructor = Callable[[ConnectionConfig], DatabaseAdapter]
