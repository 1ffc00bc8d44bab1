"""
Database adapters and schema management
"""

from .models import ColumnInfo, ConnectionConfig, Dialect, PoolOptions, QueryResult, TableInfo
from .errors import DatabaseConnectionError, DatabaseError, QueryTimeoutError
from .adapters import DatabaseAdapter, MySQLAdapter, PostgreSQLAdapter, SQLiteAdapter
from .factory import DatabaseFactory
from .parameterize import parameterize

__all__ = [
    'ColumnInfo',
    'ConnectionConfig',
    'Dialect',
    'PoolOptions',
    'QueryResult',
    'TableInfo',
    'DatabaseConnectionError',
    'DatabaseError',
    'QueryTimeoutError',
    'DatabaseAdapter',
    'MySQLAdapter',
    'PostgreSQLAdapter',
    'SQLiteAdapter',
    'DatabaseFactory',
    'parameterize',
]
