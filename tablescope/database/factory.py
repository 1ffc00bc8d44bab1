"""
Database factory for creating appropriate database adapters
"""

from contextlib import contextmanager
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Union

from .adapters import (
    AdapterConstructor,
    DatabaseAdapter,
    MySQLAdapter,
    PostgreSQLAdapter,
    SQLiteAdapter,
)
from .errors import DatabaseConnectionError
from .models import ConnectionConfig, Dialect

ADAPTERS: Mapping[Dialect, AdapterConstructor] = MappingProxyType({
    Dialect.POSTGRESQL: PostgreSQLAdapter,
    Dialect.MYSQL: MySQLAdapter,
    Dialect.SQLITE: SQLiteAdapter,
})


class DatabaseFactory:
    """Factory class to create the adapter for a configured dialect.

    Overrides live on the instance, so a test that installs fakes on its own
    factory cannot leak them into any other factory.
    """

    def __init__(self, constructors: Optional[Mapping[Dialect, AdapterConstructor]] = None):
        self._constructors = dict(constructors or ADAPTERS)
        self._overrides: Dict[Dialect, AdapterConstructor] = {}

    def create(self, config: ConnectionConfig) -> DatabaseAdapter:
        """Create database adapter based on dialect"""
        try:
            dialect = Dialect.parse(config.dialect)
        except ValueError:
            raise DatabaseConnectionError(f"Unsupported database type: {config.dialect}")

        constructor = self._overrides.get(dialect) or self._constructors.get(dialect)
        if constructor is None:
            raise DatabaseConnectionError(f"Unsupported database type: {dialect.value}")
        return constructor(config)

    def install_override(self, dialect: Union[Dialect, str], constructor: AdapterConstructor) -> None:
        """Substitute the constructor used for one dialect until cleared"""
        self._overrides[Dialect.parse(dialect)] = constructor

    def clear_overrides(self) -> None:
        self._overrides.clear()

    @contextmanager
    def override(self, dialect: Union[Dialect, str], constructor: AdapterConstructor) -> Iterator["DatabaseFactory"]:
        self.install_override(dialect, constructor)
        try:
            yield self
        finally:
            self.clear_overrides()

    @property
    def has_overrides(self) -> bool:
        return bool(self._overrides)

    def get_supported_types(self) -> List[str]:
        """Get list of supported database types"""
        return [dialect.value for dialect in self._constructors]
