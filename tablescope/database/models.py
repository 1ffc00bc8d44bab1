"""
Data models for connections, query results and schema objects
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Dialect(str, Enum):
    """Supported database engines"""
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: Any) -> "Dialect":
        """Accept a Dialect or its string value"""
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


class TableKind(str, Enum):
    TABLE = "table"
    VIEW = "view"
    MATERIALIZED_VIEW = "materialized-view"


@dataclass(frozen=True)
class PoolOptions:
    """Pool sizing and timeouts for the pooled dialects"""
    max: int = 10
    idle_timeout_ms: int = 30_000
    connect_timeout_ms: int = 10_000
    close_timeout_ms: int = 5_000


@dataclass(frozen=True)
class ConnectionConfig:
    """Everything needed for one connection attempt"""
    dialect: Dialect
    connection_string: str
    pool_options: Optional[PoolOptions] = None

    @property
    def pool(self) -> PoolOptions:
        return self.pool_options or PoolOptions()


DataRow = Dict[str, Any]


@dataclass
class QueryResult:
    """Rows returned by a statement"""
    rows: List[DataRow]
    row_count: int
    fields: Optional[List[str]] = None


@dataclass(frozen=True)
class TableInfo:
    """A table, view or materialized view"""
    name: str
    kind: TableKind = TableKind.TABLE
    schema: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.schema}.{self.name}" if self.schema else self.name


@dataclass
class RelationshipInfo:
    """One column of a key constraint, with its target for foreign keys"""
    constraint_name: str
    source_table: str
    source_column: str
    target_table: Optional[str] = None
    target_column: Optional[str] = None
    constraint_type: str = "FOREIGN KEY"


@dataclass
class IndexInfo:
    """An index and the columns it covers"""
    name: str
    table_name: str
    columns: List[str] = field(default_factory=list)
    is_unique: bool = False
    is_primary: bool = False
    index_type: Optional[str] = None


class CamelModel(BaseModel):
    """Base for records that are persisted as camelCase JSON"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ColumnInfo(CamelModel):
    """Canonical column description, whatever the dialect"""
    name: str
    data_type: str
    nullable: bool
    default_value: Optional[str] = None
    is_primary_key: Optional[bool] = None
    is_foreign_key: Optional[bool] = None
    foreign_table: Optional[str] = None
    foreign_column: Optional[str] = None
