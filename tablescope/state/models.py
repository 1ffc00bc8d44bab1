"""
Records held in application state and persisted between runs
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import Field

from ..database.models import CamelModel, ColumnInfo, Dialect

DataRow = Dict[str, Any]


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"
    OFF = "off"


@dataclass
class SortConfig:
    column: Optional[str] = None
    direction: SortDirection = SortDirection.OFF


class TableCacheEntry(CamelModel):
    """Columns and last fetched page of one table.

    offset is the offset of the last fetched page, not a cursor.
    """
    columns: List[ColumnInfo] = Field(default_factory=list)
    rows: List[DataRow] = Field(default_factory=list)
    has_more: bool = False
    offset: int = 0


class ConnectionInfo(CamelModel):
    """A saved connection; id is stable across edits"""
    id: str
    name: str
    dialect: Dialect
    connection_string: str
    created_at: str
    updated_at: str

    @property
    def natural_key(self) -> tuple:
        return (self.dialect, self.connection_string)


class QueryHistoryItem(CamelModel):
    """One executed statement; never mutated after creation"""
    id: str
    connection_id: str
    query: str
    executed_at: str
    duration_ms: Union[int, float]
    row_count: int
    error: Optional[str] = None
