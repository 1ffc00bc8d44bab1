"""
UI-facing state read and written by the effects orchestrator
"""

from dataclasses import dataclass, field
from typing import List, Optional

from ..database.models import ColumnInfo, Dialect, IndexInfo, QueryResult, RelationshipInfo, TableInfo
from .cache import TableCache, table_cache_key
from .models import ConnectionInfo, DataRow, QueryHistoryItem, SortConfig


@dataclass
class AppState:
    dialect: Optional[Dialect] = None
    active_connection: Optional[ConnectionInfo] = None
    saved_connections: List[ConnectionInfo] = field(default_factory=list)
    tables: List[TableInfo] = field(default_factory=list)
    selected_table: Optional[TableInfo] = None
    columns: List[ColumnInfo] = field(default_factory=list)
    data_rows: List[DataRow] = field(default_factory=list)
    has_more_rows: bool = False
    current_offset: int = 0
    table_cache: TableCache = field(default_factory=TableCache)
    refreshing_table_key: Optional[str] = None
    sort_config: SortConfig = field(default_factory=SortConfig)
    filter_value: str = ""
    search_term: str = ""
    search_results: List[DataRow] = field(default_factory=list)
    search_total_count: int = 0
    search_offset: int = 0
    search_has_more: bool = False
    relationships: List[RelationshipInfo] = field(default_factory=list)
    indexes: List[IndexInfo] = field(default_factory=list)
    query_history: List[QueryHistoryItem] = field(default_factory=list)
    last_query_result: Optional[QueryResult] = None
    pending_operations: int = 0
    error_message: Optional[str] = None
    info_message: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.pending_operations > 0

    def reset_preview(self) -> None:
        self.columns = []
        self.data_rows = []
        self.has_more_rows = False
        self.current_offset = 0

    def clear_search(self) -> None:
        self.search_results = []
        self.search_total_count = 0
        self.search_offset = 0
        self.search_has_more = False

    def select_table(self, table: Optional[TableInfo]) -> None:
        """Select a table, restoring its cached preview when there is one"""
        self.selected_table = table
        self.clear_search()
        self.search_term = ""
        self.relationships = []
        self.indexes = []

        key = table_cache_key(table)
        entry = self.table_cache.get(key) if key else None
        if entry is None:
            self.reset_preview()
            return
        self.columns = list(entry.columns)
        self.data_rows = list(entry.rows)
        self.has_more_rows = entry.has_more
        self.current_offset = entry.offset

    def clear_active_connection(self) -> None:
        self.active_connection = None
        self.dialect = None
        self.tables = []
        self.selected_table = None
        self.table_cache = TableCache()
        self.refreshing_table_key = None
        self.reset_preview()
        self.clear_search()
