"""
Per-connection table cache and refresh throttling
"""

import time
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..database.models import ColumnInfo, TableInfo
from .models import DataRow, TableCacheEntry

DEFAULT_REFRESH_THROTTLE_MS = 1500


def table_cache_key(table: Optional[TableInfo]) -> Optional[str]:
    """`schema|name`, with `default` standing in for a missing schema"""
    if table is None:
        return None
    return f"{table.schema or 'default'}|{table.name}"


class TableCache:
    """Cached columns and last page per table, for one connection"""

    def __init__(self, entries: Optional[Mapping[str, TableCacheEntry]] = None):
        self._entries: Dict[str, TableCacheEntry] = dict(entries or {})

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[TableCacheEntry]:
        return self._entries.get(key)

    def ensure_entry(self, key: str) -> TableCacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            entry = TableCacheEntry()
            self._entries[key] = entry
        return entry

    def update_columns(self, key: str, columns: Sequence[ColumnInfo]) -> TableCacheEntry:
        """Replace the columns of an entry, leaving its rows alone"""
        entry = self.ensure_entry(key).model_copy(update={'columns': list(columns)})
        self._entries[key] = entry
        return entry

    def update_rows(self, key: str, rows: Sequence[DataRow], has_more: bool, offset: int) -> TableCacheEntry:
        """Replace the page of an entry, leaving its columns alone"""
        entry = self.ensure_entry(key).model_copy(update={
            'rows': list(rows),
            'has_more': has_more,
            'offset': offset,
        })
        self._entries[key] = entry
        return entry

    def remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> List[str]:
        return list(self._entries)

    def snapshot(self) -> Dict[str, TableCacheEntry]:
        return dict(self._entries)


class RefreshThrottle:
    """Rejects a refresh of the same key within the throttle window.

    The caller records the attempt with `mark` once the fetch finishes,
    whether it succeeded or not.
    """

    def __init__(self, interval_ms: int = DEFAULT_REFRESH_THROTTLE_MS, clock: Callable[[], float] = time.monotonic):
        self.interval_ms = interval_ms
        self._clock = clock
        self._timestamps: Dict[str, float] = {}

    def can_proceed(self, key: Optional[str]) -> bool:
        if key is None:
            return True
        last = self._timestamps.get(key)
        if last is None:
            return True
        return (self._clock() - last) * 1000 >= self.interval_ms

    def mark(self, key: Optional[str]) -> None:
        if key is not None:
            self._timestamps[key] = self._clock()

    def last_refresh(self, key: str) -> Optional[float]:
        return self._timestamps.get(key)

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._timestamps.clear()
        else:
            self._timestamps.pop(key, None)
