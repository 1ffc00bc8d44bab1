"""
Application state, table cache and refresh throttling
"""

from .models import ConnectionInfo, QueryHistoryItem, SortConfig, SortDirection, TableCacheEntry
from .cache import RefreshThrottle, TableCache, table_cache_key

__all__ = [
    'ConnectionInfo',
    'QueryHistoryItem',
    'SortConfig',
    'SortDirection',
    'TableCacheEntry',
    'RefreshThrottle',
    'TableCache',
    'table_cache_key',
]
