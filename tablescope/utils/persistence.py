"""
Durable JSON storage for saved connections, query history and the table cache

Three pretty-printed documents live in the data directory:

- connections.json: list of saved connections
- query-history.json: most recent statements first, capped
- table-cache.json: {connection id: {cache key: entry}}

A missing or empty file reads as empty. A malformed connections or history
file raises PersistenceError; a malformed table cache is reset with a warning.
"""

import asyncio
import base64
import hashlib
import json
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..config import resolve_data_dir
from ..database.models import Dialect
from ..state.models import ConnectionInfo, QueryHistoryItem, TableCacheEntry
from .debounced_writer import DEFAULT_DELAY_MS, DebouncedWriter
from .logger import get_logger

logger = get_logger(__name__)

CONNECTIONS_FILE = "connections.json"
HISTORY_FILE = "query-history.json"
TABLE_CACHE_FILE = "table-cache.json"
DEFAULT_HISTORY_LIMIT = 100

LEGACY_DRIVERS = {
    'postgres': Dialect.POSTGRESQL,
    'postgresql': Dialect.POSTGRESQL,
    'pg': Dialect.POSTGRESQL,
    'mysql': Dialect.MYSQL,
    'sqlite': Dialect.SQLITE,
    'sqlite3': Dialect.SQLITE,
}

ConnectionCache = Dict[str, TableCacheEntry]


class PersistenceError(Exception):
    """A persisted document exists but cannot be read"""

    def __init__(self, message: str, path: Path):
        super().__init__(f"{message} ({path})")
        self.path = path


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode('ascii')
    if isinstance(value, Enum):
        return value.value
    return str(value)


def dump_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False, default=_json_default)


def deterministic_id(value: str) -> str:
    """Stable 12-character id derived from a legacy entry"""
    return hashlib.sha1(value.encode('utf-8')).hexdigest()[:12]


@dataclass
class Normalized:
    connection: ConnectionInfo
    legacy: bool = False


@dataclass
class Skipped:
    reason: str


NormalizeResult = Union[Normalized, Skipped]


def _legacy_string(record: Dict[str, Any], keys: Sequence[str]) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def normalize_connection_entry(entry: Any, timestamp: Optional[str] = None) -> NormalizeResult:
    """Accept a current-shape entry, or upgrade a legacy driver/connection_str one"""
    try:
        return Normalized(ConnectionInfo.model_validate(entry))
    except ValidationError:
        pass

    if not isinstance(entry, dict):
        return Skipped("Connection entry is not an object.")

    name = entry.get('name') if isinstance(entry.get('name'), str) else "Legacy connection"
    driver = _legacy_string(entry, ('driver', 'type', 'dialect'))
    connection_string = _legacy_string(entry, ('connection_str', 'connectionString'))

    if not driver or not connection_string:
        return Skipped("Legacy connection missing driver or connection string.")

    dialect = LEGACY_DRIVERS.get(driver.lower())
    if dialect is None:
        return Skipped(f"Unsupported legacy driver value: {driver}")

    stamp = timestamp or now_iso()
    try:
        connection = ConnectionInfo(
            id=deterministic_id(f"{name}:{connection_string}"),
            name=name,
            dialect=dialect,
            connection_string=connection_string,
            created_at=stamp,
            updated_at=stamp,
        )
    except ValidationError as e:
        return Skipped(f"Unable to normalize legacy connection entry: {e.error_count()} errors")
    return Normalized(connection, legacy=True)


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def deduplicate_connections(connections: Sequence[ConnectionInfo]) -> Tuple[List[ConnectionInfo], int]:
    """Keep one connection per (dialect, connection string): the latest updated_at"""
    kept: Dict[Tuple[Dialect, str], ConnectionInfo] = {}
    for connection in connections:
        key = connection.natural_key
        current = kept.get(key)
        if current is None or _parse_timestamp(connection.updated_at) > _parse_timestamp(current.updated_at):
            kept[key] = connection
    return list(kept.values()), len(connections) - len(kept)


@dataclass
class ConnectionsLoadResult:
    connections: List[ConnectionInfo] = field(default_factory=list)
    normalized: int = 0
    skipped: int = 0
    duplicates: int = 0

    @property
    def needs_rewrite(self) -> bool:
        return bool(self.normalized or self.skipped or self.duplicates)


class PersistenceStore:
    """Owns the data directory, its three documents and their writers"""

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        debounce_ms: int = DEFAULT_DELAY_MS,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.data_dir = Path(data_dir).expanduser() if data_dir else resolve_data_dir()
        self.connections_path = self.data_dir / CONNECTIONS_FILE
        self.history_path = self.data_dir / HISTORY_FILE
        self.table_cache_path = self.data_dir / TABLE_CACHE_FILE
        self.history_limit = history_limit

        self._history: Optional[List[QueryHistoryItem]] = None
        self._table_cache: Optional[Dict[str, ConnectionCache]] = None

        self.connections_writer: DebouncedWriter[List[Dict[str, Any]]] = DebouncedWriter(
            lambda data: self._write(self.connections_path, data), debounce_ms, name=CONNECTIONS_FILE)
        self.history_writer: DebouncedWriter[List[Dict[str, Any]]] = DebouncedWriter(
            lambda data: self._write(self.history_path, data), debounce_ms, name=HISTORY_FILE)
        self.table_cache_writer: DebouncedWriter[Dict[str, Any]] = DebouncedWriter(
            lambda data: self._write(self.table_cache_path, data), debounce_ms, name=TABLE_CACHE_FILE)

    # File access

    def ensure_data_directory(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Failed to ensure data directory: {e}", self.data_dir) from e

    def _read(self, path: Path) -> Any:
        """Parsed JSON, or None when the file is missing or blank"""
        self.ensure_data_directory()
        if not path.exists():
            return None
        content = path.read_text(encoding='utf-8')
        if not content.strip():
            return None
        return json.loads(content)

    def _write_sync(self, path: Path, data: Any) -> None:
        self.ensure_data_directory()
        temp_path = path.with_name(f".{path.name}.tmp")
        temp_path.write_text(dump_json(data), encoding='utf-8')
        os.replace(temp_path, path)

    async def _write(self, path: Path, data: Any) -> None:
        await asyncio.to_thread(self._write_sync, path, data)

    async def _read_strict(self, path: Path) -> Any:
        try:
            return await asyncio.to_thread(self._read, path)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"Malformed JSON: {e.msg} at line {e.lineno}", path) from e
        except UnicodeDecodeError as e:
            raise PersistenceError(f"File is not valid UTF-8: {e.reason} at byte {e.start}", path) from e

    # Saved connections

    async def load_connections(self) -> ConnectionsLoadResult:
        await self.connections_writer.drain()
        data = await self._read_strict(self.connections_path)
        if data is None:
            return ConnectionsLoadResult()

        if not isinstance(data, list):
            logger.warning("Expected array while parsing connections, using empty list.")
            return ConnectionsLoadResult(skipped=1)

        loaded: List[ConnectionInfo] = []
        normalized = skipped = 0
        for index, entry in enumerate(data):
            result = normalize_connection_entry(entry)
            if isinstance(result, Skipped):
                logger.warning(f"Skipping invalid connection entry at index {index}: {result.reason}")
                skipped += 1
                continue
            if result.legacy:
                normalized += 1
            loaded.append(result.connection)

        connections, duplicates = deduplicate_connections(loaded)
        if duplicates:
            logger.info(f"Dropped {duplicates} duplicate saved connection(s)")
        return ConnectionsLoadResult(connections, normalized, skipped, duplicates)

    def save_connections(self, connections: Sequence[ConnectionInfo]) -> None:
        """Schedule a debounced rewrite of connections.json"""
        self.connections_writer.write([connection.to_json_dict() for connection in connections])

    # Query history

    async def load_query_history(self) -> List[QueryHistoryItem]:
        await self.history_writer.drain()
        data = await self._read_strict(self.history_path)
        history: List[QueryHistoryItem] = []

        if data is None:
            pass
        elif not isinstance(data, list):
            logger.warning("Expected array while parsing query history, using empty list.")
        else:
            for index, entry in enumerate(data):
                try:
                    history.append(QueryHistoryItem.model_validate(entry))
                except ValidationError:
                    logger.warning(f"Skipping invalid query history entry at index {index}.")

        self._history = history[:self.history_limit]
        return list(self._history)

    def save_query_history(self, history: Sequence[QueryHistoryItem]) -> None:
        self._history = list(history)[:self.history_limit]
        self.history_writer.write([item.to_json_dict() for item in self._history])

    async def add_history_item(self, item: QueryHistoryItem) -> List[QueryHistoryItem]:
        """Prepend an item, trim to the limit, and schedule a write"""
        if self._history is None:
            await self.load_query_history()
        self.save_query_history([item, *self._history])
        return list(self._history)

    # Table cache

    def _parse_table_cache(self, data: Any) -> Dict[str, ConnectionCache]:
        if not isinstance(data, dict):
            logger.warning("Invalid table cache file, resetting.")
            return {}

        result: Dict[str, ConnectionCache] = {}
        for connection_id, caches in data.items():
            if not isinstance(caches, dict):
                logger.warning(f"Skipping table cache for connection {connection_id}: expected object.")
                continue
            connection_cache: ConnectionCache = {}
            for key, entry in caches.items():
                try:
                    connection_cache[key] = TableCacheEntry.model_validate(entry)
                except ValidationError as e:
                    logger.warning(f"Dropping invalid table cache entry {key!r} for {connection_id}: {e.error_count()} errors")
            result[connection_id] = connection_cache
        return result

    async def _table_cache_document(self) -> Dict[str, ConnectionCache]:
        if self._table_cache is None:
            try:
                data = await asyncio.to_thread(self._read, self.table_cache_path)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"Malformed table cache file ({e}), resetting.")
                data = {}
            self._table_cache = self._parse_table_cache(data) if data is not None else {}
        return self._table_cache

    async def load_table_cache(self, connection_id: str) -> ConnectionCache:
        document = await self._table_cache_document()
        return dict(document.get(connection_id, {}))

    async def save_table_cache(self, connection_id: str, cache: Dict[str, TableCacheEntry]) -> None:
        """Replace one connection's cache and schedule a debounced write"""
        document = await self._table_cache_document()
        document[connection_id] = dict(cache)
        self._schedule_table_cache_write(document)

    def _schedule_table_cache_write(self, document: Dict[str, ConnectionCache]) -> None:
        self.table_cache_writer.write({
            conn_id: {key: entry.to_json_dict() for key, entry in entries.items()}
            for conn_id, entries in document.items()
        })

    async def clear_table_cache(self, connection_id: str) -> None:
        await self.save_table_cache(connection_id, {})

    async def drop_table_cache(self, connection_id: str) -> None:
        """Forget every cached table of a connection that no longer exists"""
        document = await self._table_cache_document()
        if document.pop(connection_id, None) is None:
            return
        self._schedule_table_cache_write(document)

    # Lifecycle

    async def flush(self) -> None:
        """Write everything pending; call before the process exits"""
        await asyncio.gather(
            self.connections_writer.drain(),
            self.history_writer.drain(),
            self.table_cache_writer.drain(),
        )
