import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest

from tablescope.config import Settings
from tablescope.database.adapters import DatabaseAdapter
from tablescope.database.errors import DatabaseConnectionError
from tablescope.database.factory import DatabaseFactory
from tablescope.database.models import ConnectionConfig, Dialect, QueryResult
from tablescope.state.effects import EffectsOrchestrator
from tablescope.utils.notification import NotificationManager
from tablescope.utils.persistence import PersistenceStore


def run(coro):
    """Drive a coroutine to completion on a fresh event loop"""
    return asyncio.run(coro)


Responder = Callable[[str, List[Any]], QueryResult]


class FakeAdapter(DatabaseAdapter):
    """Records every call and answers queries through a responder"""

    dialect = Dialect.POSTGRESQL

    def __init__(self, config: ConnectionConfig, log: Dict[str, Any], responder: Optional[Responder] = None):
        super().__init__(config)
        self.dialect = Dialect.parse(config.dialect)
        self.log = log
        self.responder = responder

    async def connect(self) -> None:
        self.log['connects'] += 1
        if self.log.get('fail_connect'):
            raise DatabaseConnectionError("Failed to connect to PostgreSQL database.", "08001", "refused")

    async def query(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        self.log['queries'].append((sql, list(params or [])))
        if self.responder is None:
            return QueryResult(rows=[], row_count=0)
        return self.responder(sql, list(params or []))

    async def close(self) -> None:
        self.log['closes'] += 1


@pytest.fixture()
def adapter_log():
    return {'connects': 0, 'closes': 0, 'queries': []}


@pytest.fixture()
def settings(tmp_path):
    return Settings(data_dir=tmp_path, write_debounce_ms=10)


@pytest.fixture()
def store(tmp_path):
    return PersistenceStore(tmp_path, debounce_ms=10)


@pytest.fixture()
def make_orchestrator(store, settings, adapter_log):
    """Build an orchestrator whose factory hands out FakeAdapters"""
    def build(responder: Optional[Responder] = None, clock: Callable[[], float] = None) -> EffectsOrchestrator:
        factory = DatabaseFactory()
        for dialect in Dialect:
            factory.install_override(dialect, lambda config: FakeAdapter(config, adapter_log, responder))
        kwargs = {'clock': clock} if clock is not None else {}
        return EffectsOrchestrator(store, factory, NotificationManager(), settings, **kwargs)
    return build
