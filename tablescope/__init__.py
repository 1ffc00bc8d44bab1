"""
tablescope: browse PostgreSQL, MySQL and SQLite databases
"""

from .database import ConnectionConfig, DatabaseFactory, Dialect
from .state.effects import EffectsOrchestrator
from .utils.persistence import PersistenceStore

__version__ = "0.1.0"

__all__ = [
    'ConnectionConfig',
    'DatabaseFactory',
    'Dialect',
    'EffectsOrchestrator',
    'PersistenceStore',
]
