"""
Statistics Persistence Engine

Stores game server statistics in a remote SQL database:
- Connection management with health-checked reconnect
- Numbered SQL patches applied exactly once, in order
- Keyed query builder with bound parameters
- Fetch/push synchronisation for statistic entities
"""

from .errors import (
    PersistenceError,
    ConnectionFailed,
    DatabaseClosed,
    MigrationFailed,
    MissingColumn,
    TypeConversion,
    ErrorKind,
    Outcome,
)
from .result import QueryResult
from .database import Database, ConnectionState
from .query import Query
from .scripts import ScriptRunner, split_statements
from .patcher import Patcher, PatchManifest, SchemaVersionStore
from .entity import DataEntity, KeyedEntity, encode_bool, get_timestamp
from .models import PlayerData, TotalBlocksData
from .intake import StatsIntake

__all__ = [
    # Errors
    'PersistenceError',
    'ConnectionFailed',
    'DatabaseClosed',
    'MigrationFailed',
    'MissingColumn',
    'TypeConversion',
    'ErrorKind',
    'Outcome',
    # Database
    'QueryResult',
    'Database',
    'ConnectionState',
    'Query',
    'ScriptRunner',
    'split_statements',
    # Patches
    'Patcher',
    'PatchManifest',
    'SchemaVersionStore',
    # Entities
    'DataEntity',
    'KeyedEntity',
    'encode_bool',
    'get_timestamp',
    'PlayerData',
    'TotalBlocksData',
    'StatsIntake',
]
