"""
Data Entity Contract

Every tracked statistic record mirrors one database row per owner key and
implements three operations:

- fetch_data(owner_key): load the persisted row, inserting the current
  in-memory values if none exists yet
- push_data(owner_key): overwrite the persisted row with get_values()
- get_values(owner_key): column -> value projection of in-memory state

Storage encodings shared by all entities:
- booleans are stored as integers 0/1 (read back with QueryResult.get_bool)
- timestamps are stored as integer seconds since the epoch
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict

from .result import QueryResult

logger = logging.getLogger(__name__)


def encode_bool(value: bool) -> int:
    return 1 if value else 0


def get_timestamp() -> int:
    """Current time as integer seconds since the epoch"""
    return int(time.time())


class DataEntity(ABC):
    """Interface every tracked statistic record implements"""

    @abstractmethod
    def fetch_data(self, owner_key: Any) -> None:
        """Hydrate from the store, inserting defaults if the row is missing"""

    @abstractmethod
    def push_data(self, owner_key: Any) -> bool:
        """Write current values to the store; True on success"""

    @abstractmethod
    def get_values(self, owner_key: Any) -> Dict[str, Any]:
        """Column -> value projection of in-memory state (no side effects)"""


class KeyedEntity(DataEntity):
    """
    DataEntity stored as one row identified by key columns.

    Subclasses define TABLE_NAME, key_columns() and load_row(); get_values()
    must include the key columns.
    """

    TABLE_NAME: str = ''

    def __init__(self, db):
        self.db = db

    @abstractmethod
    def key_columns(self, owner_key: Any) -> Dict[str, Any]:
        """Columns that identify this entity's row"""

    @abstractmethod
    def load_row(self, row: QueryResult) -> None:
        """Copy persisted fields into the in-memory entity"""

    def fetch_data(self, owner_key: Any) -> None:
        row = (self.db.query(self.TABLE_NAME)
               .conditions(self.key_columns(owner_key))
               .select_first())
        if row is None:
            if not self.db.query(self.TABLE_NAME).values(self.get_values(owner_key)).insert():
                logger.warning(f"Could not create {self.TABLE_NAME} row for {owner_key}")
            return
        self.load_row(row)

    def push_data(self, owner_key: Any) -> bool:
        return (self.db.query(self.TABLE_NAME)
                .values(self.get_values(owner_key))
                .conditions(self.key_columns(owner_key))
                .update())
