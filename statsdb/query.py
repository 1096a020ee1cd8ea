"""
Query Builder

Builds keyed SELECT / INSERT / UPDATE / DELETE statements for a single table
and runs them through a Database. Values are always sent as bound
parameters; table and column names must come from statsdb.tables.

Usage:
    rows = (db.query(PlayersTable.TABLE_NAME)
              .column(PlayersTable.LOGINS)
              .condition(PlayersTable.PLAYER_ID, 42)
              .select())

    db.query(PlayersTable.TABLE_NAME) \\
        .value(PlayersTable.LOGINS, 5) \\
        .condition(PlayersTable.PLAYER_ID, 42) \\
        .update()
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .result import QueryResult

logger = logging.getLogger(__name__)


def _bind_value(value: Any) -> Any:
    """Booleans are stored as 0/1 integers"""
    if isinstance(value, bool):
        return 1 if value else 0
    return value


class Query:
    """Fluent statement builder for one table"""

    def __init__(self, db, table: str):
        self.db = db
        self.table = table
        self._columns: List[str] = []
        self._values: Dict[str, Any] = {}
        self._conditions: Dict[str, Any] = {}

    def __repr__(self):
        return f"<Query({self.table}, values={self._values}, conditions={self._conditions})>"

    # =========================================================================
    # Builder methods
    # =========================================================================

    def column(self, *names: str) -> 'Query':
        """Restrict the SELECT column list"""
        self._columns.extend(names)
        return self

    def value(self, name: str, value: Any) -> 'Query':
        """Set a column value for INSERT / UPDATE"""
        self._values[name] = value
        return self

    def values(self, mapping: Mapping[str, Any]) -> 'Query':
        self._values.update(mapping)
        return self

    def condition(self, name: str, value: Any) -> 'Query':
        """Add an equality condition (conditions are AND-ed)"""
        self._conditions[name] = value
        return self

    def conditions(self, mapping: Mapping[str, Any]) -> 'Query':
        self._conditions.update(mapping)
        return self

    # =========================================================================
    # Statement construction
    # =========================================================================

    def _where(self, params: Dict[str, Any]) -> str:
        if not self._conditions:
            return ''
        clauses = []
        for i, (name, value) in enumerate(self._conditions.items()):
            if value is None:
                clauses.append(f"{name} IS NULL")
                continue
            key = f"w{i}"
            params[key] = _bind_value(value)
            clauses.append(f"{name} = :{key}")
        return " WHERE " + " AND ".join(clauses)

    def _assignments(self, params: Dict[str, Any]) -> List[Tuple[str, str]]:
        pairs = []
        for i, (name, value) in enumerate(self._values.items()):
            key = f"v{i}"
            params[key] = _bind_value(value)
            pairs.append((name, f":{key}"))
        return pairs

    def build_select(self) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {}
        columns = ", ".join(self._columns) if self._columns else "*"
        sql = f"SELECT {columns} FROM {self.table}{self._where(params)}"
        return sql, params

    def build_insert(self) -> Tuple[str, Dict[str, Any]]:
        if not self._values:
            raise ValueError(f"INSERT into {self.table} has no values")
        params: Dict[str, Any] = {}
        pairs = self._assignments(params)
        columns = ", ".join(name for name, _ in pairs)
        binds = ", ".join(bind for _, bind in pairs)
        sql = f"INSERT INTO {self.table} ({columns}) VALUES ({binds})"
        return sql, params

    def build_update(self) -> Tuple[str, Dict[str, Any]]:
        if not self._values:
            raise ValueError(f"UPDATE of {self.table} has no values")
        params: Dict[str, Any] = {}
        assignments = ", ".join(f"{name} = {bind}" for name, bind in self._assignments(params))
        sql = f"UPDATE {self.table} SET {assignments}{self._where(params)}"
        return sql, params

    def build_delete(self) -> Tuple[str, Dict[str, Any]]:
        params: Dict[str, Any] = {}
        sql = f"DELETE FROM {self.table}{self._where(params)}"
        return sql, params

    # =========================================================================
    # Execution
    # =========================================================================

    def select(self) -> List[QueryResult]:
        """Return matching rows (empty list when nothing matches)"""
        sql, params = self.build_select()
        return self.db.execute_query(sql, params)

    def select_first(self) -> Optional[QueryResult]:
        rows = self.select()
        return rows[0] if rows else None

    def exists(self) -> bool:
        return len(self.select()) > 0

    def insert(self) -> bool:
        """
        Insert one row.

        Returns:
            True if the row was written. Failures (including constraint
            violations) return False so the caller can retry.
        """
        sql, params = self.build_insert()
        return self.db.execute_update(sql, params)

    def update(self) -> bool:
        """Returns True if at least one row changed"""
        sql, params = self.build_update()
        return self.db.execute_update(sql, params)

    def delete(self) -> bool:
        """Returns True if at least one row was removed"""
        sql, params = self.build_delete()
        return self.db.execute_update(sql, params)
