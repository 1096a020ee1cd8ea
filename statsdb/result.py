"""
Query Result Rows

A read-only view over one row returned by the database. Values are kept as
strings (as the driver would render them) and parsed on demand by the typed
accessors.
"""

from typing import Any, Dict, Iterator, Mapping, Optional

from .errors import MissingColumn, TypeConversion

_TRUE_VALUES = {'1', 'true', 'yes'}
_FALSE_VALUES = {'0', 'false', 'no'}

_LONG_MIN = -(2 ** 63)
_LONG_MAX = 2 ** 63 - 1


def _to_text(value: Any) -> Optional[str]:
    """Render a driver value the way a string column getter would"""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    if isinstance(value, bool):
        return '1' if value else '0'
    return str(value)


class QueryResult(Mapping):
    """
    Immutable column -> value mapping for a single result row.

    Usage:
        row = db.query('players').condition('player_id', 42).select_first()
        logins = row.get_int('logins')
        online = row.get_bool('online')
    """

    __slots__ = ('_values',)

    def __init__(self, row: Mapping[str, Any]):
        object.__setattr__(self, '_values', {str(k): _to_text(v) for k, v in row.items()})

    def __setattr__(self, name, value):
        raise AttributeError("QueryResult is read-only")

    def __getitem__(self, column: str) -> Optional[str]:
        try:
            return self._values[column]
        except KeyError:
            raise MissingColumn(column) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self):
        return f"<QueryResult({self._values})>"

    def as_dict(self) -> Dict[str, Optional[str]]:
        """Return a copy of the row"""
        return dict(self._values)

    # =========================================================================
    # Typed accessors
    # =========================================================================

    def get_string(self, column: str) -> Optional[str]:
        return self[column]

    def get_int(self, column: str) -> int:
        value = self[column]
        try:
            return int(value)
        except (TypeError, ValueError):
            pass
        # Some drivers render integral DECIMAL columns as "12.0"
        try:
            number = float(value)
        except (TypeError, ValueError):
            raise TypeConversion(column, value, 'int') from None
        if not number.is_integer():
            raise TypeConversion(column, value, 'int')
        return int(number)

    def get_long(self, column: str) -> int:
        number = self.get_int(column)
        if not _LONG_MIN <= number <= _LONG_MAX:
            raise TypeConversion(column, self[column], 'long')
        return number

    def get_float(self, column: str) -> float:
        value = self[column]
        try:
            return float(value)
        except (TypeError, ValueError):
            raise TypeConversion(column, value, 'float') from None

    # Kept for callers that think in SQL column types
    get_double = get_float

    def get_bool(self, column: str) -> bool:
        value = self[column]
        if value is not None:
            normalized = value.strip().lower()
            if normalized in _TRUE_VALUES:
                return True
            if normalized in _FALSE_VALUES:
                return False
        raise TypeConversion(column, value, 'bool')
