"""
Error types for the statistics persistence engine.

Two channels are used:
- Exceptions for conditions the caller must act on (cannot connect,
  a patch failed, a result row lacks the requested data).
- Outcome records for degraded but expected states (a statement failed and
  the connection was recovered or not). These are never raised.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class PersistenceError(Exception):
    """Base class for all persistence engine errors"""


class ConnectionFailed(PersistenceError):
    """The connection to the remote database could not be established"""


class DatabaseClosed(PersistenceError):
    """The database handle was used after cleanup()"""


class MigrationFailed(PersistenceError):
    """A database patch failed while executing"""

    def __init__(self, patch_id: str, message: str):
        super().__init__(f"Patch {patch_id}: {message}")
        self.patch_id = patch_id


class MissingColumn(PersistenceError, KeyError):
    """A result row does not contain the requested column"""

    def __init__(self, column: str):
        super().__init__(column)
        self.column = column

    def __str__(self):
        return f"Column not present in result row: {self.column}"


class TypeConversion(PersistenceError, ValueError):
    """A result value cannot be converted to the requested type"""

    def __init__(self, column: str, value: Optional[str], target: str):
        super().__init__(f"Cannot convert {column}={value!r} to {target}")
        self.column = column
        self.value = value
        self.target = target


class ErrorKind(Enum):
    """Kinds of failure reported through Outcome"""
    CONNECTION_FAILED = "connection_failed"
    TRANSIENT_IO = "transient_io"
    MIGRATION_FAILED = "migration_failed"


@dataclass(frozen=True)
class Outcome:
    """Result of the last statement executed on a connection"""
    ok: bool = True
    kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls) -> 'Outcome':
        return cls()

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> 'Outcome':
        return cls(ok=False, kind=kind, message=message)
