"""
Database Connection Management

Owns the single live connection to the remote statistics database:
- Initial connect (with credentials from configuration)
- Raw statement execution with explicit commits
- Health-checked reconnect with backoff
- Cleanup

The composing application holds exactly one Database instance and passes it
to whatever needs persistence; there is no module-level connection.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import ConnectionFailed, DatabaseClosed, ErrorKind, Outcome
from .result import QueryResult

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle states of the database handle"""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class Database:
    """
    A running connection to the remote database.

    Usage:
        db = Database.from_config(config)
        db.connect()

        db.execute_update("UPDATE players SET online = 0")
        rows = db.execute_query("SELECT * FROM players")
        row_count = len(rows)

        db.cleanup()
    """

    def __init__(self, url: str, username: Optional[str] = None,
                 password: Optional[str] = None, debug: bool = False,
                 probe_timeout: float = 10.0, retry_delay: float = 1.0,
                 max_retry_delay: float = 60.0,
                 engine_options: Optional[Dict[str, Any]] = None):
        """
        Args:
            url: SQLAlchemy database URL
            username: Overrides the user in the URL when given
            password: Overrides the password in the URL when given
            debug: Log full tracebacks for failed statements
            probe_timeout: Seconds allowed for the liveness probe
            retry_delay: Base delay for reconnect backoff
            max_retry_delay: Upper bound for reconnect backoff
            engine_options: Extra keyword arguments for create_engine()
        """
        self.url = url
        self.username = username
        self.password = password
        self.debug = debug
        self.probe_timeout = probe_timeout
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.engine_options = dict(engine_options or {})

        self.state = ConnectionState.DISCONNECTED
        self.last_outcome = Outcome.success()

        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None

        # Liveness probe worker; at most one probe in flight
        self._probe_executor: Optional[ThreadPoolExecutor] = None
        self._probe_future: Optional[Future] = None
        self._probe_connection: Optional[Connection] = None

        # Reconnect failure tracking (backoff / circuit breaker)
        self.consecutive_failures = 0
        self.last_failure_time = 0.0
        self._clock = time.monotonic

    @classmethod
    def from_config(cls, config) -> 'Database':
        """Build a Database from a config.Config instance"""
        return cls(
            config.DB_URL,
            username=config.DB_USER or None,
            password=config.DB_PASSWORD or None,
            debug=config.DEBUG,
            probe_timeout=config.PROBE_TIMEOUT,
            retry_delay=config.RETRY_DELAY,
            max_retry_delay=config.MAX_RETRY_DELAY,
        )

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    def connect(self) -> None:
        """
        Open a connection to the remote database.

        Raises:
            ConnectionFailed: driver missing, bad credentials or unreachable host
        """
        self._ensure_open()
        self.state = ConnectionState.CONNECTING
        self._close_connection()

        try:
            if self._engine is None:
                self._engine = self._create_engine()
            self._connection = self._engine.connect()
        except (NoSuchModuleError, ImportError) as e:
            self._mark_disconnected(f"Database driver was not found: {e}")
            raise ConnectionFailed(f"Database driver was not found: {e}") from e
        except (ArgumentError, SQLAlchemyError) as e:
            self._mark_disconnected(str(e))
            raise ConnectionFailed(f"Could not connect to the database: {e}") from e

        self.state = ConnectionState.CONNECTED
        self.consecutive_failures = 0
        self.last_outcome = Outcome.success()
        logger.info(f"Connected to database: {self.safe_url}")

    def _create_engine(self) -> Engine:
        url = make_url(self.url)
        if self.username:
            url = url.set(username=self.username)
        if self.password:
            url = url.set(password=self.password)

        options = dict(self.engine_options)
        options.setdefault('echo', False)

        if url.get_backend_name() == 'sqlite':
            options.setdefault('connect_args', {'check_same_thread': False})
            if url.database in (None, '', ':memory:'):
                options.setdefault('poolclass', StaticPool)

        engine = create_engine(url, **options)

        if url.get_backend_name() == 'sqlite':
            # Enable foreign key support for SQLite
            @event.listens_for(engine, "connect")
            def set_sqlite_pragma(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    @property
    def safe_url(self) -> str:
        """Database URL with the password hidden; also keys the local version mirror"""
        try:
            return make_url(self.url).render_as_string(hide_password=True)
        except ArgumentError:
            return '<invalid url>'

    def _mark_disconnected(self, message: str) -> None:
        self.state = ConnectionState.DISCONNECTED
        self._connection = None
        self.last_outcome = Outcome.failure(ErrorKind.CONNECTION_FAILED, message)

    def _close_connection(self) -> None:
        if self._connection is None:
            return
        try:
            self._connection.close()
        except SQLAlchemyError as e:
            logger.debug(f"Error closing stale connection: {e}")
        self._connection = None

    def _ensure_open(self) -> None:
        if self.state == ConnectionState.CLOSED:
            raise DatabaseClosed("Database handle was cleaned up; construct a new one")

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self._connection is not None

    @property
    def is_healthy(self) -> bool:
        """Connected and the last statement did not fail"""
        return self.is_connected and self.last_outcome.ok

    # =========================================================================
    # Liveness probe and reconnect
    # =========================================================================

    def _probe(self, connection: Connection) -> bool:
        if connection.closed or connection.invalidated:
            return False
        try:
            connection.exec_driver_sql("SELECT 1").scalar()
            return True
        except SQLAlchemyError as e:
            logger.debug(f"Liveness probe failed: {e}")
            return False

    def is_alive(self, timeout: Optional[float] = None) -> bool:
        """
        Check whether the current handle is still usable.

        The probe runs on a single helper thread so a hung socket cannot
        block the caller for longer than the timeout. While an earlier probe
        is still stuck no new one is started and the handle counts as dead.
        """
        connection = self._connection
        if connection is None:
            return False
        timeout = self.probe_timeout if timeout is None else timeout

        if self._probe_future is not None and not self._probe_future.done():
            logger.warning("Previous liveness probe has not returned yet")
            if self._probe_connection is connection:
                self._abandon_connection()
            return False

        if self._probe_executor is None:
            self._probe_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="db-probe")
        self._probe_connection = connection
        self._probe_future = self._probe_executor.submit(self._probe, connection)
        try:
            return self._probe_future.result(timeout=timeout)
        except FutureTimeout:
            logger.warning(f"Liveness probe timed out after {timeout}s")
            self._abandon_connection()
            return False

    def _abandon_connection(self) -> None:
        """
        Give up on a handle the probe thread may still be using.

        The handle is invalidated and dropped but never closed here, so
        reconnect opens a fresh one without touching it.
        """
        connection = self._connection
        self._connection = None
        self.state = ConnectionState.DISCONNECTED
        if connection is None or connection.invalidated:
            return
        try:
            connection.invalidate()
        except SQLAlchemyError as e:
            logger.debug(f"Error invalidating hung connection: {e}")

    def retry_backoff(self) -> float:
        """Seconds to wait after the current run of failed reconnects"""
        if self.consecutive_failures == 0:
            return 0.0
        return min(
            self.retry_delay * (2 ** self.consecutive_failures),
            self.max_retry_delay
        )

    @property
    def circuit_open(self) -> bool:
        """True while reconnect attempts are suppressed by backoff"""
        if self.consecutive_failures == 0:
            return False
        return self._clock() - self.last_failure_time < self.retry_backoff()

    def reconnect(self) -> bool:
        """
        Attempt to recover the connection after a failed statement.

        Returns:
            True if the connection was still present or reconnect succeeded.
            False otherwise; statements will not persist until a later
            reconnect succeeds.
        """
        self._ensure_open()

        if self.is_alive():
            logger.info("Connection is still present. Malformed query detected.")
            self.state = ConnectionState.CONNECTED
            return True

        if self.circuit_open:
            remaining = self.retry_backoff() - (self._clock() - self.last_failure_time)
            logger.debug(f"Reconnect backoff active: {remaining:.1f}s remaining")
            self.state = ConnectionState.DISCONNECTED
            return False

        logger.warning("Attempting to re-connect to the database")
        self.state = ConnectionState.RECONNECTING
        try:
            self.connect()
        except ConnectionFailed as e:
            self.consecutive_failures += 1
            self.last_failure_time = self._clock()
            logger.critical(
                f"Failed to re-connect to the database (attempt #{self.consecutive_failures}). "
                "Data is being stored locally."
            )
            if self.debug:
                logger.critical(f"Reconnect failure: {e}", exc_info=True)
            return False

        logger.info("Connection re-established. No data is lost.")
        return True

    # =========================================================================
    # Statement execution
    # =========================================================================

    def _require_connection(self) -> Connection:
        self._ensure_open()
        if self._connection is None:
            raise ConnectionFailed("Not connected to the database")
        return self._connection

    def _handle_failure(self, sql: str, error: Exception) -> None:
        """Log a failed statement, roll back, and try to recover"""
        logger.warning(f"Error executing database statement: {error} | query: {sql}")
        if self.debug:
            logger.warning("Statement failure details", exc_info=error)

        connection = self._connection
        if connection is not None and not connection.closed and not connection.invalidated:
            try:
                connection.rollback()
            except SQLAlchemyError as e:
                logger.debug(f"Rollback after failure did not complete: {e}")

        self.reconnect()
        self.last_outcome = Outcome.failure(ErrorKind.TRANSIENT_IO, str(error))

    def execute_update(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> bool:
        """
        Run a write statement and commit it.

        This is a raw method; use the Query builder for regular reads and
        writes.

        Returns:
            True if at least one row changed. False if nothing changed or the
            statement failed (check last_outcome / is_healthy to tell apart).
        """
        self._ensure_open()
        if self._connection is None and not self.reconnect():
            self.last_outcome = Outcome.failure(ErrorKind.CONNECTION_FAILED, "Not connected")
            logger.warning(f"Dropping statement, no database connection: {sql}")
            return False

        try:
            result = self._connection.execute(text(sql), dict(params or {}))
            rows_changed = result.rowcount
            self._connection.commit()
        except SQLAlchemyError as e:
            self._handle_failure(sql, e)
            return False

        self.last_outcome = Outcome.success()
        return rows_changed is not None and rows_changed > 0

    def execute_query(self, sql: str, params: Optional[Mapping[str, Any]] = None) -> List[QueryResult]:
        """
        Run a read statement and return every row.

        Returns:
            List of QueryResult rows. Empty both when nothing matched and when
            the query failed; last_outcome tells the two apart.
        """
        self._ensure_open()
        if self._connection is None and not self.reconnect():
            self.last_outcome = Outcome.failure(ErrorKind.CONNECTION_FAILED, "Not connected")
            return []

        try:
            result = self._connection.execute(text(sql), dict(params or {}))
            rows = [QueryResult(row) for row in result.mappings()]
        except SQLAlchemyError as e:
            self._handle_failure(sql, e)
            return []

        self.last_outcome = Outcome.success()
        return rows

    def execute_statement(self, sql: str) -> None:
        """
        Execute one statement verbatim without committing.

        Used for patch scripts; errors propagate to the caller.
        """
        self._require_connection().exec_driver_sql(sql)

    def commit(self) -> None:
        self._require_connection().commit()

    def rollback(self) -> None:
        connection = self._require_connection()
        if not connection.invalidated:
            connection.rollback()

    def has_table(self, table: str) -> bool:
        """
        Check whether a table exists.

        False both when the table is missing and when the check fails;
        last_outcome tells the two apart.
        """
        self._ensure_open()
        if self._connection is None:
            self.last_outcome = Outcome.failure(ErrorKind.CONNECTION_FAILED, "Not connected")
            return False
        try:
            found = inspect(self._connection).has_table(table)
        except SQLAlchemyError as e:
            logger.warning(f"Could not inspect table {table}: {e}")
            self.last_outcome = Outcome.failure(ErrorKind.TRANSIENT_IO, str(e))
            return False
        self.last_outcome = Outcome.success()
        return found

    def query(self, table: str) -> 'Query':
        """Start a query builder on a table"""
        from .query import Query
        return Query(self, table)

    # =========================================================================
    # Cleanup
    # =========================================================================

    def cleanup(self) -> None:
        """Close the connection and release the engine"""
        if self.state == ConnectionState.CLOSED:
            return

        if self._probe_future is not None and not self._probe_future.done():
            self._abandon_connection()
        self._close_connection()
        if self._probe_executor is not None:
            self._probe_executor.shutdown(wait=False)
            self._probe_executor = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None

        self.state = ConnectionState.CLOSED
        logger.info("Database connection closed")

    def get_status(self) -> dict:
        """Get current status for monitoring"""
        return {
            'state': self.state.value,
            'healthy': self.is_healthy,
            'last_error': self.last_outcome.message,
            'consecutive_failures': self.consecutive_failures,
            'circuit_open': self.circuit_open,
        }
