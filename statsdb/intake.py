"""
Statistic Intake

The gate between the game session and the database. While paused (during a
background database patch) nothing touches the connection: pushes are kept
in a local buffer and written once intake resumes. Pushes that fail while
running are buffered the same way and retried on the next flush.
"""

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

from .entity import DataEntity

logger = logging.getLogger(__name__)


class StatsIntake:
    """
    Pause/resume flag plus a local buffer of pending entity pushes.

    Usage:
        intake = StatsIntake()
        intake.submit(player_data, player_id)   # pushes now, or buffers

        intake.pause()     # e.g. while patching
        ...
        intake.resume()    # flushes the buffer
    """

    def __init__(self, max_pending: int = 10000):
        """
        Args:
            max_pending: Buffered pushes kept before the oldest are dropped
        """
        self.max_pending = max_pending
        self.dropped = 0

        self._running = threading.Event()
        self._running.set()
        self._lock = threading.RLock()
        # (entity identity, owner key) -> (entity, owner key)
        self._pending: 'OrderedDict[Tuple[int, Any], Tuple[DataEntity, Any]]' = OrderedDict()

    @property
    def is_paused(self) -> bool:
        return not self._running.is_set()

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def pause(self) -> None:
        self._running.clear()
        logger.info("Statistics intake paused")

    def resume(self) -> None:
        self._running.set()
        logger.info("Statistics intake resumed")
        self.flush()

    def wait_until_running(self, timeout: Optional[float] = None) -> bool:
        """Block until intake is running; False if the timeout expired"""
        return self._running.wait(timeout)

    def _buffer(self, entity: DataEntity, owner_key: Any) -> None:
        key = (id(entity), owner_key)
        with self._lock:
            # Later submits of the same entity replace earlier ones
            self._pending.pop(key, None)
            self._pending[key] = (entity, owner_key)
            while len(self._pending) > self.max_pending:
                _, (dropped_entity, dropped_owner) = self._pending.popitem(last=False)
                self.dropped += 1
                logger.warning(f"Statistics buffer full, dropping {dropped_entity!r} for {dropped_owner}")

    def submit(self, entity: DataEntity, owner_key: Any) -> bool:
        """
        Push an entity, or buffer it if intake is paused or the push fails.

        Returns:
            True if the entity was written to the database now
        """
        if self.is_paused:
            self._buffer(entity, owner_key)
            return False

        if entity.push_data(owner_key):
            return True

        logger.debug(f"Push failed for {entity!r} ({owner_key}), buffering")
        self._buffer(entity, owner_key)
        return False

    def flush(self) -> int:
        """
        Retry every buffered push.

        Returns:
            Number of entities written; failures stay buffered
        """
        if self.is_paused:
            return 0

        with self._lock:
            items = list(self._pending.values())
            self._pending.clear()

        if not items:
            return 0

        flushed = 0
        for entity, owner_key in items:
            if entity.push_data(owner_key):
                flushed += 1
            else:
                self._buffer(entity, owner_key)

        logger.info(f"Flushed {flushed}/{len(items)} buffered statistics")
        return flushed

    def get_status(self) -> Dict[str, Any]:
        """Get current status for monitoring"""
        return {
            'paused': self.is_paused,
            'pending': self.pending_count,
            'dropped': self.dropped,
        }
