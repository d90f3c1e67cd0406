from __future__ import annotations

import logging
import threading

from .repositories import Repository
from .sweeper import OverdueSweeper

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class ShutdownCoordinator:
    """
    Join point between the overdue sweeper and process termination.

    Shutdown order: stop scheduling sweeps -> wait for the in-flight sweep, if any,
    to finish -> close the record store. The store is never closed while the
    sweeper may still write to it.
    """

    def __init__(self, sweeper: OverdueSweeper, repository: Repository) -> None:
        self._sweeper = sweeper
        self._repository = repository
        self._lock = threading.Lock()
        self._closed = False

    def request_stop(self) -> None:
        """Non-blocking and idempotent."""
        self._sweeper.request_stop()

    def wait_drained(self) -> None:
        """Block with no timeout until the sweeper has fully exited."""
        self._sweeper.wait_drained()

    def shutdown(self) -> None:
        """Run the full stop sequence. Later calls return once the first has finished."""
        self.request_stop()
        logger.info("waiting for overdue sweeper to drain")
        self.wait_drained()
        with self._lock:
            if self._closed:
                return
            self._repository.close()
            self._closed = True
        logger.info("task store closed, stopped")
