"""
Overdue sweeper.

A dedicated worker thread that, every `interval` seconds (at a fixed rate,
measured from `start()`, so a slow sweep does not push later ticks back):
- lists tasks whose due date has passed and that are not flagged overdue,
- flags each one overdue (best-effort: one failure does not stop the rest),
- gives up on the remaining tasks once the tick deadline (equal to the interval) passes.

Stopping is cooperative. `request_stop()` prevents any further tick from starting,
but a tick already in progress always runs to completion; `wait_drained()` blocks
until the worker thread has exited.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .errors import TaskError
from .services import TaskService

logger = logging.getLogger(__name__)


def next_tick(due: float, now: float, interval: float) -> float:
    """
    Schedule the tick after `due` on the fixed grid `due + n * interval`.

    Ticks that fell behind `now` while a sweep ran are dropped, not replayed.
    """
    due += interval
    if due <= now:
        due += ((now - due) // interval + 1) * interval
    return due


class SweeperState(str, Enum):
    IDLE = "idle"
    SWEEPING = "sweeping"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class SweepResult:
    """Outcome of a single sweep tick."""

    found: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    timed_out: bool = False


# PUBLIC_INTERFACE
class OverdueSweeper:
    """Background worker flagging past-due tasks as overdue on a fixed interval."""

    def __init__(self, service: TaskService, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._service = service
        self._clock = clock
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._drained = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._state = SweeperState.IDLE

    @property
    def state(self) -> SweeperState:
        with self._lock:
            return self._state

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def start(self, interval: float) -> None:
        """Start the worker thread. A sweeper can be started only once."""
        if interval <= 0:
            raise ValueError("interval must be positive")
        with self._lock:
            if self._thread is not None or self._stop.is_set():
                raise RuntimeError("overdue sweeper already started or stopped")
            self._thread = threading.Thread(
                target=self._run, args=(interval,), name="overdue-sweeper", daemon=True
            )
            self._thread.start()

    def request_stop(self) -> None:
        """Ask the worker to exit after the current tick, if any. Non-blocking and idempotent."""
        with self._lock:
            if self._thread is None:
                self._state = SweeperState.STOPPED
            elif self._state in (SweeperState.IDLE, SweeperState.SWEEPING):
                self._state = SweeperState.DRAINING
        if not self._stop.is_set():
            logger.info("overdue sweeper stop requested")
            self._stop.set()

    def wait_drained(self) -> None:
        """Block, without timeout, until the worker thread has exited. Returns at once if never started."""
        with self._lock:
            thread = self._thread
        if thread is None:
            return
        self._drained.wait()

    def _run(self, interval: float) -> None:
        logger.info("overdue sweeper started interval=%.1fs", interval)
        try:
            due = time.monotonic() + interval
            while not self._stop.wait(max(0.0, due - time.monotonic())):
                try:
                    self.run_once(interval)
                except Exception:
                    logger.exception("overdue sweep tick failed")
                if self._stop.is_set():
                    break
                due = next_tick(due, time.monotonic(), interval)
        finally:
            with self._lock:
                self._state = SweeperState.STOPPED
            self._drained.set()
            logger.info("overdue sweeper stopped")

    def _begin_tick(self) -> None:
        with self._lock:
            if self._state == SweeperState.IDLE:
                self._state = SweeperState.SWEEPING

    def _end_tick(self) -> None:
        with self._lock:
            if self._state == SweeperState.SWEEPING:
                self._state = SweeperState.IDLE

    def run_once(self, deadline_seconds: float) -> SweepResult:
        """
        Run one sweep tick bounded by `deadline_seconds`.

        Failures to flag an individual task are logged and counted. Tasks left
        unprocessed when the deadline passes are skipped; the next tick selects
        them again.
        """
        result = SweepResult()
        if self._stop.is_set():
            logger.debug("stop requested, not starting a sweep")
            return result

        self._begin_tick()
        deadline = self._clock() + deadline_seconds
        try:
            with self._service.operation_timeout(deadline_seconds):
                try:
                    tasks = self._service.get_tasks_past_due()
                except TaskError as exc:
                    logger.error("failed to get past due tasks: %s", exc)
                    return result

                result.found = len(tasks)
                logger.info("found overdue tasks: %d", result.found)

                for index, task in enumerate(tasks):
                    if self._clock() >= deadline:
                        result.timed_out = True
                        result.skipped = len(tasks) - index
                        logger.warning(
                            "sweep deadline of %.1fs exceeded, %d task(s) left for the next tick",
                            deadline_seconds,
                            result.skipped,
                        )
                        break
                    try:
                        self._service.set_overdue(task["id"], True)
                    except TaskError as exc:
                        result.failed += 1
                        logger.error("failed to set overdue for task with id %d: %s", task["id"], exc)
                        continue
                    result.updated += 1
                    logger.info("task with id %d is overdue", task["id"])
        finally:
            self._end_tick()

        logger.info(
            "overdue sweep done found=%d updated=%d failed=%d skipped=%d",
            result.found,
            result.updated,
            result.failed,
            result.skipped,
        )
        return result
