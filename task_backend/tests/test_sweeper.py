from __future__ import annotations

import itertools
import threading
import time
from datetime import timedelta

import pytest

from taskapi.models import Task
from taskapi.repositories import InMemoryRepository
from taskapi.services import TaskService
from taskapi.sweeper import OverdueSweeper, SweeperState, next_tick

from .fakes import TODAY, BlockingService, FlakyRepository

YESTERDAY = TODAY - timedelta(days=1)
TOMORROW = TODAY + timedelta(days=1)


def _seed_unflagged(service: TaskService, task_id: int, title: str, due) -> None:
    # Simulate a task whose due date passed after it was written: due_date set, flag still false
    service.create(Task(id=task_id, title=title, due_date=due))
    service.set_overdue(task_id, False)


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestRunOnce:
    def test_past_due_task_is_flagged(self, service: TaskService):
        _seed_unflagged(service, 1, "pay rent", YESTERDAY)

        result = OverdueSweeper(service).run_once(5.0)

        assert (result.found, result.updated, result.failed) == (1, 1, 0)
        assert service.get_by_id(1)["overdue"] is True

    def test_future_and_undated_tasks_stay_not_overdue(self, service: TaskService):
        service.create(Task(id=1, title="gift", due_date=TOMORROW))
        service.create(Task(id=2, title="someday"))

        result = OverdueSweeper(service).run_once(5.0)

        assert result.found == 0
        assert service.get_by_id(1)["overdue"] is False
        assert service.get_by_id(2)["overdue"] is False

    def test_every_past_due_task_is_flagged_after_one_tick(self, service: TaskService):
        for i in range(1, 6):
            _seed_unflagged(service, i, f"late {i}", TODAY - timedelta(days=i))
        service.create(Task(id=6, title="later", due_date=TOMORROW))

        OverdueSweeper(service).run_once(5.0)

        flags = {t["id"]: t["overdue"] for t in service.get_all()}
        assert flags == {1: True, 2: True, 3: True, 4: True, 5: True, 6: False}

    def test_one_failing_task_does_not_abort_the_tick(self):
        repo = FlakyRepository()
        service = TaskService(repo, today=lambda: TODAY)
        for i in (1, 2, 3):
            _seed_unflagged(service, i, f"late {i}", YESTERDAY)
        repo.failing_ids = {2}

        result = OverdueSweeper(service).run_once(5.0)

        assert (result.found, result.updated, result.failed) == (3, 2, 1)
        assert repo.get(1)["overdue"] is True
        assert repo.get(2)["overdue"] is False
        assert repo.get(3)["overdue"] is True

        # The next tick picks the failed task up again
        repo.failing_ids = set()
        assert OverdueSweeper(service).run_once(5.0).updated == 1
        assert repo.get(2)["overdue"] is True

    def test_failing_scan_is_logged_not_raised(self):
        repo = FlakyRepository()
        repo.fail_list = True
        result = OverdueSweeper(TaskService(repo, today=lambda: TODAY)).run_once(5.0)
        assert result.found == 0
        assert result.updated == 0

    def test_deadline_leaves_remaining_tasks_for_next_tick(self):
        service = TaskService(InMemoryRepository(), today=lambda: TODAY)
        for i in (1, 2, 3):
            _seed_unflagged(service, i, f"late {i}", YESTERDAY)

        # Each clock read advances 0.6s; the deadline is 1.0s after the first read
        clock = itertools.count(0.0, 0.6).__next__
        result = OverdueSweeper(service, clock=clock).run_once(1.0)

        assert result.timed_out is True
        assert (result.updated, result.skipped) == (1, 2)
        assert [t["id"] for t in service.get_tasks_past_due()] == [2, 3]

    def test_client_cannot_leave_an_undated_task_overdue(self, service: TaskService):
        service.create(Task(id=1, title="undated"))
        service.update(Task(id=1, overdue=True))

        OverdueSweeper(service).run_once(5.0)

        row = service.get_by_id(1)
        assert row["due_date"] is None
        assert row["overdue"] is False

    def test_no_sweep_after_stop_requested(self, service: TaskService):
        _seed_unflagged(service, 1, "pay rent", YESTERDAY)
        sweeper = OverdueSweeper(service)
        sweeper.request_stop()

        result = sweeper.run_once(5.0)

        assert result.found == 0
        assert service.get_by_id(1)["overdue"] is False


class TestSchedule:
    def test_ticks_stay_on_a_fixed_grid(self):
        # A sweep that finished well inside the interval keeps the original rate
        assert next_tick(10.0, 10.3, 1.0) == 11.0

    def test_slow_sweep_drops_missed_ticks(self):
        # Ticks at 11 and 12 were missed while a sweep ran until 12.5
        assert next_tick(10.0, 12.5, 1.0) == 13.0
        assert next_tick(10.0, 11.0, 1.0) == 12.0


class TestBackgroundLoop:
    def test_loop_flags_tasks_and_stops(self):
        service = TaskService(InMemoryRepository(), today=lambda: TODAY)
        _seed_unflagged(service, 1, "pay rent", YESTERDAY)
        sweeper = OverdueSweeper(service)

        sweeper.start(0.01)
        try:
            assert _wait_until(lambda: service.get_by_id(1)["overdue"])
        finally:
            sweeper.request_stop()
            sweeper.wait_drained()

        assert sweeper.state is SweeperState.STOPPED

    def test_shutdown_mid_sweep_waits_for_last_update(self):
        service = BlockingService([1, 2, 3])
        sweeper = OverdueSweeper(service)
        sweeper.start(0.01)

        assert service.entered.wait(timeout=2)
        assert sweeper.state is SweeperState.SWEEPING

        sweeper.request_stop()
        assert sweeper.state is SweeperState.DRAINING

        drained = threading.Event()
        waiter = threading.Thread(target=lambda: (sweeper.wait_drained(), drained.set()))
        waiter.start()

        # The in-flight tick is still blocked on its first update
        assert not drained.wait(timeout=0.1)
        assert service.flagged == []

        service.release.set()
        waiter.join(timeout=2)
        assert drained.is_set()
        assert service.flagged == [1, 2, 3]
        assert service.scans == 1
        assert sweeper.state is SweeperState.STOPPED

    def test_request_stop_is_idempotent(self):
        sweeper = OverdueSweeper(BlockingService([]))
        sweeper.start(0.01)
        sweeper.request_stop()
        sweeper.request_stop()
        sweeper.wait_drained()
        sweeper.wait_drained()
        assert sweeper.state is SweeperState.STOPPED

    def test_wait_drained_without_start_returns_immediately(self):
        sweeper = OverdueSweeper(BlockingService([]))
        sweeper.request_stop()
        sweeper.wait_drained()
        assert sweeper.state is SweeperState.STOPPED
        with pytest.raises(RuntimeError):
            sweeper.start(1.0)

    def test_start_twice_or_with_bad_interval_fails(self):
        sweeper = OverdueSweeper(BlockingService([]))
        with pytest.raises(ValueError):
            sweeper.start(0)
        sweeper.start(0.05)
        try:
            with pytest.raises(RuntimeError):
                sweeper.start(0.05)
        finally:
            sweeper.request_stop()
            sweeper.wait_drained()
