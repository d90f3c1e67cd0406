from __future__ import annotations

from datetime import timedelta

import pytest

from taskapi.lifecycle import ShutdownCoordinator
from taskapi.models import Task
from taskapi.repositories import InMemoryRepository, StoreError
from taskapi.services import TaskService
from taskapi.sweeper import OverdueSweeper, SweeperState

from .fakes import TODAY, BlockingService


class RecordingSweeper:
    def __init__(self, calls: list) -> None:
        self.calls = calls

    def request_stop(self) -> None:
        self.calls.append("request_stop")

    def wait_drained(self) -> None:
        self.calls.append("wait_drained")


class RecordingRepository(InMemoryRepository):
    def __init__(self, calls: list) -> None:
        super().__init__()
        self.calls = calls

    def close(self) -> None:
        self.calls.append("close")
        super().close()


class TestShutdownCoordinator:
    def test_store_closed_only_after_sweeper_drained(self):
        calls: list = []
        coordinator = ShutdownCoordinator(RecordingSweeper(calls), RecordingRepository(calls))

        coordinator.shutdown()

        assert calls == ["request_stop", "wait_drained", "close"]

    def test_shutdown_is_idempotent(self):
        calls: list = []
        coordinator = ShutdownCoordinator(RecordingSweeper(calls), RecordingRepository(calls))
        coordinator.shutdown()
        coordinator.shutdown()
        assert calls.count("close") == 1

    def test_shutdown_waits_for_in_flight_sweep(self):
        calls: list = []
        service = BlockingService([7])
        sweeper = OverdueSweeper(service)
        repo = RecordingRepository(calls)
        coordinator = ShutdownCoordinator(sweeper, repo)

        sweeper.start(0.01)
        assert service.entered.wait(timeout=2)
        coordinator.request_stop()
        # Release the blocked update shortly after shutdown starts waiting
        service.release.set()
        coordinator.shutdown()

        assert service.flagged == [7]
        assert sweeper.state is SweeperState.STOPPED
        assert calls == ["close"]

    def test_store_unusable_after_shutdown(self):
        repo = InMemoryRepository()
        service = TaskService(repo, today=lambda: TODAY)
        service.create(Task(id=1, title="pay rent", due_date=TODAY - timedelta(days=1)))
        sweeper = OverdueSweeper(service)
        sweeper.start(0.01)

        ShutdownCoordinator(sweeper, repo).shutdown()

        with pytest.raises(StoreError):
            repo.get(1)
