from __future__ import annotations

from pathlib import Path

import pytest

from taskapi.db import SQLiteRepository
from taskapi.repositories import InMemoryRepository, Repository
from taskapi.services import TaskService

from .fakes import TODAY


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path: Path) -> Repository:
    """Both record store backends must satisfy the same contract."""
    if request.param == "memory":
        store: Repository = InMemoryRepository()
    else:
        store = SQLiteRepository(str(tmp_path / "tasks.db"))
    yield store
    store.close()


@pytest.fixture()
def service(repo: Repository) -> TaskService:
    return TaskService(repo, today=lambda: TODAY)
