from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date
from typing import Any, Callable, Iterator, List, Optional, Tuple

from .errors import DuplicateIdentifier, MissingRequiredField, NotFound, StorageFailure
from .models import Task, TaskEntity
from .repositories import DuplicateKeyError, NotNullViolation, Repository, TaskQuery

logger = logging.getLogger(__name__)


# PUBLIC_INTERFACE
class TaskService:
    """
    Task mutation engine.

    Builds partial updates and creates from a `Task` partial representation,
    keeps `overdue` consistent with `due_date`, and translates record store
    failures into the domain errors in `taskapi.errors`:

    - DuplicateKeyError -> DuplicateIdentifier
    - NotNullViolation  -> MissingRequiredField
    - anything else     -> StorageFailure (not retried)
    """

    def __init__(self, repository: Repository, today: Callable[[], date] = date.today) -> None:
        self._repo = repository
        self._today = today

    @contextmanager
    def operation_timeout(self, seconds: float) -> Iterator[None]:
        """Bound every store call made by this thread inside the block to one deadline."""
        with self._repo.operation_timeout(seconds):
            yield

    def _is_past_due(self, due_date: Optional[date]) -> bool:
        return due_date is not None and due_date < self._today()

    def _call(self, action: str, fn: Callable[..., Any], *args: Any, task_id: Optional[int] = None) -> Any:
        """Run a store call and map its failures onto domain errors."""
        try:
            return fn(*args)
        except DuplicateKeyError as exc:
            logger.warning("%s: task with id %s already exists", action, task_id)
            raise DuplicateIdentifier(f"task with id {task_id} already exists", task_id) from exc
        except NotNullViolation as exc:
            logger.warning("%s: required field %s is missing (task id %s)", action, exc.column, task_id)
            raise MissingRequiredField(f"{exc.column} is required", task_id) from exc
        except Exception as exc:
            logger.error("%s failed for task id %s: %s", action, task_id, exc)
            raise StorageFailure(f"{action} failed: {exc}", task_id) from exc

    def create(self, task: Task) -> TaskEntity:
        """
        Insert a new task from every attribute the caller set.

        A client-supplied overdue flag is ignored; when due_date is given, overdue is
        derived from it. Returns the stored row including column defaults.
        """
        columns = task.changes()
        columns.pop("overdue", None)
        if "due_date" in columns:
            columns["overdue"] = self._is_past_due(columns["due_date"])
        created = self._call("create", self._repo.insert, columns, task_id=task.id)
        logger.info("created task id=%s", created["id"])
        return created

    def update(self, task: Task) -> TaskEntity:
        """
        Rewrite every attribute set on `task` except id, leaving the rest untouched.

        When due_date is part of the change, overdue is recomputed and written in
        the same statement. Raising overdue alone is checked against the stored
        due date, so an undated or not yet due task never becomes overdue.
        """
        if task.id is None:
            raise MissingRequiredField("id is required to update a task")
        task_id = task.id

        columns = task.changes()
        columns.pop("id", None)
        if "due_date" in columns:
            columns["overdue"] = self._is_past_due(columns["due_date"])
        elif columns.get("overdue"):
            # overdue can only be raised on a task whose stored due date has passed
            current = self.get_by_id(task_id)
            columns["overdue"] = self._is_past_due(current["due_date"])

        if not columns:
            return self.get_by_id(task_id)

        updated = self._call("update", self._repo.update_partial, task_id, columns, task_id=task_id)
        if updated is None:
            logger.info("update: task with id %s not found", task_id)
            raise NotFound(f"task with id {task_id} not found", task_id)
        return updated

    def replace(self, task: Task) -> Tuple[TaskEntity, bool]:
        """
        Upsert-by-id: update the task, or create it with the same id and field set
        when no row exists yet.

        Returns (row, created). Only NotFound triggers the create fallback; every
        other failure propagates unchanged.
        """
        try:
            return self.update(task), False
        except NotFound:
            logger.info("replace: task with id %s not found, creating it", task.id)
        return self.create(task), True

    def get_by_id(self, task_id: int) -> TaskEntity:
        found = self._call("get", self._repo.get, task_id, task_id=task_id)
        if found is None:
            raise NotFound(f"task with id {task_id} not found", task_id)
        return found

    def get_all(self, completed: Optional[bool] = None, overdue: Optional[bool] = None) -> List[TaskEntity]:
        query = None
        if completed is not None or overdue is not None:
            query = TaskQuery(completed=completed, overdue=overdue)
        return self._call("list", self._repo.list, query)

    def set_completed(self, task_id: int, completed: bool) -> TaskEntity:
        return self.update(Task(id=task_id, completed=completed))

    def set_overdue(self, task_id: int, overdue: bool) -> TaskEntity:
        return self.update(Task(id=task_id, overdue=overdue))

    def delete(self, task_id: int) -> None:
        deleted = self._call("delete", self._repo.delete, task_id, task_id=task_id)
        if not deleted:
            raise NotFound(f"task with id {task_id} not found", task_id)
        logger.info("deleted task id=%s", task_id)

    def get_tasks_past_due(self) -> List[TaskEntity]:
        """Tasks whose due date has passed and that are not flagged overdue yet."""
        query = TaskQuery(overdue=False, due_before=self._today())
        return self._call("list past due", self._repo.list, query)
