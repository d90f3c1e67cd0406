from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from threading import RLock
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .models import TASK_COLUMNS, TaskEntity
from .settings import Settings, get_settings


class StoreError(Exception):
    """Base class for record store failures."""


class DuplicateKeyError(StoreError):
    """Insert collided with an existing primary key."""


class NotNullViolation(StoreError):
    """A NOT NULL column (title) was written as null or omitted on insert."""

    def __init__(self, column: str, message: Optional[str] = None) -> None:
        super().__init__(message or f"NOT NULL constraint failed: {column}")
        self.column = column


@dataclass(frozen=True)
class TaskQuery:
    """
    Predicate for scanning tasks. Unset filters match every row.

    - completed: match on completion flag (a stored null counts as False)
    - overdue: match on overdue flag (a stored null counts as False)
    - due_before: only rows whose due_date is set and strictly earlier than this date
    """
    completed: Optional[bool] = None
    overdue: Optional[bool] = None
    due_before: Optional[date] = None


# PUBLIC_INTERFACE
class Repository(ABC):
    """Abstract record store contract for task storage backends."""

    @abstractmethod
    def insert(self, columns: Mapping[str, Any]) -> TaskEntity:
        """
        Insert a row using only the given columns; the rest take column defaults.
        An omitted id is assigned by the store.
        Raises DuplicateKeyError or NotNullViolation on constraint violations.
        """

    @abstractmethod
    def update_partial(self, task_id: int, columns: Mapping[str, Any]) -> Optional[TaskEntity]:
        """Atomically rewrite only the given columns. Return the updated row, or None if not found."""

    @abstractmethod
    def get(self, task_id: int) -> Optional[TaskEntity]:
        """Return a row by id, or None if not found."""

    @abstractmethod
    def delete(self, task_id: int) -> bool:
        """Delete a row by id. Return True if deleted, False if not found."""

    @abstractmethod
    def list(self, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        """Return every row matching the query (all rows when None), ordered by id."""

    @contextmanager
    def operation_timeout(self, seconds: float) -> Iterator[None]:
        """
        Bound every statement issued by the current thread inside this block to one
        shared deadline. Backends without blocking I/O ignore it.
        """
        yield

    def close(self) -> None:
        """Release the store. Operations after close raise StoreError."""


def _matches(item: TaskEntity, q: TaskQuery) -> bool:
    if q.completed is not None and bool(item["completed"]) != q.completed:
        return False
    if q.overdue is not None and bool(item["overdue"]) != q.overdue:
        return False
    if q.due_before is not None:
        due = item["due_date"]
        if due is None or not due < q.due_before:
            return False
    return True


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    Emulates the SQL table's column defaults and constraints.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[int, Dict[str, Any]] = {}
        self._next_id = 1
        self._closed = False

    def _check_open(self) -> None:
        if self._closed:
            raise StoreError("repository is closed")

    def _materialize(self, row: Dict[str, Any]) -> TaskEntity:
        return {
            "id": row["id"],
            "title": row["title"],
            "description": row["description"],
            "due_date": row["due_date"],
            "completed": bool(row["completed"]),
            "overdue": bool(row["overdue"]),
        }

    def insert(self, columns: Mapping[str, Any]) -> TaskEntity:
        unknown = set(columns) - set(TASK_COLUMNS)
        if unknown:
            raise StoreError(f"unknown columns: {sorted(unknown)}")
        with self._lock:
            self._check_open()
            if columns.get("title") is None:
                raise NotNullViolation("title")

            task_id = columns.get("id")
            if task_id is None:
                task_id = self._next_id
            elif task_id in self._items:
                raise DuplicateKeyError(f"task with id {task_id} already exists")

            row: Dict[str, Any] = {"description": None, "due_date": None, "completed": False, "overdue": False}
            row.update(columns)
            row["id"] = task_id
            self._items[task_id] = row
            self._next_id = max(self._next_id, task_id + 1)
            return self._materialize(row)

    def update_partial(self, task_id: int, columns: Mapping[str, Any]) -> Optional[TaskEntity]:
        if "id" in columns:
            raise StoreError("id is immutable")
        with self._lock:
            self._check_open()
            existing = self._items.get(task_id)
            if existing is None:
                return None
            if "title" in columns and columns["title"] is None:
                raise NotNullViolation("title")

            # Only the named columns change
            updated = existing.copy()
            updated.update(columns)
            self._items[task_id] = updated
            return self._materialize(updated)

    def get(self, task_id: int) -> Optional[TaskEntity]:
        with self._lock:
            self._check_open()
            item = self._items.get(task_id)
            return None if item is None else self._materialize(item)

    def delete(self, task_id: int) -> bool:
        with self._lock:
            self._check_open()
            return self._items.pop(task_id, None) is not None

    def list(self, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        q = query or TaskQuery()
        with self._lock:
            self._check_open()
            rows = [self._materialize(self._items[k]) for k in sorted(self._items)]
        return [r for r in rows if _matches(r, q)]

    def close(self) -> None:
        with self._lock:
            self._closed = True


# PUBLIC_INTERFACE
def get_repository(settings: Optional[Settings] = None) -> Repository:
    """
    Factory to return the configured repository based on settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository (stdlib sqlite3)
    """
    settings = settings or get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        return SQLiteRepository(settings.sqlite_db_path, timeout=settings.request_timeout_seconds)
    return InMemoryRepository()
