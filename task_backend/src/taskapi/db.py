from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Generator, Iterator, List, Mapping, Optional, Tuple

from .models import MAX_TASK_ID, TASK_COLUMNS, TaskEntity
from .repositories import DuplicateKeyError, NotNullViolation, Repository, StoreError, TaskQuery

logger = logging.getLogger(__name__)

# VM instructions between deadline checks while a statement runs
_PROGRESS_STEP = 1000


@dataclass(frozen=True)
class _Cols:
    table: str = "tasks"
    id: str = "id"
    title: str = "title"
    description: str = "description"
    due_date: str = "due_date"
    completed: str = "completed"
    overdue: str = "overdue"


_COLS = _Cols()


def _classify_integrity_error(exc: sqlite3.IntegrityError) -> StoreError:
    """Map a sqlite3 constraint failure onto duplicate-key / not-null / other."""
    name = getattr(exc, "sqlite_errorname", "") or ""
    msg = str(exc)
    if name in {"SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE"} or msg.startswith(
        "UNIQUE constraint failed"
    ):
        return DuplicateKeyError(msg)
    if name == "SQLITE_CONSTRAINT_NOTNULL" or msg.startswith("NOT NULL constraint failed"):
        # message looks like "NOT NULL constraint failed: tasks.title"
        column = msg.rsplit(".", 1)[-1] if "." in msg else _COLS.title
        return NotNullViolation(column, msg)
    return StoreError(msg)


def _to_db(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column == _COLS.due_date:
        return value.isoformat()
    if column in {_COLS.completed, _COLS.overdue}:
        return 1 if value else 0
    return value


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Each operation opens its own connection, so request threads and the sweeper
    thread never share a sqlite3 connection object. Every operation is bounded by
    `timeout` seconds (lock waits and statement execution); a tighter deadline can
    be imposed per thread with `operation_timeout`.
    """

    def __init__(self, db_path: str, timeout: float = 5.0) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._timeout = timeout
        self._local = threading.local()
        self._closed = False
        self._init_db()
        logger.info("SQLite task store ready path=%s timeout=%.1fs", db_path, timeout)

    def _deadline(self) -> float:
        scoped: Optional[float] = getattr(self._local, "deadline", None)
        own = time.monotonic() + self._timeout
        return own if scoped is None else min(own, scoped)

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        if self._closed:
            raise StoreError("repository is closed")
        deadline = self._deadline()
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise StoreError("deadline exceeded before statement was issued")

        conn = sqlite3.connect(self._db_path, timeout=remaining)
        conn.row_factory = sqlite3.Row
        # A non-zero return aborts the running statement with OperationalError("interrupted")
        conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, _PROGRESS_STEP)
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError as exc:
            raise _classify_integrity_error(exc) from exc
        except sqlite3.Error as exc:
            raise StoreError(str(exc)) from exc
        except OverflowError as exc:
            # integer parameter outside the signed 64-bit range
            raise StoreError(str(exc)) from exc
        finally:
            conn.close()

    @contextmanager
    def operation_timeout(self, seconds: float) -> Iterator[None]:
        previous: Optional[float] = getattr(self._local, "deadline", None)
        deadline = time.monotonic() + seconds
        self._local.deadline = deadline if previous is None else min(previous, deadline)
        try:
            yield
        finally:
            self._local.deadline = previous

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} INTEGER PRIMARY KEY,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.completed} INTEGER NULL DEFAULT 0,
                    {_COLS.overdue} INTEGER NULL DEFAULT 0
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_overdue_due "
                f"ON {_COLS.table}({_COLS.overdue}, {_COLS.due_date})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        due = row[_COLS.due_date]
        return {
            "id": int(row[_COLS.id]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description],
            "due_date": date.fromisoformat(due) if due is not None else None,
            "completed": bool(row[_COLS.completed]),
            "overdue": bool(row[_COLS.overdue]),
        }

    def _split(self, columns: Mapping[str, Any]) -> Tuple[List[str], List[Any]]:
        unknown = set(columns) - set(TASK_COLUMNS)
        if unknown:
            raise StoreError(f"unknown columns: {sorted(unknown)}")
        names = [c for c in TASK_COLUMNS if c in columns]
        return names, [_to_db(c, columns[c]) for c in names]

    @staticmethod
    def _storable(task_id: int) -> bool:
        return -MAX_TASK_ID - 1 <= task_id <= MAX_TASK_ID

    def _select(self, conn: sqlite3.Connection, task_id: int) -> Optional[sqlite3.Row]:
        return conn.execute(f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,)).fetchone()

    def insert(self, columns: Mapping[str, Any]) -> TaskEntity:
        names, values = self._split(columns)
        if names:
            placeholders = ", ".join("?" for _ in names)
            sql = f"INSERT INTO {_COLS.table} ({', '.join(names)}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {_COLS.table} DEFAULT VALUES"
        with self._conn() as conn:
            cur = conn.execute(sql, values)
            row = self._select(conn, cur.lastrowid)
            if row is None:
                raise StoreError(f"inserted row {cur.lastrowid} could not be read back")
            return self._row_to_entity(row)

    def update_partial(self, task_id: int, columns: Mapping[str, Any]) -> Optional[TaskEntity]:
        if _COLS.id in columns:
            raise StoreError("id is immutable")
        names, values = self._split(columns)
        if not self._storable(task_id):
            return None
        with self._conn() as conn:
            if names:
                assignments = ", ".join(f"{n} = ?" for n in names)
                cur = conn.execute(
                    f"UPDATE {_COLS.table} SET {assignments} WHERE {_COLS.id} = ?",
                    [*values, task_id],
                )
                if cur.rowcount == 0:
                    return None
            row = self._select(conn, task_id)
            return self._row_to_entity(row) if row else None

    def get(self, task_id: int) -> Optional[TaskEntity]:
        if not self._storable(task_id):
            return None
        with self._conn() as conn:
            row = self._select(conn, task_id)
            return self._row_to_entity(row) if row else None

    def delete(self, task_id: int) -> bool:
        if not self._storable(task_id):
            return False
        with self._conn() as conn:
            cur = conn.execute(f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ?", (task_id,))
            return cur.rowcount > 0

    def list(self, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        q = query or TaskQuery()
        clauses = []
        params: list = []

        if q.completed is not None:
            clauses.append(f"COALESCE({_COLS.completed}, 0) = ?")
            params.append(1 if q.completed else 0)

        if q.overdue is not None:
            clauses.append(f"COALESCE({_COLS.overdue}, 0) = ?")
            params.append(1 if q.overdue else 0)

        if q.due_before is not None:
            # ISO dates compare correctly as text
            clauses.append(f"{_COLS.due_date} IS NOT NULL AND {_COLS.due_date} < ?")
            params.append(q.due_before.isoformat())

        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_COLS.table} {where_sql} ORDER BY {_COLS.id} ASC",
                params,
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info("SQLite task store closed path=%s", self._db_path)
