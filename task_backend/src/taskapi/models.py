from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional, TypedDict

from pydantic import BaseModel, ConfigDict

# Column names in storage order; every backend materializes rows with exactly these keys.
TASK_COLUMNS = ("id", "title", "description", "due_date", "completed", "overdue")

# Ids must fit a signed 64-bit SQLite INTEGER.
MAX_TASK_ID = 2**63 - 1


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A fully materialized task row as returned by the record store.

    Fields:
    - id: Unique integer identifier
    - title: Short title, never null once persisted
    - description: Optional detailed description
    - due_date: Optional calendar due date
    - completed: Completion flag (a stored null reads as False)
    - overdue: Overdue flag maintained by the service and the sweeper (null reads as False)
    """

    id: int
    title: str
    description: Optional[str]
    due_date: Optional[date]
    completed: bool
    overdue: bool


# PUBLIC_INTERFACE
class Task(BaseModel):
    """
    Partial representation of a task used as input to the task service.

    Every attribute has three states: unset (not in ``model_fields_set``, meaning
    "leave unchanged" on update and "use the column default" on create), set to
    None, or set to a value. Only set attributes are written to the store.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    id: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    completed: Optional[bool] = None
    overdue: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        """Return only the attributes the caller explicitly set, including explicit nulls."""
        return self.model_dump(exclude_unset=True)

    def is_set(self, name: str) -> bool:
        return name in self.model_fields_set
