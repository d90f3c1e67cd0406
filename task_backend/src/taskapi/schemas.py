from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import MAX_TASK_ID, Task

# Shared type for incoming due_date which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[date]:
    """
    Internal helper to normalize due_date input into a calendar date.
    - If value is a string, accept 'YYYY-MM-DD' or a full ISO datetime (time of day is dropped).
    - If value is a datetime, keep only its date.
    - If value is a date, return as-is.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    if isinstance(value, str):
        s = value.strip()
        try:
            return date.fromisoformat(s)
        except ValueError:
            try:
                return datetime.fromisoformat(s).date()
            except ValueError as e:
                raise ValueError(
                    "Invalid due_date format. Use an ISO8601 date (e.g., '2025-01-31')."
                ) from e

    raise ValueError("Invalid type for due_date; expected date, datetime, or ISO8601 string.")


def _clean_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task. `id` may be supplied by the client; when omitted
    the store assigns one. Omitted optional fields take the store defaults.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "title": "Pay rent",
                "description": "Transfer before the 5th",
                "due_date": "2025-02-01",
            }
        }
    )

    id: Optional[int] = Field(
        default=None, ge=1, le=MAX_TASK_ID, description="Optional client-chosen identifier"
    )
    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[date] = Field(default=None, description="Due date (ISO8601 date)")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        if v is None:
            raise ValueError("title is required")
        return _clean_title(v)  # type: ignore[return-value]

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return _parse_due_date(v)

    def to_task(self) -> Task:
        return Task(**self.model_dump(exclude_unset=True))


# PUBLIC_INTERFACE
class TaskReplace(BaseModel):
    """
    Schema for replacing a task (PUT). Every field is written; omitted optional
    fields are stored as null/false.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Pay rent",
                "description": "Transfer before the 5th",
                "due_date": "2025-02-01",
                "completed": False,
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[date] = Field(default=None, description="Due date (ISO8601 date)")
    completed: bool = Field(default=False, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if v is None:
            raise ValueError("title is required")
        return _clean_title(v)  # type: ignore[return-value]

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return _parse_due_date(v)

    def to_task(self, task_id: int) -> Task:
        # model_dump() without exclude_unset: the full field set is written
        return Task(id=task_id, **self.model_dump())


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for partially updating a task.
    All fields are optional; only provided fields will be updated. An explicit
    null is a change (e.g. clearing due_date), an omitted field is left as-is.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Pay rent and utilities",
                "due_date": "2025-02-03",
            }
        }
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[date] = Field(default=None, description="Due date (ISO8601 date)")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")
    overdue: Optional[bool] = Field(
        default=None,
        description=(
            "Overdue flag. Ignored when due_date is part of the same update; true is kept only "
            "when the stored due date has passed"
        ),
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        """
        If title is provided, strip whitespace and enforce 1..200 length.
        """
        return _clean_title(v)

    @field_validator("due_date", mode="before")
    @classmethod
    def parse_due_date(cls, v: Optional[DueDateInput]) -> Optional[date]:
        return _parse_due_date(v)

    def to_task(self, task_id: int) -> Task:
        return Task(id=task_id, **self.model_dump(exclude_unset=True))


# PUBLIC_INTERFACE
class CompletedUpdate(BaseModel):
    """Body for toggling the completion flag."""

    completed: bool = Field(..., description="New completion status")


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": 7,
                "title": "Pay rent",
                "description": "Transfer before the 5th",
                "due_date": "2025-02-01",
                "completed": False,
                "overdue": True,
            }
        }
    )

    id: int = Field(..., description="Unique identifier of the task")
    title: str = Field(..., description="Short title for the task")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    due_date: Optional[date] = Field(default=None, description="Due date as an ISO8601 date")
    completed: bool = Field(..., description="Completion status flag")
    overdue: bool = Field(..., description="True once the due date has passed")


# PUBLIC_INTERFACE
class ErrorOut(BaseModel):
    """Body returned for domain errors."""

    error: str = Field(..., description="Error kind, e.g. NotFound or DuplicateIdentifier")
    message: str = Field(..., description="Human readable description")
