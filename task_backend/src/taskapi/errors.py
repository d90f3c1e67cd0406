from __future__ import annotations

from typing import Optional


# PUBLIC_INTERFACE
class TaskError(Exception):
    """
    Base class for domain errors raised by the task service.

    Attributes:
    - kind: stable error name exposed to API clients
    - status_code: HTTP status the API surface maps this error to
    - task_id: the task the failing operation targeted, when known
    """

    kind: str = "TaskError"
    status_code: int = 500

    def __init__(self, message: str, task_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.task_id = task_id


class NotFound(TaskError):
    """No task exists with the given id."""

    kind = "NotFound"
    status_code = 404


class DuplicateIdentifier(TaskError):
    """A create collided with an existing task id."""

    kind = "DuplicateIdentifier"
    status_code = 409


class MissingRequiredField(TaskError):
    """A required attribute (title, or id on update) was absent or null."""

    kind = "MissingRequiredField"
    status_code = 400


class StorageFailure(TaskError):
    """Any other record store failure, including statement timeouts. Never retried here."""

    kind = "StorageFailure"
    status_code = 500
