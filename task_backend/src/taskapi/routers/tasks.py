from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Path, Query, Request, Response, status

from ..models import MAX_TASK_ID
from ..schemas import CompletedUpdate, ErrorOut, TaskCreate, TaskOut, TaskReplace, TaskUpdate
from ..services import TaskService

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)


# Path ids outside the storable range are rejected before they reach the store
TaskId = Annotated[int, Path(ge=1, le=MAX_TASK_ID, description="Task identifier")]


def _get_service(request: Request) -> TaskService:
    """
    Dependency returning the app-scoped task service built in create_app.
    """
    return request.app.state.task_service


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task. The id may be chosen by the client; otherwise the store assigns one.",
    responses={
        201: {"description": "Task created successfully"},
        400: {"model": ErrorOut, "description": "Title missing"},
        409: {"model": ErrorOut, "description": "A task with this id already exists"},
    },
)
def create_task(payload: TaskCreate, service: TaskService = Depends(_get_service)) -> TaskOut:
    """
    Create a new task.
    """
    created = service.create(payload.to_task())
    return TaskOut(**created)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TaskOut],
    summary="List Tasks",
    description="List every task, optionally filtered by completion and overdue status.",
)
def list_tasks(
    completed: Optional[bool] = Query(None, description="Filter by completion status"),
    overdue: Optional[bool] = Query(None, description="Filter by overdue status"),
    service: TaskService = Depends(_get_service),
) -> List[TaskOut]:
    """
    List tasks ordered by id.
    """
    return [TaskOut(**t) for t in service.get_all(completed=completed, overdue=overdue)]


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    description="Get a single task by ID.",
    responses={
        200: {"description": "Task found"},
        404: {"model": ErrorOut, "description": "Task not found"},
    },
)
def get_task(task_id: TaskId, service: TaskService = Depends(_get_service)) -> TaskOut:
    """
    Retrieve a single task by its ID.
    """
    return TaskOut(**service.get_by_id(task_id))


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}",
    response_model=TaskOut,
    summary="Replace Task",
    description=(
        "Replace a task. Any fields omitted are set to null/false. If no task with this id "
        "exists yet it is created with the given id and 201 is returned."
    ),
    responses={
        200: {"description": "Task replaced"},
        201: {"description": "Task did not exist and was created"},
    },
)
def put_task(
    task_id: TaskId,
    payload: TaskReplace,
    response: Response,
    service: TaskService = Depends(_get_service),
) -> TaskOut:
    """
    Full replace with upsert-by-id fallback.
    """
    row, created = service.replace(payload.to_task(task_id))
    if created:
        response.status_code = status.HTTP_201_CREATED
    return TaskOut(**row)


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=TaskOut,
    summary="Update Task",
    description="Partially update fields of a task. Changing due_date recomputes the overdue flag.",
    responses={
        200: {"description": "Task updated"},
        400: {"model": ErrorOut, "description": "Title set to null"},
        404: {"model": ErrorOut, "description": "Task not found"},
    },
)
def patch_task(task_id: TaskId, payload: TaskUpdate, service: TaskService = Depends(_get_service)) -> TaskOut:
    """
    Partial update of a task.
    """
    return TaskOut(**service.update(payload.to_task(task_id)))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}/completed",
    response_model=TaskOut,
    summary="Set Completed",
    description="Set or clear the completion flag of a task.",
    responses={
        200: {"description": "Task updated"},
        404: {"model": ErrorOut, "description": "Task not found"},
    },
)
def set_completed(
    task_id: TaskId, payload: CompletedUpdate, service: TaskService = Depends(_get_service)
) -> TaskOut:
    return TaskOut(**service.set_completed(task_id, payload.completed))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description="Delete a task by ID.",
    responses={
        204: {"description": "Task deleted"},
        404: {"model": ErrorOut, "description": "Task not found"},
    },
)
def delete_task(task_id: TaskId, service: TaskService = Depends(_get_service)) -> None:
    """
    Delete a task. Returns 204 on success, 404 if not found.
    """
    service.delete(task_id)
    return None
