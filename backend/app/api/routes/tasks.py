"""Task CRUD API routes."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id
from app.api.schemas.base import MessageResponse
from app.api.schemas.task import (
    ClearTasksRequest,
    ClearTasksResponse,
    TaskCreateRequest,
    TaskCreateResponse,
    TaskListResponse,
    TaskUpdateRequest,
)
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import task_service
from app.services.user_service import ensure_user

router = APIRouter()


@router.post("/api/tasks", response_model=TaskCreateResponse, tags=["tasks"])
def create_task(
    payload: TaskCreateRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> TaskCreateResponse:
    """Create a task for today."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    with error_boundary("Failed to create task"):
        with trace(
            "task.create",
            metadata={"route": "/api/tasks", "importance": payload.importance, "status": payload.status},
            user_id=user_id,
            request_id=request_id,
        ):
            ensure_user(db, user_id)
            task = task_service.insert_task(
                db,
                user_id,
                title=payload.title,
                duration_minutes=payload.duration,
                importance=payload.importance,
                status=payload.status,
                scheduled_time=payload.scheduled_time,
            )

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("task.create.success", 1, metadata={"user_id": user_id})
    log_metric("task.create.latency_ms", latency_ms)

    return TaskCreateResponse(message="Task created successfully", task=task_service.serialize_task(task))


@router.get("/api/tasks", response_model=TaskListResponse, tags=["tasks"])
def list_tasks(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> TaskListResponse:
    """List today's tasks, scheduled ones first."""
    request_id = getattr(http_request.state, "request_id", None)

    with error_boundary("Failed to retrieve tasks"):
        with trace("task.list", metadata={"route": "/api/tasks"}, user_id=user_id, request_id=request_id):
            tasks = task_service.list_tasks_for_day(db, user_id)

    log_metric("task.list.count", len(tasks), metadata={"user_id": user_id})
    return TaskListResponse(tasks=[task_service.serialize_task(task) for task in tasks])


@router.put("/api/tasks/{task_id}", response_model=MessageResponse, tags=["tasks"])
def update_task(
    task_id: str,
    payload: TaskUpdateRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Change the supplied fields of a task; omitted fields keep their value."""
    request_id = getattr(http_request.state, "request_id", None)
    parsed_id = task_service.parse_task_id(task_id)
    if parsed_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found or not authorized to update")

    changes: Dict[str, Any] = {
        "title": payload.title,
        "duration_minutes": payload.duration,
        "importance": payload.importance,
        "status": payload.status,
        "scheduled_time": payload.scheduled_time,
    }
    with error_boundary("Failed to update task"):
        with trace(
            "task.update",
            metadata={"route": "/api/tasks/{id}", "task_id": task_id, "fields": sorted(k for k, v in changes.items() if v is not None)},
            user_id=user_id,
            request_id=request_id,
        ):
            task = task_service.update_task(db, user_id, parsed_id, changes)

    if task is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found or not authorized to update")

    log_metric("task.update.success", 1, metadata={"user_id": user_id, "task_id": task_id})
    return MessageResponse(message="Task updated successfully")


@router.delete("/api/tasks/{task_id}", response_model=MessageResponse, tags=["tasks"])
def delete_task(
    task_id: str,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Delete one of the caller's tasks."""
    request_id = getattr(http_request.state, "request_id", None)
    parsed_id = task_service.parse_task_id(task_id)
    if parsed_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found or not authorized to delete")

    with error_boundary("Failed to delete task"):
        with trace(
            "task.delete",
            metadata={"route": "/api/tasks/{id}", "task_id": task_id},
            user_id=user_id,
            request_id=request_id,
        ):
            removed = task_service.delete_task(db, user_id, parsed_id)

    if removed is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found or not authorized to delete")

    log_metric("task.delete.success", 1, metadata={"user_id": user_id, "task_id": task_id})
    return MessageResponse(message="Task deleted successfully")


@router.post("/api/clear-tasks", response_model=ClearTasksResponse, tags=["tasks"])
def clear_tasks(
    http_request: Request,
    payload: Optional[ClearTasksRequest] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> ClearTasksResponse:
    """Delete every task, or only finished ones when ``keepIncomplete`` is set."""
    request_id = getattr(http_request.state, "request_id", None)
    keep_incomplete = bool(payload and payload.keep_incomplete)

    with error_boundary("Failed to clear tasks"):
        with trace(
            "task.clear",
            metadata={"route": "/api/clear-tasks", "keep_incomplete": keep_incomplete},
            user_id=user_id,
            request_id=request_id,
        ):
            count = task_service.clear_tasks(db, user_id, keep_incomplete=keep_incomplete)

    log_metric("task.clear.count", count, metadata={"user_id": user_id, "keep_incomplete": keep_incomplete})
    if keep_incomplete:
        return ClearTasksResponse(message="Completed tasks deleted successfully", deleted_tasks="completed only", count=count)
    return ClearTasksResponse(message="All tasks deleted successfully", deleted_tasks="all", count=count)
