"""Schemas for task CRUD."""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import Field, field_validator

from app.api.schemas.base import CamelModel
from app.db.models.task import IMPORTANCE_LEVELS, TASK_STATUSES
from app.services.time_utils import is_hhmm


def _check_title(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = value.strip()
    if not cleaned:
        raise ValueError("Title is required and must be a non-empty string")
    return cleaned


def _check_duration(value: Any) -> Any:
    if value is None:
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ValueError("Duration is required and must be a positive number")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError("Duration must be a whole number of minutes")
    return int(value)


def _check_importance(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in IMPORTANCE_LEVELS:
        raise ValueError("Importance must be one of: low, medium, high")
    return value


def _check_status(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in TASK_STATUSES:
        raise ValueError("Status must be one of: backlog, todo, doing, done")
    return value


def _check_scheduled_time(value: Optional[str]) -> Optional[str]:
    if value in (None, ""):
        return None
    if not is_hhmm(value):
        raise ValueError("Scheduled time must be in HH:MM format")
    return value


class TaskCreateRequest(CamelModel):
    title: str
    duration: int
    importance: str
    status: str = "todo"
    scheduled_time: Optional[str] = None

    _title = field_validator("title")(_check_title)
    _duration = field_validator("duration", mode="before")(_check_duration)
    _importance = field_validator("importance")(_check_importance)
    _status = field_validator("status")(_check_status)
    _scheduled_time = field_validator("scheduled_time")(_check_scheduled_time)


class TaskUpdateRequest(CamelModel):
    title: Optional[str] = None
    duration: Optional[int] = None
    importance: Optional[str] = None
    status: Optional[str] = None
    scheduled_time: Optional[str] = None

    _title = field_validator("title")(_check_title)
    _duration = field_validator("duration", mode="before")(_check_duration)
    _importance = field_validator("importance")(_check_importance)
    _status = field_validator("status")(_check_status)
    _scheduled_time = field_validator("scheduled_time")(_check_scheduled_time)


class TaskItem(CamelModel):
    id: str
    title: str
    duration: int
    importance: str
    status: str
    scheduled_time: Optional[str] = None


class TaskCreateResponse(CamelModel):
    ok: bool = True
    message: str
    task: TaskItem


class TaskListResponse(CamelModel):
    tasks: List[TaskItem]


class ClearTasksRequest(CamelModel):
    keep_incomplete: bool = False


class ClearTasksResponse(CamelModel):
    message: str
    deleted_tasks: str = Field(description="Which tasks were removed: 'all' or 'completed only'")
    count: int
