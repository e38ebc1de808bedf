"""Task persistence helpers.

Every writer goes through :func:`validate_task_fields`, so direct user edits
and AI-sourced operations are held to the same title, duration, importance,
status and ``HH:MM`` rules.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import asc, delete, desc, select
from sqlalchemy.orm import Session

from app.core.clock import today
from app.core.errors import ValidationError
from app.db.models.task import IMPORTANCE_LEVELS, TASK_STATUSES, Task
from app.services.time_utils import is_hhmm

_UNSET: Any = object()

DEFAULT_DURATION_MINUTES = 30
DEFAULT_IMPORTANCE = "medium"
DEFAULT_STATUS = "todo"


def parse_task_id(value: Any) -> Optional[UUID]:
    """Return a UUID for well-formed ids, ``None`` otherwise."""
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None


def validate_task_fields(
    *,
    title: Any = _UNSET,
    duration_minutes: Any = _UNSET,
    importance: Any = _UNSET,
    status: Any = _UNSET,
    scheduled_time: Any = _UNSET,
) -> None:
    """Raise ``ValidationError`` naming the first invalid field supplied."""
    if title is not _UNSET and (not isinstance(title, str) or not title.strip()):
        raise ValidationError("Title is required and must be a non-empty string", field="title")
    if duration_minutes is not _UNSET and (
        isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int) or duration_minutes <= 0
    ):
        raise ValidationError("Duration is required and must be a positive number", field="duration")
    if importance is not _UNSET and importance not in IMPORTANCE_LEVELS:
        raise ValidationError("Importance must be one of: low, medium, high", field="importance")
    if status is not _UNSET and status not in TASK_STATUSES:
        raise ValidationError("Status must be one of: backlog, todo, doing, done", field="status")
    if scheduled_time is not _UNSET and scheduled_time is not None and not is_hhmm(scheduled_time):
        raise ValidationError("Scheduled time must be in HH:MM format", field="scheduledTime")


def list_tasks_for_day(db: Session, user_id: str, day: Optional[date] = None) -> List[Task]:
    """Tasks for one calendar day, scheduled ones first in time order."""
    stmt = (
        select(Task)
        .where(Task.user_id == user_id, Task.task_date == (day or today()))
        .order_by(Task.scheduled_time.is_(None), asc(Task.scheduled_time), desc(Task.created_at))
    )
    return list(db.scalars(stmt))


def list_tasks_between(db: Session, user_id: str, start: date, end: date) -> List[Task]:
    stmt = (
        select(Task)
        .where(Task.user_id == user_id, Task.task_date >= start, Task.task_date <= end)
        .order_by(asc(Task.task_date), desc(Task.created_at))
    )
    return list(db.scalars(stmt))


def get_task(db: Session, user_id: str, task_id: UUID) -> Optional[Task]:
    stmt = select(Task).where(Task.id == task_id, Task.user_id == user_id)
    return db.scalars(stmt).first()


def insert_task(
    db: Session,
    user_id: str,
    *,
    title: str,
    duration_minutes: int,
    importance: str = DEFAULT_IMPORTANCE,
    status: str = DEFAULT_STATUS,
    scheduled_time: Optional[str] = None,
    task_date: Optional[date] = None,
) -> Task:
    validate_task_fields(
        title=title,
        duration_minutes=duration_minutes,
        importance=importance,
        status=status,
        scheduled_time=scheduled_time,
    )
    task = Task(
        user_id=user_id,
        title=title.strip(),
        duration_minutes=duration_minutes,
        importance=importance,
        status=status,
        scheduled_time=scheduled_time,
        task_date=task_date or today(),
    )
    db.add(task)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(task)
    return task


def update_task(db: Session, user_id: str, task_id: UUID, changes: Dict[str, Any]) -> Optional[Task]:
    """Apply the non-``None`` entries of ``changes``; other fields keep their value.

    Returns ``None`` when the task does not exist for this user.
    """
    updates = {key: value for key, value in changes.items() if value is not None}
    if "title" in updates and isinstance(updates["title"], str):
        updates["title"] = updates["title"].strip()
    validate_task_fields(**updates)

    task = get_task(db, user_id, task_id)
    if task is None:
        return None
    for key, value in updates.items():
        setattr(task, key, value)
    db.add(task)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(task)
    return task


def delete_task(db: Session, user_id: str, task_id: UUID) -> Optional[Task]:
    """Delete a task owned by ``user_id``; returns the removed row or ``None``."""
    task = get_task(db, user_id, task_id)
    if task is None:
        return None
    db.delete(task)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return task


def clear_tasks(db: Session, user_id: str, *, keep_incomplete: bool = False) -> int:
    """Delete all of a user's tasks, or only finished ones when ``keep_incomplete``."""
    stmt = delete(Task).where(Task.user_id == user_id)
    if keep_incomplete:
        stmt = stmt.where(Task.status == "done")
    try:
        result = db.execute(stmt)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result.rowcount or 0


def serialize_task(task: Task) -> Dict[str, Any]:
    """Client-facing task shape."""
    return {
        "id": str(task.id),
        "title": task.title,
        "duration": task.duration_minutes,
        "importance": task.importance,
        "status": task.status or DEFAULT_STATUS,
        "scheduledTime": task.scheduled_time,
    }
