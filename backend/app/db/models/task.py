"""Task ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import user_id_column_type, wall_clock_column_type

IMPORTANCE_LEVELS = ("low", "medium", "high")
TASK_STATUSES = ("backlog", "todo", "doing", "done")


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("ix_tasks_user_id_task_date", "user_id", "task_date"),
        CheckConstraint("duration_minutes > 0", name="ck_tasks_duration_positive"),
        CheckConstraint(
            "importance IN ('low', 'medium', 'high')",
            name="ck_tasks_importance",
        ),
        CheckConstraint(
            "status IN ('backlog', 'todo', 'doing', 'done')",
            name="ck_tasks_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(user_id_column_type(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    importance = Column(String(length=16), nullable=False, server_default=sa_text("'medium'"))
    status = Column(String(length=16), nullable=False, server_default=sa_text("'todo'"))
    scheduled_time = Column(wall_clock_column_type(), nullable=True)
    task_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
