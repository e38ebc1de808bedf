"""User ORM model."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, func

from app.db.base import Base
from app.db.types import user_id_column_type


class User(Base):
    __tablename__ = "users"

    id = Column(user_id_column_type(), primary_key=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
