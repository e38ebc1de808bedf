"""Game high-score ORM model."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, func

from app.db.base import Base
from app.db.types import user_id_column_type


class GameScore(Base):
    __tablename__ = "game_scores"

    user_id = Column(
        user_id_column_type(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    score = Column(Float, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
