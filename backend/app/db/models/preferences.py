"""Per-user scheduling preferences."""
from __future__ import annotations

from sqlalchemy import CheckConstraint, Column, DateTime, Float, ForeignKey, Integer, String, Text, func

from app.db.base import Base
from app.db.types import user_id_column_type, wall_clock_column_type

PEAK_FOCUS_PERIODS = ("morning", "afternoon", "evening")
COMMUTE_MODES = ("none", "walk", "bike", "public", "car")


class Preferences(Base):
    __tablename__ = "preferences"
    __table_args__ = (
        CheckConstraint("peak_focus IN ('morning', 'afternoon', 'evening')", name="ck_preferences_peak_focus"),
        CheckConstraint(
            "commute_mode IN ('none', 'walk', 'bike', 'public', 'car')",
            name="ck_preferences_commute_mode",
        ),
    )

    user_id = Column(
        user_id_column_type(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    wake_time = Column(wall_clock_column_type(), nullable=False)
    sleep_time = Column(wall_clock_column_type(), nullable=False)
    peak_focus = Column(String(length=16), nullable=False)
    city = Column(Text, nullable=False)
    break_style = Column(Text, nullable=False)
    break_interval_minutes = Column(Integer, nullable=False)
    max_work_hours = Column(Float, nullable=False)
    commute_mode = Column(String(length=16), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
