"""Preferences persistence: exactly one row per user, upserted."""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.db.models.preferences import Preferences

PREFERENCE_FIELDS = (
    "wake_time",
    "sleep_time",
    "peak_focus",
    "city",
    "break_style",
    "break_interval_minutes",
    "max_work_hours",
    "commute_mode",
)


def get_preferences(db: Session, user_id: str) -> Optional[Preferences]:
    return db.get(Preferences, user_id)


def upsert_preferences(db: Session, user_id: str, values: Dict[str, Any]) -> Preferences:
    prefs = db.get(Preferences, user_id)
    if prefs is None:
        prefs = Preferences(user_id=user_id)
    for field in PREFERENCE_FIELDS:
        setattr(prefs, field, values[field])
    db.add(prefs)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(prefs)
    return prefs


def serialize_preferences(prefs: Optional[Preferences]) -> Optional[Dict[str, Any]]:
    if prefs is None:
        return None
    return {
        "wakeTime": prefs.wake_time,
        "sleepTime": prefs.sleep_time,
        "peakFocus": prefs.peak_focus,
        "city": prefs.city,
        "breakStyle": prefs.break_style,
        "breakInterval": prefs.break_interval_minutes,
        "maxWorkHours": prefs.max_work_hours,
        "commuteMode": prefs.commute_mode,
    }
