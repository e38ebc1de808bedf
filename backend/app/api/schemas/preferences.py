"""Schemas for user preferences."""
from __future__ import annotations

from typing import Any, Dict

from pydantic import field_validator, model_validator

from app.api.schemas.base import CamelModel
from app.db.models.preferences import COMMUTE_MODES, PEAK_FOCUS_PERIODS
from app.services.time_utils import is_hhmm


class PreferencesPayload(CamelModel):
    wake_time: str
    sleep_time: str
    peak_focus: str
    city: str
    break_style: str
    break_interval: int
    max_work_hours: float
    commute_mode: str

    @model_validator(mode="before")
    @classmethod
    def _all_present(cls, data: Any) -> Any:
        if isinstance(data, dict):
            for name, field in cls.model_fields.items():
                value = data.get(field.alias, data.get(name))
                if value is None or value == "":
                    raise ValueError("All preference fields are required")
        return data

    @field_validator("city", "break_style")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("All preference fields are required")
        return cleaned

    @field_validator("commute_mode")
    @classmethod
    def _commute_mode(cls, value: str) -> str:
        if value not in COMMUTE_MODES:
            raise ValueError(f"Invalid commute mode. Must be one of: {', '.join(COMMUTE_MODES)}")
        return value

    @field_validator("peak_focus")
    @classmethod
    def _peak_focus(cls, value: str) -> str:
        if value not in PEAK_FOCUS_PERIODS:
            raise ValueError(f"Invalid peak focus. Must be one of: {', '.join(PEAK_FOCUS_PERIODS)}")
        return value

    @field_validator("wake_time")
    @classmethod
    def _wake_time(cls, value: str) -> str:
        if not is_hhmm(value):
            raise ValueError("Wake time must be in HH:MM format")
        return value

    @field_validator("sleep_time")
    @classmethod
    def _sleep_time(cls, value: str) -> str:
        if not is_hhmm(value):
            raise ValueError("Sleep time must be in HH:MM format")
        return value

    @field_validator("break_interval", mode="before")
    @classmethod
    def _break_interval(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ValueError("Break interval must be a positive number")
        return value

    @field_validator("max_work_hours", mode="before")
    @classmethod
    def _max_work_hours(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0 or value > 24:
            raise ValueError("Max work hours must be between 1 and 24")
        return value

    def to_model_values(self) -> Dict[str, Any]:
        return {
            "wake_time": self.wake_time,
            "sleep_time": self.sleep_time,
            "peak_focus": self.peak_focus,
            "city": self.city,
            "break_style": self.break_style,
            "break_interval_minutes": self.break_interval,
            "max_work_hours": self.max_work_hours,
            "commute_mode": self.commute_mode,
        }
