"""Schemas for the break-game score endpoints."""
from __future__ import annotations

import math
from typing import Any

from pydantic import field_validator

from app.api.schemas.base import CamelModel


class GameScoreRequest(CamelModel):
    score: float

    @field_validator("score", mode="before")
    @classmethod
    def _non_negative_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value) or value < 0:
            raise ValueError("Score must be a valid positive number")
        return value


class GameScoreResponse(CamelModel):
    success: bool = True
    message: str
    score: float


class HighScoreResponse(CamelModel):
    high_score: float


class UserHighScoreResponse(CamelModel):
    high_score: float
    has_score: bool
    all_time_high: float
