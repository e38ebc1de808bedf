"""Schemas for daily plan generation."""
from __future__ import annotations

from typing import List

from pydantic import Field, field_validator

from app.api.schemas.base import CamelModel


class PlanRequest(CamelModel):
    custom_prompts: List[str] = Field(default_factory=list)

    @field_validator("custom_prompts")
    @classmethod
    def _drop_blank(cls, value: List[str]) -> List[str]:
        return [prompt.strip() for prompt in value if prompt and prompt.strip()]
