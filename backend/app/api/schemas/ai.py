"""Schemas for the AI assistant endpoints."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from app.api.schemas.base import CamelModel


class ExtractTasksRequest(CamelModel):
    transcript: str

    @field_validator("transcript")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Transcript is required and must be a non-empty string")
        return value.strip()


class GenerateTasksRequest(CamelModel):
    custom_prompts: List[str] = Field(default_factory=list)
    existing_plan: Optional[Dict[str, Any]] = None

    @field_validator("custom_prompts")
    @classmethod
    def _drop_blank(cls, value: List[str]) -> List[str]:
        return [prompt.strip() for prompt in value if prompt and prompt.strip()]


class AskRequest(CamelModel):
    question: str

    @field_validator("question")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Question is required and must be a non-empty string")
        return value.strip()
