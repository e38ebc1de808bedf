"""Turn a spoken transcript into validated task suggestions."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from app.core.errors import UpstreamError
from app.db.models.preferences import Preferences
from app.db.models.task import IMPORTANCE_LEVELS
from app.services.ai.extractor import extract_with_repair
from app.services.ai.model_router import ModelRouter
from app.services.prompts import build_task_extraction_prompt
from app.services.task_alignment import clamp_duration
from app.services.time_utils import parse_time_string

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a precision task extraction AI optimized for speech understanding. "
    "Extract tasks from user speech exactly as requested. Always return a valid JSON array, even for simple tasks."
)
RESPONSE_PREVIEW_CHARS = 500


@dataclass
class VoiceExtraction:
    tasks: List[Dict[str, Any]]
    raw_count: int
    model_used: str
    attempt_count: int
    response_preview: str


def clean_extracted_task(item: Any) -> Optional[Dict[str, Any]]:
    """Validate one extracted item; ``None`` means it is dropped."""
    if not isinstance(item, dict):
        return None
    title = item.get("title")
    duration = item.get("duration")
    if not isinstance(title, str) or not title.strip():
        return None
    if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
        return None

    importance = item.get("importance")
    if importance not in IMPORTANCE_LEVELS:
        importance = "medium"

    scheduled_time = None
    raw_time = item.get("scheduledTime")
    if raw_time is not None:
        scheduled_time = parse_time_string(str(raw_time))

    notes = item.get("notes")
    return {
        "title": title.strip(),
        "duration": clamp_duration(duration),
        "importance": importance,
        "scheduledTime": scheduled_time,
        "notes": notes.strip() if isinstance(notes, str) and notes.strip() else None,
    }


def extract_tasks_from_transcript(
    router: ModelRouter,
    transcript: str,
    prefs: Optional[Preferences] = None,
) -> VoiceExtraction:
    prompt = build_task_extraction_prompt(transcript, prefs)
    result = router.complete(
        [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "voice-extraction",
        temperature=0.2,
        max_tokens=2000,
        top_p=0.9,
        urgency="high",
    )
    content = result.content
    if not content:
        raise UpstreamError(f"No response from AI model: {result.model_used}")

    extracted = extract_with_repair(router, content, "array")
    if not isinstance(extracted, list):
        extracted = [extracted]

    tasks = []
    for item in extracted:
        cleaned = clean_extracted_task(item)
        if cleaned is None:
            logger.info("Dropped invalid extracted task: %r", item)
            continue
        tasks.append(cleaned)

    preview = content[:RESPONSE_PREVIEW_CHARS] + ("..." if len(content) > RESPONSE_PREVIEW_CHARS else "")
    return VoiceExtraction(
        tasks=tasks,
        raw_count=len(extracted),
        model_used=result.model_used,
        attempt_count=result.attempt_count,
        response_preview=preview,
    )
