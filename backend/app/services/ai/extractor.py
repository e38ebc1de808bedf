"""Recover JSON payloads from free-form model replies."""
from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Iterator, Literal, Optional

from app.core.errors import ExtractionFailed, UpstreamError

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from app.services.ai.model_router import ModelRouter

logger = logging.getLogger(__name__)

Expect = Literal["array", "object"]

_BRACKETS = {"array": ("[", "]"), "object": ("{", "}")}
REPAIR_TEMPERATURE = 0.1
REPAIR_MAX_TOKENS = 2000


def _balanced_spans(text: str, opener: str, closer: str) -> Iterator[str]:
    """Yield each top-level balanced ``opener``..``closer`` span, skipping string literals."""
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end: Optional[int] = None
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    end = index
                    break
        if end is None:
            return
        yield text[start : end + 1]
        # Nested spans belong to the candidate that failed; resume after it.
        start = text.find(opener, end + 1)


def extract_json(text: Optional[str], expect: Expect = "array") -> Any:
    """Return the first balanced JSON value of the expected shape found in ``text``.

    Raises ``ValueError`` when no candidate parses.
    """
    if not text:
        raise ValueError("Empty AI response")
    opener, closer = _BRACKETS[expect]
    for candidate in _balanced_spans(text, opener, closer):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError(f"No valid JSON {expect} found in AI response")


def _repair_messages(text: str, expect: Expect) -> list[dict[str, str]]:
    shape = "array" if expect == "array" else "object"
    return [
        {
            "role": "system",
            "content": f"You are a JSON repair specialist. Fix the malformed JSON and return only a valid JSON {shape}.",
        },
        {
            "role": "user",
            "content": f"Fix this malformed JSON and return only the valid {shape}: {text}",
        },
    ]


def extract_with_repair(router: "ModelRouter", text: Optional[str], expect: Expect = "array") -> Any:
    """Extract JSON, asking a structured-output model to repair it once on failure."""
    try:
        return extract_json(text, expect)
    except ValueError as first_error:
        logger.warning("Failed to parse AI response, attempting repair: %s", first_error)

    try:
        result = router.complete(
            _repair_messages(text or "", expect),
            "json-parsing",
            temperature=REPAIR_TEMPERATURE,
            max_tokens=REPAIR_MAX_TOKENS,
            urgency="high",
        )
    except UpstreamError as exc:
        raise ExtractionFailed(f"Failed to parse AI response even after repair attempt: {exc.message}") from exc

    try:
        value = extract_json(result.content, expect)
    except ValueError as exc:
        raise ExtractionFailed("Failed to parse AI response even after repair attempt") from exc
    logger.info("Repaired AI JSON with %s", result.model_used)
    return value
