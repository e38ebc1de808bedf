"""Turn raw model replies into user-presentable text."""
from __future__ import annotations

import re
from typing import Any

FALLBACK_REPLY = (
    "I'd be happy to help with your question! Could you provide more details so I can give you better advice?"
)
MIN_LENGTH = 10
MAX_LENGTH = 1000
TRUNCATE_BUDGET = 800

_WRAPPER_TAGS = ("think", "debug", "reasoning", "analysis")
_WRAPPER_RE = re.compile(
    r"<(%s)>.*?</\1>" % "|".join(_WRAPPER_TAGS),
    re.IGNORECASE | re.DOTALL,
)
_PREAMBLE_RE = re.compile(r"^(?:[Tt]hinking|[Dd]ebug|[Aa]nalysis):.*?\n\n", re.MULTILINE | re.DOTALL)

_BULLET_RE = re.compile(r"^[ \t]*[-*+][ \t]+", re.MULTILINE)
_NUMBERED_RE = re.compile(r"^[ \t]*\d+\.[ \t]*", re.MULTILINE)
_HEADING_RE = re.compile(r"^[ \t]*#{1,6}[ \t]*", re.MULTILINE)
_BOLD_RE = re.compile(r"\*\*(.*?)\*\*")
_ITALIC_RE = re.compile(r"\*(.*?)\*")
_UNDERLINE_RE = re.compile(r"__(.*?)__")
_CODE_RE = re.compile(r"`(.*?)`")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")

BULLET = "• "


def clean_ai_response(raw: Any) -> str:
    """Strip reasoning blocks and markdown; never returns an empty string."""
    if not raw or not isinstance(raw, str):
        return FALLBACK_REPLY

    cleaned = raw.strip()
    cleaned = _WRAPPER_RE.sub("", cleaned)
    cleaned = _PREAMBLE_RE.sub("", cleaned)

    # List markers first so a leading "* " is not read as italic emphasis.
    cleaned = _BULLET_RE.sub(BULLET, cleaned)
    cleaned = _NUMBERED_RE.sub(BULLET, cleaned)
    cleaned = _HEADING_RE.sub("", cleaned)
    cleaned = _BOLD_RE.sub(r"\1", cleaned)
    cleaned = _ITALIC_RE.sub(r"\1", cleaned)
    cleaned = _UNDERLINE_RE.sub(r"\1", cleaned)
    cleaned = _CODE_RE.sub(r"\1", cleaned)

    cleaned = _BLANK_RUN_RE.sub("\n\n", cleaned).strip()

    if len(cleaned) < MIN_LENGTH:
        return FALLBACK_REPLY

    if len(cleaned) > MAX_LENGTH:
        cleaned = truncate_at_sentence(cleaned, TRUNCATE_BUDGET)

    return cleaned


def truncate_at_sentence(text: str, budget: int = TRUNCATE_BUDGET) -> str:
    """Keep whole sentences while the running length stays within ``budget``."""
    result = ""
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        candidate = f"{result}{sentence}. "
        if len(candidate.rstrip()) > budget:
            break
        result = candidate
    result = result.strip()
    if result:
        return result

    # A single sentence longer than the budget: cut at the last word break.
    head = text[:budget]
    cut = head.rfind(" ")
    return (head[:cut] if cut > 0 else head).rstrip() + "…"
