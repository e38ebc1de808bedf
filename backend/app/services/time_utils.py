"""Wall-clock parsing helpers shared by task writers and prompt builders."""
from __future__ import annotations

import re
from typing import Any, Optional

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_AM_PM_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*(am|pm)$")
_TWENTY_FOUR_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_HOUR_ONLY_RE = re.compile(r"^(\d{1,2})$")

OUTDOOR_KEYWORDS = (
    "walk",
    "run",
    "jog",
    "bike",
    "garden",
    "outdoor",
    "park",
    "hike",
    "beach",
    "picnic",
    "sports",
    "exercise outside",
    "yard work",
    "shopping",
    "market",
    "errands",
    "drive",
    "commute",
    "meeting outside",
)


def is_hhmm(value: Any) -> bool:
    """True for a zero-padded 24-hour ``HH:MM`` string."""
    return isinstance(value, str) and bool(HHMM_RE.match(value))


def parse_time_string(value: Any) -> Optional[str]:
    """Normalise loose time strings ("2 PM", "9:15", "15") to ``HH:MM``.

    Returns ``None`` when the value cannot be read as a time of day.
    """
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None

    match = _AM_PM_RE.match(cleaned)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        if match.group(3) == "pm" and hours != 12:
            hours += 12
        if match.group(3) == "am" and hours == 12:
            hours = 0
        return f"{hours:02d}:{minutes:02d}"

    match = _TWENTY_FOUR_RE.match(cleaned)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours <= 23 and minutes <= 59:
            return f"{hours:02d}:{minutes:02d}"
        return None

    match = _HOUR_ONLY_RE.match(cleaned)
    if match:
        hours = int(match.group(1))
        if hours <= 23:
            return f"{hours:02d}:00"
    return None


def is_outdoor_task(title: str) -> bool:
    lowered = (title or "").lower()
    return any(keyword in lowered for keyword in OUTDOOR_KEYWORDS)


def minutes_since_midnight(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)
