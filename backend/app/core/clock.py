"""Wall-clock helpers bound to the configured application timezone."""
from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from app.core.config import settings


def now() -> datetime:
    """Return the current aware datetime in the application timezone."""
    return datetime.now(ZoneInfo(settings.app_timezone))


def today() -> date:
    """Return the calendar day tasks and plans are scoped to."""
    return now().date()
