"""Centralized logging configuration."""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict

from app.core.context import get_request_id, get_user_id

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | req=%(request_id)s | user=%(user_id)s | %(message)s"

# Client libraries log every HTTP round trip at INFO.
QUIET_LOGGERS = ("httpx", "httpcore", "openai", "opik")


class RequestContextFilter(logging.Filter):
    """Stamp request_id and user_id onto every log record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - minimal logic
        record.request_id = get_request_id() or "-"
        record.user_id = get_user_id() or "-"
        return True


def _logging_config(log_level: str, debug: bool) -> Dict[str, Any]:
    app_level = "DEBUG" if debug else log_level
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"focusday": {"format": LOG_FORMAT}},
        "filters": {"request_context": {"()": RequestContextFilter}},
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "formatter": "focusday",
                "filters": ["request_context"],
            }
        },
        "loggers": {
            "app": {"level": app_level},
            **{name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        },
        "root": {"handlers": ["stderr"], "level": log_level},
    }


def configure_logging(*, log_level: str = "INFO", debug: bool = False) -> None:
    """Configure application logging once at startup."""
    if getattr(configure_logging, "_configured", False):
        return

    dictConfig(_logging_config(log_level.upper(), debug))
    logging.getLogger(__name__).debug("Logging configured at %s (debug=%s)", log_level, debug)
    setattr(configure_logging, "_configured", True)
