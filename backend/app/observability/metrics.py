"""Lightweight metrics helpers."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from time import perf_counter
from typing import Any, Dict, Iterator, Optional

from app.observability.tracing import trace

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a scalar metric as a short-lived Opik trace."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)
    logger.debug("metric %s=%s", name, value)

    try:
        with trace(f"metric:{name}", metadata=payload):
            pass
    except Exception as exc:  # pragma: no cover - SDK failure
        logger.debug("Unable to record metric %s: %s", name, exc)


@contextmanager
def timed(name: str, metadata: Optional[Dict[str, Any]] = None) -> Iterator[None]:
    """Emit ``<name>.latency_ms`` and ``<name>.success`` around a block."""
    start = perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        latency_ms = (perf_counter() - start) * 1000
        log_metric(f"{name}.latency_ms", latency_ms, metadata=metadata)
        log_metric(f"{name}.success", 1 if success else 0, metadata=metadata)
