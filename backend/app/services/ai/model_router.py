"""Priority-ordered fallback routing across AI completion backends."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache
from threading import Lock
from time import perf_counter
from typing import Any, Dict, List, Literal, Mapping, Optional, Sequence

import openai

from app.core.config import settings
from app.core.errors import UpstreamError
from app.observability.metrics import log_metric
from app.observability.tracing import annotate, trace

logger = logging.getLogger(__name__)

TaskType = Literal["voice-extraction", "schedule-planning", "task-generation", "json-parsing"]
Urgency = Literal["low", "medium", "high"]

DEFAULT_TASK_TYPE: TaskType = "task-generation"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TOP_P = 0.9
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503})


@dataclass(frozen=True)
class ModelConfig:
    name: str
    endpoint: str
    strengths: tuple[str, ...]
    max_tokens: int
    cost_tier: Literal["low", "medium", "high"]
    reliability: Literal["low", "medium", "high"]
    specialization: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.name} ({self.endpoint})"


MODEL_CATALOG: Dict[str, ModelConfig] = {
    "mistral-medium-2505": ModelConfig(
        name="Mistral Medium 3",
        endpoint="mistral-medium-2505",
        strengths=("complex-reasoning", "multimodal", "frontier-tasks"),
        max_tokens=128000,
        cost_tier="high",
        reliability="high",
        specialization="complex-planning",
    ),
    "magistral-medium-2506": ModelConfig(
        name="Magistral Medium",
        endpoint="magistral-medium-2506",
        strengths=("reasoning", "logic", "problem-solving"),
        max_tokens=40000,
        cost_tier="high",
        reliability="high",
        specialization="voice-extraction",
    ),
    "mistral-large-2411": ModelConfig(
        name="Mistral Large 2.1",
        endpoint="mistral-large-2411",
        strengths=("complex-tasks", "high-quality", "reliable"),
        max_tokens=128000,
        cost_tier="high",
        reliability="high",
        specialization="schedule-planning",
    ),
    "mistral-small-2506": ModelConfig(
        name="Mistral Small 3.2",
        endpoint="mistral-small-2506",
        strengths=("general-tasks", "cost-effective", "fast"),
        max_tokens=128000,
        cost_tier="low",
        reliability="high",
        specialization="task-generation",
    ),
    "magistral-small-2506": ModelConfig(
        name="Magistral Small",
        endpoint="magistral-small-2506",
        strengths=("reasoning", "structured-output", "reliable"),
        max_tokens=40000,
        cost_tier="medium",
        reliability="high",
        specialization="voice-extraction-fallback",
    ),
    "codestral-2501": ModelConfig(
        name="Codestral 2",
        endpoint="codestral-2501",
        strengths=("coding", "structured-data", "fill-in-middle"),
        max_tokens=256000,
        cost_tier="medium",
        reliability="high",
        specialization="json-generation",
    ),
    "ministral-8b-2410": ModelConfig(
        name="Ministral 8B",
        endpoint="ministral-8b-2410",
        strengths=("speed", "efficiency", "edge-computing"),
        max_tokens=128000,
        cost_tier="low",
        reliability="medium",
        specialization="quick-tasks",
    ),
    "ministral-3b-2410": ModelConfig(
        name="Ministral 3B",
        endpoint="ministral-3b-2410",
        strengths=("ultra-fast", "edge", "simple-tasks"),
        max_tokens=128000,
        cost_tier="low",
        reliability="medium",
        specialization="emergency-fallback",
    ),
    "mistral-large-latest": ModelConfig(
        name="Mistral Large (Legacy)",
        endpoint="mistral-large-latest",
        strengths=("complex-tasks", "reliable"),
        max_tokens=128000,
        cost_tier="high",
        reliability="medium",
        specialization="legacy-fallback",
    ),
    "mistral-small-latest": ModelConfig(
        name="Mistral Small (Legacy)",
        endpoint="mistral-small-latest",
        strengths=("general-tasks", "cost-effective"),
        max_tokens=32000,
        cost_tier="medium",
        reliability="medium",
        specialization="legacy-fallback",
    ),
}

TASK_MODEL_PRIORITIES: Dict[str, tuple[str, ...]] = {
    "voice-extraction": (
        "magistral-medium-2506",
        "magistral-small-2506",
        "mistral-large-2411",
        "mistral-small-2506",
        "ministral-8b-2410",
        "mistral-large-latest",
    ),
    "schedule-planning": (
        "mistral-medium-2505",
        "mistral-large-2411",
        "magistral-medium-2506",
        "mistral-small-2506",
        "magistral-small-2506",
        "mistral-small-latest",
    ),
    "task-generation": (
        "mistral-small-2506",
        "magistral-small-2506",
        "mistral-large-2411",
        "ministral-8b-2410",
        "ministral-3b-2410",
        "mistral-small-latest",
    ),
    "json-parsing": (
        "codestral-2501",
        "magistral-small-2506",
        "mistral-small-2506",
        "ministral-8b-2410",
        "ministral-3b-2410",
    ),
}


@dataclass
class ModelStats:
    successes: int = 0
    failures: int = 0
    avg_response_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "successes": self.successes,
            "failures": self.failures,
            "avgResponseMs": round(self.avg_response_ms, 1),
        }


class ModelStatsStore:
    """Rolling per-backend success/failure counts and latency average.

    Telemetry only: nothing here influences backend selection.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, ModelStats] = {}
        self._lock = Lock()

    def record(self, model_key: str, *, success: bool, response_ms: float) -> None:
        with self._lock:
            stats = self._stats.setdefault(model_key, ModelStats())
            if success:
                stats.successes += 1
            else:
                stats.failures += 1
            if stats.successes + stats.failures == 1:
                stats.avg_response_ms = response_ms
            else:
                stats.avg_response_ms = (stats.avg_response_ms + response_ms) / 2

    def get(self, model_key: str) -> Optional[ModelStats]:
        with self._lock:
            stats = self._stats.get(model_key)
            return ModelStats(stats.successes, stats.failures, stats.avg_response_ms) if stats else None

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {key: stats.to_dict() for key, stats in self._stats.items()}


@dataclass
class RouterResult:
    response: Dict[str, Any]
    model_used: str
    attempt_count: int
    model_key: str = ""

    @property
    def content(self) -> Optional[str]:
        """Return the first choice's message text, if present."""
        choices = self.response.get("choices") or []
        if not choices:
            return None
        message = (choices[0] or {}).get("message") or {}
        content = message.get("content")
        if isinstance(content, list):
            # Some reasoning models return typed content chunks.
            content = "".join(
                chunk.get("text", "") for chunk in content if isinstance(chunk, dict) and chunk.get("type") == "text"
            )
        return content if isinstance(content, str) else None


@dataclass
class _Attempt:
    model_key: str
    error: Exception
    transient: bool = field(default=False)


def classify_failure(error: Exception) -> bool:
    """Return True for rate limits and transient upstream/network failures."""
    if isinstance(error, openai.RateLimitError):
        return True
    if isinstance(error, openai.APIStatusError):
        return error.status_code in TRANSIENT_STATUS_CODES
    if isinstance(error, (openai.APIConnectionError, openai.APITimeoutError)):
        return True
    message = str(error).lower()
    return "rate limit" in message or any(str(code) in message for code in TRANSIENT_STATUS_CODES)


def _payload(completion: Any) -> Dict[str, Any]:
    if isinstance(completion, Mapping):
        return dict(completion)
    return completion.model_dump()


class ModelRouter:
    """Walk a task type's priority list until one backend answers."""

    def __init__(
        self,
        client: Any,
        *,
        catalog: Mapping[str, ModelConfig] = MODEL_CATALOG,
        priorities: Mapping[str, Sequence[str]] = TASK_MODEL_PRIORITIES,
        stats: Optional[ModelStatsStore] = None,
    ) -> None:
        self._client = client
        self.catalog = catalog
        self.priorities = priorities
        self.stats = stats or ModelStatsStore()

    def priority_list(self, task_type: str) -> List[str]:
        models = self.priorities.get(task_type) or self.priorities[DEFAULT_TASK_TYPE]
        return list(models)

    def complete(
        self,
        messages: List[Dict[str, str]],
        task_type: str = DEFAULT_TASK_TYPE,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        top_p: Optional[float] = None,
        urgency: Urgency = "medium",
    ) -> RouterResult:
        if self._client is None:
            raise UpstreamError("AI backend is not configured (MISTRAL_API_KEY missing)")

        requested_tokens = max_tokens or DEFAULT_MAX_TOKENS
        attempt_count = 0
        last_attempt: Optional[_Attempt] = None

        with trace(
            "ai.router.complete",
            metadata={"task_type": task_type, "urgency": urgency, "message_count": len(messages)},
        ) as span:
            for model_key in self.priority_list(task_type):
                model = self.catalog.get(model_key)
                if model is None:
                    logger.warning("Model %s not found in configuration", model_key)
                    continue

                attempt_count += 1
                start = perf_counter()
                try:
                    completion = self._client.chat.completions.create(
                        model=model.endpoint,
                        messages=messages,
                        temperature=DEFAULT_TEMPERATURE if temperature is None else temperature,
                        max_tokens=min(requested_tokens, model.max_tokens),
                        top_p=DEFAULT_TOP_P if top_p is None else top_p,
                        stream=False,
                    )
                    payload = _payload(completion)
                except Exception as exc:
                    elapsed_ms = (perf_counter() - start) * 1000
                    self.stats.record(model_key, success=False, response_ms=elapsed_ms)
                    transient = classify_failure(exc)
                    last_attempt = _Attempt(model_key=model_key, error=exc, transient=transient)
                    if transient:
                        logger.warning("Model %s failed (attempt %d), trying next: %s", model.name, attempt_count, exc)
                    else:
                        logger.error("Model %s error (attempt %d): %s", model.name, attempt_count, exc)
                    continue

                elapsed_ms = (perf_counter() - start) * 1000
                self.stats.record(model_key, success=True, response_ms=elapsed_ms)
                annotate(span, model_used=model.endpoint, attempt_count=attempt_count)
                log_metric(
                    "ai.router.attempts",
                    attempt_count,
                    metadata={"task_type": task_type, "model": model.endpoint},
                )
                return RouterResult(
                    response=payload,
                    model_used=model.label,
                    attempt_count=attempt_count,
                    model_key=model_key,
                )

        log_metric("ai.router.exhausted", 1, metadata={"task_type": task_type, "attempts": attempt_count})
        last_message = str(last_attempt.error) if last_attempt else "Unknown error"
        error = UpstreamError(f"All AI models failed after {attempt_count} attempts. Last error: {last_message}")
        if last_attempt:
            raise error from last_attempt.error
        raise error


@lru_cache
def get_model_router() -> ModelRouter:
    """Return the process-wide router backed by the Mistral endpoint."""
    client = None
    if settings.mistral_api_key:
        client = openai.OpenAI(
            api_key=settings.mistral_api_key,
            base_url=settings.mistral_base_url,
            timeout=settings.ai_request_timeout_seconds,
            max_retries=0,
        )
    else:
        logger.warning("MISTRAL_API_KEY missing; AI features will fail until it is configured.")
    return ModelRouter(client)
