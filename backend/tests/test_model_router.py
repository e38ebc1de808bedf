"""Tests for the AI model router fallback loop."""
from __future__ import annotations

from typing import Any, Dict, List

import httpx
import openai
import pytest

from app.core.errors import UpstreamError
from app.services.ai.model_router import (
    MODEL_CATALOG,
    TASK_MODEL_PRIORITIES,
    ModelConfig,
    ModelRouter,
    ModelStatsStore,
    classify_failure,
)


def _rate_limited() -> openai.RateLimitError:
    request = httpx.Request("POST", "https://api.mistral.ai/v1/chat/completions")
    return openai.RateLimitError(
        "Rate limit exceeded",
        response=httpx.Response(429, request=request),
        body=None,
    )


def _reply(content: str) -> Dict[str, Any]:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


class _FakeCompletions:
    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeClient:
    def __init__(self, outcomes: List[Any]):
        self.completions = _FakeCompletions(outcomes)
        self.chat = self

    @property
    def calls(self) -> List[Dict[str, Any]]:
        return self.completions.calls


def test_two_rate_limits_then_success_reports_third_backend() -> None:
    client = _FakeClient([_rate_limited(), _rate_limited(), _reply("Here you go")])
    router = ModelRouter(client)

    result = router.complete([{"role": "user", "content": "hi"}], "task-generation")

    third_key = TASK_MODEL_PRIORITIES["task-generation"][2]
    assert result.attempt_count == 3
    assert result.model_key == third_key
    assert result.model_used == MODEL_CATALOG[third_key].label
    assert result.content == "Here you go"
    assert [call["model"] for call in client.calls] == list(TASK_MODEL_PRIORITIES["task-generation"][:3])


def test_request_options_are_capped_by_model_ceiling() -> None:
    catalog = {
        "tiny": ModelConfig(
            name="Tiny",
            endpoint="tiny-1",
            strengths=("speed",),
            max_tokens=256,
            cost_tier="low",
            reliability="medium",
        )
    }
    client = _FakeClient([_reply("ok")])
    router = ModelRouter(client, catalog=catalog, priorities={"task-generation": ("tiny",)})

    router.complete([{"role": "user", "content": "hi"}], max_tokens=2000, temperature=0.2)

    call = client.calls[0]
    assert call["max_tokens"] == 256
    assert call["temperature"] == 0.2
    assert call["top_p"] == 0.9
    assert call["stream"] is False


def test_unknown_models_are_skipped_without_counting_attempts() -> None:
    client = _FakeClient([_reply("ok")])
    router = ModelRouter(client, priorities={"task-generation": ("does-not-exist", "codestral-2501")})

    result = router.complete([{"role": "user", "content": "hi"}])

    assert result.attempt_count == 1
    assert result.model_key == "codestral-2501"


def test_unknown_task_type_falls_back_to_task_generation() -> None:
    router = ModelRouter(_FakeClient([]))
    assert router.priority_list("poetry") == list(TASK_MODEL_PRIORITIES["task-generation"])


def test_exhausted_priority_list_raises_upstream_error() -> None:
    priorities = {"task-generation": ("codestral-2501", "ministral-3b-2410")}
    client = _FakeClient([_rate_limited(), ValueError("malformed body")])
    router = ModelRouter(client, priorities=priorities)

    with pytest.raises(UpstreamError) as excinfo:
        router.complete([{"role": "user", "content": "hi"}])

    assert "All AI models failed after 2 attempts" in excinfo.value.message
    assert "malformed body" in excinfo.value.message
    assert isinstance(excinfo.value.__cause__, ValueError)


def test_missing_client_raises_upstream_error() -> None:
    with pytest.raises(UpstreamError):
        ModelRouter(None).complete([{"role": "user", "content": "hi"}])


def test_stats_record_successes_and_failures() -> None:
    stats = ModelStatsStore()
    priorities = {"task-generation": ("codestral-2501", "ministral-3b-2410")}
    router = ModelRouter(_FakeClient([_rate_limited(), _reply("ok")]), priorities=priorities, stats=stats)

    router.complete([{"role": "user", "content": "hi"}])

    snapshot = stats.snapshot()
    assert snapshot["codestral-2501"]["failures"] == 1
    assert snapshot["codestral-2501"]["successes"] == 0
    assert snapshot["ministral-3b-2410"]["successes"] == 1
    assert set(snapshot["ministral-3b-2410"]) == {"successes", "failures", "avgResponseMs"}


def test_stats_average_is_halved_running_mean() -> None:
    stats = ModelStatsStore()
    stats.record("m", success=True, response_ms=100)
    stats.record("m", success=True, response_ms=300)
    stats.record("m", success=False, response_ms=500)

    recorded = stats.get("m")
    assert recorded.successes == 2
    assert recorded.failures == 1
    assert recorded.avg_response_ms == pytest.approx(350)
    assert stats.get("unknown") is None


def test_classify_failure_marks_transient_errors() -> None:
    request = httpx.Request("POST", "https://api.mistral.ai/v1/chat/completions")
    unavailable = openai.APIStatusError("unavailable", response=httpx.Response(503, request=request), body=None)
    bad_request = openai.APIStatusError("bad request", response=httpx.Response(400, request=request), body=None)

    assert classify_failure(_rate_limited()) is True
    assert classify_failure(unavailable) is True
    assert classify_failure(bad_request) is False
    assert classify_failure(RuntimeError("upstream said 429 too many requests")) is True
    assert classify_failure(RuntimeError("boom")) is False


def test_list_content_chunks_are_joined() -> None:
    chunked = {
        "choices": [
            {
                "message": {
                    "content": [
                        {"type": "thinking", "thinking": "hmm"},
                        {"type": "text", "text": "Final "},
                        {"type": "text", "text": "answer"},
                    ]
                }
            }
        ]
    }
    result = ModelRouter(_FakeClient([chunked])).complete([{"role": "user", "content": "hi"}])
    assert result.content == "Final answer"
