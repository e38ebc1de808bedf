from __future__ import annotations

from typing import Any, List

import pytest

from app.core.errors import ExtractionFailed, UpstreamError
from app.services.ai.extractor import extract_json, extract_with_repair
from app.services.ai.model_router import RouterResult


class _RepairRouter:
    def __init__(self, replies: List[Any]):
        self.replies = list(replies)
        self.calls: List[dict] = []

    def complete(self, messages, task_type="task-generation", **options):
        self.calls.append({"messages": messages, "task_type": task_type, **options})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return RouterResult(
            response={"choices": [{"message": {"content": reply}}]},
            model_used="Codestral (codestral-2501)",
            attempt_count=1,
        )


def test_array_is_pulled_out_of_chatty_reply() -> None:
    text = 'Sure! Here are your tasks: [{"title":"A","duration":10}] Hope that helps!'
    assert extract_json(text, "array") == [{"title": "A", "duration": 10}]


def test_object_extraction_ignores_brackets_inside_strings() -> None:
    text = 'Plan follows {"schedule": [{"task": "Fix } bug", "time": "09:00"}], "notes": "ok"} -- done'
    assert extract_json(text, "object") == {
        "schedule": [{"task": "Fix } bug", "time": "09:00"}],
        "notes": "ok",
    }


def test_later_top_level_candidate_is_used() -> None:
    text = "Options: [not json] and then [1, 2, 3]"
    assert extract_json(text, "array") == [1, 2, 3]


def test_nested_array_is_never_returned_for_broken_outer_array() -> None:
    text = '[{"title": "Write report", "tags": ["work", "urgent"]}, {"title": "Gym", "duration": 30},]'
    with pytest.raises(ValueError):
        extract_json(text, "array")


def test_broken_outer_array_goes_to_repair() -> None:
    router = _RepairRouter(['[{"title": "Write report", "tags": ["work", "urgent"]}, {"title": "Gym", "duration": 30}]'])
    text = '[{"title": "Write report", "tags": ["work", "urgent"]}, {"title": "Gym", "duration": 30},]'

    value = extract_with_repair(router, text, "array")

    assert value == [
        {"title": "Write report", "tags": ["work", "urgent"]},
        {"title": "Gym", "duration": 30},
    ]
    assert [call["task_type"] for call in router.calls] == ["json-parsing"]


def test_broken_plan_object_goes_to_repair() -> None:
    router = _RepairRouter(['{"schedule": [{"time": "09:00", "task": "Write report"}], "summary": "ok"}'])
    text = '{"schedule": [{"time": "09:00", "task": "Write report"}], "summary": "ok",}'

    value = extract_with_repair(router, text, "object")

    assert value["schedule"] == [{"time": "09:00", "task": "Write report"}]
    assert len(router.calls) == 1


@pytest.mark.parametrize("text", [None, "", "no json here", '[{"title": "A",}'])
def test_unrecoverable_text_raises_value_error(text) -> None:
    with pytest.raises(ValueError):
        extract_json(text, "array")


def test_valid_json_skips_repair() -> None:
    router = _RepairRouter([])
    assert extract_with_repair(router, '[{"title": "A"}]', "array") == [{"title": "A"}]
    assert router.calls == []


def test_malformed_json_is_repaired_once() -> None:
    router = _RepairRouter(['```json\n[{"title": "A", "duration": 10}]\n```'])

    value = extract_with_repair(router, "[{title: A, duration: 10}]", "array")

    assert value == [{"title": "A", "duration": 10}]
    assert len(router.calls) == 1
    call = router.calls[0]
    assert call["task_type"] == "json-parsing"
    assert call["temperature"] == 0.1
    assert call["max_tokens"] == 2000
    assert "[{title: A, duration: 10}]" in call["messages"][1]["content"]


def test_failed_repair_raises_extraction_failed() -> None:
    router = _RepairRouter(["still not json"])
    with pytest.raises(ExtractionFailed):
        extract_with_repair(router, "nothing useful", "object")


def test_repair_backend_failure_raises_extraction_failed() -> None:
    router = _RepairRouter([UpstreamError("All AI models failed after 5 attempts. Last error: timeout")])
    with pytest.raises(ExtractionFailed) as excinfo:
        extract_with_repair(router, "{broken", "object")
    assert "timeout" in excinfo.value.message
