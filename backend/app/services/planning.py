"""AI plan generation and AI task generation orchestration."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.errors import ExtractionFailed, UpstreamError, ValidationError
from app.db.models.preferences import Preferences
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import plan_service, preferences_service, task_service
from app.services.ai.extractor import extract_with_repair
from app.services.ai.model_router import ModelRouter
from app.services.apod import ApodClient
from app.services.prompts import build_plan_prompt, build_task_generation_prompt
from app.services.task_alignment import AlignmentResult, TaskSnapshot, align_tasks
from app.services.user_service import ensure_user
from app.services.weather import WeatherService, WeatherSnapshot

logger = logging.getLogger(__name__)

PLAN_SYSTEM_PROMPT = (
    "You are an expert schedule optimizer. Create precise, weather-aware schedules. "
    "Follow all user-specified times exactly. Return only valid JSON."
)
GENERATE_SYSTEM_PROMPT = (
    "You are a precision task generation and plan alignment AI. {mode} "
    "Follow user preferences exactly. Return only valid JSON with alignment recommendations."
)
ALIGN_SYSTEM_PROMPT = """You are a task alignment AI. Generate MINIMAL tasks that fit the existing plan schedule.
1. NEW tasks: title, duration, importance and scheduledTime if applicable. No id field.
2. Tasks to DELETE: include the exact task id and "action": "delete".
3. Tasks to MODIFY: include the exact task id, the fields to change and "action": "modify".
4. Never use a task title in place of its id.
5. If you are unsure of an id, create a new task instead."""

STATUS_PLANNING_ORDER = {"todo": 1, "doing": 2, "backlog": 3, "done": 4}


@dataclass
class PlanOutcome:
    plan: Dict[str, Any]
    model_used: str
    attempt_count: int
    weather: Optional[WeatherSnapshot] = None
    apod: Optional[Dict[str, Any]] = None
    saved: bool = False


@dataclass
class TaskOperationsOutcome:
    operations: List[Any]
    model_used: str
    attempt_count: int
    extraction_failed: bool = False


@dataclass
class TaskGenerationOutcome:
    alignment: AlignmentResult
    generated: TaskOperationsOutcome
    plan_available: bool
    existing_count: int = 0


def generate_daily_plan(
    router: ModelRouter,
    prefs: Optional[Preferences],
    tasks: Sequence[TaskSnapshot],
    weather: Optional[WeatherSnapshot],
    custom_prompts: Optional[Iterable[str]] = None,
) -> PlanOutcome:
    """Ask the planning models for a schedule; raises ``ExtractionFailed`` if none can be read."""
    prompt = build_plan_prompt(prefs, tasks, weather, custom_prompts)
    result = router.complete(
        [
            {"role": "system", "content": PLAN_SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        "schedule-planning",
        temperature=0.2,
        max_tokens=2500,
        top_p=0.95,
        urgency="medium",
    )
    if result.content is None:
        raise UpstreamError(f"Invalid AI response structure from {result.model_used}")

    plan = extract_with_repair(router, result.content, "object")
    if not isinstance(plan, dict) or not isinstance(plan.get("schedule"), list):
        raise ExtractionFailed("AI schedule response did not contain a schedule")
    return PlanOutcome(plan=plan, model_used=result.model_used, attempt_count=result.attempt_count)


def generate_task_operations(
    router: ModelRouter,
    prefs: Optional[Preferences],
    weather: Optional[WeatherSnapshot],
    existing_tasks: Sequence[TaskSnapshot],
    existing_plan: Optional[Mapping[str, Any]] = None,
    custom_prompts: Optional[Iterable[str]] = None,
    *,
    align_only: bool = False,
) -> TaskOperationsOutcome:
    """Ask for task operations; an unreadable reply degrades to no operations."""
    align_with_schedule = existing_plan is not None
    prompt = build_task_generation_prompt(
        prefs,
        weather,
        existing_tasks,
        existing_plan=existing_plan,
        custom_prompts=custom_prompts,
        align_with_schedule=align_with_schedule,
    )
    if align_only:
        system = ALIGN_SYSTEM_PROMPT
        options: Dict[str, Any] = {"temperature": 0.2, "max_tokens": 1000}
    else:
        mode = (
            "CRITICAL: Generate tasks that align with the existing schedule. Identify conflicting tasks and suggest modifications."
            if align_with_schedule
            else "Create weather-appropriate, realistically timed tasks."
        )
        system = GENERATE_SYSTEM_PROMPT.format(mode=mode)
        options = {"temperature": 0.3, "max_tokens": 2000 if align_with_schedule else 1500}

    result = router.complete(
        [{"role": "system", "content": system}, {"role": "user", "content": prompt}],
        "task-generation",
        top_p=0.9,
        urgency="medium",
        **options,
    )
    if result.content is None:
        raise UpstreamError("No response from AI service")

    try:
        operations = extract_with_repair(router, result.content, "array")
    except ExtractionFailed as exc:
        logger.warning("Task generation reply could not be parsed, continuing with no operations: %s", exc.message)
        log_metric("ai.task_generation.extraction_failed", 1)
        return TaskOperationsOutcome([], result.model_used, result.attempt_count, extraction_failed=True)

    if not isinstance(operations, list):
        operations = []
    return TaskOperationsOutcome(operations, result.model_used, result.attempt_count)


def _snapshots(db: Session, user_id: str) -> List[TaskSnapshot]:
    return [TaskSnapshot.from_task(task) for task in task_service.list_tasks_for_day(db, user_id)]


def _require_preferences(db: Session, user_id: str) -> Preferences:
    prefs = preferences_service.get_preferences(db, user_id)
    if prefs is None:
        raise ValidationError("User preferences not found. Please set up your preferences first.", field="preferences")
    return prefs


def plan_day_for_user(
    db: Session,
    user_id: str,
    router: ModelRouter,
    weather_service: WeatherService,
    apod_client: ApodClient,
    custom_prompts: Optional[Iterable[str]] = None,
) -> PlanOutcome:
    """Generate, persist and return today's plan with its weather and APOD context."""
    ensure_user(db, user_id)
    prefs = _require_preferences(db, user_id)
    tasks = sorted(_snapshots(db, user_id), key=lambda t: STATUS_PLANNING_ORDER.get(t.status or "todo", 5))
    if not tasks:
        raise ValidationError("No tasks found for today. Please add some tasks first.", field="tasks")

    with ThreadPoolExecutor(max_workers=2) as pool:
        weather_future = pool.submit(weather_service.lookup, prefs.city)
        apod_future = pool.submit(apod_client.lookup)
        weather = weather_future.result()
        apod = apod_future.result()

    with trace("plan.generate", metadata={"task_count": len(tasks), "has_weather": weather is not None}):
        outcome = generate_daily_plan(router, prefs, tasks, weather, custom_prompts)

    outcome.weather = weather
    outcome.apod = apod
    outcome.saved = plan_service.save_plan_best_effort(db, user_id, outcome.plan)
    log_metric("plan.generate.saved", 1 if outcome.saved else 0)
    return outcome


def generate_tasks_for_user(
    db: Session,
    user_id: str,
    router: ModelRouter,
    weather_service: WeatherService,
    custom_prompts: Optional[Iterable[str]] = None,
    existing_plan: Optional[Mapping[str, Any]] = None,
) -> TaskGenerationOutcome:
    """Generate AI tasks and reconcile them against today's tasks."""
    current_plan = existing_plan or plan_service.get_plan_json(db, user_id)
    ensure_user(db, user_id)
    prefs = _require_preferences(db, user_id)
    existing = _snapshots(db, user_id)
    weather = weather_service.lookup(prefs.city)

    generated = generate_task_operations(
        router,
        prefs,
        weather,
        existing,
        existing_plan=current_plan,
        custom_prompts=custom_prompts,
    )
    alignment = align_tasks(db, user_id, generated.operations, existing, current_plan)
    return TaskGenerationOutcome(
        alignment=alignment,
        generated=generated,
        plan_available=current_plan is not None,
        existing_count=len(existing),
    )


def align_tasks_for_user(db: Session, user_id: str, router: ModelRouter) -> TaskGenerationOutcome:
    """Ask for minimal operations that fit today's existing plan and apply them."""
    current_plan = plan_service.get_plan_json(db, user_id)
    if current_plan is None:
        raise ValidationError("No AI plan found for today. Please generate a plan first.", field="plan")
    existing = _snapshots(db, user_id)
    prefs = preferences_service.get_preferences(db, user_id)

    generated = generate_task_operations(router, prefs, None, existing, existing_plan=current_plan, align_only=True)
    alignment = align_tasks(db, user_id, generated.operations, existing, current_plan)
    return TaskGenerationOutcome(
        alignment=alignment,
        generated=generated,
        plan_available=True,
        existing_count=len(existing),
    )
