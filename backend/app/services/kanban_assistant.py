"""Board dictation, contextual Q&A and performance insights."""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.clock import now, today
from app.db.models.task import Task
from app.services import plan_service, preferences_service, task_service
from app.services.ai.model_router import ModelRouter
from app.services.ai.sanitizer import clean_ai_response
from app.services.prompts import (
    TimeContext,
    build_dictation_prompt,
    build_insights_prompt,
    build_question_prompt,
    current_time_context,
    group_by_status,
)
from app.services.task_alignment import TaskSnapshot
from app.services.weather import WeatherService

logger = logging.getLogger(__name__)

EMPTY_BOARD_DICTATION = (
    "You have no tasks for today. Consider adding some tasks to get started with your productivity journey!"
)
DICTATION_SYSTEM_PROMPT = (
    "You are a professional time-aware task dictation assistant. Create a clear, encouraging, and organized "
    "verbal summary of tasks that considers the current time context. Be natural and conversational."
)
QUESTION_SYSTEM_PROMPT = (
    "You are a knowledgeable productivity assistant. Provide helpful, contextual advice based on the user's "
    "tasks, schedule, preferences, and current conditions. Give direct, actionable responses without showing "
    "your thought process. Do not use XML tags like <think>, <debug>, or <analysis>."
)
INSIGHTS_SYSTEM_PROMPT = (
    "You are an expert productivity coach and performance analyst. Provide insightful, actionable feedback "
    "that motivates users while helping them optimize their workflow."
)
STATUS_BOARD_ORDER = {"backlog": 1, "todo": 2, "doing": 3, "done": 4}
TREND_WINDOW_DAYS = 7


def _debug(result) -> Dict[str, Any]:
    return {"modelUsed": result.model_used, "attemptCount": result.attempt_count}


def _weather_for(db: Session, user_id: str, weather_service: WeatherService):
    prefs = preferences_service.get_preferences(db, user_id)
    return prefs, weather_service.lookup(prefs.city if prefs else None)


def _breakdown(tasks: Sequence[TaskSnapshot]) -> Dict[str, int]:
    return {status: len(items) for status, items in group_by_status(tasks).items()}


def dictate_board(
    db: Session,
    user_id: str,
    router: ModelRouter,
    weather_service: WeatherService,
    time_context: Optional[TimeContext] = None,
) -> Dict[str, Any]:
    tasks = [TaskSnapshot.from_task(t) for t in task_service.list_tasks_for_day(db, user_id)]
    if not tasks:
        return {"ok": True, "dictation": EMPTY_BOARD_DICTATION, "taskCount": 0}
    tasks.sort(key=lambda t: STATUS_BOARD_ORDER.get(t.status or "todo", 5))

    ctx = time_context or current_time_context()
    _, weather = _weather_for(db, user_id, weather_service)
    result = router.complete(
        [
            {"role": "system", "content": DICTATION_SYSTEM_PROMPT},
            {"role": "user", "content": build_dictation_prompt(tasks, weather, ctx)},
        ],
        "task-generation",
        temperature=0.7,
        max_tokens=500,
        urgency="low",
    )
    return {
        "ok": True,
        "dictation": clean_ai_response(result.content),
        "taskCount": len(tasks),
        "breakdown": _breakdown(tasks),
        "context": {**ctx.to_dict(), "weatherAvailable": weather is not None},
        "debug": _debug(result),
    }


def answer_question(
    db: Session,
    user_id: str,
    question: str,
    router: ModelRouter,
    weather_service: WeatherService,
    time_context: Optional[TimeContext] = None,
) -> Dict[str, Any]:
    tasks = [TaskSnapshot.from_task(t) for t in task_service.list_tasks_for_day(db, user_id)]
    plan = plan_service.get_plan_json(db, user_id)
    ctx = time_context or current_time_context()
    _, weather = _weather_for(db, user_id, weather_service)

    result = router.complete(
        [
            {"role": "system", "content": QUESTION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_question_prompt(question.strip(), tasks, weather, ctx, has_plan=plan is not None),
            },
        ],
        "voice-extraction",
        temperature=0.6,
        max_tokens=300,
        urgency="medium",
    )
    return {
        "ok": True,
        "question": question.strip(),
        "answer": clean_ai_response(result.content),
        "context": {
            "currentTime": ctx.current_time,
            "taskCount": len(tasks),
            "weatherAvailable": weather is not None,
            "planAvailable": plan is not None,
        },
        "debug": _debug(result),
    }


def compute_performance_stats(tasks: Sequence[TaskSnapshot]) -> Dict[str, Any]:
    groups = group_by_status(tasks)
    total = len(tasks)
    completed = len(groups["done"])
    planned_minutes = sum(t.duration_minutes or 0 for t in tasks)
    completed_minutes = sum(t.duration_minutes or 0 for t in groups["done"])
    return {
        "summary": {
            "totalTasks": total,
            "completedTasks": completed,
            "inProgressTasks": len(groups["doing"]),
            "completionRate": round(completed / total * 100) if total else 0,
            "timeUtilization": round(completed_minutes / planned_minutes * 100) if planned_minutes else 0,
            "totalPlannedTime": planned_minutes,
            "completedTime": completed_minutes,
        },
        "priorities": {level: sum(1 for t in tasks if t.importance == level) for level in ("high", "medium", "low")},
    }


def compute_weekly_trends(tasks: Sequence[Task]) -> Dict[str, Dict[str, int]]:
    """Per-day completed/total counts and planned minutes, oldest day first."""
    trends: Dict[str, Dict[str, int]] = {}
    for task in sorted(tasks, key=lambda t: t.task_date):
        day = trends.setdefault(task.task_date.isoformat(), {"completed": 0, "total": 0, "totalTime": 0})
        day["total"] += 1
        day["totalTime"] += task.duration_minutes or 0
        if task.status == "done":
            day["completed"] += 1
    return trends


def performance_insights(
    db: Session,
    user_id: str,
    router: ModelRouter,
    time_context: Optional[TimeContext] = None,
) -> Dict[str, Any]:
    today_rows = task_service.list_tasks_for_day(db, user_id)
    tasks = [TaskSnapshot.from_task(t) for t in today_rows]
    day = today()
    week_rows = task_service.list_tasks_between(db, user_id, day - timedelta(days=TREND_WINDOW_DAYS), day)
    prefs = preferences_service.get_preferences(db, user_id)
    plan = plan_service.get_plan_json(db, user_id)
    ctx = time_context or current_time_context()

    stats = compute_performance_stats(tasks)
    trends = compute_weekly_trends(week_rows)
    peak_focus = prefs.peak_focus if prefs else None

    result = router.complete(
        [
            {"role": "system", "content": INSIGHTS_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": build_insights_prompt(stats, tasks, trends, ctx, plan is not None, peak_focus),
            },
        ],
        "task-generation",
        temperature=0.6,
        max_tokens=500,
        urgency="medium",
    )

    breakdown: Dict[str, List[Dict[str, Any]]] = {
        status: [task_service.serialize_task(row) for row in today_rows if row.status == status]
        for status in ("backlog", "todo", "doing", "done")
    }
    insights = {
        **stats,
        "breakdown": breakdown,
        "trends": trends,
        "aiAnalysis": clean_ai_response(result.content),
        "context": {
            "timeOfDay": ctx.time_of_day,
            "isWeekend": ctx.is_weekend,
            "hasPlan": plan is not None,
            "peakFocus": peak_focus,
        },
        "lastUpdated": now().isoformat(),
    }
    return {
        "ok": True,
        "insights": insights,
        "debug": {**_debug(result), "tasksAnalyzed": len(tasks), "weeklyDataPoints": len(trends)},
    }
