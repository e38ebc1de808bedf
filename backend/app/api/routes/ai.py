"""AI assistant routes: voice extraction, task generation, plan alignment and the kanban helper."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_model_router, get_weather_service
from app.api.schemas.ai import AskRequest, ExtractTasksRequest, GenerateTasksRequest
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import kanban_assistant, preferences_service
from app.services.ai.model_router import ModelRouter
from app.services.planning import TaskGenerationOutcome, align_tasks_for_user, generate_tasks_for_user
from app.services.voice_extraction import extract_tasks_from_transcript
from app.services.weather import WeatherService

router = APIRouter()


def _alignment_summary(outcome: TaskGenerationOutcome) -> Dict[str, Any]:
    result = outcome.alignment.to_dict()
    return {
        "planAligned": outcome.plan_available,
        "inserted": len(result["insertedTasks"]),
        "modified": len(result["modifiedTasks"]),
        "deleted": len(result["deletedTasks"]),
        "conflicts": len(result["conflicts"]),
        "insertedTasks": result["insertedTasks"],
        "modifiedTasks": result["modifiedTasks"],
        "deletedTasks": result["deletedTasks"],
        "conflictDetails": result["conflicts"],
        "aborted": result["aborted"],
    }


def _record_alignment(name: str, user_id: str, outcome: TaskGenerationOutcome) -> None:
    alignment = outcome.alignment
    metadata = {"user_id": user_id, "plan_available": outcome.plan_available}
    log_metric(f"{name}.inserted", len(alignment.inserted_tasks), metadata=metadata)
    log_metric(f"{name}.modified", len(alignment.modified_tasks), metadata=metadata)
    log_metric(f"{name}.deleted", len(alignment.deleted_tasks), metadata=metadata)
    log_metric(f"{name}.conflicts", len(alignment.conflicts), metadata=metadata)


@router.post("/api/extract-tasks", tags=["ai"])
def extract_tasks(
    payload: ExtractTasksRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
) -> Dict[str, Any]:
    """Turn a spoken transcript into task suggestions. Nothing is saved."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    with error_boundary("Failed to extract tasks from voice"):
        with trace(
            "ai.extract_tasks",
            metadata={"route": "/api/extract-tasks", "transcript_length": len(payload.transcript)},
            user_id=user_id,
            request_id=request_id,
        ):
            prefs = preferences_service.get_preferences(db, user_id)
            extraction = extract_tasks_from_transcript(model_router, payload.transcript, prefs)

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("ai.extract_tasks.count", len(extraction.tasks), metadata={"user_id": user_id})
    log_metric("ai.extract_tasks.latency_ms", latency_ms)

    return {
        "ok": True,
        "tasks": extraction.tasks,
        "originalTranscript": payload.transcript,
        "extractedCount": len(extraction.tasks),
        "debug": {
            "modelUsed": extraction.model_used,
            "attemptCount": extraction.attempt_count,
            "processingSuccess": True,
            "aiResponse": extraction.response_preview,
            "rawTasksCount": extraction.raw_count,
            "validTasksCount": len(extraction.tasks),
        },
    }


@router.post("/api/generate-tasks", tags=["ai"])
def generate_tasks(
    http_request: Request,
    payload: Optional[GenerateTasksRequest] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    weather_service: WeatherService = Depends(get_weather_service),
) -> Dict[str, Any]:
    """Generate tasks for today and reconcile them with the existing board."""
    request_id = getattr(http_request.state, "request_id", None)
    payload = payload or GenerateTasksRequest()

    with error_boundary("Failed to generate AI tasks"):
        with trace(
            "ai.generate_tasks",
            metadata={
                "route": "/api/generate-tasks",
                "custom_prompt_count": len(payload.custom_prompts),
                "existing_plan_supplied": payload.existing_plan is not None,
            },
            user_id=user_id,
            request_id=request_id,
        ):
            outcome = generate_tasks_for_user(
                db,
                user_id,
                model_router,
                weather_service,
                custom_prompts=payload.custom_prompts,
                existing_plan=payload.existing_plan,
            )

    _record_alignment("ai.generate_tasks", user_id, outcome)
    alignment = outcome.alignment
    managed = len(alignment.inserted_tasks) + len(alignment.modified_tasks)
    return {
        "ok": True,
        "message": f"Successfully managed {managed} tasks with plan alignment!",
        "tasks": alignment.inserted_tasks,
        "alignment": _alignment_summary(outcome),
        "debug": {
            "modelUsed": outcome.generated.model_used,
            "attemptCount": outcome.generated.attempt_count,
            "totalGenerated": len(outcome.generated.operations),
            "totalProcessed": managed,
            "processingSuccess": not outcome.generated.extraction_failed,
            "planAvailable": outcome.plan_available,
        },
    }


@router.post("/api/align-tasks-with-plan", tags=["ai"])
def align_with_plan(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
) -> Dict[str, Any]:
    """Ask for minimal task changes that fit today's saved plan and apply them."""
    request_id = getattr(http_request.state, "request_id", None)

    with error_boundary("Failed to align tasks with plan"):
        with trace(
            "ai.align_tasks",
            metadata={"route": "/api/align-tasks-with-plan"},
            user_id=user_id,
            request_id=request_id,
        ):
            outcome = align_tasks_for_user(db, user_id, model_router)

    _record_alignment("ai.align_tasks", user_id, outcome)
    summary = _alignment_summary(outcome)
    summary.pop("planAligned")
    return {
        "ok": True,
        "message": "Successfully aligned tasks with AI plan!",
        "alignment": summary,
        "debug": {
            "modelUsed": outcome.generated.model_used,
            "attemptCount": outcome.generated.attempt_count,
            "planFound": True,
            "existingTaskCount": outcome.existing_count,
            "generatedTaskCount": len(outcome.generated.operations),
        },
    }


@router.post("/api/kanban-ai/dictate", tags=["ai"])
def dictate(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    weather_service: WeatherService = Depends(get_weather_service),
) -> Dict[str, Any]:
    """A spoken-style summary of today's board."""
    request_id = getattr(http_request.state, "request_id", None)
    with error_boundary("Failed to generate task dictation"):
        with trace("ai.kanban.dictate", metadata={"route": "/api/kanban-ai/dictate"}, user_id=user_id, request_id=request_id):
            response = kanban_assistant.dictate_board(db, user_id, model_router, weather_service)
    log_metric("ai.kanban.dictate.task_count", response["taskCount"], metadata={"user_id": user_id})
    return response


@router.post("/api/kanban-ai/ask", tags=["ai"])
def ask(
    payload: AskRequest,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    weather_service: WeatherService = Depends(get_weather_service),
) -> Dict[str, Any]:
    """Answer a question using today's tasks, plan and weather as context."""
    request_id = getattr(http_request.state, "request_id", None)
    with error_boundary("Failed to process question"):
        with trace(
            "ai.kanban.ask",
            metadata={"route": "/api/kanban-ai/ask", "question_length": len(payload.question)},
            user_id=user_id,
            request_id=request_id,
        ):
            return kanban_assistant.answer_question(db, user_id, payload.question, model_router, weather_service)


@router.get("/api/performance-insights", tags=["ai"])
def performance_insights(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
) -> Dict[str, Any]:
    """Completion statistics for today, weekly trends and an AI narrative."""
    request_id = getattr(http_request.state, "request_id", None)
    with error_boundary("Failed to generate performance insights"):
        with trace(
            "ai.performance_insights",
            metadata={"route": "/api/performance-insights"},
            user_id=user_id,
            request_id=request_id,
        ):
            response = kanban_assistant.performance_insights(db, user_id, model_router)
    log_metric(
        "ai.performance_insights.completion_rate",
        response["insights"]["summary"]["completionRate"],
        metadata={"user_id": user_id},
    )
    return response


@router.get("/api/ai/model-stats", tags=["ai"])
def model_stats(
    user_id: str = Depends(get_current_user_id),
    model_router: ModelRouter = Depends(get_model_router),
) -> Dict[str, Any]:
    """Per-backend success/failure counts and average latency."""
    return {"ok": True, "stats": model_router.stats.snapshot()}
