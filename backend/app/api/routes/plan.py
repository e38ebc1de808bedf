"""Daily plan routes."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_apod_client, get_current_user_id, get_model_router, get_weather_service
from app.api.schemas.plan import PlanRequest
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import plan_service
from app.services.ai.model_router import ModelRouter
from app.services.apod import ApodClient
from app.services.planning import plan_day_for_user
from app.services.weather import WeatherService

router = APIRouter()


@router.post("/api/plan", tags=["plan"])
def generate_plan(
    http_request: Request,
    payload: Optional[PlanRequest] = Body(default=None),
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    model_router: ModelRouter = Depends(get_model_router),
    weather_service: WeatherService = Depends(get_weather_service),
    apod_client: ApodClient = Depends(get_apod_client),
) -> Dict[str, Any]:
    """Generate today's schedule from preferences, tasks and weather, then save it."""
    request_id = getattr(http_request.state, "request_id", None)
    custom_prompts = payload.custom_prompts if payload else []
    start_time = datetime.now(timezone.utc)

    with error_boundary("Failed to generate plan"):
        with trace(
            "plan.request",
            metadata={"route": "/api/plan", "custom_prompt_count": len(custom_prompts)},
            user_id=user_id,
            request_id=request_id,
        ):
            outcome = plan_day_for_user(db, user_id, model_router, weather_service, apod_client, custom_prompts)

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("plan.request.latency_ms", latency_ms, metadata={"user_id": user_id})

    return {
        "plan": outcome.plan,
        "apod": outcome.apod,
        "weather": outcome.weather.current if outcome.weather else None,
        "debug": {
            "modelUsed": outcome.model_used,
            "attemptCount": outcome.attempt_count,
            "saved": outcome.saved,
            "customPromptsUsed": len(custom_prompts),
        },
    }


@router.get("/api/plan", tags=["plan"])
def read_plan(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Today's saved plan, if one was generated."""
    request_id = getattr(http_request.state, "request_id", None)
    with error_boundary("Failed to retrieve plan"):
        with trace("plan.get", metadata={"route": "/api/plan"}, user_id=user_id, request_id=request_id):
            plan = plan_service.get_plan_json(db, user_id)

    if plan is None:
        return {"plan": None, "message": "No plan found for today"}
    return {"plan": plan}
