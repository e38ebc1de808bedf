"""User preferences API routes."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id
from app.api.schemas.base import MessageResponse
from app.api.schemas.preferences import PreferencesPayload
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services import preferences_service
from app.services.user_service import get_or_create_user

router = APIRouter()


@router.post("/api/preferences", response_model=MessageResponse, tags=["preferences"])
def save_preferences(
    payload: PreferencesPayload,
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> MessageResponse:
    """Create or replace the caller's preferences."""
    request_id = getattr(http_request.state, "request_id", None)

    with error_boundary("Failed to save preferences"):
        with trace(
            "preferences.save",
            metadata={"route": "/api/preferences", "peak_focus": payload.peak_focus, "commute_mode": payload.commute_mode},
            user_id=user_id,
            request_id=request_id,
        ):
            get_or_create_user(db, user_id)
            preferences_service.upsert_preferences(db, user_id, payload.to_model_values())

    log_metric("preferences.save.success", 1, metadata={"user_id": user_id})
    return MessageResponse(message="Preferences saved successfully")


@router.get("/api/preferences", tags=["preferences"])
def read_preferences(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    request_id = getattr(http_request.state, "request_id", None)

    with error_boundary("Failed to retrieve preferences"):
        with trace("preferences.get", metadata={"route": "/api/preferences"}, user_id=user_id, request_id=request_id):
            prefs = preferences_service.get_preferences(db, user_id)

    if prefs is None:
        return {"preferences": None, "message": "No preferences found"}
    return {"preferences": preferences_service.serialize_preferences(prefs)}
