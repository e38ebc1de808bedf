"""Shared FastAPI dependencies."""
from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.middleware import USER_ID_HEADER
from app.services.ai.model_router import get_model_router
from app.services.apod import get_apod_client
from app.services.weather import get_weather_service

__all__ = ["get_current_user_id", "get_model_router", "get_weather_service", "get_apod_client"]


def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER)) -> str:
    """Caller identity as established by the upstream auth layer."""
    if x_user_id is None or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: missing user identity")
    return x_user_id.strip()
