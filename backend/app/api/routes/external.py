"""Weather and NASA APOD passthrough routes."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from app.api.deps import get_apod_client, get_current_user_id, get_weather_service
from app.core.errors import error_boundary
from app.db.deps import get_db
from app.observability.metrics import timed
from app.observability.tracing import trace
from app.services import preferences_service
from app.services.apod import ApodClient
from app.services.weather import WeatherService

router = APIRouter()


@router.get("/api/weather", tags=["external"])
def weather(
    http_request: Request,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    weather_service: WeatherService = Depends(get_weather_service),
) -> Dict[str, Any]:
    """Current conditions and forecast for the caller's city."""
    request_id = getattr(http_request.state, "request_id", None)
    prefs = preferences_service.get_preferences(db, user_id)
    if prefs is None or not prefs.city:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="City not found in user preferences. Please set up your preferences first.",
        )

    with error_boundary("Failed to fetch weather data"):
        with trace("external.weather", metadata={"route": "/api/weather", "city": prefs.city}, user_id=user_id, request_id=request_id):
            with timed("external.weather"):
                return weather_service.report(prefs.city)


def _parse_apod_date(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        if len(value) != 10:
            raise ValueError(value)
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date format. Use YYYY-MM-DD format.",
        ) from None


@router.get("/api/apod", tags=["external"])
def apod(
    date_param: Optional[str] = Query(default=None, alias="date"),
    user_id: str = Depends(get_current_user_id),
    apod_client: ApodClient = Depends(get_apod_client),
) -> Dict[str, Any]:
    """NASA's astronomy picture for a day, stepping back past video entries."""
    day = _parse_apod_date(date_param)
    with error_boundary("Failed to fetch APOD data"):
        with trace("external.apod", metadata={"route": "/api/apod", "date": date_param}, user_id=user_id):
            return apod_client.image_of_the_day(day)


@router.get("/api/apod/random", tags=["external"])
def random_apod(
    user_id: str = Depends(get_current_user_id),
    apod_client: ApodClient = Depends(get_apod_client),
) -> Dict[str, Any]:
    with error_boundary("Failed to fetch random APOD data"):
        with trace("external.apod.random", metadata={"route": "/api/apod/random"}, user_id=user_id):
            return apod_client.random_image()
