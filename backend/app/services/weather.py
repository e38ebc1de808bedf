"""OpenWeather lookups for planning context and the weather endpoint."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)

FORECAST_SLOTS_PER_DAY = 8
MAX_FORECAST_DAYS = 5


@dataclass(frozen=True)
class WeatherSnapshot:
    description: str
    temperature: float
    current: Dict[str, Any]
    forecast: Optional[Dict[str, Any]] = None

    @property
    def summary(self) -> str:
        return f"{self.description}, {round(self.temperature)}°C"


def _format_hour(timestamp: int) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    hour = moment.hour % 12 or 12
    return f"{hour} {'AM' if moment.hour < 12 else 'PM'}"


def _format_day(timestamp: int) -> str:
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return f"{moment:%a}, {moment:%b} {moment.day}"


def _condition(entry: Dict[str, Any]) -> Dict[str, Any]:
    weather = (entry.get("weather") or [{}])[0]
    return {"condition": weather.get("description", "unknown"), "icon": weather.get("icon")}


class WeatherService:
    """Fetch current conditions and the 5-day forecast for a city."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        base_url: str = "https://api.openweathermap.org/data/2.5",
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def _get(self, endpoint: str, city: str) -> Dict[str, Any]:
        response = self._client.get(
            f"{self.base_url}/{endpoint}",
            params={"q": city, "units": "metric", "appid": self.api_key},
        )
        if response.status_code != 200:
            raise UpstreamError(f"Weather API error: {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Weather API returned an unreadable body: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Weather API returned an unexpected payload")
        return payload

    def fetch(self, city: str) -> WeatherSnapshot:
        """Current weather and forecast, requested concurrently."""
        if not self.api_key:
            raise UpstreamError("Weather API key is not configured")
        try:
            with ThreadPoolExecutor(max_workers=2) as pool:
                current_future = pool.submit(self._get, "weather", city)
                forecast_future = pool.submit(self._get, "forecast", city)
                current = current_future.result()
                forecast = forecast_future.result()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Weather API request failed: {exc}") from exc

        try:
            condition = _condition(current)
            temperature = float((current.get("main") or {}).get("temp", 20))
        except (TypeError, ValueError, AttributeError, IndexError) as exc:
            raise UpstreamError(f"Weather API returned malformed conditions: {exc}") from exc
        return WeatherSnapshot(
            description=condition["condition"],
            temperature=temperature,
            current=current,
            forecast=forecast,
        )

    def lookup(self, city: Optional[str]) -> Optional[WeatherSnapshot]:
        """Best-effort variant used for AI context; failures yield ``None``."""
        if not city:
            return None
        try:
            return self.fetch(city)
        except UpstreamError as exc:
            logger.warning("Weather lookup for %s failed: %s", city, exc.message)
            return None

    def report(self, city: str) -> Dict[str, Any]:
        """Shape a snapshot for the weather endpoint."""
        snapshot = self.fetch(city)
        current = snapshot.current
        main = current.get("main") or {}
        slots: List[Dict[str, Any]] = (snapshot.forecast or {}).get("list") or []

        todays_forecast = []
        for item in slots[:FORECAST_SLOTS_PER_DAY]:
            item_main = item.get("main") or {}
            todays_forecast.append(
                {
                    "time": _format_hour(item["dt"]),
                    "temperature": round(item_main.get("temp", 0)),
                    **_condition(item),
                    "humidity": item_main.get("humidity"),
                    "windSpeed": (item.get("wind") or {}).get("speed", 0),
                }
            )

        daily_forecast = []
        for item in slots[::FORECAST_SLOTS_PER_DAY][:MAX_FORECAST_DAYS]:
            item_main = item.get("main") or {}
            daily_forecast.append(
                {
                    "date": _format_day(item["dt"]),
                    "temperature": {
                        "high": round(item_main.get("temp_max", 0)),
                        "low": round(item_main.get("temp_min", 0)),
                    },
                    **_condition(item),
                }
            )

        summary = f"Today: {snapshot.summary}."
        if todays_forecast:
            summary += f" Later: {todays_forecast[-1]['condition']}"

        location = current.get("name") or city
        country = (current.get("sys") or {}).get("country")
        return {
            "current": {
                "temperature": f"{round(snapshot.temperature)}°C",
                "condition": snapshot.description,
                "location": f"{location}, {country}" if country else location,
                "icon": _condition(current)["icon"],
                "humidity": main.get("humidity"),
                "windSpeed": (current.get("wind") or {}).get("speed", 0),
            },
            "todaysForecast": todays_forecast,
            "dailyForecast": daily_forecast,
            "forecastSummary": summary,
        }


@lru_cache
def get_weather_service() -> WeatherService:
    return WeatherService(
        settings.openweather_api_key,
        base_url=settings.openweather_base_url,
        timeout=settings.external_timeout_seconds,
    )
