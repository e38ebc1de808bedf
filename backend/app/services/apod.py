"""NASA Astronomy Picture of the Day client."""
from __future__ import annotations

import logging
import random
from datetime import date, timedelta
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import httpx

from app.core.clock import today
from app.core.config import settings
from app.core.errors import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)

IMAGE_FALLBACK_DAYS = 7
RANDOM_WINDOW_DAYS = 30
RANDOM_MAX_ATTEMPTS = 6


class ApodClient:
    def __init__(
        self,
        api_key: str = "DEMO_KEY",
        *,
        url: str = "https://api.nasa.gov/planetary/apod",
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
        today_fn: Callable[[], date] = today,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self._client = client or httpx.Client(timeout=timeout)
        self._today = today_fn
        self._rng = rng or random.Random()

    def fetch(self, day: Optional[date] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"api_key": self.api_key}
        if day is not None:
            params["date"] = day.isoformat()
        try:
            response = self._client.get(self.url, params=params)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"NASA APOD request failed: {exc}") from exc
        if response.status_code != 200:
            raise UpstreamError(f"NASA API error: {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"NASA API returned an unreadable body: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("NASA API returned an unexpected payload")
        return payload

    def image_of_the_day(self, day: Optional[date] = None) -> Dict[str, Any]:
        """Return an image entry, stepping back up to a week past video days."""
        data = self.fetch(day)
        if data.get("media_type") == "image":
            return {"success": True, "data": data, "message": "APOD retrieved successfully"}

        anchor = day or self._today()
        for offset in range(1, IMAGE_FALLBACK_DAYS + 1):
            past = anchor - timedelta(days=offset)
            try:
                candidate = self.fetch(past)
            except UpstreamError as exc:
                logger.debug("APOD fallback for %s failed: %s", past, exc.message)
                continue
            if candidate.get("media_type") == "image":
                return {
                    "success": True,
                    "data": candidate,
                    "message": f"Current APOD is a video. Showing image from {past.isoformat()}.",
                }
        raise NotFoundError("No image APOD found in recent days. Only video content available.")

    def random_image(self) -> Dict[str, Any]:
        """An image entry from a random day in the past month."""
        last_error: Optional[UpstreamError] = None
        failures = 0
        for _ in range(RANDOM_MAX_ATTEMPTS):
            past = self._today() - timedelta(days=self._rng.randint(1, RANDOM_WINDOW_DAYS))
            try:
                data = self.fetch(past)
            except UpstreamError as exc:
                logger.debug("Random APOD for %s failed: %s", past, exc.message)
                last_error = exc
                failures += 1
                continue
            if data.get("media_type") == "image":
                return {
                    "success": True,
                    "data": data,
                    "message": f"Random APOD from {past.isoformat()} retrieved successfully",
                }
        if last_error is not None and failures == RANDOM_MAX_ATTEMPTS:
            raise last_error
        raise NotFoundError("Unable to find a random image APOD after multiple attempts")

    def lookup(self) -> Optional[Dict[str, Any]]:
        """Today's entry for plan context; failures yield ``None``."""
        try:
            return self.fetch()
        except UpstreamError as exc:
            logger.warning("NASA APOD lookup failed: %s", exc.message)
            return None


@lru_cache
def get_apod_client() -> ApodClient:
    return ApodClient(
        settings.nasa_api_key,
        url=settings.nasa_apod_url,
        timeout=settings.external_timeout_seconds,
    )
