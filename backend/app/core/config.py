"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "FocusDay Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://focusday@localhost:5432/focusday"
    app_timezone: str = "UTC"

    mistral_api_key: str | None = None
    mistral_base_url: str = "https://api.mistral.ai/v1"
    ai_request_timeout_seconds: float = 60.0

    openweather_api_key: str | None = None
    openweather_base_url: str = "https://api.openweathermap.org/data/2.5"
    nasa_api_key: str = "DEMO_KEY"
    nasa_apod_url: str = "https://api.nasa.gov/planetary/apod"
    external_timeout_seconds: float = 10.0

    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "focusday"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
