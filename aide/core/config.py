"""Application configuration managed via environment variables."""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Aide Scheduling Backend"
    debug: bool = False
    log_level: str = "INFO"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    gemini_timeout_seconds: float = 30.0
    schedule_fallback_enabled: bool = False
    schedule_timezone: str = "UTC"
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "aide"
    # Default constraint model; request payloads may override any of these.
    work_start: str = "10:00"
    work_end: str = "18:00"
    break_intervals: List[str] = ["12:00-13:00"]
    excluded_weekdays: List[int] = [5, 6]
    max_continuous_minutes: int = 120


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
