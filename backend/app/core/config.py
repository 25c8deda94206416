"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "ProjectPilot Backend"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://projectpilot@localhost:5432/projectpilot"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    generation_timeout_seconds: float = 30.0
    generation_temperature: float = 0.7
    generation_max_tokens: int = 2048
    pattern_cache_max_entries: int = 128
    pattern_cache_ttl_seconds: int | None = 86400
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "projectpilot"
    scheduler_enabled: bool = False
    scheduler_timezone: str = "UTC"
    reconcile_interval_minutes: int = 15
    jobs_run_on_startup: bool = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
