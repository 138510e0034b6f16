
from __future__ import annotations
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")

    # Time accounting
    TIMEZONE: str = "UTC"  # reference zone for day/week buckets

    # Storage
    STORE_BACKEND: str = "memory"

    # Pagination
    DEFAULT_PAGE_LIMIT: int = 10
    MAX_PAGE_LIMIT: int = 100

    # Observability
    LOG_JSON: bool = False
    METRICS_ENABLED: bool = False

settings = Settings()
