# app/config/settings.py - Environment-driven configuration for the video session service

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "LearnHub Video Sessions API"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    database_name: str = "learnhub"
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 5
    mongodb_max_idle_time_ms: int = 30000
    mongodb_server_selection_timeout_ms: int = 5000

    # JWT
    secret_key: str = "change-me-in-production"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60

    # CORS
    allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    # Media transport
    meeting_base_url: str = "https://meet.learnhub.com"

    # Concurrency: optimistic write retry budget per session mutation
    session_write_max_retries: int = 5
    session_write_retry_delay_ms: int = 20

    # Recurrence
    recurrence_default_window_days: int = 90
    recurrence_max_occurrences: int = 200

    def get_allowed_origins(self) -> List[str]:
        """Parse comma separated CORS origins"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


settings = Settings()
