"""Application configuration management."""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() != "TRACE":
            self.log_level = "DEBUG"

    # Database
    database_url: str = "sqlite:///./timetracker.db"

    # Security
    secret_key: str
    encryption_key: str  # Fernet key for stored OAuth tokens
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_v1_str: str = "/api/v1"
    app_base_url: str = "http://localhost:8000"
    timezone: str = "Europe/Berlin"

    # Jira
    jira_request_timeout: float = 30.0
    jira_client_cache_size: int = 16
    jira_sync_entry_limit: int = 50

    # Scheduler (0 disables the job)
    jira_sync_interval_minutes: int = 0
    subticket_sync_interval_hours: int = 0

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def jira_oauth_callback_url(self) -> str:
        return self.app_base_url.rstrip("/") + "/jiraoauthcallback"


# Global settings instance
settings = Settings()
