"""
Application configuration using pydantic-settings.

Loads configuration from environment variables with sensible defaults.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./statement_importer.db"

    # Uploads
    max_upload_size_mb: int = 5

    # Application
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = []

    # Remote column analyzer (disabled when no URL is configured)
    analyzer_url: Optional[str] = None
    analyzer_api_key: Optional[str] = None
    analyzer_timeout_seconds: float = 10.0
    analyzer_sample_size: int = 50

    # Import
    import_batch_size: int = 50

    @property
    def max_upload_size_bytes(self) -> int:
        """Get maximum upload size in bytes."""
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
