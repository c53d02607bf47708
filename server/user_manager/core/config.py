"""Application configuration loaded from environment variables."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central place for strongly typed application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = Field(default="User Manager Import Service")
    environment: Literal["development", "staging", "production"] = Field(default="development")
    api_prefix: str = Field(default="/api/v1")

    database_url: str = Field(validation_alias="DATABASE_URL")
    redis_url: str = Field(validation_alias="REDIS_URL")
    celery_broker_url: str = Field(validation_alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(validation_alias="CELERY_RESULT_BACKEND")

    upload_tmp_dir: str = Field(default="/tmp/imports")
    import_storage_dir: str = Field(default="/tmp/imports/files")
    avatar_storage_dir: str = Field(default="/tmp/avatars")
    max_upload_size_mb: int = Field(default=50)

    import_batch_size: int = Field(default=10, ge=1)
    import_recent_errors_limit: int = Field(default=5, ge=1)
    # Slows the worker down between batches so progress is visible locally.
    import_batch_delay_seconds: float = Field(default=0.0, ge=0)
    download_timeout_seconds: float = Field(default=30.0, gt=0)
    aggregate_topic: str = Field(default="admin_imports")

    @model_validator(mode="after")
    def convert_database_url(self) -> "Settings":
        """Convert postgresql+psycopg:// (psycopg3) to postgresql:// (psycopg2)."""
        if self.database_url.startswith("postgresql+psycopg://"):
            self.database_url = self.database_url.replace("postgresql+psycopg://", "postgresql://")
        return self

    @model_validator(mode="after")
    def disable_delay_in_production(self) -> "Settings":
        if self.environment == "production":
            self.import_batch_delay_seconds = 0.0
        return self


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance so downstream code can import directly."""

    return Settings()
