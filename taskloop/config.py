"""Configuration settings using Pydantic BaseSettings."""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application Configuration
    app_host: str = Field(default="0.0.0.0", description="FastAPI host")
    app_port: int = Field(default=8000, description="FastAPI port")
    debug: bool = Field(default=False, description="Enable debug mode")
    environment: str = Field(default="development", description="Deployment environment name")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Log file path")

    # Storage Configuration
    storage_backend: Literal["memory", "json"] = Field(
        default="memory", description="Backing store for task collections"
    )
    data_dir: Path = Field(default=Path("data"), description="Directory for JSON task documents")

    # Task Lifecycle Configuration
    trash_retention_days: int = Field(default=7, ge=1, description="Days a deleted task stays in trash")
    trash_capacity: int = Field(default=50, ge=1, description="Maximum number of deleted tasks kept")
    upcoming_window_days: int = Field(default=7, ge=1, description="Look-ahead window for upcoming tasks")
    upcoming_limit: int = Field(default=5, ge=1, description="Maximum upcoming tasks returned")

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "TASKLOOP_"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
