"""
Application configuration using Pydantic Settings.

Loads configuration from WARRANT_* environment variables and .env file.
CLI flags override these values per run.
"""

import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="WARRANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="warrant-core", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # Logging / Privacy
    log_redaction_enabled: bool = Field(default=True, description="Enable secret redaction in logs")

    # Execution
    default_step_timeout: float = Field(
        default=300.0,
        description="Per-step timeout in seconds when a step declares none",
    )
    max_parallelism: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        description="Maximum number of steps running at once",
    )
    kill_grace_period: float = Field(
        default=5.0,
        description="Seconds between SIGTERM and SIGKILL when stopping a process group",
    )
    output_excerpt_limit: int = Field(
        default=4000,
        description="Maximum characters of stdout/stderr kept per step result",
    )

    # File Storage
    warrant_dir: str = Field(default=".warrant", description="Warrant directory inside the project")
    steps_file: str = Field(default="steps.yaml", description="Step declarations file inside warrant_dir")
    report_path: str = Field(default="validation_report.md", description="Report artifact path")

    @field_validator("max_parallelism")
    @classmethod
    def _positive_parallelism(cls, value: int) -> int:
        if value < 1:
            raise ValueError("max_parallelism must be at least 1")
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"


# Global settings instance
settings = Settings()
