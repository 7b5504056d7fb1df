"""Centralized settings for the Ausmo resilience services.

Uses pydantic-settings to load from environment variables (prefixed AUSMO_)
with defaults suitable for a single device install.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from ausmo.logging_config import LogFormat, LoggingConfig, LogLevel

MIN_PBKDF2_ITERATIONS = 10_000


class Settings(BaseSettings):
    """Resilience settings loaded from environment variables."""

    # --- Storage ---
    data_dir: Path = Path.home() / ".ausmo"
    database_url: Optional[str] = None  # defaults to a SQLite file in data_dir

    # --- Environment tags recorded on every backup ---
    environment: Literal["development", "staging", "production"] = "production"
    platform: Literal["ios", "android", "web"] = "ios"
    schema_version: str = "1.0.0"

    # --- Encryption ---
    pbkdf2_iterations: int = MIN_PBKDF2_ITERATIONS

    # --- Monitoring & recovery ---
    health_check_interval_seconds: float = 3600.0
    step_retry_backoff_seconds: float = 0.01

    # --- Logging ---
    log_level: str = "INFO"
    log_format: str = "json"

    model_config = {
        "env_prefix": "AUSMO_",
        "env_file": ".env",
        "extra": "ignore",
    }

    @field_validator("pbkdf2_iterations")
    @classmethod
    def _check_iterations(cls, value: int) -> int:
        if value < MIN_PBKDF2_ITERATIONS:
            raise ValueError(f"pbkdf2_iterations must be >= {MIN_PBKDF2_ITERATIONS}")
        return value

    @property
    def resolved_database_url(self) -> str:
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'ausmo.db'}"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "files"

    def logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            level=LogLevel(self.log_level.upper()),
            format=LogFormat(self.log_format.lower()),
            environment=self.environment,
            platform=self.platform,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton."""
    return Settings()
