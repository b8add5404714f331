"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """locsync application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/locsync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # GitHub
    github_api_url: str = "https://api.github.com"
    github_token: str = ""
    remote_timeout_seconds: float = Field(default=30.0, gt=0)
    remote_max_retries: int = Field(default=3, ge=0, le=10)
    remote_retry_base_delay: float = Field(default=1.0, ge=0)
    remote_retry_max_delay: float = Field(default=60.0, ge=0)
    remote_fetch_concurrency: int = Field(default=8, ge=1, le=64)

    def validate_runtime_security(self) -> None:
        """Validate settings that must be overridden in production."""
        if self.debug:
            return

        violations: list[str] = []
        if not self.github_token:
            violations.append("GITHUB_TOKEN must be configured in production")
        if not self.github_api_url.startswith("https://"):
            violations.append("GITHUB_API_URL must use https in production")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
