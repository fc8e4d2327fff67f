# housekeeper/config/settings.py
"""
Purpose: Centralized, validated configuration for the housekeeper (GitLab access, retention policy, paths, logging).
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from housekeeper import HousekeepingError


class ConfigurationError(HousekeepingError):
    """Raised when required settings are missing; fatal before any network call."""


class RetentionPolicy(BaseModel):
    # Artifacts must be this many days past their expiry before deletion
    grace_days: int = Field(default=7, ge=0)
    # Lifetime assumed for jobs without artifacts_expire_at
    assumed_lifetime_days: int = Field(default=7, ge=0)

    # Listing
    per_page: int = Field(default=100, ge=1, le=100)  # GitLab caps per_page at 100

    # Reporting
    top_n: int = Field(default=10, ge=1)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GITLAB_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    # GitLab access (GITLAB_HOST / GITLAB_PRIVATE_TOKEN)
    host: str = Field(default="")
    private_token: str = Field(default="", repr=False)
    api_prefix: str = Field(default="/api/v4")

    # HTTP request timeout
    http_request_timeout_seconds: float = Field(default=60.0, gt=0)

    # Storage paths
    summary_path: Path = Field(default=Path("gitlab_artifact_summary.json"))
    raw_statistics_path: Path = Field(default=Path("gitlab_raw_project_statistics.json"))

    # Policies
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)

    # Logging config
    # Defaults to a logs/ directory beside summary_path
    log_dir: Optional[Path] = Field(default=None)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @field_validator("host")
    @classmethod
    def _strip_host(cls, v: str) -> str:
        return (v or "").strip().rstrip("/")

    @field_validator("api_prefix")
    @classmethod
    def _normalize_prefix(cls, v: str) -> str:
        v = (v or "").strip().strip("/")
        return f"/{v}" if v else ""

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Resolve all Path fields to absolute paths relative to cwd."""
        self.summary_path = self.summary_path.resolve()
        self.raw_statistics_path = self.raw_statistics_path.resolve()
        self.log_dir = (self.log_dir or self.summary_path.parent / "logs").resolve()
        return self

    @property
    def api_base_url(self) -> str:
        return f"{self.host}{self.api_prefix}"

    def require_credentials(self) -> None:
        missing = []
        if not self.host:
            missing.append("GITLAB_HOST")
        if not self.private_token:
            missing.append("GITLAB_PRIVATE_TOKEN")
        if missing:
            raise ConfigurationError(
                f"Please set {' and '.join(missing)} in your environment or .env file."
            )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
