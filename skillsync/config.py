"""
Centralized settings for skillsync

All settings can be overridden via environment variables with the
SKILLSYNC_ prefix, e.g. SKILLSYNC_HOME or SKILLSYNC_LOG_LEVEL. The
marketplace token is also read from SKILLSMP_API_KEY.

Usage:
    from skillsync.config import get_settings

    settings = get_settings()
    print(settings.home)
"""

from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from skillsync.core.storage.paths import default_home

DEFAULT_MARKETPLACE_URL = "https://skillsmp.com/api/v1/skills"


class SkillSyncSettings(BaseSettings):
    """Process-wide settings; per-scope policy lives in skillsync.json"""

    model_config = SettingsConfigDict(
        env_prefix="SKILLSYNC_",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    home: Path = Field(
        default_factory=default_home,
        description="Base directory of the global scope",
    )

    api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SKILLSYNC_API_KEY", "SKILLSMP_API_KEY"),
        description="Bearer token for the marketplace API",
    )

    github_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SKILLSYNC_GITHUB_TOKEN", "GITHUB_TOKEN"),
        description="Token for api.github.com (raises the rate limit)",
    )

    marketplace_url: str = Field(
        default=DEFAULT_MARKETPLACE_URL,
        description="Marketplace search API base URL",
    )

    timeout: int = Field(
        default=30,
        ge=1,
        description="HTTP timeout in seconds",
    )

    log_level: str = Field(
        default="WARNING",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator("marketplace_url")
    @classmethod
    def validate_marketplace_url(cls, v: str) -> str:
        if not v.startswith(("https://", "http://")):
            raise ValueError("marketplace_url must be an http(s) URL")
        return v.rstrip("/")


_settings: Optional[SkillSyncSettings] = None


def get_settings(force_reload: bool = False) -> SkillSyncSettings:
    """
    Get the global settings instance

    Args:
        force_reload: Re-read settings from the environment

    Returns:
        SkillSyncSettings instance
    """
    global _settings

    if _settings is None or force_reload:
        _settings = SkillSyncSettings()

    return _settings
