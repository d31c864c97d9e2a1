"""Configuration settings for android_kernel_builder.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.

The GitHub Actions runner variables (GITHUB_WORKSPACE, GITHUB_TOKEN, ...)
are accepted under their native names as well as with the AKB_ prefix, so
the same settings object works inside and outside a workflow.
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_home_dir() -> Path:
    """Return the directory toolchains and ccache live in."""
    return Path(os.environ.get("HOME") or Path.home())


def _default_workspace_dir() -> Path:
    """Return the workspace root (GITHUB_WORKSPACE or the current directory)."""
    return Path(os.environ.get("GITHUB_WORKSPACE") or Path.cwd())


def _default_resources_dir() -> Path:
    """Return the directory holding the bundled helper scripts."""
    return Path(os.environ.get("GITHUB_ACTION_PATH") or Path.cwd())


def _default_cache_dir() -> Path:
    """Return the default ccache archive store directory."""
    return Path.home() / ".cache" / "android-kernel-builder"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the AKB_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="AKB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Paths
    home_dir: Path = Field(
        default_factory=_default_home_dir,
        description="Directory toolchains are installed into",
    )
    workspace_dir: Path = Field(
        default_factory=_default_workspace_dir,
        validation_alias=AliasChoices("AKB_WORKSPACE_DIR", "GITHUB_WORKSPACE"),
        description="Workspace root the kernel and build directories live in",
    )
    resources_dir: Path = Field(
        default_factory=_default_resources_dir,
        validation_alias=AliasChoices("AKB_RESOURCES_DIR", "GITHUB_ACTION_PATH"),
        description="Directory holding bundled patch and helper scripts",
    )
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory ccache archives are stored in",
    )

    # GitHub
    github_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AKB_GITHUB_TOKEN", "GITHUB_TOKEN"),
        description="Token used for release management",
    )
    github_repository: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AKB_GITHUB_REPOSITORY", "GITHUB_REPOSITORY"),
        description="owner/repo slug releases are published to",
    )
    github_sha: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AKB_GITHUB_SHA", "GITHUB_SHA"),
        description="Commit SHA of the current run",
    )
    github_api_url: str = Field(
        default="https://api.github.com",
        validation_alias=AliasChoices("AKB_GITHUB_API_URL", "GITHUB_API_URL"),
        description="Base URL of the GitHub REST API",
    )

    # Operational
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    ccache_max_size: str = Field(
        default="4G",
        description="Maximum ccache size passed to `ccache -M`",
    )
    keep_releases: int = Field(
        default=3,
        ge=0,
        description="Number of CI releases kept when pruning old ones",
    )
    magiskboot_url: str | None = Field(
        default=None,
        description=(
            "URL template for the magiskboot binary; '{arch}' is replaced with "
            "the host architecture. When unset the bundled copy is used."
        ),
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for toolchain and image downloads",
    )
    build_timeout: int | None = Field(
        default=None,
        description="Timeout for the kernel build (no limit if not set)",
    )


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    The GitHub token is masked.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    if settings.github_token:
        settings = settings.model_copy(update={"github_token": "***"})
    return settings.model_dump_json(indent=2)


__all__ = ["Settings", "get_settings", "print_settings_json"]
