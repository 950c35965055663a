"""Configuration settings for mason.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SOURCE_URL = "https://github.com/OpenBazaar/openbazaar-go"
DEFAULT_XGO_PACKAGE = "github.com/karalabe/xgo"
DEFAULT_GO_VERSION = "1.11"


def _home_dir() -> Path | None:
    """Return the user's home directory, or None if it cannot be resolved."""
    try:
        return Path.home()
    except (KeyError, RuntimeError):
        return None


def _default_cache_dir() -> Path:
    """Return the default cache directory.

    Falls back to the current directory when no home directory is resolvable.
    """
    home = _home_dir()
    if home is None:
        return Path(".") / ".mason" / "cache"
    return home / ".mason" / "cache"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the MASON_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="MASON_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Root directory for the artifact cache",
    )
    tmp_dir: Path | None = Field(
        default=None,
        description="Parent directory for build work dirs (uses system default if not set)",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Toolchain
    source_url: str = Field(
        default=DEFAULT_SOURCE_URL,
        description="Git URL the daemon source is cloned from",
    )
    go_version: str = Field(
        default=DEFAULT_GO_VERSION,
        description="Go release passed to xgo for cross-compilation",
    )
    xgo_package: str = Field(
        default=DEFAULT_XGO_PACKAGE,
        description="Go package path of the xgo toolchain",
    )

    # Timeouts (in seconds); None means wait indefinitely
    build_timeout: int | None = Field(
        default=None,
        ge=1,
        description="Per-command timeout for build pipeline commands",
    )
    lock_timeout: float | None = Field(
        default=None,
        ge=0,
        description="Timeout for acquiring the per-key build lock",
    )

    # Cache behaviour
    verify_cache_digest: bool = Field(
        default=True,
        description="Verify SHA-256 of cached binaries on lookup",
    )
    rebuild_corrupted: bool = Field(
        default=False,
        description="Rebuild over a corrupted cache entry instead of failing",
    )


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "DEFAULT_GO_VERSION",
    "DEFAULT_SOURCE_URL",
    "DEFAULT_XGO_PACKAGE",
    "Settings",
    "get_settings",
    "print_settings_json",
]
