"""Configuration settings for helm_mirror.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the HELM_MIRROR_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="HELM_MIRROR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level (--verbose forces DEBUG)",
    )

    # Network
    request_timeout: float = Field(
        default=300.0,
        gt=0,
        description="Timeout in seconds for index and chart downloads",
    )

    # Rendering
    renderer: Literal["builtin", "helm"] = Field(
        default="helm",
        description="Chart renderer used by inspect-images",
    )
    helm_binary: str = Field(
        default="helm",
        description="Helm executable used by the helm renderer",
    )
    render_timeout: int = Field(
        default=120,
        ge=1,
        description="Timeout in seconds for a single `helm template` run",
    )
    release_name: str = Field(
        default="release-name",
        description="Release name exposed to templates as .Release.Name",
    )
    namespace: str = Field(
        default="default",
        description="Namespace exposed to templates as .Release.Namespace",
    )

    # Output
    images_file: str = Field(
        default="images.out",
        description="Default output file name for the file-based sinks",
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


__all__ = ["Settings", "get_settings", "print_settings_json"]
