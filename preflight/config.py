"""Configuration loading for the preflight test.

This module provides centralized configuration management:
- Load defaults from PREFLIGHT_* environment variables and .env files
- Validate configuration using pydantic
- Build per-run PreflightOptions from the loaded defaults
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from preflight.core.models import (
    DEFAULT_AVERAGE_FIELD,
    DEFAULT_CALL_SECONDS,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    Codec,
    PreflightOptions,
)


class Settings(BaseSettings):
    """Preflight defaults loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_prefix="PREFLIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Test run configuration
    call_seconds: int = Field(
        default=DEFAULT_CALL_SECONDS,
        description="Duration of the diagnostic call in seconds",
    )
    codec_preferences: list[Codec] = Field(
        default_factory=lambda: [Codec.PCMU, Codec.OPUS],
        description="Codecs in order of preference",
    )
    connect_timeout_seconds: float = Field(
        default=DEFAULT_CONNECT_TIMEOUT_SECONDS,
        description="Fail the test if the call is not connected within this time",
    )
    average_field: str = Field(
        default=DEFAULT_AVERAGE_FIELD,
        description="Sample metric used for the call quality rating",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("call_seconds")
    @classmethod
    def validate_call_seconds(cls, v: int) -> int:
        """Ensure call duration is positive."""
        if v <= 0:
            raise ValueError("call_seconds must be positive")
        return v

    @field_validator("connect_timeout_seconds")
    @classmethod
    def validate_connect_timeout(cls, v: float) -> float:
        """Ensure connect timeout is positive."""
        if v <= 0:
            raise ValueError("connect_timeout_seconds must be positive")
        return v

    @field_validator("codec_preferences")
    @classmethod
    def validate_codec_preferences(cls, v: list[Codec]) -> list[Codec]:
        """Ensure at least one codec is preferred."""
        if not v:
            raise ValueError("codec_preferences must not be empty")
        return v

    def to_options(self, connect_params: Mapping[str, Any], **overrides: Any) -> PreflightOptions:
        """Build options for one test run.

        Args:
            connect_params: Call target parameters passed to the transport.
            **overrides: PreflightOptions fields that take precedence over
                the loaded settings.

        Returns:
            Validated PreflightOptions.

        Raises:
            ValueError: If an override is invalid.
        """
        values: dict[str, Any] = {
            "call_seconds": self.call_seconds,
            "codec_preferences": tuple(self.codec_preferences),
            "connect_timeout_seconds": self.connect_timeout_seconds,
            "average_field": self.average_field,
        }
        values.update(overrides)
        return PreflightOptions(connect_params=dict(connect_params), **values)


def load_settings(env_file: str | None = None) -> Settings:
    """Load preflight settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
