"""Configuration management for the onboarding client."""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class OnboardingSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    api_base_url: str = Field(
        default="http://localhost:3000/api", validation_alias="CI_ONBOARDING_API_BASE_URL"
    )
    token_path: Path = Field(
        default=Path("~/.ci_onboarding/token"), validation_alias="CI_ONBOARDING_TOKEN_PATH"
    )
    callback_ledger_path: Path = Field(
        default=Path("~/.ci_onboarding/consumed_codes"),
        validation_alias="CI_ONBOARDING_CALLBACK_LEDGER",
    )
    poll_interval: float = Field(default=2.0, validation_alias="CI_ONBOARDING_POLL_INTERVAL")
    poll_max_attempts: int | None = Field(
        default=None, validation_alias="CI_ONBOARDING_POLL_MAX_ATTEMPTS"
    )
    template_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("templates"),), validation_alias="CI_ONBOARDING_TEMPLATE_PATHS"
    )
    chroma_persist_path: Path | None = Field(default=None, validation_alias="CHROMA_PERSIST_PATH")
    log_level: str = Field(default="INFO", validation_alias="CI_ONBOARDING_LOG_LEVEL")

    @field_validator("api_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("CI_ONBOARDING_API_BASE_URL must not be empty")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "CI_ONBOARDING_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("template_paths", mode="before")
    @classmethod
    def _parse_template_paths(cls, value):
        if value is None or value == "":
            return (Path("templates"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("templates"),)
        raise TypeError(
            "CI_ONBOARDING_TEMPLATE_PATHS must be a list of paths or a path-separated string"
        )

    @field_validator("poll_interval")
    @classmethod
    def _validate_poll_interval(cls, value: float) -> float:
        if value < 0:
            raise ValueError("CI_ONBOARDING_POLL_INTERVAL must be >= 0")
        return value

    @field_validator("poll_max_attempts", mode="before")
    @classmethod
    def _validate_poll_max_attempts(cls, value):
        if value is None or value == "":
            return None
        if int(value) < 1:
            raise ValueError("CI_ONBOARDING_POLL_MAX_ATTEMPTS must be >= 1")
        return int(value)


def configure_logging(level: str) -> None:
    """Configure root logging for the onboarding client."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


@lru_cache(maxsize=1)
def get_settings() -> OnboardingSettings:
    """Return cached settings instance."""

    settings = OnboardingSettings()
    settings.token_path = settings.token_path.expanduser().resolve()
    settings.callback_ledger_path = settings.callback_ledger_path.expanduser().resolve()
    settings.template_paths = tuple(path.expanduser().resolve() for path in settings.template_paths)
    if settings.chroma_persist_path is not None:
        settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    return settings


__all__ = ["OnboardingSettings", "configure_logging", "get_settings"]
