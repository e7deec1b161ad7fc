"""
Settings Management

Engine limits, safety mode, reasoning provider and logging, read from
AUTONOMY_* environment variables, a .env file or a YAML profile.

Design decisions:
- One frozen BaseSettings per concern, each with its own env prefix
- Runtime loop overrides go through the engine, never through these objects
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from autonomy.core.exceptions import ConfigurationError


class LoopSettings(BaseSettings):
    """Execution-loop limits and strategy switches."""

    model_config = SettingsConfigDict(env_prefix="AUTONOMY_LOOP_", frozen=True)

    max_depth: int = Field(default=5, ge=0, description="Maximum decomposition depth")
    max_attempts: int = Field(default=3, ge=1, description="Max attempts per leaf task")
    reflection_enabled: bool = Field(default=True)
    rollback_enabled: bool = Field(default=True)
    parallel_execution: bool = Field(default=True)
    confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)

    # Prompt shaping
    history_window: int = Field(default=5, ge=0, description="Steps shown to reflection")
    max_subtasks: int = Field(default=5, ge=2)
    outcome_preview_chars: int = Field(default=200, ge=1)


class SafetySettings(BaseSettings):
    """Safety gate configuration."""

    model_config = SettingsConfigDict(env_prefix="AUTONOMY_SAFETY_", frozen=True)

    mode: Literal["autonomous", "supervised", "locked"] = "autonomous"
    approval_timeout_seconds: float = Field(default=300.0, gt=0)
    agent_name: str = Field(default="AgenticLoop")
    default_risk: Literal["low", "medium", "high"] = "medium"


class ProviderSettings(BaseSettings):
    """Reasoning provider configuration."""

    model_config = SettingsConfigDict(env_prefix="AUTONOMY_PROVIDER_", frozen=True)

    # scripted = offline mode, no network access
    kind: Literal["scripted", "openai_compatible"] = "scripted"

    base_url: str = Field(default="http://localhost:8080/v1")
    api_key: SecretStr | None = Field(default=None)
    model: str = Field(default="local-model")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    max_tokens: int = Field(default=2048, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(env_prefix="AUTONOMY_OBS_", frozen=True)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    """Top-level settings; nested sections read their own env prefixes."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(default="Aegis Autonomy")
    app_version: str = Field(default="0.1.0")
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False)

    loop: LoopSettings = Field(default_factory=LoopSettings)
    safety: SafetySettings = Field(default_factory=SafetySettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)


def load_settings(path: Path | str) -> Settings:
    """
    Build settings from a YAML profile.

    Keys in the file override environment values; missing sections fall
    back to the environment and defaults.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(
            f"Settings file not found: {path}",
            context={"path": str(path)},
        )

    with open(path) as f:
        data: Any = yaml.safe_load(f)

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Settings file must contain a mapping",
            context={"path": str(path)},
        )

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid settings in {path}",
            context={"path": str(path), "errors": e.errors(include_url=False)},
            cause=e,
        ) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings()
