# src/config/settings.py - v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings: where the Ollama
service lives, which headers every request carries, and how logging is set up.
"""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Ollama service ===
    ollama_base_url: str = "http://127.0.0.1:11434/api"
    ollama_headers: dict[str, str] = {}
    ollama_timeout_s: float | None = None
    ollama_default_model: str = "llama3"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"

    # --- Validators ---

    @field_validator("ollama_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:  # noqa: N805
        """OLLAMA_BASE_URL must be an http(s) URL; trailing slash is dropped."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("ollama_base_url must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        if self.ollama_timeout_s is not None and self.ollama_timeout_s <= 0:
            raise ConfigurationError("OLLAMA_TIMEOUT_S must be > 0 when set")

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-provider config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
