"""
Configuration management for AI Portfolio.
Uses pydantic-settings: every field can be set from the environment or a
.env file (e.g. MARKET_REFRESH_INTERVAL_SECONDS=30).
"""

import logging
from typing import Literal, Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore'
    )

    # LLM backend
    llm_mode: Literal["cloud", "local"] = "cloud"

    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None
    openai_fast_model: Optional[str] = None  # Lighter model for short suggestion lists
    openai_base_url: Optional[str] = None

    local_model: str = "qwen2.5:14b"
    local_llm_url: str = "http://localhost:11434/v1"

    suggestion_temperature: float = 0.3
    analysis_temperature: float = 0.7

    # Market simulation
    market_refresh_interval_seconds: int = Field(default=60, gt=0)
    simulate_latency: bool = True
    market_failure_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    random_seed: Optional[int] = None

    notification_ttl_seconds: float = 5.0

    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def _known_log_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def fast_model(self) -> Optional[str]:
        """Model for lightweight requests, defaulting to openai_model."""
        return self.openai_fast_model or self.openai_model

    @property
    def is_llm_configured(self) -> bool:
        """Local mode needs no credentials; cloud mode needs a key and a model."""
        if self.llm_mode == "local":
            return True
        return bool(self.openai_api_key and self.openai_model)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide settings."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings(**overrides) -> Settings:
    """Re-read the environment, optionally overriding individual fields."""
    global _settings
    _settings = Settings(**overrides)
    return _settings


def configure_logging(level: Optional[str] = None):
    """Configure root logging using the configured level."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format=LOG_FORMAT
    )
