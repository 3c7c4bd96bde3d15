"""
Configuration settings for mockgen.

Uses Pydantic Settings for environment variable management with .env file support.
All variables take the MOCKGEN_ prefix, e.g. MOCKGEN_GEMINI_MODEL.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mockgen.errors import ConfigurationError

# Thinking budget ranges per model family (min, max). Pro cannot disable thinking.
THINKING_BUDGET_RANGES: dict[str, tuple[int, int]] = {
    "flash-lite": (512, 24576),
    "flash": (1, 24576),
    "pro": (128, 32768),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="MOCKGEN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # API Keys
    # ========================================
    api_key_file: str = Field(
        default="api_key.txt",
        description="File with one Gemini API key per line",
    )
    gemini_api_keys: str | None = Field(
        default=None,
        description="Comma-separated Gemini API keys (overrides api_key_file)",
    )
    min_key_length: int = Field(
        default=10,
        ge=1,
        description="Reject API keys shorter than this",
    )

    # ========================================
    # Gemini
    # ========================================
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for generation",
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Generative Language REST endpoint",
    )
    request_timeout: float = Field(
        default=600.0,
        gt=0,
        description="Per-request timeout in seconds",
    )
    max_output_tokens: int = Field(
        default=8192,
        ge=1,
        description="Maximum output tokens per request",
    )
    temperature: float = Field(
        default=0.7,
        description="Sampling temperature (0.0-2.0)",
    )
    thinking_budget: int | None = Field(
        default=None,
        description="Thinking tokens: -1 dynamic, 0 disabled, else model range",
    )

    # ========================================
    # Pipeline
    # ========================================
    concurrent_limit: int = Field(
        default=3,
        ge=1,
        description="Mocks generated at the same time",
    )
    rate_limit_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Delay before each request, divided across the key pool",
    )
    max_retries: int = Field(
        default=3,
        ge=1,
        description="Transport attempts per request (quota failovers excluded)",
    )
    max_continuations: int = Field(
        default=15,
        ge=0,
        description="Continuation rounds allowed for a truncated mock",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: str = Field(
        default="INFO",
        description="Loguru level for the stderr sink",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional log file (rotated at 10 MB)",
    )

    @field_validator("temperature")
    @classmethod
    def check_temperature(cls, value: float) -> float:
        if not 0.0 <= value <= 2.0:
            raise ValueError("temperature must be between 0.0 and 2.0")
        return value

    def thinking_budget_for(self, model: str | None = None) -> int | None:
        """
        Validate the thinking budget against the model's allowed range.

        Returns None when no budget is configured.

        Raises:
            ConfigurationError: If the budget is outside the model's range.
        """
        return validate_thinking_budget(self.thinking_budget, model or self.gemini_model)


def validate_thinking_budget(budget: int | None, model: str) -> int | None:
    if budget is None or budget == -1:
        return budget

    name = model.lower()
    family = next((f for f in THINKING_BUDGET_RANGES if f in name), None)

    if budget == 0:
        if family == "pro":
            raise ConfigurationError(f"Thinking cannot be disabled for {model}")
        return 0

    if family is None:
        return budget

    low, high = THINKING_BUDGET_RANGES[family]
    if not low <= budget <= high:
        raise ConfigurationError(
            f"Thinking budget {budget} out of range for {model} ({low}-{high}, -1 or 0)"
        )
    return budget


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
