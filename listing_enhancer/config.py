"""
Listing Enhancer configuration.

Loads settings from environment variables with validation via Pydantic Settings.
"""

from enum import StrEnum
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MODELS = (
    "openai/gpt-4o,"
    "anthropic/claude-3-haiku,"
    "anthropic/claude-3-5-sonnet,"
    "google/gemini-pro,"
    "meta-llama/llama-3-70b-instruct"
)


class AppEnv(StrEnum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TEST = "test"


class Settings(BaseSettings):
    """Application settings loaded from .env file and environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ─── Application ──────────────────────────────────────────
    app_name: str = "Listing Enhancer"
    app_env: AppEnv = AppEnv.DEVELOPMENT
    default_marketplace: str = "amazon"
    guidelines_path: str = ""  # Optional JSON overrides merged onto built-in guidelines
    protected_brands_path: str = ""  # Optional JSON list of protected brand names

    # ─── Observability ──────────────────────────────────────────
    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = 0.0
    log_level: str = "INFO"
    log_format: str = "auto"

    # ─── Text Generation (OpenRouter) ──────────────────────────
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_site_url: str = "https://listing-enhancer.local"
    openrouter_app_title: str = "Listing Enhancer"

    # ─── AI Step Policy ────────────────────────────────────────
    ai_enabled: bool = True
    ai_models: str = DEFAULT_MODELS  # Comma-separated, tried in order
    ai_max_attempts: int = 3
    ai_retry_delay_seconds: float = 1.0  # Fixed, not exponential
    ai_timeout_seconds: float = 30.0  # Per attempt
    ai_temperature: float = 0.2
    ai_max_tokens: int = 2000
    ai_field_validation: bool = False
    ai_alt_text: bool = False

    # ─── Batch Processing ──────────────────────────────────────
    batch_max_concurrency: int = 4

    # ─── Scoring ───────────────────────────────────────────────
    # Compliance failures block listing approval outright, so compliance
    # carries the most weight; validation is a prerequisite already
    # enforced by is_valid and carries the least.
    weight_validation: float = 0.20
    weight_compliance: float = 0.30
    weight_content: float = 0.25
    weight_seo: float = 0.25
    validation_pass_threshold: int = 70
    compliance_pass_threshold: int = 70

    @model_validator(mode="after")
    def check_score_weights(self) -> "Settings":
        """Reject weight overrides that do not add up to 1.0."""
        total = (
            self.weight_validation
            + self.weight_compliance
            + self.weight_content
            + self.weight_seo
        )
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"Score weights must sum to 1.0, got {total:.4f}")
        if min(self.weight_validation, self.weight_compliance, self.weight_content, self.weight_seo) < 0:
            raise ValueError("Score weights must not be negative")
        return self

    @model_validator(mode="after")
    def check_ai_policy(self) -> "Settings":
        if self.ai_max_attempts < 1:
            raise ValueError("AI_MAX_ATTEMPTS must be at least 1")
        if self.ai_retry_delay_seconds < 0 or self.ai_timeout_seconds <= 0:
            raise ValueError("AI delays and timeouts must be positive")
        if self.batch_max_concurrency < 1:
            raise ValueError("BATCH_MAX_CONCURRENCY must be at least 1")
        return self

    @property
    def model_list(self) -> list[str]:
        """Ordered model identifiers for the retry cycle."""
        return [m.strip() for m in self.ai_models.split(",") if m.strip()]

    @property
    def ai_available(self) -> bool:
        return self.ai_enabled and bool(self.openrouter_api_key) and bool(self.model_list)

    @property
    def is_development(self) -> bool:
        return self.app_env == AppEnv.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.app_env == AppEnv.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings singleton."""
    return Settings()
