"""Orbit runtime configuration definitions."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from env and .env files."""

    app_name: str = "orbit-agent-core"
    environment: str = Field(default="dev", pattern="^(dev|test|prod)$")
    db_url: str = "sqlite:///./orbit_state.db"
    log_level: str = "INFO"

    # Action types that need a human unless the business opted into auto publishing.
    approval_required: list[str] = Field(
        default_factory=lambda: ["create_promotion", "update_pricing", "send_newsletter"]
    )
    engine_timeout_s: float = Field(default=30.0, gt=0.0)

    time_horizon: str = "immediate"
    max_actions: int = Field(default=5, ge=1)
    priority_threshold: str = Field(default="medium", pattern="^(low|medium|high|critical)$")

    insight_confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    insight_satisfaction_threshold: float = Field(default=0.8, ge=0.0, le=1.0)

    daily_token_budget: int = Field(default=1_000_000, ge=0)
    daily_call_budget: int = Field(default=100, ge=0)

    event_log_size: int = Field(default=500, ge=1)
    worker_interval_s: float = Field(default=60.0, gt=0.0)

    openrouter_api_key: str = ""
    openrouter_model: str = "meta-llama/llama-3.2-3b-instruct:free"
    openrouter_base_url: str = "https://openrouter.ai/api/v1/chat/completions"
    openrouter_timeout_s: float = Field(default=5.0, gt=0.0)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="ORBIT_")

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, value: str) -> str:
        return value.upper()
