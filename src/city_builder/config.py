"""Runtime configuration for City Builder."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="CITY_BUILDER_", env_file=".env", extra="ignore")

    app_name: str = "city-builder"
    log_level: str = "INFO"
    rng_seed: int | None = None

    # Build loop timing (seconds at 1x speed).
    tick_base_period_seconds: float = 5.0
    build_duration_seconds: float = 3.0
    speed_min: float = 0.1
    speed_max: float = 10.0
    time_scale_hours_per_second: float = Field(
        default=24 / 600,
        description="Game hours advanced per real second (10 real minutes = 1 game day).",
    )

    # Decision policy.
    critical_power_threshold: float = 5.0
    power_ratio: int = 8
    water_ratio: int = 10
    food_ratio: int = 12
    residential_target: float = 0.60
    commercial_target: float = 0.20
    industrial_target: float = 0.15
    park_target: float = 0.05

    # Placement.
    placement_strategy: str = Field(default="ring", description="Growth model: 'ring' or 'neighborhood'.")
    grid_size: int = 4
    block_size: int = 24
    landing_zone_half_extent: int = 6
    placement_attempts: int = 30
    neighborhood_capacity: int = 8
    neighborhood_radius: int = 12
    neighborhood_min_spacing: float = 4.0

    # Scheduler recovery.
    max_refill_attempts: int = 3
    stall_search_radius: int = 200

    # Narrative / text generation.
    narrative_timeout_seconds: float = 4.0
    llm_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-4o-mini"
    llm_api_key: str | None = Field(default=None, description="API key for the OpenAI-compatible endpoint.")

    event_log_path: str | None = Field(default=None, description="Optional JSONL file receiving every event.")


settings = Settings()
