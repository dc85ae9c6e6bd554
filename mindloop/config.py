"""Configuration settings for mindloop.

Every tunable of the autonomy loop is read from the environment with the
``MINDLOOP_`` prefix (or a local ``.env`` file). Durations are seconds.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings

from mindloop.utils import get_mindloop_home


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # Paths
    data_dir: Path | None = None
    db_path: Path | None = None  # defaults to <data_dir>/mindloop.db
    agent_id: str = "default"
    log_level: str = "INFO"

    # Scheduler
    cycle_interval: float = 15 * 60
    initial_delay: float = 5.0
    consolidation_interval: float = 30 * 60
    pressure_high_water: float = 0.85

    # External invoker
    model_provider: str | None = None  # anthropic, openai, ollama
    model: str | None = None
    invoke_timeout: float = 30.0
    invoke_max_retries: int = 2
    invoke_retry_delay: float = 5.0
    store_timeout: float = 10.0

    # Rate limiter
    rate_limit_window: float = 60.0
    rate_limit_max_calls: int = 20
    rate_limit_min_interval: float = 2.0
    rate_limit_cooldown: float = 120.0

    # Response cache
    cache_max_entries: int = 1000
    cache_ttl_default: float = 60 * 60
    cache_ttl_state: float = 60 * 60
    cache_ttl_creative: float = 24 * 60 * 60

    # Memory consolidation
    log_retention_days: int = 7
    episode_retention_days: int = 30
    relation_strength_floor: int = 3
    max_concepts: int = 500
    max_relations: int = 1000
    max_logs: int = 1000
    max_episodes: int = 200

    # Decision context
    context_concepts: int = 10
    context_questions: int = 5
    context_reflections: int = 3

    # Trust and contact
    trust_damping: float = 0.5
    contact_min_priority: int = 8
    contact_min_intensity: int = 7

    # Notification
    webhook_url: str | None = None
    webhook_timeout: float = 10.0

    class Config:
        env_prefix = "MINDLOOP_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @field_validator(
        "cycle_interval",
        "consolidation_interval",
        "invoke_timeout",
        "store_timeout",
        "rate_limit_window",
        "cache_ttl_default",
        "cache_ttl_state",
        "cache_ttl_creative",
    )
    @classmethod
    def _positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be positive")
        return v

    @field_validator(
        "initial_delay",
        "invoke_retry_delay",
        "rate_limit_min_interval",
        "rate_limit_cooldown",
        "invoke_max_retries",
    )
    @classmethod
    def _non_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @field_validator(
        "rate_limit_max_calls",
        "cache_max_entries",
        "max_concepts",
        "max_relations",
        "max_logs",
        "max_episodes",
    )
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator("pressure_high_water")
    @classmethod
    def _ratio(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be in (0, 1]")
        return v

    @field_validator("trust_damping")
    @classmethod
    def _damping(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("must be in (0, 1]")
        return v

    @field_validator("contact_min_priority", "contact_min_intensity")
    @classmethod
    def _score(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("must be between 1 and 10")
        return v

    def resolved_data_dir(self) -> Path:
        return (self.data_dir or get_mindloop_home()).expanduser()

    def resolved_db_path(self) -> Path:
        if self.db_path is not None:
            return self.db_path.expanduser()
        return self.resolved_data_dir() / "mindloop.db"

    def cache_ttls(self) -> dict[str, float]:
        """TTL per call class, used by the gateway."""
        return {
            "default": self.cache_ttl_default,
            "state": self.cache_ttl_state,
            "creative": self.cache_ttl_creative,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
