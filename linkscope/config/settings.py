"""Application settings and configuration."""

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class StrategyMode(str, Enum):
    """How expansion strategies are scheduled for a single hop."""
    SEQUENTIAL = "sequential"
    RACE = "race"


class Settings(BaseSettings):
    """Application settings."""

    # Resolution limits
    MAX_HOPS: int = Field(10, ge=1, le=50)
    # Sequential mode needs room for the five default strategies at
    # STRATEGY_TIMEOUT each, or the last rungs are never reached
    PER_HOP_TIMEOUT: float = Field(16.0, gt=0)
    STRATEGY_TIMEOUT: float = Field(3.0, gt=0)
    TOTAL_TIMEOUT: float = Field(30.0, gt=0)
    STRATEGY_MODE: StrategyMode = StrategyMode.SEQUENTIAL

    # Outbound HTTP
    USER_AGENT: str = "Mozilla/5.0 (compatible; linkscope-resolver/1.0)"
    UNSHORTEN_API_URL: str = "https://unshorten.it/json/"
    EXPAND_API_URL: str = "https://api.expandurl.net/v1/"
    FETCH_PROXY_URL: str = "https://api.allorigins.win/get"

    # Third-party API etiquette
    API_MIN_INTERVAL: float = Field(0.5, ge=0)
    API_RETRY_COUNT: int = Field(3, ge=1)
    API_FAILURE_THRESHOLD: int = Field(5, ge=1)
    API_RECOVERY_TIMEOUT: float = Field(60.0, gt=0)

    # Optional strategies
    ENABLE_BROWSER_PROBE: bool = False
    ENABLE_DEMO_TABLE: bool = False

    # Presentation
    LAYOUT_JITTER: bool = False

    # History
    HISTORY_MAX_ITEMS: int = Field(50, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_prefix": "LINKSCOPE_",
        "case_sensitive": True,
        "extra": "ignore"
    }


@lru_cache()
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()
