from enum import Enum
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class RoundingMode(str, Enum):
    nearest = "nearest"
    floor = "floor"
    ceil = "ceil"


class CarryForward(str, Enum):
    pre_deload = "pre_deload"
    deload = "deload"


class Settings(BaseSettings):
    PROGRESSION_DATABASE_URL: str = "sqlite+aiosqlite:///./progression.db"
    DEBUG: bool = False
    APP_ENV: str = "local"
    DEFAULT_DURATION_WEEKS: int = 6

    DELOAD_WEIGHT_FACTOR: float = 0.85
    DELOAD_VOLUME_FACTOR: float = 0.5
    # None rounds deload weights to the exercise's own weight increment
    DELOAD_ROUNDING_STEP: float | None = None
    DELOAD_ROUNDING_MODE: RoundingMode = RoundingMode.nearest
    DELOAD_CARRY_FORWARD: CarryForward = CarryForward.pre_deload

    SERVICE_NAME: str = "progression-service"
    LOG_LEVEL: str = "INFO"
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    return Settings()
