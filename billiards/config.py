from __future__ import annotations

from pathlib import Path
import datetime
import os

from dotenv import load_dotenv

from .booking import BookingConfig
from .rating import EloConfig

load_dotenv()

# Repository root
REPO_ROOT = Path(__file__).resolve().parent.parent
# Default SQLite database location
DB_FILE = REPO_ROOT / "billiards.db"


class BaseConfig:
    """Base settings shared across environments."""

    DB_USER = os.getenv("DB_USER", "billiards")
    DB_PASSWORD = os.getenv("DB_PASSWORD", "")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_NAME: str | None = None


class ProductionConfig(BaseConfig):
    DB_NAME = "billiards_prod"


class TrialConfig(BaseConfig):
    DB_NAME = "billiards_trial"


class DevelopmentConfig(BaseConfig):
    # development runs against the local SQLite file
    DB_NAME = None


_CONFIGS = {
    "production": ProductionConfig,
    "trial": TrialConfig,
    "development": DevelopmentConfig,
}

# Current active configuration determined by the ``APP_ENV`` environment
# variable. Defaults to development.
APP_ENV = os.getenv("APP_ENV", "development")
ActiveConfig = _CONFIGS.get(APP_ENV, DevelopmentConfig)


def get_database_url() -> str:
    """Return the configured database connection string.

    ``DATABASE_URL`` wins when set. Otherwise production-like environments
    use PostgreSQL and development returns an empty string, meaning the
    SQLite file at ``DB_FILE``.
    """
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    if ActiveConfig.DB_NAME:
        return (
            f"postgresql://{ActiveConfig.DB_USER}:{ActiveConfig.DB_PASSWORD}"
            f"@{ActiveConfig.DB_HOST}/{ActiveConfig.DB_NAME}"
        )
    return ""


def get_redis_url() -> str | None:
    """Return the Redis connection string if set."""
    return os.getenv("REDIS_URL")


def get_cache_ttl() -> int:
    """Return the cache TTL in seconds."""
    return int(os.getenv("CACHE_TTL", "300"))


def get_token_ttl() -> datetime.timedelta:
    return datetime.timedelta(hours=int(os.getenv("TOKEN_TTL_HOURS", "24")))


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO")


def get_cors_origins() -> list[str]:
    origins = ["http://localhost:3000"]
    extra = os.getenv("CORS_ORIGIN")
    if extra:
        origins.extend(o.strip() for o in extra.split(",") if o.strip())
    return origins


def get_booking_config() -> BookingConfig:
    return BookingConfig(buffer_minutes=int(os.getenv("BOOKING_BUFFER_MINUTES", "30")))


def get_elo_config() -> EloConfig:
    """Return the rating configuration, honouring ``ELO_*`` overrides."""
    defaults = EloConfig()
    return EloConfig(
        k_factor=float(os.getenv("ELO_K_FACTOR", defaults.k_factor)),
        min_rating=int(os.getenv("ELO_MIN_RATING", defaults.min_rating)),
        max_rating=int(os.getenv("ELO_MAX_RATING", defaults.max_rating)),
        provisional_games=int(os.getenv("ELO_PROVISIONAL_GAMES", defaults.provisional_games)),
        provisional_k_factor=float(os.getenv("ELO_PROVISIONAL_K_FACTOR", defaults.provisional_k_factor)),
        high_rating_threshold=float(os.getenv("ELO_HIGH_RATING_THRESHOLD", defaults.high_rating_threshold)),
        high_rating_k_factor=float(os.getenv("ELO_HIGH_RATING_K_FACTOR", defaults.high_rating_k_factor)),
    )


__all__ = [
    "DB_FILE",
    "get_database_url",
    "get_redis_url",
    "get_cache_ttl",
    "get_token_ttl",
    "get_log_level",
    "get_cors_origins",
    "get_booking_config",
    "get_elo_config",
]
