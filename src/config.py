from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # APP
    APP_NAME: str = "Cadence"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL

    # DB
    DATABASE_URL: str

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Security
    ADMIN_API_KEY: str

    # Statistics
    STATS_GRAPH_WEEKS: int = 12
    STATS_VERIFY_TOLERANCE: float = 1e-6
    LEADERBOARD_LIMIT: int = 10

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite (tests, local dev)."""
        return self.DATABASE_URL.startswith("sqlite")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields (like POSTGRES_* used by docker-compose)


@lru_cache()
def get_settings() -> Settings:
    """Cached settings only loads once"""
    return Settings()
