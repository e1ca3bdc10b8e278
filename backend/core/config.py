"""
Application configuration.

Database and logging settings are read from the environment so the same
build can run against SQLite in development and PostgreSQL in production.
"""

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings with environment variable support.
    """

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore"
    )

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./stock_deduction.db"
    database_test_url: Optional[str] = None
    db_pool_size: int = 10
    db_max_overflow: int = 20

    # Logging
    log_level: str = "INFO"
    log_sql_queries: bool = False

    # Environment
    environment: str = "development"
    debug: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
