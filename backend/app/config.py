"""Application configuration using Pydantic settings."""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "Family Ledger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    # CORS - Environment-specific origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Debt auto-update (monthly interest accrual)
    # Defaults mirror the historical cron "0 2 1 * *": 2am UTC on the 1st.
    DEBT_UPDATES_ENABLED: bool = True
    DEBT_UPDATE_HOUR: int = 2
    DEBT_UPDATE_DAY_OF_MONTH: int = 1

    # Payment history page size
    PAYMENT_HISTORY_LIMIT: int = 50

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)
    ENVIRONMENT: str = "development"  # development, staging, production

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("DEBT_UPDATE_HOUR")
    @classmethod
    def validate_debt_update_hour(cls, v: int) -> int:
        """Beat schedule hour must be a valid UTC hour."""
        if not 0 <= v <= 23:
            raise ValueError("DEBT_UPDATE_HOUR must be between 0 and 23")
        return v

    @field_validator("DEBT_UPDATE_DAY_OF_MONTH")
    @classmethod
    def validate_debt_update_day(cls, v: int) -> int:
        """
        Beat schedule day must exist in every month.

        Days 29-31 would silently skip February (and 31 every 30-day month),
        so the batch would never fire in those months.
        """
        if not 1 <= v <= 28:
            raise ValueError("DEBT_UPDATE_DAY_OF_MONTH must be between 1 and 28")
        return v

    @field_validator("PAYMENT_HISTORY_LIMIT")
    @classmethod
    def validate_payment_history_limit(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PAYMENT_HISTORY_LIMIT must be positive")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
