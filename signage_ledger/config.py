from pydantic_settings import BaseSettings
from pydantic import field_validator
from decimal import Decimal
from typing import Optional
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./signage_ledger.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Signage Commission Ledger"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Shared secret checked on every API call when set (gateway -> engine)
    INTERNAL_API_KEY: Optional[str] = None

    # Affiliate program defaults, used until a settings row is stored
    AFFILIATE_ENABLED: bool = True
    AFFILIATE_L1_PERCENT: Decimal = Decimal("20")
    AFFILIATE_L2_PERCENT: Decimal = Decimal("5")
    AFFILIATE_LOCK_DAYS: int = 30
    AFFILIATE_MIN_WITHDRAWAL: Decimal = Decimal("50.00")

    # Ledger
    LEDGER_BATCH_MAX_SIZE: int = 100  # Max ids per batch transition

    # Settlement
    SETTLEMENT_GRACE_DAYS: int = 5  # Late invoice window after month end
    AGENT_COMMISSION_POLICY: str = "DEDUCTED_FROM_REVENUE"  # or ADDED_TO_PRICE

    # Pricing defaults for quotes
    PRICING_BASE_PRICE_PER_PLAY: Decimal = Decimal("0.05")
    PRICING_REFERENCE_SLOT_SECONDS: int = 15
    PRICING_MIN_MONTHLY_PRICE: Decimal = Decimal("0")

    # Scheduler
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_TIMEZONE: str = "America/Sao_Paulo"
    SETTLEMENT_JOB_DAY: int = 1  # Day of month for the monthly settlement run
    SETTLEMENT_JOB_HOUR: int = 3

    @field_validator("AFFILIATE_L1_PERCENT", "AFFILIATE_L2_PERCENT")
    @classmethod
    def validate_percent(cls, v):
        if v < 0 or v > 100:
            raise ValueError("percentage must be between 0 and 100")
        return v

    @field_validator("AFFILIATE_LOCK_DAYS", "SETTLEMENT_GRACE_DAYS")
    @classmethod
    def validate_days(cls, v):
        if v < 0:
            raise ValueError("days must not be negative")
        return v

    @field_validator("LEDGER_BATCH_MAX_SIZE")
    @classmethod
    def validate_batch_size(cls, v):
        if v < 1:
            raise ValueError("batch size must be at least 1")
        return v

    @field_validator("AGENT_COMMISSION_POLICY")
    @classmethod
    def validate_policy(cls, v):
        v = v.upper()
        if v not in ("DEDUCTED_FROM_REVENUE", "ADDED_TO_PRICE"):
            raise ValueError(f"Unknown agent commission policy: {v}")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
