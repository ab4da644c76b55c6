from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Optional
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./orderflow.db"

    # Database Connection Pool Settings (ignored for SQLite)
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Orderflow Fulfillment Core"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # Authorize.Net Payment Gateway
    ANET_API_LOGIN_ID: str = ""
    ANET_TRANSACTION_KEY: str = ""
    ANET_ENV: str = "sandbox"  # "production" switches to the live endpoint
    PAYMENT_GATEWAY_TIMEOUT: float = 30.0  # Seconds; a timeout counts as unreachable
    PAYMENT_CURRENCY: str = "USD"

    # Duplicate charge guard
    DUPLICATE_CHARGE_WINDOW_MINUTES: int = 5

    # Automatic high-value discount
    HIGH_VALUE_DISCOUNT_TIERS: list[str] = ["B2B"]
    HIGH_VALUE_DISCOUNT_THRESHOLD: float = 5000.0
    HIGH_VALUE_DISCOUNT_RATE: float = 0.10

    # Inventory
    DEFAULT_LOW_STOCK_ALERT: int = 10  # Threshold for lazily created inventory rows

    # ShipStation (carrier rates)
    SHIPSTATION_API_KEY: str = ""
    SHIPSTATION_API_URL: str = "https://api.shipstation.com"
    SHIPSTATION_TIMEOUT: float = 30.0

    # Settlement checker (promotes held payments once batches settle)
    SETTLEMENT_CHECK_ENABLED: bool = False
    SETTLEMENT_CHECK_INTERVAL_MINUTES: int = 60
    SETTLEMENT_LOOKBACK_HOURS: int = 24

    # Scheduler timezone
    SCHEDULER_TIMEZONE: Optional[str] = "UTC"

    @field_validator('CORS_ORIGINS', 'HIGH_VALUE_DISCOUNT_TIERS', mode='before')
    @classmethod
    def parse_list(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [item.strip() for item in v.split(',') if item.strip()]
        return v

    @property
    def authorize_net_endpoint(self) -> str:
        if self.ANET_ENV == "production":
            return "https://api2.authorize.net/xml/v1/request.api"
        return "https://apitest.authorize.net/xml/v1/request.api"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
