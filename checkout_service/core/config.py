"""Checkout Service Configuration"""

from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class PaymentModeName(str, Enum):
    """Which payment gateway flow the service runs with"""
    HOSTED = "hosted"
    DIRECT = "direct"


class Settings(BaseSettings):
    """Application settings loaded from environment"""

    model_config = SettingsConfigDict(
        env_file="config/.env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Checkout Service"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8002

    # Pricing
    currency: str = "USD"
    tax_rate: Decimal = Decimal("0.08")
    flat_shipping: Decimal = Decimal("9.99")
    supported_countries: list[str] = ["US", "CA", "GB", "UK"]

    # Orders
    delivery_lead_days: int = 5
    orders_storage_dir: str = "data/orders"

    # Payments
    payment_mode: PaymentModeName = PaymentModeName.DIRECT
    payment_sheet_url: Optional[str] = None
    charge_url: Optional[str] = None
    merchant_display_name: str = "Swipely"
    payment_return_url: str = "swipely://stripe-redirect"
    payment_max_retries: int = 3
    payment_retry_base_delay: float = 1.0
    gateway_timeout: float = 30.0

    # Sessions
    session_max_age_hours: int = 24


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
