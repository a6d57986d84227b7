# schoolshop/config.py
import os
from dataclasses import dataclass, field
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class OrderPolicy:
    """Pricing and eligibility rules applied to new and existing orders."""

    free_shipping_threshold: Decimal = Decimal("50")
    flat_shipping_cost: Decimal = Decimal("9.99")
    tax_rate: Decimal = Decimal("0.08")
    return_window_days: int = 30
    currency: str = "USD"


@dataclass(frozen=True)
class Settings:
    database_url: str | None = None
    pool_min: int = 1
    pool_max: int = 10
    store_backend: str = "postgres"
    log_level: str = "INFO"
    policy: OrderPolicy = field(default_factory=OrderPolicy)


def load_settings() -> Settings:
    policy = OrderPolicy(
        free_shipping_threshold=Decimal(os.getenv("FREE_SHIPPING_THRESHOLD", "50")),
        flat_shipping_cost=Decimal(os.getenv("FLAT_SHIPPING_COST", "9.99")),
        tax_rate=Decimal(os.getenv("TAX_RATE", "0.08")),
        return_window_days=int(os.getenv("RETURN_WINDOW_DAYS", "30")),
        currency=os.getenv("CURRENCY", "USD").upper(),
    )
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        pool_min=int(os.getenv("APP_POOL_MIN", "1")),
        pool_max=int(os.getenv("APP_POOL_MAX", "10")),
        store_backend=os.getenv("STORE_BACKEND", "postgres").lower(),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        policy=policy,
    )
