"""Configuration system using pydantic-settings with environment variable loading."""

from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class ValidationSettings(BaseSettings):
    """Domain limits applied to every trade before it enters the ledger."""

    model_config = SettingsConfigDict(env_prefix="VALIDATION_")

    max_price: Decimal = Decimal("1000000")
    max_quantity: int = 1_000_000
    max_notes_length: int = 1000
    max_ticker_length: int = 10
    min_trade_date: date = date(1990, 1, 1)
    future_tolerance_hours: int = 24  # clock skew allowance for "now"


class RateLimitSettings(BaseSettings):
    """Per-user, per-action request windows."""

    model_config = SettingsConfigDict(env_prefix="RATE_LIMIT_")

    max_requests: int = 50
    window_seconds: float = 60.0
    sweep_interval_seconds: float = 300.0  # expired-window garbage collection


class SyncSettings(BaseSettings):
    """Broker synchronization behaviour.

    concurrent_sync_policy decides what a second sync_one() for a connection
    that is already syncing does: "coalesce" awaits the in-flight run and
    returns its result, "reject" raises SyncInProgressError.
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    auto_sync_interval_minutes: float = 30.0
    auto_sync_on_start: bool = False
    concurrent_sync_policy: Literal["coalesce", "reject"] = "coalesce"
    sync_rate_limit_requests: int = 20  # broker_sync calls per window per user


class BrokerSettings(BaseSettings):
    """Exchange-backed broker adapters."""

    model_config = SettingsConfigDict(env_prefix="BROKER_")

    binance_symbols: list[str] = ["BTC/USDT", "ETH/USDT"]  # fetch_my_trades needs a symbol


class StoreSettings(BaseSettings):
    """SQLite journal store location."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    db_path: str = "data/journal.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    journal_user_id: str | None = None  # session user for the standalone process
    validation: ValidationSettings = ValidationSettings()
    rate_limit: RateLimitSettings = RateLimitSettings()
    sync: SyncSettings = SyncSettings()
    broker: BrokerSettings = BrokerSettings()
    store: StoreSettings = StoreSettings()
