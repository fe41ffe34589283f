"""Shared test fixtures for the trade journal core."""

import pytest

from tradejournal.config import RateLimitSettings, ValidationSettings
from tradejournal.validation.trade_validator import TradeValidator


@pytest.fixture
def validation_settings() -> ValidationSettings:
    """Return the default domain limits (1990 floor, 24h future skew)."""
    return ValidationSettings()


@pytest.fixture
def validator(validation_settings: ValidationSettings) -> TradeValidator:
    return TradeValidator(validation_settings)


@pytest.fixture
def rate_limit_settings() -> RateLimitSettings:
    """Small cap and a fast sweep so limiter tests stay quick."""
    return RateLimitSettings(max_requests=3, window_seconds=60.0, sweep_interval_seconds=0.01)
