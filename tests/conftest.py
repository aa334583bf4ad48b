"""
Shared pytest fixtures and test configuration for Edgeboard.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generator

import pytest
from faker import Faker

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["ARB__ENABLED"] = "false"

from shared.config import Settings, reset_settings  # noqa: E402
from shared.models import NewsLag, NormalizedMarket  # noqa: E402

fake = Faker()


# ============================================================================
# Time Fixtures
# ============================================================================


@pytest.fixture
def fixed_now() -> datetime:
    """Return a fixed, timezone-aware reference time."""
    return datetime(2026, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Return default settings for the test environment."""
    return Settings(environment="test")


# ============================================================================
# Raw Feed Fixtures
# ============================================================================


@pytest.fixture
def make_contract(fixed_now) -> Callable[..., dict[str, Any]]:
    """Factory for raw Gamma contracts that pass the quality gates by default."""

    def _make(**overrides: Any) -> dict[str, Any]:
        contract = {
            "id": str(fake.unique.random_int(min=100000, max=999999)),
            "question": fake.sentence(nb_words=6).rstrip(".") + "?",
            "slug": fake.slug(),
            "description": fake.paragraph(),
            "active": True,
            "closed": False,
            "outcomes": json.dumps(["Yes", "No"]),
            "outcomePrices": json.dumps(["0.4", "0.6"]),
            "volumeNum": 250000.0,
            "volume24hr": 10000.0,
            "volume1wk": 60000.0,
            "liquidityNum": 50000.0,
            "oneDayPriceChange": 0.01,
            "oneWeekPriceChange": -0.03,
            "bestBid": 0.39,
            "bestAsk": 0.41,
            "spread": 0.02,
            "lastTradePrice": 0.4,
            "competitive": 0.9,
            "endDate": (fixed_now + timedelta(days=10)).isoformat().replace("+00:00", "Z"),
            "image": "https://example.com/market.png",
        }
        contract.update(overrides)
        return contract

    return _make


@pytest.fixture
def make_event(make_contract) -> Callable[..., dict[str, Any]]:
    """Factory for raw Gamma events with nested contracts."""

    def _make(markets: list[dict[str, Any]] | None = None, **overrides: Any) -> dict[str, Any]:
        event = {
            "id": str(fake.unique.random_int(min=1000, max=9999)),
            "title": "Who will win the election?",
            "slug": fake.slug(),
            "description": fake.paragraph(),
            "endDate": None,
            "tags": [{"label": "Politics", "slug": "politics"}],
            "markets": markets if markets is not None else [make_contract()],
        }
        event.update(overrides)
        return event

    return _make


# ============================================================================
# Normalized Market Fixtures
# ============================================================================


@pytest.fixture
def make_market(fixed_now) -> Callable[..., NormalizedMarket]:
    """Factory for normalized markets."""

    def _make(**overrides: Any) -> NormalizedMarket:
        values: dict[str, Any] = {
            "id": str(fake.unique.random_int(min=100000, max=999999)),
            "event_id": "evt-1",
            "event_title": "Sample event",
            "event_slug": "sample-event",
            "question": "Will it happen?",
            "yes_price": 0.5,
            "no_price": 0.5,
            "volume": 100000.0,
            "volume_24hr": 10000.0,
            "liquidity": 50000.0,
            "end_date": fixed_now + timedelta(days=10),
            "days_left": 10.0,
            "price_change_1d": 0.01,
            "edge": 50.0,
            "news_lag": NewsLag.LOW,
        }
        values.update(overrides)
        return NormalizedMarket(**values)

    return _make


# ============================================================================
# Cleanup Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_environment() -> Generator[None, None, None]:
    """Reset environment variables and cached settings after each test."""
    original_env = os.environ.copy()
    reset_settings()
    yield
    os.environ.clear()
    os.environ.update(original_env)
    reset_settings()
