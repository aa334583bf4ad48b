"""
Pydantic models for Edgeboard.

Defines the normalized market record, curated columns, aggregate stats
and the API response models shared across services.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Raw upstream records are kept as decoded JSON objects; they only live for
# one refresh cycle.
RawEvent = dict[str, Any]
RawContract = dict[str, Any]

# =============================================================================
# Enums
# =============================================================================


class Category(str, Enum):
    """Keyword-inferred market category."""

    POLITICS = "Politics"
    SPORTS = "Sports"
    CRYPTO = "Crypto"
    ENTERTAINMENT = "Entertainment"
    SCIENCE = "Science"
    ECONOMICS = "Economics"
    OTHER = "Other"


class NewsLag(str, Enum):
    """How stale a market's price looks relative to its time to resolution."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class ColumnName(str, Enum):
    """Names of the curated market columns."""

    DONT_MISS = "dontMiss"
    HIGH_RISK = "highRisk"
    SAFE_PLAYS = "safePlays"
    CLOSING_SOON = "closingSoon"
    TRENDING = "trending"
    NEWS_LAG = "newsLag"


class MarketSort(str, Enum):
    """Sort keys accepted by the market listing."""

    VOLUME_24HR = "volume24hr"
    END_DATE = "endDate"
    LIQUIDITY = "liquidity"
    EDGE = "edge"
    NEWEST = "newest"


# =============================================================================
# Market Models
# =============================================================================


class NormalizedMarket(BaseModel):
    """A tradeable contract that passed the quality gates, with derived fields."""

    model_config = ConfigDict(frozen=True)

    id: str
    event_id: str = ""
    event_title: str = ""
    event_slug: str = ""
    question: str = ""
    slug: str = ""
    description: str = Field(default="", max_length=500)
    category: Category = Category.OTHER
    category_icon: str = ""
    outcomes: list[str] = Field(default_factory=list)
    prices: list[float] = Field(default_factory=list)
    yes_price: float = Field(ge=0.0, le=1.0)
    no_price: float = Field(ge=0.0, le=1.0)
    volume: float = 0.0
    volume_24hr: float = 0.0
    volume_24hr_fmt: str = "$0"
    volume_1wk: float = 0.0
    liquidity: float = 0.0
    liquidity_fmt: str = "$0"
    end_date: datetime | None = None
    days_left: float = Field(default=30.0, ge=0.0)
    last_trade_price: float = 0.0
    best_bid: float = 0.0
    best_ask: float = 0.0
    spread: float = 0.0
    price_change_1d: float | None = None
    price_change_1w: float | None = None
    price_change_1m: float | None = None
    image: str = ""
    competitive: float = 0.0
    polymarket_url: str = ""
    volume_ratio: float = 0.0
    edge: float = Field(default=0.0, ge=0.0, le=100.0)
    news_lag: NewsLag = NewsLag.LOW
    accepting_orders: bool = True


class MarketColumns(BaseModel):
    """The six curated views over one snapshot's markets."""

    model_config = ConfigDict(populate_by_name=True)

    dont_miss: list[NormalizedMarket] = Field(default_factory=list, alias="dontMiss")
    high_risk: list[NormalizedMarket] = Field(default_factory=list, alias="highRisk")
    safe_plays: list[NormalizedMarket] = Field(default_factory=list, alias="safePlays")
    closing_soon: list[NormalizedMarket] = Field(default_factory=list, alias="closingSoon")
    trending: list[NormalizedMarket] = Field(default_factory=list)
    news_lag: list[NormalizedMarket] = Field(default_factory=list, alias="newsLag")

    def get(self, name: ColumnName) -> list[NormalizedMarket]:
        """Get a column by name."""
        return getattr(self, _COLUMN_FIELDS[name])

    def counts(self) -> dict[str, int]:
        """Number of markets per column, keyed by column name."""
        return {name.value: len(self.get(name)) for name in ColumnName}


_COLUMN_FIELDS: dict[ColumnName, str] = {
    ColumnName.DONT_MISS: "dont_miss",
    ColumnName.HIGH_RISK: "high_risk",
    ColumnName.SAFE_PLAYS: "safe_plays",
    ColumnName.CLOSING_SOON: "closing_soon",
    ColumnName.TRENDING: "trending",
    ColumnName.NEWS_LAG: "news_lag",
}


class MarketStats(BaseModel):
    """Aggregate counters for one snapshot."""

    total_markets: int = 0
    total_volume_24h: float = 0.0
    total_volume_24h_fmt: str = "$0"
    closing_today: int = 0
    total_events: int = 0
    last_refresh: datetime
    column_counts: dict[str, int] = Field(default_factory=dict)


@dataclass(frozen=True)
class Snapshot:
    """Everything produced by one refresh cycle. Replaced, never mutated."""

    markets: list[NormalizedMarket]
    columns: MarketColumns
    stats: MarketStats
    timestamp: datetime


# =============================================================================
# Arbitrage Models
# =============================================================================


class ArbOpportunity(BaseModel):
    """A price gap between a Polymarket market and a matched Kalshi market."""

    polymarket: str
    poly_url: str
    kalshi_title: str
    poly_price: float
    kalshi_price: float
    gap: float
    profit_per_100: float
    direction: str


class ArbScanResult(BaseModel):
    """Result of a best-effort cross-venue scan."""

    arbs: list[ArbOpportunity] = Field(default_factory=list)
    error: str | None = None


# =============================================================================
# API Models
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str = "0.1.0"
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str
    detail: str | None = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class MarketListResponse(BaseModel):
    """Market listing response."""

    markets: list[NormalizedMarket] = Field(default_factory=list)
    total: int = 0
