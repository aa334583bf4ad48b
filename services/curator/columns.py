"""
Curated column classification.

Each column is an independent view over the normalized markets: an AND
of predicates, a sort key and a cap. A market may sit in several columns.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from services.curator.scoring import format_usd
from shared.config import Settings, get_settings
from shared.models import (
    ColumnName,
    MarketColumns,
    MarketStats,
    NewsLag,
    NormalizedMarket,
)

logger = structlog.get_logger(__name__)

Predicate = Callable[[NormalizedMarket, datetime], bool]

CLOSING_SOON_WINDOW = timedelta(hours=48)


def _closes_within(market: NormalizedMarket, now: datetime, window: timedelta) -> bool:
    if market.end_date is None:
        return False
    remaining = market.end_date - now
    return timedelta(0) < remaining <= window


def _end_timestamp(market: NormalizedMarket) -> float:
    return market.end_date.timestamp() if market.end_date else float("inf")


@dataclass(frozen=True)
class ColumnRule:
    """Predicates, sort key and direction for one column."""

    name: ColumnName
    predicates: tuple[Predicate, ...]
    sort_key: Callable[[NormalizedMarket], float]
    descending: bool = True

    def matches(self, market: NormalizedMarket, now: datetime) -> bool:
        return all(predicate(market, now) for predicate in self.predicates)


COLUMN_RULES: tuple[ColumnRule, ...] = (
    # High conviction: mid-range price, deep book, active, resolves within a month
    ColumnRule(
        name=ColumnName.DONT_MISS,
        predicates=(
            lambda m, _: 0.20 <= m.yes_price <= 0.80,
            lambda m, _: m.liquidity >= 25000,
            lambda m, _: m.volume_24hr >= 5000,
            lambda m, _: m.days_left <= 30,
        ),
        sort_key=lambda m: m.edge,
    ),
    # Genuine coin flips with real volume
    ColumnRule(
        name=ColumnName.HIGH_RISK,
        predicates=(
            lambda m, _: 0.35 <= m.yes_price <= 0.65,
            lambda m, _: m.volume_24hr >= 2000,
            lambda m, _: m.liquidity >= 15000,
        ),
        sort_key=lambda m: m.volume_24hr,
    ),
    ColumnRule(
        name=ColumnName.SAFE_PLAYS,
        predicates=(
            lambda m, _: m.yes_price > 0.75 or m.yes_price < 0.25,
            lambda m, _: m.liquidity >= 20000,
            lambda m, _: m.volume_24hr >= 3000,
            lambda m, _: m.days_left <= 21,
        ),
        sort_key=lambda m: m.volume_24hr,
    ),
    ColumnRule(
        name=ColumnName.CLOSING_SOON,
        predicates=(
            lambda m, now: _closes_within(m, now, CLOSING_SOON_WINDOW),
            lambda m, _: m.liquidity >= 10000,
        ),
        sort_key=_end_timestamp,
        descending=False,
    ),
    # News-driven movers
    ColumnRule(
        name=ColumnName.TRENDING,
        predicates=(
            lambda m, _: m.price_change_1d is not None and abs(m.price_change_1d) > 0.02,
            lambda m, _: m.volume_24hr >= 3000,
        ),
        sort_key=lambda m: abs(m.price_change_1d or 0.0),
    ),
    ColumnRule(
        name=ColumnName.NEWS_LAG,
        predicates=(
            lambda m, _: m.news_lag in (NewsLag.HIGH, NewsLag.MEDIUM),
            lambda m, _: m.liquidity >= 15000,
        ),
        sort_key=lambda m: m.days_left,
        descending=False,
    ),
)


class ColumnClassifier:
    """Builds the curated columns and aggregate stats for a market list."""

    def __init__(self, settings: Settings | None = None, rules: tuple[ColumnRule, ...] = COLUMN_RULES):
        """
        Initialize column classifier.

        Args:
            settings: Settings instance. If None, loads from environment.
            rules: Column rules, one per ColumnName
        """
        self.settings = settings or get_settings()
        self.max_per_column = self.settings.columns.max_per_column
        self.rules = rules

    def select(self, rule: ColumnRule, markets: list[NormalizedMarket], now: datetime) -> list[NormalizedMarket]:
        """Filter, sort (stable) and cap the markets for one column."""
        selected = [m for m in markets if rule.matches(m, now)]
        selected.sort(key=rule.sort_key, reverse=rule.descending)
        return selected[: self.max_per_column]

    def classify(self, markets: list[NormalizedMarket], now: datetime) -> MarketColumns:
        """
        Build all columns.

        Args:
            markets: Normalized markets
            now: Reference time for the closing-soon window (aware UTC)

        Returns:
            MarketColumns with every column populated
        """
        columns = {rule.name.value: self.select(rule, markets, now) for rule in self.rules}
        result = MarketColumns(**columns)
        logger.info("columns_classified", **result.counts())
        return result

    def build_stats(
        self,
        markets: list[NormalizedMarket],
        columns: MarketColumns,
        total_events: int,
        now: datetime,
        refreshed_at: datetime | None = None,
    ) -> MarketStats:
        """
        Compute aggregate counters for a snapshot.

        ``closing_today`` counts markets that end after ``now`` and before
        the end of the current day in the server's local timezone.
        ``last_refresh`` is ``refreshed_at`` when given, else ``now``.
        """
        local_now = now.astimezone()
        end_of_day = local_now.replace(hour=23, minute=59, second=59, microsecond=999999)
        total_volume = sum(m.volume_24hr for m in markets)
        closing_today = sum(
            1 for m in markets
            if m.end_date is not None and now < m.end_date <= end_of_day
        )

        return MarketStats(
            total_markets=len(markets),
            total_volume_24h=total_volume,
            total_volume_24h_fmt=format_usd(total_volume),
            closing_today=closing_today,
            total_events=total_events,
            last_refresh=refreshed_at or now,
            column_counts=columns.counts(),
        )
