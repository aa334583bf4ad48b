"""
Pure formatting and scoring helpers.

Currency formatting, keyword category inference, the edge score and
the news-lag heuristic. Nothing here holds state or reads the clock.
"""

import math
from collections.abc import Iterable
from typing import Any

from shared.config import EdgeWeightsConfig
from shared.models import Category, NewsLag

# Ordered: the first rule with a matching keyword wins.
CATEGORY_RULES: list[tuple[Category, tuple[str, ...]]] = [
    (
        Category.POLITICS,
        (
            "president", "election", "democrat", "republican", "congress", "senate",
            "governor", "trump", "biden", "political", "legislation", "government",
            "geopolit", "war", "peace", "ukraine", "russia", "china", "nato",
            "immigration", "tariff", "executive order", "white house", "supreme court",
            "veto", "impeach", "parliament",
        ),
    ),
    (
        Category.SPORTS,
        (
            "nba", "nfl", "mlb", "nhl", "soccer", "football", "basketball", "baseball",
            "tennis", "mma", "ufc", "boxing", "cricket", "f1", "formula", "golf",
            "hockey", "ncaa", "super bowl", "world cup", "olympics", "premier league",
            "champions league", "la liga", "serie a", "bundesliga", "atp", "wta", "pga",
            "nascar", "world series", "stanley cup", "grand prix", "match", "game",
            "playoff",
        ),
    ),
    (
        Category.CRYPTO,
        (
            "bitcoin", "ethereum", "crypto", "btc", "eth", "solana", "defi", "nft",
            "web3", "blockchain", "altcoin", "memecoin", "token", "stablecoin",
            "binance", "coinbase", "halving", "airdrop", "dao",
        ),
    ),
    (
        Category.ENTERTAINMENT,
        (
            "oscar", "grammy", "emmy", "movie", "film", "tv show", "box office",
            "streaming", "celebrity", "album", "song", "artist", "netflix", "disney",
            "spotify", "concert", "award show", "reality tv", "golden globe", "bafta",
            "billboard",
        ),
    ),
    (
        Category.SCIENCE,
        (
            "ai ", "artificial intelligence", "openai", "space", "spacex", "nasa",
            "climate", "fda", "health", "medicine", "vaccine", "research", "science",
            "technology", "google", "apple", "microsoft", "meta", "amazon", "robot",
            "quantum", "fusion", "mars", "moon",
        ),
    ),
    (
        Category.ECONOMICS,
        (
            "fed ", "federal reserve", "inflation", "recession", "interest rate", "gdp",
            "unemployment", "stock", "s&p", "dow", "nasdaq", "treasury", "cpi",
            "jobs report", "trade", "economic", "housing", "debt ceiling", "default",
        ),
    ),
]

CATEGORY_ICONS: dict[Category, str] = {
    Category.POLITICS: "🏛️",
    Category.SPORTS: "⚽",
    Category.CRYPTO: "₿",
    Category.ENTERTAINMENT: "🎬",
    Category.SCIENCE: "🔬",
    Category.ECONOMICS: "📈",
    Category.OTHER: "📦",
}

# Liquidity at the quality-gate floor scores 0 and four decades above it scores 1.
LIQUIDITY_FLOOR = 10000
LIQUIDITY_DECADES = 4
VOLUME_DECADES = 6


def format_usd(value: float) -> str:
    """Format a dollar amount as $1.2B, $3.4M, $5.6K or $78."""
    if value >= 1e9:
        return f"${value / 1e9:.1f}B"
    if value >= 1e6:
        return f"${value / 1e6:.1f}M"
    if value >= 1e3:
        return f"${value / 1e3:.1f}K"
    return f"${value:.0f}"


def _tag_text(tags: Iterable[Any] | None) -> str:
    if not isinstance(tags, (list, tuple)):
        return ""
    labels = []
    for tag in tags:
        if isinstance(tag, dict):
            labels.append(str(tag.get("label") or tag.get("slug") or ""))
        elif isinstance(tag, str):
            labels.append(tag)
    return " ".join(labels)


def categorize(title: str | None, tags: Iterable[Any] | None = None) -> Category:
    """
    Infer an event's category from its title and tags.

    Case-insensitive substring match against CATEGORY_RULES; rule order
    decides ties.

    Args:
        title: Event title
        tags: Upstream tag objects (``label``/``slug``) or plain strings

    Returns:
        The first matching category, or Category.OTHER
    """
    text = f"{title or ''} {_tag_text(tags)}".lower()
    for category, keywords in CATEGORY_RULES:
        if any(keyword in text for keyword in keywords):
            return category
    return Category.OTHER


def category_icon(category: Category) -> str:
    return CATEGORY_ICONS.get(category, CATEGORY_ICONS[Category.OTHER])


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(value, high))


def round_score(score: float) -> float:
    """Scale a 0-1 score to 0-100 with one decimal, rounding halves up."""
    return math.floor(score * 1000 + 0.5) / 10


def time_pressure(days_left: float) -> float:
    """Markets resolving in 1-14 days score highest; same-day ones are risky."""
    if days_left <= 1:
        return 0.5
    if days_left <= 14:
        return 1.0
    if days_left <= 30:
        return 0.7
    if days_left <= 60:
        return 0.4
    return 0.1


def compute_edge(
    yes_price: float,
    liquidity: float,
    volume_24hr: float,
    days_left: float,
    weights: EdgeWeightsConfig | None = None,
) -> float:
    """
    Compute the 0-100 edge score of a market.

    Weighted sum of four signals, each in [0, 1]:

    - probability deviation: 1 at a 50% price, 0 at the extremes
    - liquidity: log10 of liquidity above the $10k floor over four decades
    - volume: log10 of 24h volume over six decades
    - time pressure: see ``time_pressure``

    Args:
        yes_price: Price of the YES outcome (0-1)
        liquidity: Market liquidity in USD
        volume_24hr: 24h volume in USD
        days_left: Days until resolution
        weights: Signal weights. Defaults to EdgeWeightsConfig()

    Returns:
        Edge score rounded to one decimal
    """
    weights = weights or EdgeWeightsConfig()

    prob_deviation = _clamp(1 - abs(yes_price - 0.5) * 2)
    if liquidity > 0:
        liquidity_norm = _clamp(math.log10(liquidity / LIQUIDITY_FLOOR) / LIQUIDITY_DECADES)
    else:
        liquidity_norm = 0.0
    volume_norm = _clamp(math.log10(max(volume_24hr, 1)) / VOLUME_DECADES)

    score = (
        prob_deviation * weights.prob_deviation
        + liquidity_norm * weights.liquidity
        + volume_norm * weights.volume
        + time_pressure(days_left) * weights.time_pressure
    )
    return round_score(score)


def classify_news_lag(price_change_1d: float | None, days_left: float) -> NewsLag:
    """
    Flag markets whose price barely moves while resolution is close.

    Args:
        price_change_1d: One-day price change, None if unknown
        days_left: Days until resolution

    Returns:
        HIGH, MEDIUM or LOW
    """
    if price_change_1d is None:
        return NewsLag.LOW
    change = abs(price_change_1d)
    if change < 0.005 and days_left < 3:
        return NewsLag.HIGH
    if change < 0.02 and days_left < 7:
        return NewsLag.MEDIUM
    return NewsLag.LOW
