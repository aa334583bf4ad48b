"""
Market normalization for Edgeboard.

Turns raw Gamma events and their nested contracts into a flat list of
NormalizedMarket records, applying the quality gates and attaching the
derived fields (category, edge, days left, news lag).
"""

import json
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import structlog

from services.curator.scoring import (
    categorize,
    category_icon,
    classify_news_lag,
    compute_edge,
    format_usd,
)
from shared.config import Settings, get_settings
from shared.models import Category, NormalizedMarket, RawContract, RawEvent

logger = structlog.get_logger(__name__)

DEFAULT_OUTCOMES = ["Yes", "No"]
DEFAULT_PRICES = [0.0, 0.0]
DEFAULT_DAYS_LEFT = 30.0
DESCRIPTION_LIMIT = 500
POLYMARKET_EVENT_URL = "https://polymarket.com/event/"
SECONDS_PER_DAY = 86400


# =============================================================================
# Field decoding
# =============================================================================


def decode_list(value: Any) -> list[Any] | None:
    """
    Decode a list field that may arrive JSON-encoded.

    Returns None when the value is missing or cannot be decoded.
    """
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return None
    if isinstance(value, (list, tuple)) and value:
        return list(value)
    return None


def decode_prices(value: Any) -> list[float]:
    """Decode outcome prices, falling back to [0, 0] on anything malformed."""
    raw = decode_list(value)
    if raw is None:
        return list(DEFAULT_PRICES)
    try:
        prices = [float(p) for p in raw]
    except (TypeError, ValueError):
        return list(DEFAULT_PRICES)
    if not all(math.isfinite(p) for p in prices):
        return list(DEFAULT_PRICES)
    return prices


def decode_outcomes(value: Any) -> list[str]:
    """Decode outcome labels, falling back to ["Yes", "No"]."""
    raw = decode_list(value)
    if raw is None:
        return list(DEFAULT_OUTCOMES)
    return [str(o) for o in raw]


def to_float(value: Any) -> float | None:
    """Parse a number that may be a string. None unless it is a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def first_number(*values: Any, default: float = 0.0) -> float:
    """First value that parses to a non-zero number, else ``default``."""
    for value in values:
        number = to_float(value)
        if number:
            return number
    return default


def parse_datetime(value: Any) -> datetime | None:
    """Parse an ISO timestamp into an aware UTC datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def compute_days_left(end_date: datetime | None, now: datetime) -> float:
    """Days until ``end_date``, never negative; 30 when unknown."""
    if end_date is None:
        return DEFAULT_DAYS_LEFT
    return max(0.0, (end_date - now).total_seconds() / SECONDS_PER_DAY)


# =============================================================================
# Transformer
# =============================================================================


@dataclass
class GateResult:
    """Outcome of the quality gates for one contract."""

    passed: bool
    reason: str | None = None


class MarketTransformer:
    """
    Normalizes raw events into curated market records.

    Gates, in order:
    - Liquidity floor (thin books are easy to manipulate)
    - 24h volume floor (dead markets)
    - YES price band (foregone conclusions have no upside)
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize market transformer.

        Args:
            settings: Settings instance. If None, loads from environment.
        """
        self.settings = settings or get_settings()
        self.gates = self.settings.quality_gates
        self.weights = self.settings.edge_weights

    def check_gates(self, liquidity: float, volume_24hr: float, yes_price: float) -> GateResult:
        """Apply the hard quality gates."""
        if liquidity < self.gates.min_liquidity:
            return GateResult(False, "liquidity")
        if volume_24hr < self.gates.min_volume_24hr:
            return GateResult(False, "volume_24hr")
        if yes_price <= self.gates.min_price or yes_price >= self.gates.max_price:
            return GateResult(False, "price")
        return GateResult(True)

    def normalize(self, events: list[RawEvent], now: datetime) -> list[NormalizedMarket]:
        """
        Normalize a batch of raw events.

        A malformed event or contract is skipped and logged, never fatal.

        Args:
            events: Raw events from the feed
            now: Reference time for days-left computations (aware UTC)

        Returns:
            Markets that passed the quality gates, in feed order
        """
        markets: list[NormalizedMarket] = []
        gated: dict[str, int] = {}

        for event in events:
            contracts = event.get("markets") if isinstance(event, dict) else None
            if not contracts or not isinstance(contracts, list):
                continue

            try:
                category = categorize(event.get("title"), event.get("tags"))
            except Exception as e:
                logger.warning("event_skipped", event_id=event.get("id"), error=str(e))
                continue

            for contract in contracts:
                if not isinstance(contract, dict):
                    continue
                if contract.get("closed") or not contract.get("active"):
                    continue

                try:
                    market, gate = self._normalize_contract(event, contract, category, now)
                except Exception as e:
                    logger.warning(
                        "contract_skipped",
                        market_id=contract.get("id"),
                        event_id=event.get("id"),
                        error=str(e),
                    )
                    continue

                if market is None:
                    gated[gate.reason or "unknown"] = gated.get(gate.reason or "unknown", 0) + 1
                    continue
                markets.append(market)

        logger.info(
            "markets_normalized",
            events=len(events),
            markets=len(markets),
            gated_out=gated,
        )
        return markets

    def _normalize_contract(
        self,
        event: RawEvent,
        contract: RawContract,
        category: Category,
        now: datetime,
    ) -> tuple[NormalizedMarket | None, GateResult]:
        """Build one market record, or None if a quality gate rejects it."""
        outcomes = decode_outcomes(contract.get("outcomes"))
        prices = decode_prices(contract.get("outcomePrices"))
        yes_price = prices[0] if prices else 0.0
        no_price = prices[1] if len(prices) > 1 and prices[1] else 1 - yes_price

        volume = first_number(contract.get("volumeNum"), contract.get("volume"))
        volume_24hr = first_number(contract.get("volume24hr"))
        liquidity = first_number(contract.get("liquidityNum"), contract.get("liquidity"))

        gate = self.check_gates(liquidity, volume_24hr, yes_price)
        if not gate.passed:
            return None, gate

        end_date_raw = contract.get("endDate") or event.get("endDate")
        end_date = parse_datetime(end_date_raw)
        days_left = compute_days_left(end_date, now)

        price_change_1d = to_float(contract.get("oneDayPriceChange"))
        event_slug = event.get("slug") or ""
        description = contract.get("description") or event.get("description") or ""

        market = NormalizedMarket(
            id=str(contract.get("id", "")),
            event_id=str(event.get("id", "")),
            event_title=event.get("title") or "",
            event_slug=event_slug,
            question=contract.get("groupItemTitle") or contract.get("question") or event.get("title") or "",
            slug=contract.get("slug") or "",
            description=description[:DESCRIPTION_LIMIT],
            category=category,
            category_icon=category_icon(category),
            outcomes=outcomes,
            prices=prices,
            yes_price=yes_price,
            no_price=no_price,
            volume=volume,
            volume_24hr=volume_24hr,
            volume_24hr_fmt=format_usd(volume_24hr),
            volume_1wk=first_number(contract.get("volume1wk")),
            liquidity=liquidity,
            liquidity_fmt=format_usd(liquidity),
            end_date=end_date,
            days_left=round(days_left, 1),
            last_trade_price=first_number(contract.get("lastTradePrice"), default=yes_price),
            best_bid=first_number(contract.get("bestBid")),
            best_ask=first_number(contract.get("bestAsk")),
            spread=first_number(contract.get("spread")),
            price_change_1d=price_change_1d,
            price_change_1w=to_float(contract.get("oneWeekPriceChange")),
            price_change_1m=to_float(contract.get("oneMonthPriceChange")),
            image=(
                contract.get("image") or contract.get("icon")
                or event.get("image") or event.get("icon") or ""
            ),
            competitive=first_number(contract.get("competitive")),
            polymarket_url=f"{POLYMARKET_EVENT_URL}{event_slug}",
            volume_ratio=volume_24hr / volume if volume > 0 else 0.0,
            edge=compute_edge(yes_price, liquidity, volume_24hr, days_left, self.weights),
            news_lag=classify_news_lag(price_change_1d, days_left),
            accepting_orders=contract.get("acceptingOrders", True) is not False,
        )
        return market, gate
