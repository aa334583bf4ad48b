"""
Best-effort cross-venue price gap scan.

Matches open Kalshi markets to curated Polymarket markets by title words
and reports YES price gaps. Has no consistency contract: any Kalshi
failure yields an empty result and never touches the snapshot.
"""

from typing import Any

import structlog

from shared.config import Settings, get_settings
from shared.kalshi_client import KalshiAPIError, KalshiClient
from shared.models import ArbOpportunity, ArbScanResult, NormalizedMarket

logger = structlog.get_logger(__name__)

MIN_WORD_LENGTH = 5
MIN_SHARED_WORDS = 2


def kalshi_yes_price(market: dict[str, Any]) -> float:
    """YES price in 0-1 from Kalshi's cent quotes; 0 when unquoted."""
    for key in ("yes_ask", "yes_bid"):
        try:
            cents = float(market.get(key) or 0)
        except (TypeError, ValueError):
            continue
        if cents:
            return cents / 100
    return 0.0


def match_market(title: str, markets: list[NormalizedMarket]) -> NormalizedMarket | None:
    """First market whose question shares at least two long title words."""
    words = [w for w in title.lower().split(" ") if len(w) >= MIN_WORD_LENGTH]
    if len(words) < MIN_SHARED_WORDS:
        return None
    for market in markets:
        question = market.question.lower()
        if sum(1 for w in words if w in question) >= MIN_SHARED_WORDS:
            return market
    return None


class ArbScanner:
    """Scans Kalshi for price gaps against the curated markets."""

    def __init__(
        self,
        kalshi_client: KalshiClient | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize arbitrage scanner.

        Args:
            kalshi_client: Optional Kalshi client instance
            settings: Optional Settings instance
        """
        self.settings = settings or get_settings()
        self.config = self.settings.arb
        self._kalshi_client = kalshi_client

    @property
    def kalshi_client(self) -> KalshiClient:
        """Get or create Kalshi client."""
        if self._kalshi_client is None:
            self._kalshi_client = KalshiClient(self.settings)
        return self._kalshi_client

    def find_gaps(
        self,
        markets: list[NormalizedMarket],
        kalshi_markets: list[dict[str, Any]],
    ) -> list[ArbOpportunity]:
        """
        Pair Kalshi markets with curated markets and keep the wide gaps.

        Returns:
            Opportunities sorted by gap, widest first, capped at max_results
        """
        arbs: list[ArbOpportunity] = []

        for km in kalshi_markets:
            if not isinstance(km, dict):
                continue
            kalshi_yes = kalshi_yes_price(km)
            if not kalshi_yes:
                continue

            title = str(km.get("title") or km.get("subtitle") or "")
            match = match_market(title, markets)
            if match is None:
                continue

            gap = abs(match.yes_price - kalshi_yes)
            if gap <= self.config.min_gap:
                continue

            arbs.append(
                ArbOpportunity(
                    polymarket=match.question,
                    poly_url=match.polymarket_url,
                    kalshi_title=title,
                    poly_price=match.yes_price,
                    kalshi_price=kalshi_yes,
                    gap=round(gap * 100, 2),
                    profit_per_100=round(gap * 100, 2),
                    direction="Buy Kalshi YES" if match.yes_price > kalshi_yes else "Buy Polymarket YES",
                )
            )

        arbs.sort(key=lambda a: a.gap, reverse=True)
        return arbs[: self.config.max_results]

    async def scan(self, markets: list[NormalizedMarket]) -> ArbScanResult:
        """Fetch Kalshi markets and look for gaps. Never raises on Kalshi errors."""
        if not self.config.enabled:
            return ArbScanResult()

        try:
            async with self.kalshi_client as client:
                kalshi_markets = await client.get_open_markets(limit=self.config.market_limit)
        except KalshiAPIError as e:
            logger.warning("arb_scan_failed", error=str(e))
            return ArbScanResult(error=str(e))

        arbs = self.find_gaps(markets, kalshi_markets)
        logger.info("arb_scan_completed", kalshi_markets=len(kalshi_markets), gaps=len(arbs))
        return ArbScanResult(arbs=arbs)
