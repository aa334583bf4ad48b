"""
Curator service implementation.

Wires the Gamma fetcher, the transformer and the column classifier into
one refresh cycle behind the snapshot cache, and serves read queries on
top of the current snapshot.
"""

import asyncio
from datetime import datetime, timezone

import structlog

from services.curator.arb import ArbScanner
from services.curator.cache import SnapshotCache
from services.curator.columns import ColumnClassifier
from services.curator.transformer import MarketTransformer
from shared.config import Settings, get_settings
from shared.gamma_client import FetchError, GammaClient
from shared.models import (
    ArbScanResult,
    Category,
    ColumnName,
    MarketColumns,
    MarketSort,
    MarketStats,
    NormalizedMarket,
    RawEvent,
    Snapshot,
)

logger = structlog.get_logger(__name__)

DEFAULT_LIMIT = 500
MAX_LIMIT = 2000
ALL_CATEGORIES = "All"


def _by_end_date(markets: list[NormalizedMarket], newest_first: bool) -> list[NormalizedMarket]:
    dated = [m for m in markets if m.end_date is not None]
    undated = [m for m in markets if m.end_date is None]
    dated.sort(key=lambda m: m.end_date, reverse=newest_first)  # type: ignore[arg-type, return-value]
    return dated + undated


def sort_markets(markets: list[NormalizedMarket], sort: MarketSort) -> list[NormalizedMarket]:
    """Sort markets by one of the listing sort keys."""
    if sort is MarketSort.VOLUME_24HR:
        return sorted(markets, key=lambda m: m.volume_24hr, reverse=True)
    if sort is MarketSort.LIQUIDITY:
        return sorted(markets, key=lambda m: m.liquidity, reverse=True)
    if sort is MarketSort.EDGE:
        return sorted(markets, key=lambda m: m.edge, reverse=True)
    if sort is MarketSort.END_DATE:
        return _by_end_date(markets, newest_first=False)
    return _by_end_date(markets, newest_first=True)


class CuratorService:
    """
    Service for the curated market view.

    Owns the snapshot cache; every read goes through it, so the upstream
    feed is hit at most once per TTL regardless of request concurrency.
    """

    def __init__(
        self,
        gamma_client: GammaClient | None = None,
        transformer: MarketTransformer | None = None,
        classifier: ColumnClassifier | None = None,
        arb_scanner: ArbScanner | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize curator service.

        Args:
            gamma_client: Optional Gamma client instance
            transformer: Optional MarketTransformer instance
            classifier: Optional ColumnClassifier instance
            arb_scanner: Optional ArbScanner instance
            settings: Optional Settings instance
        """
        self.settings = settings or get_settings()
        self._gamma_client = gamma_client
        self.transformer = transformer or MarketTransformer(self.settings)
        self.classifier = classifier or ColumnClassifier(self.settings)
        self._arb_scanner = arb_scanner
        self.cache = SnapshotCache(
            refresh=self.build_snapshot,
            ttl_seconds=self.settings.cache.ttl_seconds,
        )

    @property
    def gamma_client(self) -> GammaClient:
        """Get or create Gamma client."""
        if self._gamma_client is None:
            self._gamma_client = GammaClient(self.settings)
        return self._gamma_client

    @property
    def arb_scanner(self) -> ArbScanner:
        """Get or create arbitrage scanner."""
        if self._arb_scanner is None:
            self._arb_scanner = ArbScanner(settings=self.settings)
        return self._arb_scanner

    # =========================================================================
    # Refresh cycle
    # =========================================================================

    async def fetch_events(self) -> list[RawEvent]:
        """
        Fetch every active event, bounded by the refresh timeout.

        Raises:
            FetchError: On upstream failure or timeout
        """
        timeout = self.settings.feed.refresh_timeout_seconds

        try:
            async with self.gamma_client as client:
                return await asyncio.wait_for(client.fetch_all_events(), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error("feed_fetch_timeout", timeout_seconds=timeout)
            raise FetchError(f"Feed fetch exceeded {timeout:.0f}s") from e

    async def build_snapshot(self) -> Snapshot:
        """Run one full fetch, normalize and classify cycle."""
        events = await self.fetch_events()
        now = datetime.now(timezone.utc)

        markets = self.transformer.normalize(events, now)
        columns = self.classifier.classify(markets, now)
        completed = datetime.now(timezone.utc)
        stats = self.classifier.build_stats(
            markets, columns, total_events=len(events), now=now, refreshed_at=completed
        )

        return Snapshot(markets=markets, columns=columns, stats=stats, timestamp=completed)

    async def get_snapshot(self) -> Snapshot:
        """Get the current snapshot, refreshing it if expired."""
        return await self.cache.get_data()

    # =========================================================================
    # Queries
    # =========================================================================

    def apply_query(
        self,
        markets: list[NormalizedMarket],
        search: str | None = None,
        category: Category | str | None = None,
        sort: MarketSort | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[NormalizedMarket]:
        """
        Filter, sort and cap a market list.

        Args:
            markets: Markets to query
            search: Case-insensitive substring of question or event title
            category: Exact category; "All" or None means no filter
            sort: Sort key; None keeps feed order
            limit: Maximum results, clamped to MAX_LIMIT

        Returns:
            Matching markets
        """
        result = markets

        if search:
            needle = search.lower()
            result = [
                m for m in result
                if needle in m.question.lower() or needle in m.event_title.lower()
            ]

        if category and category != ALL_CATEGORIES:
            result = [m for m in result if m.category == category]

        if sort is not None:
            result = sort_markets(result, sort)

        return result[: min(max(limit, 1), MAX_LIMIT)]

    async def list_markets(
        self,
        search: str | None = None,
        category: Category | str | None = None,
        sort: MarketSort | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[NormalizedMarket]:
        """List markets from the current snapshot."""
        snapshot = await self.get_snapshot()
        return self.apply_query(snapshot.markets, search=search, category=category, sort=sort, limit=limit)

    async def get_market(self, market_id: str) -> NormalizedMarket | None:
        """
        Get a market by ID.

        Returns:
            The market, or None if it is not in the current snapshot
        """
        snapshot = await self.get_snapshot()
        return next((m for m in snapshot.markets if m.id == market_id), None)

    async def get_columns(self) -> MarketColumns:
        snapshot = await self.get_snapshot()
        return snapshot.columns

    async def get_column(self, name: ColumnName) -> list[NormalizedMarket]:
        snapshot = await self.get_snapshot()
        return snapshot.columns.get(name)

    async def get_stats(self) -> MarketStats:
        snapshot = await self.get_snapshot()
        return snapshot.stats

    async def scan_arbitrage(self) -> ArbScanResult:
        """
        Best-effort cross-venue price gap scan over the current snapshot.

        Never raises for upstream problems; errors are reported in the result.
        """
        try:
            snapshot = await self.get_snapshot()
        except FetchError as e:
            return ArbScanResult(error=str(e))
        return await self.arb_scanner.scan(snapshot.markets)

    async def close(self) -> None:
        """Release resources at shutdown."""
        await self.cache.close()
        if self._gamma_client is not None:
            await self._gamma_client.aclose()


# Factory function
def get_curator_service() -> CuratorService:
    """Create and return a CuratorService instance."""
    return CuratorService()
