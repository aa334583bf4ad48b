"""
Snapshot cache coordinator.

Owns the single live Snapshot and guarantees that at most one refresh
(fetch, normalize, classify) runs at a time. Concurrent readers that need
fresh data all attach to the same in-flight refresh.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from shared.gamma_client import FetchError
from shared.models import Snapshot

logger = structlog.get_logger(__name__)

RefreshFn = Callable[[], Awaitable[Snapshot]]


class SnapshotCache:
    """
    Time-bounded cache around a refresh function.

    States: empty (no snapshot yet), valid (snapshot younger than the TTL)
    and refreshing (a refresh task is in flight). A failed refresh keeps the
    previous snapshot; it only propagates when there is nothing to serve.
    """

    def __init__(
        self,
        refresh: RefreshFn,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize snapshot cache.

        Args:
            refresh: Coroutine function producing a complete Snapshot
            ttl_seconds: Age after which a snapshot is refreshed on read
            clock: Monotonic clock, injectable for tests
        """
        self._refresh = refresh
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._snapshot: Snapshot | None = None
        self._loaded_at: float | None = None
        self._inflight: asyncio.Task[Snapshot] | None = None
        self._lock = asyncio.Lock()

    @property
    def snapshot(self) -> Snapshot | None:
        """Current snapshot, possibly stale. None until the first refresh succeeds."""
        return self._snapshot

    @property
    def is_refreshing(self) -> bool:
        return self._inflight is not None

    def is_fresh(self) -> bool:
        """True if a snapshot exists and is younger than the TTL."""
        if self._snapshot is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self.ttl_seconds

    async def get_data(self) -> Snapshot:
        """
        Return a fresh snapshot, refreshing if needed.

        Returns:
            The cached snapshot when fresh, otherwise the result of the
            (possibly shared) refresh

        Raises:
            FetchError: If the refresh fails and no snapshot was ever loaded
        """
        if self.is_fresh():
            return self._snapshot  # type: ignore[return-value]

        async with self._lock:
            if self.is_fresh():
                return self._snapshot  # type: ignore[return-value]
            if self._inflight is None:
                self._inflight = asyncio.create_task(self._run_refresh())
            task = self._inflight

        # Shielded so a cancelled reader never cancels the shared refresh.
        return await asyncio.shield(task)

    async def _run_refresh(self) -> Snapshot:
        started = self._clock()
        logger.info("cache_refresh_started", has_snapshot=self._snapshot is not None)

        try:
            snapshot = await self._refresh()
        except FetchError as e:
            if self._snapshot is None:
                logger.error("cache_refresh_failed", error=str(e), serving_stale=False)
                raise
            logger.warning("cache_refresh_failed", error=str(e), serving_stale=True)
            return self._snapshot
        except Exception as e:
            if self._snapshot is None:
                logger.error("cache_refresh_error", error=str(e), serving_stale=False, exc_info=True)
                raise FetchError(f"Refresh failed: {e}") from e
            logger.error("cache_refresh_error", error=str(e), serving_stale=True, exc_info=True)
            return self._snapshot
        finally:
            self._inflight = None

        self._snapshot = snapshot
        self._loaded_at = self._clock()
        logger.info(
            "cache_refresh_completed",
            markets=len(snapshot.markets),
            duration_seconds=round(self._loaded_at - started, 3),
        )
        return snapshot

    async def close(self) -> None:
        """Wait for an in-flight refresh so shutdown does not orphan it."""
        task = self._inflight
        if task is not None:
            try:
                await task
            except FetchError as e:
                logger.warning("cache_refresh_failed_on_close", error=str(e))
