"""
Kalshi API client for Edgeboard.

Read-only access to Kalshi's open markets, used by the best-effort
cross-venue price gap scan.
"""

from typing import Any

import httpx
import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from shared.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class KalshiAPIError(Exception):
    """Custom exception for Kalshi API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class KalshiClient:
    """Async client for Kalshi's public markets endpoint."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Kalshi client.

        Args:
            settings: Settings instance. If None, loads from environment.
            transport: Optional httpx transport, used by tests.
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.arb.kalshi_url.rstrip("/")
        self.timeout = self.settings.arb.request_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "KalshiClient":
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, creating if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=2),
        retry=retry_if_exception_type(KalshiAPIError),
        reraise=True,
    )
    async def get_open_markets(self, limit: int = 200) -> list[dict[str, Any]]:
        """
        Get open Kalshi markets.

        Args:
            limit: Maximum number of markets

        Returns:
            List of raw Kalshi market dicts

        Raises:
            KalshiAPIError: If the request fails
        """
        url = f"{self.base_url}/markets"
        params = {"limit": limit, "status": "open"}

        try:
            response = await self.client.get(url, params=params)
        except httpx.RequestError as e:
            logger.warning("kalshi_request_error", error=str(e))
            raise KalshiAPIError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise KalshiAPIError(
                f"API request failed: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise KalshiAPIError("Invalid JSON from Kalshi") from e

        markets = data.get("markets") if isinstance(data, dict) else None
        return markets or []
