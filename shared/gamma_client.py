"""
Gamma API client for Edgeboard.

Pages through Polymarket's public Gamma events feed. This is the only
component that talks to the upstream feed.
"""

from typing import Any

import httpx
import structlog

from shared.config import Settings, get_settings
from shared.models import RawEvent

logger = structlog.get_logger(__name__)


class FetchError(Exception):
    """Raised when the upstream feed is unreachable or answers with an error."""

    def __init__(self, message: str, status_code: int | None = None, response: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.response = response


class GammaClient:
    """
    Async client for the Gamma events feed.

    Requests are never retried: a single failed page aborts the whole
    fetch and the caller decides what to do with the previous data.
    """

    EVENTS_PATH = "/events"

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Gamma client.

        Args:
            settings: Settings instance. If None, loads from environment.
            transport: Optional httpx transport, used by tests.
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.feed.base_url.rstrip("/")
        self.page_size = self.settings.feed.page_size
        self.timeout = self.settings.feed.request_timeout_seconds
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GammaClient":
        """Async context manager entry."""
        self._client = self._build_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.aclose()

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"Accept": "application/json"},
            transport=self._transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Get HTTP client, creating if needed."""
        if self._client is None:
            self._client = self._build_client()
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _page_params(self, offset: int) -> dict[str, Any]:
        return {
            "active": "true",
            "closed": "false",
            "order": "volume",
            "ascending": "false",
            "limit": self.page_size,
            "offset": offset,
        }

    async def get_events_page(self, offset: int = 0) -> list[RawEvent]:
        """
        Fetch one page of active events, ordered by volume.

        Args:
            offset: Pagination offset

        Returns:
            List of raw event dicts

        Raises:
            FetchError: On transport errors, non-2xx status or a body
                that is not a JSON array
        """
        url = f"{self.base_url}{self.EVENTS_PATH}"

        try:
            response = await self.client.get(url, params=self._page_params(offset))
        except httpx.RequestError as e:
            logger.error("gamma_request_error", offset=offset, error=str(e))
            raise FetchError(f"Gamma request failed: {e}") from e

        if not response.is_success:
            logger.error("gamma_bad_status", offset=offset, status_code=response.status_code)
            raise FetchError(
                f"Gamma API {response.status_code}",
                status_code=response.status_code,
                response=response.text,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise FetchError(
                "Gamma API returned invalid JSON",
                status_code=response.status_code,
            ) from e

        if not isinstance(data, list):
            raise FetchError(
                f"Gamma API returned {type(data).__name__}, expected a list",
                status_code=response.status_code,
                response=data,
            )

        return data

    async def fetch_all_events(self) -> list[RawEvent]:
        """
        Page through the feed until it is exhausted.

        Stops on an empty page or a page shorter than the page size.

        Returns:
            All raw events, in feed order
        """
        events: list[RawEvent] = []
        offset = 0
        pages = 0

        while True:
            page = await self.get_events_page(offset=offset)
            pages += 1
            if not page:
                break

            events.extend(page)
            logger.debug("events_page_fetched", offset=offset, count=len(page))

            if len(page) < self.page_size:
                break
            offset += self.page_size

        logger.info("events_fetched", count=len(events), pages=pages)
        return events
