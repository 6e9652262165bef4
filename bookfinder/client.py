"""Async HTTP client for cancellable catalog searches."""
import asyncio
import httpx
from typing import Optional
import logging

from bookfinder.config import Config
from bookfinder.models import (
    FetchCancelled,
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    NetworkUnavailable,
    RequestFailed,
)
from bookfinder.parse import parse_num_found, parse_search_response

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation handle for one search request.

    Tokens are numbered by the session that issues them; ``sequence``
    only ever grows, so the session can tell a current request from a
    superseded one by comparing numbers.
    """

    def __init__(self, sequence: int):
        self.sequence = sequence
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()

    async def wait(self):
        await self._event.wait()

    def __repr__(self):
        state = "cancelled" if self.cancelled else "live"
        return f"<CancellationToken #{self.sequence} {state}>"


class CatalogClient:
    """Async client for the Open Library title search."""

    def __init__(
        self,
        search_url: str = Config.OPENLIBRARY_SEARCH_URL,
        limit: int = Config.RESULT_LIMIT,
        timeout: int = Config.DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize catalog client.

        Args:
            search_url: Search endpoint
            limit: Maximum number of records per search
            timeout: Request timeout in seconds
            client: Existing HTTP client to use; it is not closed by ``close()``
        """
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")

        self.search_url = search_url
        self.limit = limit
        self._owns_client = client is None

        # Create async HTTP client
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": Config.USER_AGENT, "Accept": "application/json"}
        )

    async def fetch(self, query: str, token: CancellationToken) -> FetchOutcome:
        """
        Search the catalog by title.

        The request is raced against ``token``. If the token is cancelled
        first, the pending request is abandoned; if the response arrives
        after cancellation it is dropped. Either way the caller gets
        ``FetchCancelled`` rather than an error.

        Args:
            query: Trimmed, non-empty title query
            token: Cancellation handle for this request

        Returns:
            FetchSuccess, FetchFailure or FetchCancelled
        """
        if token.cancelled:
            return FetchCancelled()

        params = {"title": query, "limit": self.limit}

        logger.info(f"Catalog request #{token.sequence}: {query!r} (limit={self.limit})")
        request = asyncio.ensure_future(self.client.get(self.search_url, params=params))
        cancelled = asyncio.ensure_future(token.wait())

        try:
            await asyncio.wait({request, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not request.done():
                request.cancel()

        if token.cancelled:
            if request.done() and not request.cancelled():
                # Mark a late failure as retrieved; the result is discarded either way
                request.exception()
            logger.debug(f"Catalog request #{token.sequence} cancelled: {query!r}")
            return FetchCancelled()

        try:
            response = request.result()
        except httpx.UnsupportedProtocol as e:
            logger.error(f"Catalog request #{token.sequence} has a bad URL: {e}")
            return FetchFailure(RequestFailed())
        except httpx.TransportError as e:
            logger.error(f"Catalog request #{token.sequence} failed: {e}")
            return FetchFailure(NetworkUnavailable())
        except httpx.HTTPError as e:
            logger.error(f"Catalog request #{token.sequence} failed: {e}")
            return FetchFailure(RequestFailed())
        except (httpx.InvalidURL, ValueError) as e:
            # Unencodable query text or a malformed search URL
            logger.error(f"Catalog request #{token.sequence} could not be sent: {e}")
            return FetchFailure(RequestFailed())

        if not response.is_success:
            logger.warning(f"Status {response.status_code} for query: {query!r}")
            return FetchFailure(RequestFailed(response.status_code))

        try:
            data = response.json()
            items = parse_search_response(data)
        except ValueError as e:
            logger.error(f"Unparseable search response for {query!r}: {e}")
            return FetchFailure(RequestFailed())

        num_found = parse_num_found(data)
        truncated = len(items) > self.limit or (num_found is not None and num_found > self.limit)

        logger.info(
            f"Catalog request #{token.sequence} returned {len(items)} records"
            f" (numFound={num_found})"
        )
        return FetchSuccess(items=tuple(items[:self.limit]), truncated=truncated)

    async def close(self):
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
