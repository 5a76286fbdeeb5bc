"""
REST client for the Binance Alpha token list.

Provides async access to the public token list endpoint with rate limiting
and retries. Every way a fetch can fail (HTTP status, timeout, connection
error, bad envelope) surfaces as UpstreamFetchError so the snapshot cache
has a single error to fall back on.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp

from airdrop_tracker.config import ALPHA_TOKEN_LIST_URL
from airdrop_tracker.ingestion.models import Snapshot, parse_snapshot

logger = logging.getLogger(__name__)

SUCCESS_CODE = "000000"

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "application/json",
    "Accept-Language": "en-US,en;q=0.9",
}


class UpstreamFetchError(Exception):
    """Network failure or non-success response from the listing source."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(UpstreamFetchError):
    """Rate limit exceeded."""
    pass


class AlphaRestClient:
    """
    Async REST client for the Binance Alpha token list.

    Features:
        - Rate limiting to avoid API throttling
        - Automatic retries with exponential backoff on 5xx / timeouts
        - Envelope validation (`code` must be "000000")

    Usage:
        async with AlphaRestClient() as client:
            snapshot = await client.fetch_snapshot()
    """

    def __init__(
        self,
        url: str = ALPHA_TOKEN_LIST_URL,
        session: Optional[aiohttp.ClientSession] = None,
        rate_limit: float = 5.0,  # requests per second
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize the REST client.

        Args:
            url: Token list endpoint
            session: Optional aiohttp session (created if not provided)
            rate_limit: Maximum requests per second
            timeout: Request timeout in seconds
            max_retries: Number of attempts for failed requests
            retry_delay: Base delay between retries (exponential backoff)
        """
        self._url = url
        self._session = session
        self._owns_session = session is None
        self._rate_limit = rate_limit
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

        self._request_times: list[float] = []
        self._rate_lock = asyncio.Lock()

    async def __aenter__(self) -> "AlphaRestClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _rate_limit_wait(self) -> None:
        """Wait if necessary to respect rate limits."""
        async with self._rate_lock:
            now = time.time()

            # Drop timestamps outside the 1-second window
            self._request_times = [t for t in self._request_times if now - t < 1.0]

            if len(self._request_times) >= self._rate_limit:
                wait_time = 1.0 - (now - self._request_times[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)

            self._request_times.append(time.time())

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        """
        Make an HTTP request with rate limiting and retries.

        Returns:
            Parsed JSON response

        Raises:
            UpstreamFetchError: On API errors or when retries are exhausted
            asyncio.CancelledError: When the task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        last_error: Optional[UpstreamFetchError] = None

        for attempt in range(self._max_retries):
            try:
                await self._rate_limit_wait()

                async with self._session.request(
                    method, url, headers=DEFAULT_HEADERS, **kwargs
                ) as response:
                    if response.status == 429:
                        raise RateLimitError("Rate limit exceeded", status_code=429)

                    if response.status >= 400:
                        text = await response.text()
                        raise UpstreamFetchError(
                            f"API error: {response.status} - {text[:200]}",
                            status_code=response.status,
                        )

                    # Upstream sometimes answers with a text/plain content type
                    return await response.json(content_type=None)

            except RateLimitError as e:
                delay = self._retry_delay * (2 ** attempt) * 2
                logger.warning(f"Rate limited, waiting {delay}s before retry")
                last_error = e
                await asyncio.sleep(delay)

            except UpstreamFetchError as e:
                # 5xx is retried, other 4xx fails immediately
                if e.status_code and e.status_code >= 500:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Server error {e.status_code}, retry {attempt + 1}/{self._max_retries}"
                    )
                    last_error = e
                    await asyncio.sleep(delay)
                else:
                    raise

            except asyncio.TimeoutError:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request timeout, retry {attempt + 1}/{self._max_retries}")
                last_error = UpstreamFetchError("Request timed out")
                await asyncio.sleep(delay)

            except asyncio.CancelledError:
                logger.debug("Request cancelled")
                raise

            except aiohttp.ClientError as e:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Request failed: {e}, retry {attempt + 1}/{self._max_retries}")
                last_error = UpstreamFetchError(str(e))
                await asyncio.sleep(delay)

            except ValueError as e:
                # Body was not JSON; retrying will not help
                raise UpstreamFetchError(f"Invalid JSON response: {e}") from e

        raise last_error or UpstreamFetchError("Request failed after retries")

    async def fetch_token_list(self) -> list[dict[str, Any]]:
        """
        Fetch the raw token list.

        Raises:
            UpstreamFetchError: On transport failure or a non-success envelope
        """
        payload = await self._request("GET", self._url)

        if not isinstance(payload, dict):
            raise UpstreamFetchError("Invalid response structure")

        code = payload.get("code")
        if code != SUCCESS_CODE:
            raise UpstreamFetchError(
                f"API error: {payload.get('message') or 'Unknown error'} (code={code})"
            )

        data = payload.get("data") or []
        if not isinstance(data, list):
            raise UpstreamFetchError("Invalid response structure: data is not a list")

        return data

    async def fetch_snapshot(self) -> Snapshot:
        """Fetch and parse the token list into a Snapshot."""
        records = await self.fetch_token_list()
        snapshot = parse_snapshot(records, fetched_at=datetime.now(timezone.utc))

        if snapshot.parse_errors:
            logger.warning(
                f"Fetched {len(records)} listings, {len(snapshot.parse_errors)} failed to parse"
            )
        else:
            logger.info(f"Fetched {len(records)} listings from Binance Alpha")

        return snapshot
