"""Abstract base class for job source adapters.

Each adapter owns its own request pacing; there is no rate state shared
between adapters, so sources can run concurrently.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from src.core.config import SourceConfig
from src.core.schemas import RawPosting

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """A page could not be fetched or its payload was unusable."""


class RateLimitedError(SourceError):
    """The source kept answering 429 after the single retry."""


class SourceAdapter(ABC):
    """Base class that every source adapter must implement."""

    def __init__(self, config: SourceConfig, client: httpx.AsyncClient) -> None:
        self.config = config
        self._client = client
        self._last_request_at: float | None = None
        self.page_errors: list[str] = []

    @property
    @abstractmethod
    def source_id(self) -> str:
        """Adapter kind (e.g. 'arbeitnow')."""

    @property
    def name(self) -> str:
        """Source label stored on jobs. Defaults to the configured name."""
        return self.config.name

    @abstractmethod
    def build_request(self, page: int) -> tuple[str, dict[str, Any]]:
        """Return (url, query params) for a 1-based page number."""

    @abstractmethod
    def extract_records(self, payload: Any) -> list[RawPosting]:
        """Pull the list of raw postings out of a decoded JSON payload.

        Raises:
            SourceError: If the payload does not have the expected shape.
        """

    def headers(self) -> dict[str, str]:
        return {}

    async def _throttle(self) -> None:
        """Sleep until request_interval_s has passed since this adapter's last request."""
        interval = self.config.request_interval_s
        if self._last_request_at is not None and interval > 0:
            elapsed = time.monotonic() - self._last_request_at
            if elapsed < interval:
                await asyncio.sleep(interval - elapsed)
        self._last_request_at = time.monotonic()

    async def fetch_page(self, page: int) -> list[RawPosting]:
        """Fetch one page of raw postings.

        A 429 is retried once after ``rate_limit_backoff_s``.

        Raises:
            RateLimitedError: If the retry is rate limited as well.
            SourceError: On any other HTTP, transport, or payload failure.
        """
        url, params = self.build_request(page)
        for attempt in range(2):
            await self._throttle()
            try:
                response = await self._client.get(
                    url,
                    params=params,
                    headers=self.headers(),
                    timeout=self.config.timeout_s,
                )
            except httpx.HTTPError as e:
                msg = f"{self.name} page {page}: request failed: {e}"
                raise SourceError(msg) from e

            if response.status_code == 429:
                if attempt == 0:
                    logger.warning(
                        "%s page %d rate limited, retrying in %.1fs",
                        self.name, page, self.config.rate_limit_backoff_s,
                    )
                    await asyncio.sleep(self.config.rate_limit_backoff_s)
                    continue
                msg = f"{self.name} page {page}: still rate limited after retry"
                raise RateLimitedError(msg)

            if response.is_error:
                msg = f"{self.name} page {page}: HTTP {response.status_code}"
                raise SourceError(msg)

            try:
                payload = response.json()
            except ValueError as e:
                msg = f"{self.name} page {page}: response is not JSON"
                raise SourceError(msg) from e
            return self.extract_records(payload)

        # unreachable: the loop either returns or raises
        msg = f"{self.name} page {page}: no response"
        raise SourceError(msg)

    async def fetch_all(self, max_pages: int | None = None) -> list[RawPosting]:
        """Fetch pages from 1 until one comes back empty or max_pages is hit.

        A failed page is logged, recorded in ``page_errors``, and skipped.
        """
        limit = max_pages or self.config.max_pages
        self.page_errors = []
        records: list[RawPosting] = []

        for page in range(1, limit + 1):
            try:
                batch = await self.fetch_page(page)
            except SourceError as e:
                logger.warning("Skipping page: %s", e)
                self.page_errors.append(str(e))
                continue
            if not batch:
                logger.debug("%s page %d empty, stopping", self.name, page)
                break
            records.extend(batch)
            logger.debug("%s page %d: %d records (total %d)", self.name, page, len(batch), len(records))

        logger.info("%s: fetched %d raw records", self.name, len(records))
        return records
