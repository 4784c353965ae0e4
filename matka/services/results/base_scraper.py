"""
Base Web Scraper Module
=======================
HTTP plumbing shared by result scrapers:
- One aiohttp session per scraper
- Request rate limiting
- Retries with exponential backoff, honouring Retry-After on 429
- A short-lived page cache

fetch_page() never raises for HTTP or decoding trouble; it returns None
and logs why.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, Optional, Tuple

import aiohttp

from matka.core.timeutils import utcnow

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@dataclass
class ScraperConfig:
    """Configuration for web scraper."""
    base_url: str = ""
    scraper_name: str = "base_scraper"

    # Rate limiting
    requests_per_minute: int = 30
    jitter_seconds: float = 0.5

    # Retry settings
    max_retries: int = 3
    retry_delay_seconds: float = 2.0
    max_retry_after_seconds: float = 60.0

    # Timeout settings
    request_timeout: int = 30
    connect_timeout: int = 10

    custom_headers: Dict[str, str] = field(default_factory=dict)

    # 0 disables the page cache
    cache_ttl_seconds: int = 300


def retry_after_delay(value: Optional[str], default: float, ceiling: float) -> float:
    """
    Seconds to wait from a Retry-After header.

    Accepts delta-seconds or an HTTP date. Missing or unreadable values
    give `default`; the result is clamped to [0, ceiling].
    """
    if not value:
        return min(default, ceiling)
    value = value.strip()
    if value.isdigit():
        delay = float(value)
    else:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            logger.debug(f"Unreadable Retry-After {value!r}")
            return min(default, ceiling)
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        delay = (when - datetime.now(timezone.utc)).total_seconds()
    return max(0.0, min(delay, ceiling))


def decode_body(body: bytes, charset: Optional[str]) -> str:
    """Decode a page body, replacing bytes the declared charset rejects."""
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        logger.debug(f"Unknown charset {charset!r}, decoding as utf-8")
        return body.decode("utf-8", errors="replace")


class BaseWebScraper:
    """
    Base class for result scrapers.

    Use as an async context manager so the HTTP session is closed:

        async with MyScraper(config) as scraper:
            html = await scraper.fetch_page(url)
    """

    def __init__(self, config: ScraperConfig):
        self.config = config
        self.session: Optional[aiohttp.ClientSession] = None
        self.last_request_time: Optional[datetime] = None
        self._pages: Dict[str, Tuple[datetime, str]] = {}

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self) -> None:
        """Open the HTTP session."""
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(
                total=self.config.request_timeout,
                connect=self.config.connect_timeout,
            )
            self.session = aiohttp.ClientSession(timeout=timeout)
            logger.debug(f"Scraper '{self.config.scraper_name}' started")

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.debug(f"Scraper '{self.config.scraper_name}' stopped")
        self.session = None

    def get_headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
            "User-Agent": USER_AGENT,
        }
        headers.update(self.config.custom_headers)
        return headers

    async def rate_limit(self) -> None:
        """Space requests to at most requests_per_minute."""
        if self.last_request_time:
            elapsed = (utcnow() - self.last_request_time).total_seconds()
            min_interval = 60.0 / self.config.requests_per_minute
            if elapsed < min_interval:
                delay = min_interval - elapsed + random.uniform(0, self.config.jitter_seconds)
                await asyncio.sleep(delay)
        self.last_request_time = utcnow()

    def _cached(self, url: str) -> Optional[str]:
        entry = self._pages.get(url)
        if entry is None:
            return None
        fetched_at, html = entry
        if (utcnow() - fetched_at).total_seconds() < self.config.cache_ttl_seconds:
            logger.debug(f"Cache hit for {url}")
            return html
        del self._pages[url]
        return None

    def _backoff(self, attempt: int) -> float:
        return self.config.retry_delay_seconds * (2 ** attempt)

    async def fetch_page(self, url: str) -> Optional[str]:
        """
        Fetch a page with retry logic and error handling.

        Server errors, timeouts and connection errors are retried with
        exponential backoff; 429 waits for Retry-After. Other client errors
        are not retried.

        Returns:
            HTML content, or None if the page could not be fetched
        """
        cached = self._cached(url)
        if cached is not None:
            return cached

        await self.start()
        attempts = max(1, self.config.max_retries)

        for attempt in range(attempts):
            delay = self._backoff(attempt)
            try:
                await self.rate_limit()
                async with self.session.get(url, headers=self.get_headers()) as response:
                    if response.status == 200:
                        html = decode_body(await response.read(), response.charset)
                        if self.config.cache_ttl_seconds > 0:
                            self._pages[url] = (utcnow(), html)
                        logger.debug(f"Fetched {url} ({len(html)} chars)")
                        return html

                    if response.status == 429:
                        delay = retry_after_delay(
                            response.headers.get("Retry-After"),
                            delay,
                            self.config.max_retry_after_seconds,
                        )
                        logger.warning(f"Rate limited by {url}, waiting {delay:.1f}s")
                    elif response.status >= 500:
                        logger.warning(f"Server error {response.status} for {url} (attempt {attempt + 1})")
                    else:
                        logger.error(f"Client error {response.status} for {url}")
                        return None

            except asyncio.TimeoutError:
                logger.warning(f"Timeout fetching {url} (attempt {attempt + 1})")
            except aiohttp.ClientError as e:
                logger.warning(f"Client error fetching {url}: {e} (attempt {attempt + 1})")

            if attempt < attempts - 1:
                await asyncio.sleep(delay)

        logger.error(f"Giving up on {url} after {attempts} attempts")
        return None
