"""
MATKA - Result Source Providers

Two interchangeable ways to obtain a market's DailyResult for a date:

- ManualResultProvider: the admin supplied the result directly
- ScrapedResultProvider: the weekly panel chart of the market is scraped

The settlement and prediction engines only see ResultProvider.resolve().
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional

from matka.core.exceptions import InvalidRequestError, ResultSourceError
from matka.services.results.chart_scraper import ChartScraper, ChartWeek, find_result_for_date
from matka.services.results.daily_result import DailyResult, ManualResult

logger = logging.getLogger(__name__)


class ResultProvider(ABC):
    """Capability: the DailyResult of one market on one IST date, or None."""

    @abstractmethod
    async def resolve(self, market_id: str, result_date: date) -> Optional[DailyResult]:
        """None means the market has no usable result; its wagers are skipped."""

    def markets_in_scope(self) -> Optional[List[str]]:
        """Markets this provider is restricted to; None means every market."""
        return None

    async def close(self) -> None:
        """Release network resources held for the run."""


class ManualResultProvider(ResultProvider):
    """Results entered by hand, keyed by market id. No network access."""

    def __init__(self, overrides: Mapping[str, ManualResult]):
        self.overrides = dict(overrides)

    async def resolve(self, market_id: str, result_date: date) -> Optional[DailyResult]:
        manual = self.overrides.get(market_id)
        if manual is None:
            return None
        return manual.to_daily_result(result_date)

    def markets_in_scope(self) -> Optional[List[str]]:
        return list(self.overrides)


class ScrapedResultProvider(ResultProvider):
    """
    Results read from the scraped weekly charts.

    A chart is fetched at most once per market for the lifetime of the
    provider (one settlement run). Fetch and parse failures are logged and
    resolve to None so one broken market never aborts the run.
    """

    def __init__(self, scraper: Optional[ChartScraper] = None):
        self.scraper = scraper or ChartScraper()
        self._charts: Dict[str, Optional[List[ChartWeek]]] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def _chart(self, market_id: str) -> Optional[List[ChartWeek]]:
        async with self._locks[market_id]:
            if market_id not in self._charts:
                try:
                    self._charts[market_id] = await self.scraper.get_chart(market_id)
                except ResultSourceError as e:
                    logger.warning(f"No chart for {market_id}: {e}")
                    self._charts[market_id] = None
                except Exception as e:
                    logger.warning(f"Chart for {market_id} failed: {e!r}")
                    self._charts[market_id] = None
        return self._charts[market_id]

    async def resolve(self, market_id: str, result_date: date) -> Optional[DailyResult]:
        weeks = await self._chart(market_id)
        if weeks is None:
            return None
        result = find_result_for_date(weeks, result_date)
        if result is None:
            logger.warning(f"No chart week covers {result_date} for {market_id}")
            return None
        if result.is_closed:
            logger.info(f"{market_id} was closed on {result_date}")
            return None
        return result

    async def close(self) -> None:
        await self.scraper.stop()


@dataclass
class ResultSource:
    """
    Where a settlement run takes its results from.

    Either scrape (the default) or a set of manual overrides keyed by
    market id; with overrides only the named markets are processed.
    """
    overrides: Dict[str, ManualResult] = field(default_factory=dict)
    use_scrape: bool = True

    @classmethod
    def scrape(cls) -> "ResultSource":
        return cls(use_scrape=True)

    @classmethod
    def override(cls, overrides: Mapping[str, ManualResult]) -> "ResultSource":
        if not overrides:
            raise InvalidRequestError("An override result source needs at least one market")
        return cls(overrides=dict(overrides), use_scrape=False)

    @property
    def is_override(self) -> bool:
        return not self.use_scrape

    def describe(self) -> str:
        if self.is_override:
            return f"manual override ({', '.join(sorted(self.overrides))})"
        return "scraped chart"


def provider_for(source: ResultSource, scraper: Optional[ChartScraper] = None) -> ResultProvider:
    """Provider implementing a ResultSource."""
    if source.is_override:
        return ManualResultProvider(source.overrides)
    return ScrapedResultProvider(scraper)
