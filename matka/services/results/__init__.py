"""
Result Sources
==============

A market's result for a date comes either from a manual declaration or
from the market's scraped weekly panel chart. Both produce a DailyResult.

Quick Start:
    from matka.services.results import ResultSource, provider_for

    provider = provider_for(ResultSource.scrape())
    result = await provider.resolve("kalyan-panel-chart", date(2024, 1, 10))
"""

from .base_scraper import BaseWebScraper, ScraperConfig, retry_after_delay
from .chart_scraper import ChartDay, ChartScraper, ChartWeek, find_result_for_date, parse_chart
from .daily_result import DailyResult, ManualResult, ResultState, parse_half
from .providers import (
    ManualResultProvider,
    ResultProvider,
    ResultSource,
    ScrapedResultProvider,
    provider_for,
)

__all__ = [
    "BaseWebScraper",
    "ScraperConfig",
    "retry_after_delay",
    "ChartDay",
    "ChartScraper",
    "ChartWeek",
    "find_result_for_date",
    "parse_chart",
    "DailyResult",
    "ManualResult",
    "ResultState",
    "parse_half",
    "ManualResultProvider",
    "ResultProvider",
    "ResultSource",
    "ScrapedResultProvider",
    "provider_for",
]
