"""
Panel Chart Web Scraper
=======================
Scraper for the weekly panel charts of the result site.

Each chart row is one week: a date-range cell followed by seven
(opening panna, jodi, closing panna) triplets, Monday first. A day whose
jodi cell is painted red and holds no number was a holiday.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from bs4 import BeautifulSoup

from matka.core.config import settings
from matka.core.exceptions import ResultSourceError
from matka.services.results.base_scraper import BaseWebScraper, ScraperConfig
from matka.services.results.daily_result import DailyResult
from matka.services.settlement.digits import JODI_SENTINEL, PANNA_SENTINEL

logger = logging.getLogger(__name__)

DAYS = ["MON", "TUE", "WED", "THU", "FRI", "SAT", "SUN"]

_DATE_RANGE_RE = re.compile(r"(\d{2}/\d{2}/\d{4})\s*to\s*(\d{2}/\d{2}/\d{4})", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"^\s*[+-]?\d")


@dataclass
class ChartDay:
    day_of_week: str
    is_closed: bool
    opening_panna: str
    jodi: str
    closing_panna: str

    def to_result(self, result_date: Optional[date] = None) -> DailyResult:
        if self.is_closed:
            return DailyResult.closed(result_date)
        return DailyResult(
            opening_panna=self.opening_panna or PANNA_SENTINEL,
            closing_panna=self.closing_panna or PANNA_SENTINEL,
            jodi=self.jodi or JODI_SENTINEL,
            result_date=result_date,
            source="scrape",
        )


@dataclass
class ChartWeek:
    date_range: str
    days: List[ChartDay] = field(default_factory=list)

    def covers(self) -> Optional[tuple]:
        """(first_day, last_day) of the week as IST calendar dates."""
        match = _DATE_RANGE_RE.search(self.date_range)
        if not match:
            return None
        try:
            start = datetime.strptime(match.group(1), "%d/%m/%Y").date()
            end = datetime.strptime(match.group(2), "%d/%m/%Y").date()
        except ValueError:
            return None
        return start, end

    def day(self, day_of_week: str) -> Optional[ChartDay]:
        for entry in self.days:
            if entry.day_of_week == day_of_week:
                return entry
        return None


def _collapse(text: str) -> str:
    return re.sub(r"\s+", "", text)


def parse_chart(html: str) -> List[ChartWeek]:
    """Parse a panel chart page into weeks; the header row is skipped."""
    soup = BeautifulSoup(html, "html.parser")
    weeks: List[ChartWeek] = []

    for row in soup.select("tbody tr")[1:]:
        cells = row.find_all(["td", "th"], recursive=False)
        if not cells:
            continue

        date_range = " ".join(cells[0].get_text(" ").split())
        week = ChartWeek(date_range=date_range)

        for i, day_name in enumerate(DAYS):
            start = 1 + i * 3
            if start + 2 >= len(cells):
                continue

            jodi_cell = cells[start + 1]
            jodi = jodi_cell.get_text().strip()
            is_holiday = 'color="red"' in str(jodi_cell) and not _LEADING_NUMBER_RE.match(jodi)

            week.days.append(ChartDay(
                day_of_week=day_name,
                is_closed=is_holiday,
                opening_panna=PANNA_SENTINEL if is_holiday else _collapse(cells[start].get_text()),
                jodi=JODI_SENTINEL if is_holiday else jodi,
                closing_panna=PANNA_SENTINEL if is_holiday else _collapse(cells[start + 2].get_text()),
            ))

        weeks.append(week)

    return weeks


def find_result_for_date(weeks: List[ChartWeek], target: date) -> Optional[DailyResult]:
    """
    Result of an IST calendar date from a parsed chart.

    Returns None when no week covers the date or the week has no cell for
    that weekday.
    """
    day_of_week = DAYS[target.weekday()]
    for week in weeks:
        span = week.covers()
        if span is None:
            continue
        start, end = span
        if start <= target <= end:
            entry = week.day(day_of_week)
            return entry.to_result(target) if entry else None
    return None


class ChartScraper(BaseWebScraper):
    """
    Scraper for weekly panel charts, one page per market.

    Usage:
        async with ChartScraper() as scraper:
            weeks = await scraper.get_chart("kalyan-panel-chart")
    """

    def __init__(self, base_url: Optional[str] = None):
        config = ScraperConfig(
            base_url=base_url or settings.CHART_BASE_URL,
            scraper_name="chart_scraper",
            requests_per_minute=settings.SCRAPER_REQUESTS_PER_MINUTE,
            max_retries=settings.SCRAPER_MAX_RETRIES,
            retry_delay_seconds=settings.SCRAPER_RETRY_DELAY_SECONDS,
            request_timeout=settings.SCRAPER_REQUEST_TIMEOUT,
            cache_ttl_seconds=settings.SCRAPER_CACHE_TTL_SECONDS,
        )
        super().__init__(config)

    def chart_url(self, market_id: str) -> str:
        return self.config.base_url.rstrip("/") + settings.CHART_PATH_TEMPLATE.format(market_id=market_id)

    async def get_chart(self, market_id: str) -> List[ChartWeek]:
        """
        Fetch and parse the chart of one market.

        Raises:
            ResultSourceError: page could not be fetched or held no weeks
        """
        url = self.chart_url(market_id)
        html = await self.fetch_page(url)
        if html is None:
            raise ResultSourceError(f"Chart for '{market_id}' could not be fetched from {url}")

        weeks = parse_chart(html)
        if not weeks:
            raise ResultSourceError(f"Chart for '{market_id}' has no result rows")
        logger.debug(f"Loaded {len(weeks)} chart weeks for {market_id}")
        return weeks
