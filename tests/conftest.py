"""
MATKA - Test Configuration
Pytest fixtures: a temporary SQLite database and helpers to seed it.
"""

from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from sqlalchemy import select

from matka.core.database import DatabaseManager, init_db
from matka.core.timeutils import ist_day_start_utc, parse_date
from matka.models.models import (
    Balance,
    GameRate,
    LedgerTransaction,
    MarketFamily,
    MarketSegment,
    UserProfile,
    Wager,
    WagerStatus,
)
from matka.services.results.chart_scraper import ChartScraper

# rate_key -> (stake unit, payout unit)
DEFAULT_RATES: Dict[str, Tuple[str, str]] = {
    "single-digits": ("10", "95"),
    "jodi-digit": ("10", "950"),
    "single-pana": ("10", "1400"),
    "double-pana": ("10", "2800"),
    "triple-pana": ("10", "7000"),
    "half-sangam": ("10", "10000"),
    "full-sangam": ("10", "100000"),
}


def at_ist(day: str, hour: int = 12) -> datetime:
    """Stored (naive UTC) timestamp of an IST wall-clock hour on a date."""
    return ist_day_start_utc(parse_date(day)) + timedelta(hours=hour)


class Store:
    """Seeds and inspects the test database."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def add_rates(self, family: MarketFamily = MarketFamily.MAIN, rates: Optional[Dict] = None) -> None:
        rates = DEFAULT_RATES if rates is None else rates
        async with self.db.transaction() as session:
            for key, (unit, payout) in rates.items():
                session.add(GameRate(
                    family=family,
                    rate_key=key,
                    min_value=Decimal(unit) if unit is not None else None,
                    max_value=Decimal(payout),
                ))

    async def add_balance(self, owner_id: str, amount="0") -> None:
        async with self.db.transaction() as session:
            session.add(Balance(owner_id=owner_id, amount=Decimal(amount)))

    async def add_profile(self, owner_id: str, username: str, device_token: Optional[str] = None) -> None:
        async with self.db.transaction() as session:
            session.add(UserProfile(owner_id=owner_id, username=username, device_token=device_token))

    async def add_wager(
        self,
        owner_id: str = "user-1",
        market_id: str = "KALYAN",
        bet_type: str = "Single Digits",
        segment: str = "open",
        answer: str = "6",
        stake="100",
        day: str = "2024-01-10",
        hour: int = 12,
        family: MarketFamily = MarketFamily.MAIN,
        status: WagerStatus = WagerStatus.PENDING,
    ) -> str:
        wager = Wager(
            owner_id=owner_id,
            family=family,
            market_id=market_id,
            market_title=market_id.title(),
            bet_type=bet_type,
            market_segment=MarketSegment(segment),
            answer=answer,
            stake=Decimal(stake),
            status=status,
            created_at=at_ist(day, hour),
        )
        async with self.db.transaction() as session:
            session.add(wager)
        return wager.id

    async def wager(self, wager_id: str) -> Optional[Wager]:
        async with self.db.session() as session:
            return await session.get(Wager, wager_id)

    async def status(self, wager_id: str) -> WagerStatus:
        wager = await self.wager(wager_id)
        return WagerStatus(wager.status)

    async def balance(self, owner_id: str) -> Decimal:
        async with self.db.session() as session:
            result = await session.execute(select(Balance.amount).where(Balance.owner_id == owner_id))
            return Decimal(result.scalar_one())

    async def ledger(self, owner_id: str) -> List[LedgerTransaction]:
        async with self.db.session() as session:
            result = await session.execute(
                select(LedgerTransaction)
                .where(LedgerTransaction.owner_id == owner_id)
                .order_by(LedgerTransaction.created_at)
            )
            return list(result.scalars().all())

    async def ledger_total(self, owner_id: str) -> Decimal:
        return sum((tx.signed_amount for tx in await self.ledger(owner_id)), Decimal("0"))

    async def wager_count(self) -> int:
        async with self.db.session() as session:
            result = await session.execute(select(Wager.id))
            return len(result.scalars().all())


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh SQLite database with all tables."""
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'matka.db'}")
    await init_db(manager)
    yield manager
    await manager.close()


@pytest.fixture
def store(db):
    return Store(db)


CHART_HTML = """
<html><body>
<table class="panel-chart">
<tbody>
<tr><th>Date</th><th colspan="3">Mon</th><th colspan="3">Tue</th><th colspan="3">Wed</th>
<th colspan="3">Thu</th><th colspan="3">Fri</th><th colspan="3">Sat</th></tr>
<tr>
  <td>01/01/2024<br>to<br>07/01/2024</td>
  <td>1<br>4<br>5</td><td>02</td><td>2<br>3<br>7</td>
  <td>3<br>7<br>0</td><td>05</td><td>1<br>2<br>2</td>
  <td>1<br>2<br>3</td><td>60</td><td>5<br>5<br>0</td>
  <td>2<br>2<br>4</td><td>88</td><td>1<br>7<br>0</td>
  <td>1<br>5<br>7</td><td>31</td><td>4<br>7<br>0</td>
  <td>2<br>8<br>9</td><td>97</td><td>4<br>5<br>8</td>
</tr>
<tr>
  <td>08/01/2024<br>to<br>14/01/2024</td>
  <td>1<br>2<br>3</td><td>60</td><td>5<br>5<br>0</td>
  <td>2<br>3<br>6</td><td>12</td><td>4<br>8<br>0</td>
  <td>1<br>2<br>3</td><td>99</td><td>5<br>5<br>9</td>
  <td>***</td><td><font color="red">**</font></td><td>***</td>
  <td>3<br>4<br>5</td><td>2*</td><td>***</td>
  <td>1<br>0<br>0</td><td>17</td><td>2<br>5<br>0</td>
</tr>
</tbody>
</table>
</body></html>
"""


@pytest.fixture
def chart_html() -> str:
    """
    Two chart weeks Monday to Saturday (no Sunday column).

    Week of 08/01/2024: Wed 10th is 123-69-559 (raw jodi cell says 99),
    Thu 11th is a holiday, Fri 12th has only the opening panna.
    """
    return CHART_HTML


class ChartSite:
    """
    Local chart site; each market page answers in a fixed way.

    kalyan, milan: the chart. missing: 404. down: always 500.
    flaky: 500 once, then the chart. busy: 429 with an HTTP-date
    Retry-After once, then the chart. throttled: same with an unreadable
    Retry-After. garbled: bytes that are not UTF-8. oddcharset: the chart
    under an unknown charset. empty: a page without a chart.
    """

    def __init__(self, html: str):
        self.html = html
        self.hits: Counter = Counter()
        self.base_url = ""

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/{market}.php", self.page)
        return app

    async def page(self, request: web.Request) -> web.Response:
        market = request.match_info["market"]
        self.hits[market] += 1
        first = self.hits[market] == 1

        if market == "missing":
            return web.Response(status=404, text="no such chart")
        if market == "down" or (market == "flaky" and first):
            return web.Response(status=503, text="try later")
        if market == "busy" and first:
            return web.Response(status=429, headers={"Retry-After": "Wed, 21 Oct 2015 07:28:00 GMT"})
        if market == "throttled" and first:
            return web.Response(status=429, headers={"Retry-After": "soon"})
        if market == "garbled":
            return web.Response(body=b"\xff\xfe\xfa<tbody>\xc3", content_type="text/html", charset="utf-8")
        if market == "oddcharset":
            return web.Response(body=self.html.encode(), headers={"Content-Type": "text/html; charset=x-unknown"})
        if market == "empty":
            return web.Response(text="<html><body>maintenance</body></html>", content_type="text/html")
        return web.Response(text=self.html, content_type="text/html")

    def scraper(self, max_retries: int = 3) -> ChartScraper:
        """ChartScraper pointed at this site with no waits between requests."""
        scraper = ChartScraper(base_url=self.base_url)
        scraper.config.requests_per_minute = 60000
        scraper.config.jitter_seconds = 0
        scraper.config.retry_delay_seconds = 0
        scraper.config.max_retries = max_retries
        return scraper


@pytest_asyncio.fixture
async def chart_site(chart_html):
    """ChartSite served over HTTP on a local port."""
    site = ChartSite(chart_html)
    server = TestServer(site.app())
    await server.start_server()
    site.base_url = str(server.make_url("/"))
    yield site
    await server.close()
