"""
Integration tests for chart fetching against a local HTTP server.
"""

from datetime import date, datetime, timedelta, timezone
from email.utils import format_datetime

import pytest

from matka.core.exceptions import ResultSourceError
from matka.services.results.base_scraper import decode_body, retry_after_delay
from matka.services.results.providers import ScrapedResultProvider

pytestmark = pytest.mark.integration


class TestFetchPage:
    """ChartScraper.fetch_page()/get_chart() over real HTTP."""

    @pytest.mark.asyncio
    async def test_chart_page(self, chart_site):
        async with chart_site.scraper() as scraper:
            weeks = await scraper.get_chart("kalyan")

        assert len(weeks) == 2
        assert chart_site.hits["kalyan"] == 1

    @pytest.mark.asyncio
    async def test_page_cached(self, chart_site):
        async with chart_site.scraper() as scraper:
            await scraper.get_chart("kalyan")
            await scraper.get_chart("kalyan")

        assert chart_site.hits["kalyan"] == 1

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, chart_site):
        async with chart_site.scraper() as scraper:
            assert await scraper.fetch_page(scraper.chart_url("missing")) is None
            with pytest.raises(ResultSourceError):
                await scraper.get_chart("missing")

        assert chart_site.hits["missing"] == 2

    @pytest.mark.asyncio
    async def test_server_error_then_success(self, chart_site):
        async with chart_site.scraper() as scraper:
            weeks = await scraper.get_chart("flaky")

        assert len(weeks) == 2
        assert chart_site.hits["flaky"] == 2

    @pytest.mark.asyncio
    async def test_server_error_until_retries_run_out(self, chart_site):
        async with chart_site.scraper(max_retries=3) as scraper:
            with pytest.raises(ResultSourceError):
                await scraper.get_chart("down")

        assert chart_site.hits["down"] == 3

    @pytest.mark.asyncio
    async def test_rate_limited_with_http_date(self, chart_site):
        async with chart_site.scraper() as scraper:
            weeks = await scraper.get_chart("busy")

        assert len(weeks) == 2
        assert chart_site.hits["busy"] == 2

    @pytest.mark.asyncio
    async def test_rate_limited_with_unreadable_retry_after(self, chart_site):
        async with chart_site.scraper() as scraper:
            weeks = await scraper.get_chart("throttled")

        assert len(weeks) == 2
        assert chart_site.hits["throttled"] == 2

    @pytest.mark.asyncio
    async def test_malformed_body(self, chart_site):
        async with chart_site.scraper() as scraper:
            html = await scraper.fetch_page(scraper.chart_url("garbled"))
            assert "\ufffd" in html
            with pytest.raises(ResultSourceError):
                await scraper.get_chart("garbled")

    @pytest.mark.asyncio
    async def test_unknown_charset(self, chart_site):
        async with chart_site.scraper() as scraper:
            weeks = await scraper.get_chart("oddcharset")

        assert len(weeks) == 2

    @pytest.mark.asyncio
    async def test_page_without_chart(self, chart_site):
        async with chart_site.scraper() as scraper:
            with pytest.raises(ResultSourceError):
                await scraper.get_chart("empty")


class TestScrapedProvider:
    """ScrapedResultProvider over real HTTP."""

    @pytest.mark.asyncio
    async def test_failures_resolve_to_none(self, chart_site):
        provider = ScrapedResultProvider(chart_site.scraper(max_retries=2))
        try:
            for market in ("missing", "down", "garbled", "empty"):
                assert await provider.resolve(market, date(2024, 1, 10)) is None
            result = await provider.resolve("kalyan", date(2024, 1, 10))
        finally:
            await provider.close()

        assert result.jodi == "69"
        assert provider.scraper.session is None


class TestRetryAfter:
    """Tests for retry_after_delay() and decode_body()."""

    def test_seconds(self):
        assert retry_after_delay("5", 2.0, 60.0) == 5.0

    def test_seconds_capped(self):
        assert retry_after_delay("3600", 2.0, 60.0) == 60.0

    def test_past_date(self):
        assert retry_after_delay("Wed, 21 Oct 2015 07:28:00 GMT", 2.0, 60.0) == 0.0

    def test_future_date(self):
        when = datetime.now(timezone.utc) + timedelta(seconds=30)
        delay = retry_after_delay(format_datetime(when, usegmt=True), 2.0, 60.0)
        assert 20.0 <= delay <= 30.0

    def test_unreadable_uses_default(self):
        assert retry_after_delay("soon", 2.0, 60.0) == 2.0
        assert retry_after_delay(None, 2.0, 60.0) == 2.0
        assert retry_after_delay("", 90.0, 60.0) == 60.0

    def test_decode_body(self):
        assert decode_body(b"ok\xff", "utf-8") == "ok\ufffd"
        assert decode_body("ok".encode(), "x-unknown") == "ok"
        assert decode_body(b"\xe9", "latin-1") == "\xe9"
