"""
Unit tests for DailyResult and manual result parsing.
"""

from datetime import date

import pytest

from matka.core.exceptions import InvalidRequestError
from matka.models.models import MarketSegment
from matka.services.results.daily_result import DailyResult, ManualResult, ResultState, parse_half

pytestmark = pytest.mark.unit


class TestDailyResult:
    """Tests for jodi derivation and declared-ness."""

    def test_jodi_rederived_from_pannas(self):
        result = DailyResult(opening_panna="123", closing_panna="559", jodi="99")
        assert result.jodi == "69"

    @pytest.mark.parametrize("opening,closing", [
        ("123", "550"), ("000", "999"), ("789", "146"), ("111", "222"),
    ])
    def test_jodi_is_ank_pair(self, opening, closing):
        result = DailyResult(opening_panna=opening, closing_panna=closing, jodi="**")
        expected = f"{sum(map(int, opening)) % 10}{sum(map(int, closing)) % 10}"
        assert result.jodi == expected

    def test_partial_keeps_raw_jodi(self):
        result = DailyResult(opening_panna="345", jodi="2*")
        assert result.jodi == "2*"
        assert result.state == ResultState.PARTIALLY_DECLARED

    def test_states(self):
        assert DailyResult().state == ResultState.UNDECLARED
        assert DailyResult(opening_panna="123", closing_panna="550").state == ResultState.FULLY_DECLARED
        assert DailyResult.closed().state == ResultState.CLOSED

    def test_is_declared_by_segment(self):
        result = DailyResult(opening_panna="123")
        assert result.is_declared(MarketSegment.OPEN)
        assert not result.is_declared(MarketSegment.CLOSE)
        assert not result.is_declared(MarketSegment.BOTH)

    def test_closed_day_never_declared(self):
        result = DailyResult(opening_panna="123", closing_panna="550", is_closed=True)
        for segment in MarketSegment:
            assert not result.is_declared(segment)

    def test_panna_for(self):
        result = DailyResult(opening_panna="123", closing_panna="550")
        assert result.panna_for(MarketSegment.OPEN) == "123"
        assert result.panna_for(MarketSegment.CLOSE) == "550"

    def test_to_dict(self):
        result = DailyResult(opening_panna="123", closing_panna="550", result_date=date(2024, 1, 10))
        data = result.to_dict()
        assert data["jodi"] == "60"
        assert data["result_date"] == "2024-01-10"


class TestParseHalf:
    def test_valid(self):
        assert parse_half("6-123", "first_half") == ("6", "123")

    def test_blank(self):
        assert parse_half(None, "first_half") is None
        assert parse_half("  ", "first_half") is None

    @pytest.mark.parametrize("value", ["6123", "6-12", "a-123", "66-123", "6-1234"])
    def test_malformed(self, value):
        with pytest.raises(InvalidRequestError):
            parse_half(value, "first_half")


class TestManualResult:
    """Tests for manual declarations."""

    def test_both_halves(self):
        result = ManualResult(first_half="6-123", second_half="0-550").to_daily_result(date(2024, 1, 10))
        assert result.opening_panna == "123"
        assert result.closing_panna == "550"
        assert result.jodi == "60"
        assert result.source == "manual"

    def test_digit_disagreeing_with_panna_is_rederived(self):
        result = ManualResult(first_half="5-123", second_half="0-550").to_daily_result()
        assert result.jodi == "60"

    def test_first_half_only(self):
        result = ManualResult(first_half="6-123").to_daily_result()
        assert result.opening_panna == "123"
        assert result.closing_panna == "***"
        assert result.jodi == "6*"
        assert result.is_declared(MarketSegment.OPEN)
        assert not result.is_declared(MarketSegment.CLOSE)
        assert not result.is_declared(MarketSegment.BOTH)

    def test_second_half_only(self):
        result = ManualResult(second_half="0-550").to_daily_result()
        assert result.jodi == "*0"
        assert result.is_declared(MarketSegment.CLOSE)

    def test_jodi_only(self):
        result = ManualResult(jodi="47").to_daily_result()
        assert result.jodi == "47"
        assert result.is_declared(MarketSegment.BOTH)
        assert not result.is_declared(MarketSegment.OPEN)

    def test_empty_rejected(self):
        with pytest.raises(InvalidRequestError):
            ManualResult()

    @pytest.mark.parametrize("kwargs", [
        {"first_half": "123"},
        {"second_half": "0-55"},
        {"jodi": "4"},
        {"jodi": "4a"},
    ])
    def test_malformed_rejected(self, kwargs):
        with pytest.raises(InvalidRequestError):
            ManualResult(**kwargs)

    def test_from_pannas(self):
        manual = ManualResult.from_pannas("123", "550")
        assert manual.first_half == "6-123"
        assert manual.second_half == "0-550"

    def test_from_pannas_open_only(self):
        manual = ManualResult.from_pannas(open_panna="389")
        assert manual.first_half == "0-389"
        assert manual.second_half is None

    def test_from_pannas_wrong_digit_count(self):
        with pytest.raises(InvalidRequestError):
            ManualResult.from_pannas("12", "550")
