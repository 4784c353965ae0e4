"""
Unit tests for rate normalisation and the rate table resolver.
"""

from decimal import Decimal

import pytest

from matka.core.exceptions import RateConfigurationError
from matka.models.models import GameRate, MarketFamily
from matka.services.settlement.rates import RateTableResolver, multiplier_of, normalize_rates


def rate(key, unit, payout, family=MarketFamily.MAIN):
    return GameRate(
        family=family,
        rate_key=key,
        min_value=Decimal(unit) if unit is not None else None,
        max_value=Decimal(payout) if payout is not None else None,
    )


@pytest.mark.unit
class TestNormalizeRates:
    """Tests for normalize_rates()."""

    def test_min_max_ratio(self):
        assert multiplier_of(rate("single-digits", "10", "95")) == Decimal("9.5")

    def test_flat_rate(self):
        assert multiplier_of(rate("jodi-digit", None, "90")) == Decimal("90")
        assert multiplier_of(rate("jodi-digit", "0", "90")) == Decimal("90")

    def test_missing_payout(self):
        assert multiplier_of(rate("jodi-digit", "10", None)) is None

    def test_default_always_present(self):
        rates = normalize_rates([rate("single-digits", "10", "95")])
        assert rates["default"] == Decimal("1")
        assert rates["Single Digits"] == Decimal("9.5")

    def test_fallback_keys(self):
        rates = normalize_rates([
            rate("jodi-digit", "10", "950"),
            rate("single-pana", "10", "1400"),
            rate("half-sangam", "10", "10000"),
        ])
        assert rates["Jodi"] == Decimal("95")
        assert rates["Group Jodi"] == Decimal("95")
        assert rates["Red Bracket"] == Decimal("95")
        assert rates["Two Digits Panel"] == Decimal("95")
        assert rates["SP Motor"] == Decimal("140")
        assert rates["Half Sangam A"] == Decimal("1000")
        assert rates["Half Sangam B"] == Decimal("1000")
        assert "DP Motor" not in rates

    def test_specific_key_preferred(self):
        rates = normalize_rates([
            rate("single-pana", "10", "1400"),
            rate("sp-motor", "10", "1500"),
        ])
        assert rates["SP Motor"] == Decimal("150")

    def test_starline_singular_key(self):
        rates = normalize_rates([rate("single-digit", "10", "90", MarketFamily.STARLINE)])
        assert rates["Single Digits"] == Decimal("9")

    def test_unknown_keys_ignored(self):
        rates = normalize_rates([rate("mystery", "1", "5"), rate("Single-Digits ", "10", "95")])
        assert rates == {
            "default": Decimal("1"),
            "Single Digits": Decimal("9.5"),
            "Odd Even": Decimal("9.5"),
        }


class TestRateTableResolver:
    """Tests for RateTableResolver against the database."""

    @pytest.mark.asyncio
    async def test_empty_family_is_fatal(self, db, store):
        await store.add_rates(MarketFamily.MAIN)
        with pytest.raises(RateConfigurationError) as exc:
            await RateTableResolver(db).resolve(MarketFamily.STARLINE)
        assert exc.value.family == "starline"

    @pytest.mark.asyncio
    async def test_resolves_family(self, db, store):
        await store.add_rates(MarketFamily.MAIN)
        await store.add_rates(MarketFamily.JACKPOT, {"jodi-digit": ("10", "900")})

        main = await RateTableResolver(db).resolve(MarketFamily.MAIN)
        jackpot = await RateTableResolver(db).resolve("jackpot")

        assert main["Single Digits"] == Decimal("9.5")
        assert main["Full Sangam"] == Decimal("10000")
        assert jackpot["Jodi"] == Decimal("90")
        assert "Single Digits" not in jackpot

    @pytest.mark.asyncio
    async def test_only_unusable_rows_is_fatal(self, db, store):
        await store.add_rates(MarketFamily.MAIN, {"mystery": ("1", "2")})
        with pytest.raises(RateConfigurationError):
            await RateTableResolver(db).resolve(MarketFamily.MAIN)
