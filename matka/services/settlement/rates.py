"""
MATKA - Rate Table Resolver

Loads the persisted game rates of a market family and normalizes them into
a bet type -> payout multiplier mapping.
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select

from matka.core.database import DatabaseManager
from matka.core.exceptions import RateConfigurationError
from matka.models.models import GameRate, MarketFamily

logger = logging.getLogger(__name__)

DEFAULT_RATE_KEY = "default"
DEFAULT_MULTIPLIER = Decimal("1")

# Candidate rate keys per bet type, in order of preference.
RATE_KEYS: Dict[str, List[str]] = {
    "Single Digits": ["single-digits", "single-digit"],
    "Jodi": ["jodi-digit", "jodi"],
    "Single Pana": ["single-pana"],
    "Double Pana": ["double-pana"],
    "Triple Pana": ["triple-pana"],
    "SP Motor": ["sp-motor", "single-pana"],
    "DP Motor": ["dp-motor", "double-pana"],
    "TP Motor": ["tp-motor", "triple-pana"],
    "Two Digits Panel": ["two-digits-panel", "jodi-digit"],
    "Group Jodi": ["group-jodi", "jodi-digit"],
    "Red Bracket": ["red-bracket", "jodi-digit"],
    "Half Sangam A": ["half-sangam-a", "half-sangam"],
    "Half Sangam B": ["half-sangam-b", "half-sangam"],
    "Full Sangam": ["full-sangam"],
    "Odd Even": ["odd-even", "single-digits", "single-digit"],
    "Panel Group": ["panel-group", "single-pana"],
}


def multiplier_of(rate: GameRate) -> Optional[Decimal]:
    """
    Payout multiplier of one rate row.

    min_value is the reference stake and max_value the payout for it. A row
    without a usable reference stake is a flat multiplier.
    """
    if rate.max_value is None:
        return None
    payout = Decimal(rate.max_value)
    if rate.min_value is None or Decimal(rate.min_value) == 0:
        return payout
    return payout / Decimal(rate.min_value)


def normalize_rates(rows: Iterable[GameRate]) -> Dict[str, Decimal]:
    """
    Build the bet type -> multiplier mapping from raw rate rows.

    Every known bet type takes the first of its candidate keys that has a
    usable row; bet types without one fall back to the "default" entry (1).
    """
    by_key: Dict[str, Decimal] = {}
    for row in rows:
        value = multiplier_of(row)
        if value is None:
            logger.warning(f"Ignoring rate '{row.rate_key}' without a payout value")
            continue
        by_key[row.rate_key.strip().lower()] = value

    rates: Dict[str, Decimal] = {DEFAULT_RATE_KEY: DEFAULT_MULTIPLIER}
    for bet_type, keys in RATE_KEYS.items():
        for key in keys:
            if key in by_key:
                rates[bet_type] = by_key[key]
                break
    return rates


class RateTableResolver:
    """Read-only access to the rate tables of each market family."""

    def __init__(self, db: DatabaseManager):
        self.db = db

    async def resolve(self, family: MarketFamily = MarketFamily.MAIN) -> Dict[str, Decimal]:
        """
        Resolve the multipliers of a family.

        Returns:
            Mapping of bet type to multiplier, always holding "default": 1

        Raises:
            RateConfigurationError: the family has no rate rows at all
        """
        family = MarketFamily(family)
        async with self.db.session() as session:
            result = await session.execute(select(GameRate).where(GameRate.family == family))
            rows = list(result.scalars().all())

        if not rows:
            raise RateConfigurationError(family.value)

        rates = normalize_rates(rows)
        if len(rates) == 1:
            raise RateConfigurationError(
                family.value,
                f"Game rates for family '{family.value}' have no usable rate keys",
            )
        logger.debug(f"Resolved {len(rates) - 1} bet type rates for {family.value}")
        return rates
