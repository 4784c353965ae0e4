"""
MATKA - Wager Classification

The single win/lose rule set shared by settlement and prediction. classify()
is pure; evaluate() adds the skip check and the payout computation.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Dict, Mapping, Optional

from matka.core.config import settings
from matka.models.models import MarketSegment
from matka.services.results.daily_result import DailyResult
from matka.services.settlement.digits import (
    bracket_family,
    digit_sum,
    group_family,
    is_panna,
    parse_composite,
    reverse,
)
from matka.services.settlement.rates import DEFAULT_RATE_KEY

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


# =============================================================================
# BET TYPES
# =============================================================================

class BetType:
    SINGLE_DIGITS = "Single Digits"
    JODI = "Jodi"
    SINGLE_PANA = "Single Pana"
    DOUBLE_PANA = "Double Pana"
    TRIPLE_PANA = "Triple Pana"
    SP_MOTOR = "SP Motor"
    DP_MOTOR = "DP Motor"
    TP_MOTOR = "TP Motor"
    TWO_DIGITS_PANEL = "Two Digits Panel"
    GROUP_JODI = "Group Jodi"
    RED_BRACKET = "Red Bracket"
    HALF_SANGAM_A = "Half Sangam A"
    HALF_SANGAM_B = "Half Sangam B"
    FULL_SANGAM = "Full Sangam"
    ODD_EVEN = "Odd Even"
    PANEL_GROUP = "Panel Group"


# Starline screens submit the singular name.
BET_TYPE_ALIASES: Dict[str, str] = {
    "Single Digit": BetType.SINGLE_DIGITS,
}

# Decided on the whole day's result, whatever segment the wager was placed in.
BOTH_SEGMENT_TYPES = frozenset({
    BetType.JODI,
    BetType.TWO_DIGITS_PANEL,
    BetType.GROUP_JODI,
    BetType.RED_BRACKET,
    BetType.HALF_SANGAM_A,
    BetType.HALF_SANGAM_B,
    BetType.FULL_SANGAM,
    BetType.PANEL_GROUP,
})

# Need both concrete pannas, a bare jodi is not enough.
PANNA_PAIR_TYPES = frozenset({
    BetType.TWO_DIGITS_PANEL,
    BetType.HALF_SANGAM_A,
    BetType.HALF_SANGAM_B,
    BetType.FULL_SANGAM,
    BetType.PANEL_GROUP,
})


def canonical_bet_type(name: Optional[str]) -> str:
    name = str(name or "").strip()
    return BET_TYPE_ALIASES.get(name, name)


def required_segment(wager) -> MarketSegment:
    """Segment of the day's result that decides the wager."""
    if canonical_bet_type(wager.bet_type) in BOTH_SEGMENT_TYPES:
        return MarketSegment.BOTH
    return MarketSegment(wager.market_segment)


def is_decidable(wager, result: DailyResult) -> bool:
    """False when the result half the wager depends on is not declared."""
    if not result.is_declared(required_segment(wager)):
        return False
    if canonical_bet_type(wager.bet_type) in PANNA_PAIR_TYPES:
        return is_panna(result.opening_panna) and is_panna(result.closing_panna)
    return True


# =============================================================================
# RULES
# =============================================================================

def _segment_panna(wager, result: DailyResult) -> str:
    return result.panna_for(MarketSegment(wager.market_segment))


def _single_digit(wager, answer: str, result: DailyResult) -> bool:
    return str(digit_sum(_segment_panna(wager, result))) == answer


def _jodi(wager, answer: str, result: DailyResult) -> bool:
    return result.jodi == answer


def _exact_pana(wager, answer: str, result: DailyResult) -> bool:
    return _segment_panna(wager, result) == answer


def _double_pana(wager, answer: str, result: DailyResult) -> bool:
    # double pana answers are stored reversed
    return _segment_panna(wager, result) == reverse(answer)


def _motor(wager, answer: str, result: DailyResult) -> bool:
    return bool(answer) and answer in _segment_panna(wager, result)


def _two_digits_panel(wager, answer: str, result: DailyResult) -> bool:
    return f"{digit_sum(result.opening_panna)}{digit_sum(result.closing_panna)}" == answer


def _group_jodi(wager, answer: str, result: DailyResult) -> bool:
    members = group_family(answer)
    return members is not None and result.jodi in members


def _red_bracket(wager, answer: str, result: DailyResult) -> bool:
    return result.jodi in bracket_family(answer)


def _half_sangam_a(wager, answer: str, result: DailyResult) -> bool:
    fields = parse_composite(answer)
    return (
        fields.get("Pana") == result.opening_panna
        and fields.get("Ank") == str(digit_sum(result.closing_panna))
    )


def _half_sangam_b(wager, answer: str, result: DailyResult) -> bool:
    fields = parse_composite(answer)
    return (
        fields.get("Pana") == result.closing_panna
        and fields.get("Ank") == str(digit_sum(result.opening_panna))
    )


def _full_sangam(wager, answer: str, result: DailyResult) -> bool:
    fields = parse_composite(answer)
    return fields.get("Open") == result.opening_panna and fields.get("Close") == result.closing_panna


def _odd_even(wager, answer: str, result: DailyResult) -> bool:
    is_odd = digit_sum(_segment_panna(wager, result)) % 2 == 1
    choice = answer.lower()
    return (choice == "odd" and is_odd) or (choice == "even" and not is_odd)


def _panel_group(wager, answer: str, result: DailyResult) -> bool:
    return answer in (result.opening_panna, result.closing_panna)


Rule = Callable[[object, str, DailyResult], bool]

RULES: Dict[str, Rule] = {
    BetType.SINGLE_DIGITS: _single_digit,
    BetType.JODI: _jodi,
    BetType.SINGLE_PANA: _exact_pana,
    BetType.DOUBLE_PANA: _double_pana,
    BetType.TRIPLE_PANA: _exact_pana,
    BetType.SP_MOTOR: _motor,
    BetType.DP_MOTOR: _motor,
    BetType.TP_MOTOR: _motor,
    BetType.TWO_DIGITS_PANEL: _two_digits_panel,
    BetType.GROUP_JODI: _group_jodi,
    BetType.RED_BRACKET: _red_bracket,
    BetType.HALF_SANGAM_A: _half_sangam_a,
    BetType.HALF_SANGAM_B: _half_sangam_b,
    BetType.FULL_SANGAM: _full_sangam,
    BetType.ODD_EVEN: _odd_even,
    BetType.PANEL_GROUP: _panel_group,
}


def classify(wager, result: DailyResult) -> bool:
    """
    Whether the wager wins against a declared result.

    Unknown bet types lose. Callers check is_decidable() first; an
    undeclared half never reaches a rule.
    """
    rule = RULES.get(canonical_bet_type(wager.bet_type))
    if rule is None:
        logger.debug(f"Unknown bet type {wager.bet_type!r} on wager {getattr(wager, 'id', None)}, counted as loss")
        return False
    try:
        return rule(wager, str(wager.answer or "").strip(), result)
    except ValueError:
        # a sentinel or garbage panna in a digit sum
        return False


# =============================================================================
# EVALUATION
# =============================================================================

class Verdict(str, Enum):
    WON = "won"
    LOST = "lost"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Outcome:
    verdict: Verdict
    multiplier: Decimal = Decimal("0")
    win_amount: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")

    @property
    def won(self) -> bool:
        return self.verdict == Verdict.WON


def multiplier_for(bet_type: str, rates: Mapping[str, Decimal]) -> Decimal:
    value = rates.get(canonical_bet_type(bet_type))
    if value is None:
        value = rates.get(DEFAULT_RATE_KEY, Decimal("1"))
    return Decimal(value)


def compute_payout(stake, multiplier: Decimal) -> Decimal:
    return (Decimal(stake) * Decimal(multiplier)).quantize(CENT, rounding=ROUND_HALF_UP)


def evaluate(
    wager,
    result: Optional[DailyResult],
    rates: Mapping[str, Decimal],
    return_stake: Optional[bool] = None,
) -> Outcome:
    """
    Decide one wager: skip, loss, or win with its payout.

    Args:
        wager: Anything with bet_type, market_segment, answer and stake
        result: Resolved result of the wager's market day, None if unusable
        rates: Bet type multipliers from RateTableResolver
        return_stake: Also credit the stake back to winners
            (default: RETURN_STAKE_ON_WIN)

    Returns:
        Outcome; credit is the balance increment a win produces
    """
    if result is None or not is_decidable(wager, result):
        return Outcome(Verdict.SKIPPED)
    if not classify(wager, result):
        return Outcome(Verdict.LOST)

    if return_stake is None:
        return_stake = settings.RETURN_STAKE_ON_WIN
    multiplier = multiplier_for(wager.bet_type, rates)
    win_amount = compute_payout(wager.stake, multiplier)
    credit = win_amount + Decimal(wager.stake) if return_stake else win_amount
    return Outcome(Verdict.WON, multiplier=multiplier, win_amount=win_amount, credit=credit)
