"""
MATKA - Settlement
Rates, wager classification, settlement, revert and prediction.
"""

from matka.services.settlement.classifier import BetType, Outcome, Verdict, classify, evaluate
from matka.services.settlement.digits import digit_sum, family_of, parse_composite, reverse
from matka.services.settlement.rates import RateTableResolver, normalize_rates
from matka.services.settlement.engine import SettlementEngine, SettlementSummary
from matka.services.settlement.revert import PurgeSummary, RevertEngine, RevertSummary
from matka.services.settlement.prediction import PredictedWinner, PredictionEngine

__all__ = [
    "BetType",
    "Outcome",
    "Verdict",
    "classify",
    "evaluate",
    "digit_sum",
    "family_of",
    "parse_composite",
    "reverse",
    "RateTableResolver",
    "normalize_rates",
    "SettlementEngine",
    "SettlementSummary",
    "PurgeSummary",
    "RevertEngine",
    "RevertSummary",
    "PredictedWinner",
    "PredictionEngine",
]
