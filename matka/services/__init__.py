"""
MATKA - Services Module
Result sources, settlement, revert and prediction engines and their collaborators.
"""

from matka.services.identity import Profile, ProfileDirectory
from matka.services.notifications import PushMessage, PushNotifier
from matka.services.settlement.engine import SettlementEngine, SettlementSummary, settle_results
from matka.services.settlement.prediction import PredictionEngine, predict_winners
from matka.services.settlement.revert import RevertEngine, purge_reverted_wagers, revert_wagers

__all__ = [
    # Collaborators
    "Profile",
    "ProfileDirectory",
    "PushMessage",
    "PushNotifier",

    # Engines
    "SettlementEngine",
    "SettlementSummary",
    "settle_results",
    "PredictionEngine",
    "predict_winners",
    "RevertEngine",
    "revert_wagers",
    "purge_reverted_wagers",
]
