"""
MATKA - Models
"""

from matka.core.database import Base
from matka.models.models import (
    Balance,
    GameRate,
    LedgerDirection,
    LedgerTransaction,
    MarketFamily,
    MarketSegment,
    UserProfile,
    Wager,
    WagerStatus,
)

__all__ = [
    "Base",
    "Balance",
    "GameRate",
    "LedgerDirection",
    "LedgerTransaction",
    "MarketFamily",
    "MarketSegment",
    "UserProfile",
    "Wager",
    "WagerStatus",
]
