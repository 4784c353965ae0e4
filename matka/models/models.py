"""
MATKA - Database Models

SQLAlchemy 2.0 models for wagers, balances, the ledger and rate tables.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    DateTime, Enum, Index, Numeric, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from matka.core.database import Base
from matka.core.timeutils import utcnow


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class MarketFamily(str, PyEnum):
    MAIN = "main"
    STARLINE = "starline"
    JACKPOT = "jackpot"


class WagerStatus(str, PyEnum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    REVERTED = "reverted"


class MarketSegment(str, PyEnum):
    OPEN = "open"
    CLOSE = "close"
    BOTH = "both"


class LedgerDirection(str, PyEnum):
    CREDIT = "credit"
    DEBIT = "debit"


def _enum(enum_cls):
    return Enum(enum_cls, values_callable=lambda obj: [e.value for e in obj], native_enum=False, length=16)


# =============================================================================
# WAGERS
# =============================================================================

class Wager(Base):
    """A single bet submission."""
    __tablename__ = "wagers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    family: Mapped[MarketFamily] = mapped_column(_enum(MarketFamily), default=MarketFamily.MAIN, nullable=False)
    market_id: Mapped[str] = mapped_column(String(128), nullable=False)
    market_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # free text so unknown bet types still load and settle as a loss
    bet_type: Mapped[str] = mapped_column(String(50), nullable=False)
    market_segment: Mapped[MarketSegment] = mapped_column(_enum(MarketSegment), default=MarketSegment.OPEN, nullable=False)
    answer: Mapped[str] = mapped_column(String(255), nullable=False)
    stake: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[WagerStatus] = mapped_column(_enum(WagerStatus), default=WagerStatus.PENDING, nullable=False)
    win_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    settled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_wagers_status_created", "status", "created_at"),
        Index("ix_wagers_market_created", "market_id", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Wager {self.id} {self.market_id} {self.bet_type} "
            f"{self.market_segment} answer={self.answer!r} {self.status}>"
        )


# =============================================================================
# FUNDS
# =============================================================================

class Balance(Base):
    """Wallet balance of one owner; only ever changed by atomic increments."""
    __tablename__ = "balances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=Decimal("0"))
    last_update_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class LedgerTransaction(Base):
    """Immutable audit record, one per balance mutation."""
    __tablename__ = "ledger_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    direction: Mapped[LedgerDirection] = mapped_column(_enum(LedgerDirection), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    reference_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)  # wager id for wins
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.direction == LedgerDirection.CREDIT else -self.amount


# =============================================================================
# SETTINGS & PROFILES
# =============================================================================

class GameRate(Base):
    """
    Payout rate for one rate key of a market family.

    min_value is the reference stake and max_value the payout for it; a row
    without min_value is a flat multiplier.
    """
    __tablename__ = "game_rates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    family: Mapped[MarketFamily] = mapped_column(_enum(MarketFamily), nullable=False)
    rate_key: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    min_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    max_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (UniqueConstraint("family", "rate_key", name="uq_game_rates_family_key"),)


class UserProfile(Base):
    """Display fields of a bettor as known to the identity provider."""
    __tablename__ = "user_profiles"

    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    device_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
