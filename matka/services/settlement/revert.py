"""
MATKA - Revert Engine

Undoes wagers matching a date and/or market filter by refunding their
stakes, and deletes wagers that were already reverted.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matka.core.config import settings
from matka.core.database import DatabaseManager, chunked, get_database_manager
from matka.core.exceptions import BatchCommitError, InvalidRequestError
from matka.core.timeutils import optional_window, utcnow
from matka.models.models import (
    Balance,
    LedgerDirection,
    LedgerTransaction,
    MarketFamily,
    Wager,
    WagerStatus,
)
from matka.services.identity import ProfileDirectory

logger = logging.getLogger(__name__)


@dataclass
class RevertedWager:
    wager_id: str
    owner_id: str
    username: str
    market_id: str
    bet_type: str
    stake: Decimal
    previous_status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wager_id": self.wager_id,
            "owner_id": self.owner_id,
            "username": self.username,
            "market_id": self.market_id,
            "bet_type": self.bet_type,
            "stake": str(self.stake),
            "previous_status": self.previous_status,
        }


@dataclass
class RevertSummary:
    """Outcome of revert_by_criteria; refunded is 0 on a repeated run."""
    date: Optional[str]
    market_id: Optional[str]
    refunded: Decimal = Decimal("0")
    reverted: List[RevertedWager] = field(default_factory=list)
    owners_credited: int = 0
    failed_owners: List[str] = field(default_factory=list)
    committed_chunks: int = 0
    total_chunks: int = 0

    @property
    def bid_ids(self) -> List[str]:
        return [r.wager_id for r in self.reverted]

    @property
    def message(self) -> str:
        if not self.reverted:
            return "No wagers matched the criteria or all were already reverted."
        return f"Successfully reverted {len(self.reverted)} wagers for {self.owners_credited} users."

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "market_id": self.market_id,
            "refunded": str(self.refunded),
            "bid_ids": self.bid_ids,
            "reverted": [r.to_dict() for r in self.reverted],
            "owners_credited": self.owners_credited,
            "failed_owners": list(self.failed_owners),
            "committed_chunks": self.committed_chunks,
            "total_chunks": self.total_chunks,
            "message": self.message,
        }


@dataclass
class PurgeSummary:
    date: Optional[str]
    market_id: Optional[str]
    deleted_count: int = 0
    committed_chunks: int = 0
    total_chunks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "market_id": self.market_id,
            "deleted_count": self.deleted_count,
            "committed_chunks": self.committed_chunks,
            "total_chunks": self.total_chunks,
        }


@dataclass
class _OwnerBatch:
    owner_id: str
    wagers: List[Wager] = field(default_factory=list)

    @property
    def weight(self) -> int:
        # one status update per wager, plus the balance update and ledger insert
        return len(self.wagers) + 2


class RevertEngine:
    """
    Refunds and purges wagers.

    A wager is reverted through an UPDATE guarded on status != reverted and
    only the stakes of wagers that UPDATE actually changed are refunded, so
    a repeated or concurrent revert never pays twice.
    """

    def __init__(
        self,
        db: DatabaseManager,
        profiles: Optional[ProfileDirectory] = None,
        batch_limit: Optional[int] = None,
    ):
        self.db = db
        self.profiles = profiles or ProfileDirectory(db)
        self.batch_limit = batch_limit or settings.STORE_BATCH_LIMIT

    @staticmethod
    def _filters(date, market_id: Optional[str], family: Optional[MarketFamily]) -> List[Any]:
        if not date and not market_id:
            raise InvalidRequestError("At least one criterion (date or market_id) is required")
        filters: List[Any] = []
        window = optional_window(date)
        if window is not None:
            filters.extend([Wager.created_at >= window.start, Wager.created_at < window.end])
        if market_id:
            filters.append(Wager.market_id == market_id)
        if family is not None:
            filters.append(Wager.family == MarketFamily(family))
        return filters

    # -------------------------------------------------------------------------
    # Revert
    # -------------------------------------------------------------------------

    def _owner_batches(self, wagers: List[Wager]) -> List[_OwnerBatch]:
        """
        Group wagers (sorted by owner) into per-owner batches.

        An owner with more wagers than fit one chunk gets several batches,
        each refunded with its own ledger credit.
        """
        size = max(1, self.batch_limit - 2)
        batches: List[_OwnerBatch] = []
        for wager in wagers:
            last = batches[-1] if batches else None
            if last is None or last.owner_id != wager.owner_id or len(last.wagers) >= size:
                batches.append(_OwnerBatch(wager.owner_id))
            batches[-1].wagers.append(wager)
        return batches

    async def revert_by_criteria(
        self,
        date=None,
        market_id: Optional[str] = None,
        family: Optional[MarketFamily] = None,
    ) -> RevertSummary:
        """
        Refund the stake of every matching wager not yet reverted.

        Pending, won and lost wagers are all refunded their stake; winnings
        already credited are not taken back.

        Raises:
            InvalidRequestError: neither date nor market_id given, or a bad date
            BatchCommitError: a chunk failed to commit
        """
        filters = self._filters(date, market_id, family)
        summary = RevertSummary(date=str(date) if date else None, market_id=market_id)
        logger.info(f"Revert started: date={summary.date or 'All'} market={market_id or 'All'}")

        async with self.db.session() as session:
            result = await session.execute(
                select(Wager)
                .where(*filters, Wager.status != WagerStatus.REVERTED, Wager.stake > 0)
                .order_by(Wager.owner_id, Wager.created_at, Wager.id)
            )
            wagers = list(result.scalars().all())

        if not wagers:
            logger.info("Revert finished: nothing to revert")
            return summary

        batches = self._owner_batches(wagers)
        profiles = await self.profiles.lookup({wager.owner_id for wager in wagers})
        reason = f"Bid Revert - Game: {market_id or 'All'}, Date: {summary.date or 'All'}"

        chunks = chunked(batches, self.batch_limit, weight=lambda b: b.weight)
        summary.total_chunks = len(chunks)
        credited_owners = set()

        for index, chunk in enumerate(chunks):
            try:
                async with self.db.transaction() as session:
                    refunded, reverted, credited, failed = await self._revert_chunk(session, chunk, reason)
            except Exception as e:
                logger.error(f"Revert chunk {index + 1}/{len(chunks)} failed: {e}")
                raise BatchCommitError("revert", index, len(chunks), e) from e

            summary.committed_chunks += 1
            summary.refunded += refunded
            credited_owners.update(credited)
            summary.owners_credited = len(credited_owners)
            for owner in failed:
                if owner not in summary.failed_owners:
                    summary.failed_owners.append(owner)
            for wager in reverted:
                summary.reverted.append(RevertedWager(
                    wager_id=wager.id,
                    owner_id=wager.owner_id,
                    username=profiles[wager.owner_id].username,
                    market_id=wager.market_id,
                    bet_type=wager.bet_type,
                    stake=Decimal(wager.stake),
                    previous_status=WagerStatus(wager.status).value,
                ))

        logger.info(
            f"Revert finished: {len(summary.reverted)} wagers, {summary.refunded} refunded "
            f"to {summary.owners_credited} users, {len(summary.failed_owners)} users failed"
        )
        return summary

    async def _revert_chunk(self, session: AsyncSession, chunk: List[_OwnerBatch], reason: str):
        now = utcnow()
        refunded = Decimal("0")
        reverted: List[Wager] = []
        credited: List[str] = []
        failed: List[str] = []

        for batch in chunk:
            balance_id = (
                await session.execute(
                    select(Balance.id).where(Balance.owner_id == batch.owner_id).with_for_update()
                )
            ).scalar_one_or_none()
            if balance_id is None:
                logger.warning(f"No balance for owner {batch.owner_id}; skipping revert of {len(batch.wagers)} wagers")
                failed.append(batch.owner_id)
                continue

            total = Decimal("0")
            for wager in batch.wagers:
                res = await session.execute(
                    update(Wager)
                    .where(Wager.id == wager.id, Wager.status != WagerStatus.REVERTED)
                    .values(status=WagerStatus.REVERTED, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if res.rowcount == 1:
                    total += Decimal(wager.stake)
                    reverted.append(wager)

            if total <= 0:
                continue

            balance_after = Decimal((
                await session.execute(
                    update(Balance)
                    .where(Balance.id == balance_id)
                    .values(amount=Balance.amount + total, updated_at=now, last_update_reason=reason)
                    .returning(Balance.amount)
                    .execution_options(synchronize_session=False)
                )
            ).scalar_one())

            session.add(LedgerTransaction(
                owner_id=batch.owner_id,
                amount=total,
                direction=LedgerDirection.CREDIT,
                reason=reason,
                balance_before=balance_after - total,
                balance_after=balance_after,
                created_at=now,
            ))
            refunded += total
            credited.append(batch.owner_id)

        return refunded, reverted, credited, failed

    # -------------------------------------------------------------------------
    # Purge
    # -------------------------------------------------------------------------

    async def purge_reverted(
        self,
        date=None,
        market_id: Optional[str] = None,
        family: Optional[MarketFamily] = None,
    ) -> PurgeSummary:
        """
        Delete matching wagers already in reverted status. Moves no money.

        Raises:
            InvalidRequestError: neither date nor market_id given, or a bad date
            BatchCommitError: a chunk failed to commit
        """
        filters = self._filters(date, market_id, family)
        summary = PurgeSummary(date=str(date) if date else None, market_id=market_id)

        async with self.db.session() as session:
            result = await session.execute(
                select(Wager.id).where(*filters, Wager.status == WagerStatus.REVERTED).order_by(Wager.id)
            )
            ids = list(result.scalars().all())

        chunks = chunked(ids, self.batch_limit)
        summary.total_chunks = len(chunks)

        for index, chunk in enumerate(chunks):
            try:
                async with self.db.transaction() as session:
                    res = await session.execute(
                        delete(Wager)
                        .where(Wager.id.in_(chunk), Wager.status == WagerStatus.REVERTED)
                        .execution_options(synchronize_session=False)
                    )
                    deleted = res.rowcount
            except Exception as e:
                logger.error(f"Purge chunk {index + 1}/{len(chunks)} failed: {e}")
                raise BatchCommitError("purge", index, len(chunks), e) from e
            summary.committed_chunks += 1
            summary.deleted_count += deleted

        logger.info(f"Purged {summary.deleted_count} reverted wagers")
        return summary


# =============================================================================
# ENTRY POINTS
# =============================================================================

async def revert_wagers(date=None, market_id: Optional[str] = None, db: Optional[DatabaseManager] = None) -> RevertSummary:
    engine = RevertEngine(db or get_database_manager())
    return await engine.revert_by_criteria(date=date, market_id=market_id)


async def purge_reverted_wagers(date=None, market_id: Optional[str] = None, db: Optional[DatabaseManager] = None) -> PurgeSummary:
    engine = RevertEngine(db or get_database_manager())
    return await engine.purge_reverted(date=date, market_id=market_id)
