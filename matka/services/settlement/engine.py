"""
MATKA - Settlement Engine

Declares results: every pending wager of the requested markets and dates is
classified against the day's result, and winners are credited.

Each chunk of writes is one database transaction. Inside it a wager only
changes state through a guarded UPDATE (status must still be pending), and
money only moves when that UPDATE hit the row, so a second run over the
same window is a no-op.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from matka.core.config import settings
from matka.core.database import DatabaseManager, chunked, get_database_manager
from matka.core.exceptions import BatchCommitError, InvalidRequestError
from matka.core.timeutils import DateWindow, ist_date_of, utcnow
from matka.models.models import (
    Balance,
    LedgerDirection,
    LedgerTransaction,
    MarketFamily,
    Wager,
    WagerStatus,
)
from matka.services.identity import ProfileDirectory
from matka.services.notifications import PushNotifier
from matka.services.results.chart_scraper import ChartScraper
from matka.services.results.daily_result import DailyResult, ManualResult
from matka.services.results.providers import ResultSource, provider_for
from matka.services.settlement.classifier import Outcome, Verdict, evaluate
from matka.services.settlement.rates import RateTableResolver

logger = logging.getLogger(__name__)

# mutations per wager inside a chunk
WINNER_WEIGHT = 3
LOSER_WEIGHT = 1


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class SettledWinner:
    """A wager credited by a settlement run."""
    wager_id: str
    owner_id: str
    market_id: str
    market_title: Optional[str]
    bet_type: str
    answer: str
    stake: Decimal
    multiplier: Decimal
    win_amount: Decimal
    credit: Decimal
    balance_after: Decimal
    device_token: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wager_id": self.wager_id,
            "owner_id": self.owner_id,
            "market_id": self.market_id,
            "market_title": self.market_title,
            "bet_type": self.bet_type,
            "answer": self.answer,
            "stake": str(self.stake),
            "multiplier": str(self.multiplier),
            "win_amount": str(self.win_amount),
            "credit": str(self.credit),
            "balance_after": str(self.balance_after),
        }


@dataclass
class WagerFailure:
    """A wager whose write was refused inside its chunk."""
    wager_id: str
    owner_id: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"wager_id": self.wager_id, "owner_id": self.owner_id, "reason": self.reason}


@dataclass
class SettlementSummary:
    """
    Outcome of one settlement run.

    total_submissions == processed + skipped + failed always holds.
    """
    family: str
    window: str
    source: str
    market_id: Optional[str] = None
    total_submissions: int = 0
    won: int = 0
    lost: int = 0
    skipped: int = 0
    winners: List[SettledWinner] = field(default_factory=list)
    failures: List[WagerFailure] = field(default_factory=list)
    skipped_markets: List[str] = field(default_factory=list)
    committed_chunks: int = 0
    total_chunks: int = 0
    notifications: Dict[str, int] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return self.won + self.lost

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def total_credited(self) -> Decimal:
        return sum((w.credit for w in self.winners), Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "family": self.family,
            "window": self.window,
            "source": self.source,
            "market_id": self.market_id,
            "total_submissions": self.total_submissions,
            "processed": self.processed,
            "won": self.won,
            "lost": self.lost,
            "skipped": self.skipped,
            "failed": self.failed,
            "total_credited": str(self.total_credited),
            "winners": [w.to_dict() for w in self.winners],
            "failures": [f.to_dict() for f in self.failures],
            "skipped_markets": list(self.skipped_markets),
            "committed_chunks": self.committed_chunks,
            "total_chunks": self.total_chunks,
            "notifications": dict(self.notifications),
        }


@dataclass
class _Decision:
    wager: Wager
    outcome: Outcome

    @property
    def weight(self) -> int:
        return WINNER_WEIGHT if self.outcome.won else LOSER_WEIGHT


@dataclass
class _ChunkResult:
    won: int = 0
    lost: int = 0
    winners: List[SettledWinner] = field(default_factory=list)
    failures: List[WagerFailure] = field(default_factory=list)


# =============================================================================
# ENGINE
# =============================================================================

class SettlementEngine:
    """
    Settles pending wagers against declared or scraped results.

    Collaborators are passed in so tests can substitute the scraper and the
    notifier; nothing is kept between runs.
    """

    def __init__(
        self,
        db: DatabaseManager,
        rates: Optional[RateTableResolver] = None,
        scraper: Optional[ChartScraper] = None,
        notifier: Optional[PushNotifier] = None,
        profiles: Optional[ProfileDirectory] = None,
        batch_limit: Optional[int] = None,
        resolve_concurrency: Optional[int] = None,
        return_stake: Optional[bool] = None,
    ):
        self.db = db
        self.rates = rates or RateTableResolver(db)
        self.scraper = scraper
        self.notifier = notifier
        self.profiles = profiles or ProfileDirectory(db)
        self.batch_limit = batch_limit or settings.STORE_BATCH_LIMIT
        self.resolve_concurrency = resolve_concurrency or settings.RESOLVE_CONCURRENCY
        self.return_stake = settings.RETURN_STAKE_ON_WIN if return_stake is None else return_stake

    async def settle(
        self,
        window: DateWindow,
        source: ResultSource,
        market_id: Optional[str] = None,
        family: MarketFamily = MarketFamily.MAIN,
    ) -> SettlementSummary:
        """
        Settle every pending wager of the window.

        Args:
            window: IST dates whose wagers are settled
            source: Scrape, or manual overrides keyed by market id
            market_id: Restrict the run to one market
            family: Market family (also selects the rate table)

        Returns:
            SettlementSummary

        Raises:
            RateConfigurationError: the family has no rates; nothing was read or written
            BatchCommitError: a chunk failed to commit
        """
        family = MarketFamily(family)
        summary = SettlementSummary(
            family=family.value,
            window=window.describe(),
            source=source.describe(),
            market_id=market_id,
        )
        logger.info(f"Settlement started: {family.value} {summary.window} ({summary.source})")

        rates = await self.rates.resolve(family)

        provider = provider_for(source, self.scraper)
        try:
            wagers = await self._load_pending(window, family, market_id, provider.markets_in_scope())
            summary.total_submissions = len(wagers)
            if not wagers:
                logger.info("Settlement finished: no pending wagers")
                return summary

            groups: Dict[Tuple[str, date], List[Wager]] = defaultdict(list)
            for wager in wagers:
                groups[(wager.market_id, ist_date_of(wager.created_at))].append(wager)

            results = await self._resolve_results(provider, list(groups))
        finally:
            await provider.close()

        decisions: List[_Decision] = []
        for key, group in groups.items():
            result = results.get(key)
            if result is None:
                logger.warning(f"No usable result for {key[0]} on {key[1]}; skipping {len(group)} wagers")
                summary.skipped += len(group)
                summary.skipped_markets.append(f"{key[0]}@{key[1].isoformat()}")
                continue
            for wager in group:
                outcome = evaluate(wager, result, rates, return_stake=self.return_stake)
                logger.debug(f"{wager!r} -> {outcome.verdict.value}")
                if outcome.verdict == Verdict.SKIPPED:
                    summary.skipped += 1
                else:
                    decisions.append(_Decision(wager, outcome))

        await self._commit(decisions, summary)

        if summary.winners:
            summary.notifications = await self._notify(summary.winners)

        logger.info(
            f"Settlement finished: {summary.total_submissions} wagers, {summary.won} won, "
            f"{summary.lost} lost, {summary.skipped} skipped, {summary.failed} failed"
        )
        return summary

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def _load_pending(
        self,
        window: DateWindow,
        family: MarketFamily,
        market_id: Optional[str],
        markets: Optional[Sequence[str]],
    ) -> List[Wager]:
        start, end = window.bounds()
        stmt = (
            select(Wager)
            .where(
                Wager.status == WagerStatus.PENDING,
                Wager.family == family,
                Wager.created_at >= start,
                Wager.created_at < end,
            )
            .order_by(Wager.created_at, Wager.id)
        )
        if market_id:
            stmt = stmt.where(Wager.market_id == market_id)
        if markets is not None:
            stmt = stmt.where(Wager.market_id.in_(list(markets)))

        async with self.db.session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _resolve_results(self, provider, keys: List[Tuple[str, date]]) -> Dict[Tuple[str, date], Optional[DailyResult]]:
        semaphore = asyncio.Semaphore(self.resolve_concurrency)

        async def resolve(key: Tuple[str, date]) -> Optional[DailyResult]:
            async with semaphore:
                return await provider.resolve(*key)

        resolved = await asyncio.gather(*(resolve(key) for key in keys))
        return dict(zip(keys, resolved))

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _commit(self, decisions: List[_Decision], summary: SettlementSummary) -> None:
        chunks = chunked(decisions, self.batch_limit, weight=lambda d: d.weight)
        summary.total_chunks = len(chunks)

        for index, chunk in enumerate(chunks):
            try:
                async with self.db.transaction() as session:
                    outcome = await self._apply_chunk(session, chunk)
            except Exception as e:
                logger.error(f"Settlement chunk {index + 1}/{len(chunks)} failed: {e}")
                raise BatchCommitError("settlement", index, len(chunks), e) from e

            summary.committed_chunks += 1
            summary.won += outcome.won
            summary.lost += outcome.lost
            summary.winners.extend(outcome.winners)
            summary.failures.extend(outcome.failures)

    async def _apply_chunk(self, session: AsyncSession, chunk: List[_Decision]) -> _ChunkResult:
        result = _ChunkResult()
        now = utcnow()

        for decision in chunk:
            wager = decision.wager
            if decision.outcome.won:
                winner = await self._credit_winner(session, wager, decision.outcome, now, result)
                if winner is not None:
                    result.won += 1
                    result.winners.append(winner)
            else:
                changed = await self._mark(session, wager.id, WagerStatus.LOST, now)
                if changed:
                    result.lost += 1
                else:
                    result.failures.append(WagerFailure(wager.id, wager.owner_id, "wager is no longer pending"))
        return result

    async def _mark(self, session: AsyncSession, wager_id: str, status: WagerStatus, now, win_amount=None) -> bool:
        values: Dict[str, Any] = {"status": status, "settled_at": now, "updated_at": now}
        if win_amount is not None:
            values["win_amount"] = win_amount
        res = await session.execute(
            update(Wager)
            .where(Wager.id == wager_id, Wager.status == WagerStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount == 1

    async def _credit_winner(
        self,
        session: AsyncSession,
        wager: Wager,
        outcome: Outcome,
        now,
        result: _ChunkResult,
    ) -> Optional[SettledWinner]:
        balance_id = (
            await session.execute(
                select(Balance.id).where(Balance.owner_id == wager.owner_id).with_for_update()
            )
        ).scalar_one_or_none()
        if balance_id is None:
            logger.warning(f"No balance for owner {wager.owner_id}; wager {wager.id} left pending")
            result.failures.append(WagerFailure(wager.id, wager.owner_id, "balance not found"))
            return None

        if not await self._mark(session, wager.id, WagerStatus.WON, now, win_amount=outcome.win_amount):
            result.failures.append(WagerFailure(wager.id, wager.owner_id, "wager is no longer pending"))
            return None

        reason = f"Game Win: {wager.bet_type} on {wager.market_title or wager.market_id}"
        balance_after = (
            await session.execute(
                update(Balance)
                .where(Balance.id == balance_id)
                .values(amount=Balance.amount + outcome.credit, updated_at=now, last_update_reason=reason)
                .returning(Balance.amount)
                .execution_options(synchronize_session=False)
            )
        ).scalar_one()
        balance_after = Decimal(balance_after)

        session.add(LedgerTransaction(
            owner_id=wager.owner_id,
            amount=outcome.credit,
            direction=LedgerDirection.CREDIT,
            reason=reason,
            balance_before=balance_after - outcome.credit,
            balance_after=balance_after,
            reference_id=wager.id,
            created_at=now,
        ))

        return SettledWinner(
            wager_id=wager.id,
            owner_id=wager.owner_id,
            market_id=wager.market_id,
            market_title=wager.market_title,
            bet_type=wager.bet_type,
            answer=wager.answer,
            stake=Decimal(wager.stake),
            multiplier=outcome.multiplier,
            win_amount=outcome.win_amount,
            credit=outcome.credit,
            balance_after=balance_after,
        )

    async def _notify(self, winners: List[SettledWinner]) -> Dict[str, int]:
        """Push a message to every winner. Runs after commit, so it never raises."""
        if self.notifier is None or not self.notifier.is_configured():
            return {}
        try:
            profiles = await self.profiles.lookup(w.owner_id for w in winners)
            for winner in winners:
                winner.device_token = profiles[winner.owner_id].device_token
            return await self.notifier.notify_winners(winners)
        except Exception as e:
            logger.error(f"Winner notifications failed after settlement: {e!r}")
            return {}


# =============================================================================
# ENTRY POINTS
# =============================================================================

DateRange = Union[str, date, DateWindow, Tuple[Any, Any]]


def as_window(date_range: DateRange) -> DateWindow:
    if isinstance(date_range, DateWindow):
        return date_range
    if isinstance(date_range, (tuple, list)):
        if len(date_range) != 2:
            raise InvalidRequestError("A date range needs a start and an end date")
        return DateWindow.for_dates(date_range[0], date_range[1])
    return DateWindow.for_dates(date_range)


async def settle_results(
    market_id: Optional[str],
    date_range: DateRange,
    manual_result: Union[None, ManualResult, Mapping[str, ManualResult]] = None,
    family: MarketFamily = MarketFamily.MAIN,
    db: Optional[DatabaseManager] = None,
    notifier: Optional[PushNotifier] = None,
) -> SettlementSummary:
    """
    Settle the window from manual results when given, else from the charts.

    A single ManualResult needs a market_id; a mapping of market id to
    ManualResult overrides several markets at once.
    """
    window = as_window(date_range)
    if manual_result is None:
        source = ResultSource.scrape()
    elif isinstance(manual_result, ManualResult):
        if not market_id:
            raise InvalidRequestError("'market_id' is required with a manual result")
        source = ResultSource.override({market_id: manual_result})
    else:
        source = ResultSource.override(manual_result)

    engine = SettlementEngine(db or get_database_manager(), notifier=notifier)
    return await engine.settle(window, source, market_id=market_id, family=family)


async def declare_result(
    market_id: str,
    result_date,
    open_panna: Optional[str] = None,
    close_panna: Optional[str] = None,
    family: MarketFamily = MarketFamily.MAIN,
    db: Optional[DatabaseManager] = None,
    notifier: Optional[PushNotifier] = None,
) -> SettlementSummary:
    """Declare a market's pannas for one date and settle its wagers."""
    if not market_id:
        raise InvalidRequestError("'market_id' is required")
    manual = ManualResult.from_pannas(open_panna, close_panna)
    return await settle_results(market_id, result_date, manual, family=family, db=db, notifier=notifier)


async def declare_jackpot_result(
    market_id: str,
    result_date,
    jodi: str,
    db: Optional[DatabaseManager] = None,
    notifier: Optional[PushNotifier] = None,
) -> SettlementSummary:
    """Declare a jackpot market's jodi for one date and settle its wagers."""
    if not market_id:
        raise InvalidRequestError("'market_id' is required")
    manual = ManualResult(jodi=jodi)
    return await settle_results(market_id, result_date, manual, family=MarketFamily.JACKPOT, db=db, notifier=notifier)
