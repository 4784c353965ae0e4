"""
MATKA - Winner Prediction

Dry run of a declaration: pending wagers are classified against a
hypothetical result with the same evaluate() the settlement engine uses,
and nothing is written.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from matka.core.database import DatabaseManager, get_database_manager
from matka.core.exceptions import InvalidRequestError
from matka.core.timeutils import DateWindow
from matka.models.models import MarketFamily, MarketSegment, Wager, WagerStatus
from matka.services.identity import ProfileDirectory
from matka.services.results.daily_result import DailyResult, ManualResult
from matka.services.settlement.classifier import Verdict, evaluate
from matka.services.settlement.rates import RateTableResolver

logger = logging.getLogger(__name__)


@dataclass
class PredictedWinner:
    wager_id: str
    owner_id: str
    username: str
    bet_type: str
    market_segment: str
    answer: str
    stake: Decimal
    computed_payout: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wager_id": self.wager_id,
            "owner_id": self.owner_id,
            "username": self.username,
            "bet_type": self.bet_type,
            "market_segment": self.market_segment,
            "answer": self.answer,
            "stake": str(self.stake),
            "computed_payout": str(self.computed_payout),
        }


class PredictionEngine:
    """Read-only twin of SettlementEngine for a single market and date."""

    def __init__(
        self,
        db: DatabaseManager,
        rates: Optional[RateTableResolver] = None,
        profiles: Optional[ProfileDirectory] = None,
        return_stake: Optional[bool] = None,
    ):
        self.db = db
        self.rates = rates or RateTableResolver(db)
        self.profiles = profiles or ProfileDirectory(db)
        self.return_stake = return_stake

    async def predict(
        self,
        market_id: str,
        date,
        hypothetical,
        family: MarketFamily = MarketFamily.MAIN,
        segment: Optional[MarketSegment] = None,
    ) -> List[PredictedWinner]:
        """
        Winners the hypothetical result would produce.

        Args:
            market_id: Market to preview
            date: IST date of the wagers (YYYY-MM-DD)
            hypothetical: ManualResult or DailyResult to classify against
            family: Market family
            segment: Only consider wagers placed in this segment

        Returns:
            Predicted winners with the payout settlement would compute
        """
        if not market_id:
            raise InvalidRequestError("'market_id' is required")
        window = DateWindow.for_dates(date)
        if isinstance(hypothetical, ManualResult):
            result = hypothetical.to_daily_result(window.first_day)
        elif isinstance(hypothetical, DailyResult):
            result = hypothetical
        else:
            raise InvalidRequestError("A hypothetical result is required")
        family = MarketFamily(family)

        rates = await self.rates.resolve(family)

        stmt = (
            select(Wager)
            .where(
                Wager.status == WagerStatus.PENDING,
                Wager.family == family,
                Wager.market_id == market_id,
                Wager.created_at >= window.start,
                Wager.created_at < window.end,
            )
            .order_by(Wager.created_at, Wager.id)
        )
        if segment is not None:
            stmt = stmt.where(Wager.market_segment == MarketSegment(segment))

        async with self.db.session() as session:
            wagers = list((await session.execute(stmt)).scalars().all())

        winners = []
        for wager in wagers:
            outcome = evaluate(wager, result, rates, return_stake=self.return_stake)
            if outcome.verdict == Verdict.WON:
                winners.append((wager, outcome))

        profiles = await self.profiles.lookup(w.owner_id for w, _ in winners)
        logger.info(f"Prediction for {market_id} on {window.describe()}: {len(winners)} of {len(wagers)} wagers win")

        return [
            PredictedWinner(
                wager_id=wager.id,
                owner_id=wager.owner_id,
                username=profiles[wager.owner_id].username,
                bet_type=wager.bet_type,
                market_segment=MarketSegment(wager.market_segment).value,
                answer=wager.answer,
                stake=Decimal(wager.stake),
                computed_payout=outcome.win_amount,
            )
            for wager, outcome in winners
        ]


async def predict_winners(
    market_id: str,
    date,
    hypothetical,
    family: MarketFamily = MarketFamily.MAIN,
    segment: Optional[MarketSegment] = None,
    db: Optional[DatabaseManager] = None,
) -> List[PredictedWinner]:
    engine = PredictionEngine(db or get_database_manager())
    return await engine.predict(market_id, date, hypothetical, family=family, segment=segment)
