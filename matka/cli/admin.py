"""
MATKA - CLI Admin Commands
Command-line interface for result declaration and wager maintenance
"""

import asyncio
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from matka.core.config import get_settings
from matka.core.exceptions import InvalidRequestError, MatkaError
from matka.models.models import MarketFamily, MarketSegment

console = Console()
logger = logging.getLogger(__name__)

FAMILIES = click.Choice([f.value for f in MarketFamily])
SEGMENTS = click.Choice([s.value for s in MarketSegment])


def _setup_logging() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _run(coro_factory):
    """Run an async command body against the global database, closing it afterwards."""
    from matka.core.database import close_db, get_database_manager

    async def run():
        db_manager = get_database_manager()
        try:
            return await coro_factory(db_manager)
        finally:
            await close_db(db_manager)

    try:
        return asyncio.run(run())
    except MatkaError as e:
        console.print(f"[red]✗[/red] {e}")
        sys.exit(1)


def _manual_result(first_half, second_half, open_panna, close_panna, jodi):
    """ManualResult from the command options, or None when none was given."""
    from matka.services.results.daily_result import ManualResult

    if open_panna or close_panna:
        if first_half or second_half or jodi:
            raise click.UsageError("Give either --open-panna/--close-panna or --first-half/--second-half/--jodi, not both")
        return ManualResult.from_pannas(open_panna, close_panna)
    if first_half or second_half or jodi:
        return ManualResult(first_half=first_half, second_half=second_half, jodi=jodi)
    return None


def _manual_result_option(*values):
    """_manual_result() with malformed values reported as usage errors."""
    try:
        return _manual_result(*values)
    except InvalidRequestError as e:
        raise click.UsageError(str(e)) from e


@click.group()
def cli():
    """MATKA - Result declaration and settlement"""
    _setup_logging()


# ============== Database Commands ==============

@cli.command("init-db")
def init_db_command():
    """Create database tables"""
    console.print("[yellow]Initializing database tables...[/yellow]")

    async def body(db_manager):
        from matka.core.database import init_db
        await init_db(db_manager)

    _run(body)
    console.print("[green]✓[/green] Database tables created successfully")


# ============== Settlement Commands ==============

@cli.command()
@click.option("--start-date", required=True, help="First IST date (YYYY-MM-DD)")
@click.option("--end-date", default=None, help="Last IST date, defaults to --start-date")
@click.option("--market", "market_id", default=None, help="Only settle this market")
@click.option("--family", type=FAMILIES, default=MarketFamily.MAIN.value, show_default=True)
@click.option("--first-half", default=None, help="Manual open result, e.g. 6-123")
@click.option("--second-half", default=None, help="Manual close result, e.g. 0-550")
@click.option("--open-panna", default=None, help="Manual opening panna, e.g. 123")
@click.option("--close-panna", default=None, help="Manual closing panna, e.g. 550")
@click.option("--jodi", default=None, help="Manual jodi (jackpot markets)")
@click.option("--notify/--no-notify", default=False, help="Push a message to every winner")
def settle(
    start_date: str,
    end_date: Optional[str],
    market_id: Optional[str],
    family: str,
    first_half: Optional[str],
    second_half: Optional[str],
    open_panna: Optional[str],
    close_panna: Optional[str],
    jodi: Optional[str],
    notify: bool,
):
    """Settle pending wagers from a manual result or the scraped charts"""
    manual = _manual_result_option(first_half, second_half, open_panna, close_panna, jodi)

    async def body(db_manager):
        from matka.core.timeutils import DateWindow
        from matka.services.notifications import PushNotifier
        from matka.services.settlement.engine import settle_results

        window = DateWindow.for_dates(start_date, end_date)
        return await settle_results(
            market_id,
            window,
            manual,
            family=MarketFamily(family),
            db=db_manager,
            notifier=PushNotifier(enabled=True) if notify else None,
        )

    summary = _run(body)

    console.print(Panel.fit(
        f"Window: {summary.window}\n"
        f"Source: {summary.source}\n"
        f"Submissions: {summary.total_submissions}  Processed: {summary.processed}  "
        f"Won: [green]{summary.won}[/green]  Lost: {summary.lost}  "
        f"Skipped: [yellow]{summary.skipped}[/yellow]  Failed: [red]{summary.failed}[/red]\n"
        f"Credited: {summary.total_credited}",
        title=f"Settlement ({summary.family})"
    ))

    if summary.winners:
        tbl = Table(title="Winners")
        tbl.add_column("Wager", style="cyan")
        tbl.add_column("Owner")
        tbl.add_column("Market")
        tbl.add_column("Bet Type")
        tbl.add_column("Answer")
        tbl.add_column("Stake", justify="right")
        tbl.add_column("Win", justify="right", style="green")
        for w in summary.winners:
            tbl.add_row(w.wager_id, w.owner_id, w.market_id, w.bet_type, w.answer, str(w.stake), str(w.win_amount))
        console.print(tbl)

    for failure in summary.failures:
        console.print(f"[red]✗[/red] {failure.wager_id} ({failure.owner_id}): {failure.reason}")


@cli.command()
@click.option("--date", "date_filter", default=None, help="IST date (YYYY-MM-DD)")
@click.option("--market", "market_id", default=None, help="Market id")
def revert(date_filter: Optional[str], market_id: Optional[str]):
    """Refund and revert wagers matching a date and/or market"""

    async def body(db_manager):
        from matka.services.settlement.revert import revert_wagers
        return await revert_wagers(date=date_filter, market_id=market_id, db=db_manager)

    summary = _run(body)
    console.print(f"[green]✓[/green] {summary.message} Refunded: {summary.refunded}")

    if summary.reverted:
        tbl = Table(title="Reverted Wagers")
        tbl.add_column("Username", style="cyan")
        tbl.add_column("Market")
        tbl.add_column("Bet Type")
        tbl.add_column("Stake", justify="right", style="green")
        tbl.add_column("Was", style="yellow")
        for r in summary.reverted:
            tbl.add_row(r.username, r.market_id, r.bet_type, str(r.stake), r.previous_status)
        console.print(tbl)

    for owner_id in summary.failed_owners:
        console.print(f"[yellow]⚠[/yellow] No balance for {owner_id}; wagers left untouched")


@cli.command()
@click.option("--date", "date_filter", default=None, help="IST date (YYYY-MM-DD)")
@click.option("--market", "market_id", default=None, help="Market id")
def purge(date_filter: Optional[str], market_id: Optional[str]):
    """Delete wagers already reverted (no money moves)"""

    async def body(db_manager):
        from matka.services.settlement.revert import purge_reverted_wagers
        return await purge_reverted_wagers(date=date_filter, market_id=market_id, db=db_manager)

    summary = _run(body)
    console.print(f"[green]✓[/green] Deleted {summary.deleted_count} reverted wagers")


@cli.command()
@click.option("--market", "market_id", required=True, help="Market id")
@click.option("--date", "result_date", required=True, help="IST date (YYYY-MM-DD)")
@click.option("--family", type=FAMILIES, default=MarketFamily.MAIN.value, show_default=True)
@click.option("--segment", type=SEGMENTS, default=None, help="Only wagers placed in this segment")
@click.option("--first-half", default=None)
@click.option("--second-half", default=None)
@click.option("--open-panna", default=None)
@click.option("--close-panna", default=None)
@click.option("--jodi", default=None)
def predict(
    market_id: str,
    result_date: str,
    family: str,
    segment: Optional[str],
    first_half: Optional[str],
    second_half: Optional[str],
    open_panna: Optional[str],
    close_panna: Optional[str],
    jodi: Optional[str],
):
    """Preview the winners of a hypothetical result"""
    manual = _manual_result_option(first_half, second_half, open_panna, close_panna, jodi)
    if manual is None:
        raise click.UsageError("Give a hypothetical result (halves, pannas or jodi)")

    async def body(db_manager):
        from matka.services.settlement.prediction import predict_winners

        return await predict_winners(
            market_id,
            result_date,
            manual,
            family=MarketFamily(family),
            segment=MarketSegment(segment) if segment else None,
            db=db_manager,
        )

    winners = _run(body)

    tbl = Table(title=f"Predicted Winners - {market_id} {result_date}")
    tbl.add_column("Username", style="cyan")
    tbl.add_column("Bet Type")
    tbl.add_column("Segment")
    tbl.add_column("Answer")
    tbl.add_column("Stake", justify="right")
    tbl.add_column("Payout", justify="right", style="green")
    for w in winners:
        tbl.add_row(w.username, w.bet_type, w.market_segment, w.answer, str(w.stake), str(w.computed_payout))
    console.print(tbl)
    console.print(f"{len(winners)} winning wagers")


if __name__ == "__main__":
    cli()
