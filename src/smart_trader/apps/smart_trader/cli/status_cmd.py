"""CLI command that shows the simulated account and bot status.

Print the portfolio, open orders, settled-trade statistics, advisory spend
and the most recent activity log entries.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import load_config_or_exit, open_services, truncate
from smart_trader.apps.smart_trader.models import PerformanceHistory, Portfolio
from smart_trader.core.timestamps import now_ts, to_iso

_DEFAULT_ACTIVITY_LIMIT = 15


@dataclass(frozen=True)
class _Status:
    portfolio: Portfolio
    performance: PerformanceHistory
    total_calls: int
    total_cost: Decimal
    analyzing: bool
    cycle_count: int
    last_cycle_at: int | None
    last_error: str | None
    lock_acquired_at: int | None
    activities: list[tuple[int, str, str]]


def status(
    activity: Annotated[
        int, typer.Option(help="Number of recent activity entries to show")
    ] = _DEFAULT_ACTIVITY_LIMIT,
) -> None:
    """Show balance, open orders, performance and recent activity."""
    snap = asyncio.run(_status(activity))
    portfolio = snap.portfolio

    typer.echo(f"Balance:        ${portfolio.balance:.2f} (initial ${portfolio.initial_balance:.2f})")
    typer.echo(f"Open exposure:  ${portfolio.open_exposure:.2f} in {len(portfolio.open_orders)} orders")
    typer.echo(f"Realized P&L:   ${portfolio.total_pnl:+.2f}")
    perf = snap.performance
    typer.echo(f"Settled trades: {perf.total_trades} ({perf.wins}W/{perf.losses}L, {perf.win_rate:.0f}% win rate)")
    typer.echo(f"Advisory spend: ${snap.total_cost:.4f} over {snap.total_calls} calls")
    typer.echo(f"Cycles run:     {snap.cycle_count}")
    if snap.last_cycle_at:
        typer.echo(f"Last cycle:     {to_iso(snap.last_cycle_at)}")
    if snap.analyzing:
        typer.echo("Analyzing:      yes")
    if snap.lock_acquired_at:
        typer.echo(f"Cycle lock:     held since {to_iso(snap.lock_acquired_at)}")
    if snap.last_error:
        typer.echo(f"Last error:     {snap.last_error}")

    if portfolio.open_orders:
        typer.echo(f"\n{'Order':<30} {'Question':<60} {'Side':>5} {'Price':>6} {'Cost':>8}")
        typer.echo("-" * 113)
        for order in portfolio.open_orders:
            typer.echo(
                f"{order.id:<30} {truncate(order.market_question):<60} "
                f"{order.outcome[:5]:>5} {order.price:>6.3f} {order.total_cost:>8.2f}"
            )

    if snap.activities:
        typer.echo("\nRecent activity:")
        for ts, entry_type, message in snap.activities:
            typer.echo(f"  {to_iso(ts)} [{entry_type}] {message}")


async def _status(activity_limit: int) -> _Status:
    """Collect a status snapshot from the repository."""
    config = load_config_or_exit()
    async with open_services(config) as services:
        repo = services.repository
        portfolio = await services.orchestrator.ledger.load_portfolio(now_ts())
        total_calls, total_cost = await repo.get_cost_totals()
        state = await repo.get_bot_state()
        return _Status(
            portfolio=portfolio,
            performance=await repo.get_performance(),
            total_calls=total_calls,
            total_cost=total_cost,
            analyzing=state.analyzing,
            cycle_count=state.cycle_count,
            last_cycle_at=state.last_cycle_at,
            last_error=state.last_error,
            lock_acquired_at=await repo.get_lock_acquired_at(),
            activities=await repo.get_activities(activity_limit),
        )
