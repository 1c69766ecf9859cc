"""CLI command that previews the candidate pool.

Fetch the live catalog, apply the same filters, clustering and
diversification as a trading cycle, and print the shortlist without
calling the advisory or placing any order.
"""

import asyncio
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import (
    configure_verbose_logging,
    load_config_or_exit,
    open_services,
    truncate,
)
from smart_trader.apps.smart_trader.clustering import classify, dedupe, diversify, drop_open_conflicts
from smart_trader.apps.smart_trader.models import PoolBreakdown
from smart_trader.apps.smart_trader.pool import build_pool, filter_label
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.timestamps import now_ts

_DEFAULT_LIMIT = 20


def markets(
    limit: Annotated[int, typer.Option(help="Maximum number of markets to show")] = _DEFAULT_LIMIT,
    breakdown: Annotated[
        bool, typer.Option("--breakdown", help="Show per-reason rejection counts")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable INFO logging")] = False,
) -> None:
    """Preview the markets the next cycle would consider."""
    if verbose:
        configure_verbose_logging()
    shortlist, counts = asyncio.run(_markets())

    if breakdown:
        for name, value in counts.as_dict().items():
            if value:
                typer.echo(f"  {name:<16} {value:>6}")
        typer.echo("")

    if not shortlist:
        typer.echo("No markets passed the filters")
        return

    typer.echo(
        f"Pool: {counts.passed} passed ({filter_label(counts.filter_level)}), "
        f"{len(shortlist)} after diversification"
    )
    typer.echo(f"\n{'Question':<60} {'Cat':>13} {'YES':>6} {'Volume':>12} {'End Date':>12}")
    typer.echo("-" * 107)
    for market in shortlist[:limit]:
        end_date = market.end_date[:10] if market.end_date else "N/A"
        typer.echo(
            f"{truncate(market.question):<60} {classify(market):>13} "
            f"{market.yes_price:>6.2f} {market.volume:>12.0f} {end_date:>12}"
        )


async def _markets() -> tuple[list[Market], PoolBreakdown]:
    """Build the shortlist the orchestrator would send to the advisory."""
    config = load_config_or_exit()
    now = now_ts()
    async with open_services(config) as services:
        portfolio = await services.orchestrator.ledger.load_portfolio(now)
        snapshot = await services.catalog.snapshot(config.cycle.max_total_markets, now)

    open_ids = {order.market_id for order in portfolio.open_orders}
    pool, counts = build_pool(snapshot.markets, open_ids, now, portfolio.balance, config.pool)
    deduped = dedupe(pool)
    counts.cluster_merged = len(pool) - len(deduped)
    filtered = drop_open_conflicts(deduped, portfolio.open_orders)
    counts.broad_conflict = len(deduped) - len(filtered)
    return diversify(filtered, config.pool.shortlist_size), counts
