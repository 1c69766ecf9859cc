"""CLI command that runs one trading cycle.

Intended to be invoked by an external scheduler (cron, systemd timer) for
automatic cycles, or by the operator with ``--manual`` to bypass the
throttle and daily cap.
"""

import asyncio
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import (
    configure_verbose_logging,
    load_config_or_exit,
    open_services,
)
from smart_trader.apps.smart_trader.models import CycleResult


def cycle(
    manual: Annotated[
        bool, typer.Option("--manual", help="Operator run: skip throttle and daily cap")
    ] = False,
    chain: Annotated[
        bool, typer.Option("--chain", help="Follow-up manual call: keep the analyzed cache")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable INFO logging")] = False,
) -> None:
    """Run one trading cycle and print its summary."""
    if verbose:
        configure_verbose_logging()
    result = asyncio.run(_cycle(manual=manual or chain, chain=chain))
    _print_result(result)
    if not result.ok:
        raise typer.Exit(code=1)


async def _cycle(*, manual: bool, chain: bool) -> CycleResult:
    """Open services and run the orchestrator once."""
    config = load_config_or_exit()
    async with open_services(config) as services:
        return await services.orchestrator.run(manual=manual, chain=chain)


def _print_result(result: CycleResult) -> None:
    """Print a one-block summary of a cycle result."""
    status = "ok" if result.ok else "FAILED"
    typer.echo(f"Cycle {status}: {result.reason}")
    typer.echo(f"  Markets:         {result.total_markets} fetched, {result.pool_size} in pool")
    typer.echo(f"  Recommendations: {result.recommendations}")
    typer.echo(f"  Bets placed:     {result.bets_placed}")
    typer.echo(f"  Advisory cost:   ${result.cost_usd:.4f}")
    if result.balance is not None:
        typer.echo(f"  Balance:         ${result.balance:.2f}")
    if result.has_more_markets:
        typer.echo("  More fresh markets remain; run again with --chain to continue.")
    if result.error:
        typer.echo(f"  Error: {result.error}", err=True)
