"""CLI command that settles expired simulated orders."""

import asyncio
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import (
    configure_verbose_logging,
    load_config_or_exit,
    open_services,
    truncate,
)
from smart_trader.apps.smart_trader.models import ResolutionReport
from smart_trader.apps.smart_trader.resolver import ResolutionEngine


def resolve(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable INFO logging")] = False,
) -> None:
    """Check expired open orders and settle those whose markets resolved."""
    if verbose:
        configure_verbose_logging()
    report = asyncio.run(_resolve())

    typer.echo(
        f"Checked {report.checked}, resolved {len(report.resolved)}, "
        f"still open {report.still_open}, cooling down {report.skipped_cooldown}"
    )
    for outcome in report.resolved:
        typer.echo(
            f"  {outcome.status.value.upper():<9} {truncate(outcome.market_question):<60} "
            f"{outcome.pnl:>+9.2f}  winner {outcome.winning_outcome}"
        )
    for error in report.errors:
        typer.echo(f"  Error: {error}", err=True)


async def _resolve() -> ResolutionReport:
    """Open services and run one resolution sweep."""
    config = load_config_or_exit()
    async with open_services(config) as services:
        engine = ResolutionEngine(
            services.repository,
            services.catalog,
            config.resolution,
            activity_retention=config.cycle.activity_retention,
        )
        return await engine.sweep()
