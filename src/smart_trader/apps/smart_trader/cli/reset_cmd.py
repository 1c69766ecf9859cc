"""CLI command that wipes the simulated account."""

import asyncio
from decimal import Decimal
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import load_config_or_exit, open_services
from smart_trader.apps.smart_trader.models import Portfolio
from smart_trader.core.timestamps import now_ts


def reset(
    balance: Annotated[
        float | None, typer.Option(help="New starting balance (default: configured balance)")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip the confirmation prompt")] = False,
) -> None:
    """Delete all orders, logs and usage history and start a fresh portfolio."""
    if not yes:
        typer.confirm("Delete all orders and history?", abort=True)
    portfolio = asyncio.run(_reset(balance))
    typer.echo(f"Portfolio reset. Balance: ${portfolio.balance:.2f}")


async def _reset(balance: float | None) -> Portfolio:
    config = load_config_or_exit()
    initial = config.initial_balance if balance is None else Decimal(str(balance))
    if initial <= 0:
        typer.echo("Error: balance must be positive.", err=True)
        raise typer.Exit(code=1)
    async with open_services(config) as services:
        return await services.orchestrator.ledger.reset(initial, now_ts())
