"""CLI command that cancels an open simulated order."""

import asyncio
from typing import Annotated

import typer

from smart_trader.apps.smart_trader.cli._helpers import load_config_or_exit, open_services
from smart_trader.apps.smart_trader.exceptions import OrderNotFoundError
from smart_trader.apps.smart_trader.models import Order
from smart_trader.core.timestamps import now_ts


def cancel(
    order_id: Annotated[str, typer.Argument(help="ID of the order to cancel")],
) -> None:
    """Cancel an open order and refund its cost."""
    try:
        order = asyncio.run(_cancel(order_id))
    except OrderNotFoundError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Cancelled {order.id}, refunded ${order.total_cost:.2f}")


async def _cancel(order_id: str) -> Order:
    config = load_config_or_exit()
    async with open_services(config) as services:
        return await services.orchestrator.ledger.cancel(order_id, now_ts())
