"""CLI command that stops an in-progress manual chain."""

import asyncio

import typer

from smart_trader.apps.smart_trader.cli._helpers import load_config_or_exit, open_services


def stop() -> None:
    """Clear the analyzing flag and release the cycle lock."""
    asyncio.run(_stop())
    typer.echo("Stopped.")


async def _stop() -> None:
    config = load_config_or_exit()
    async with open_services(config) as services:
        await services.orchestrator.stop()
