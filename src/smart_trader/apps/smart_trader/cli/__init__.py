"""CLI subpackage for the smart trader app.

Create the Typer application and register all command modules.
"""

import typer

from smart_trader.apps.smart_trader.cli.cancel_cmd import cancel
from smart_trader.apps.smart_trader.cli.cycle_cmd import cycle
from smart_trader.apps.smart_trader.cli.markets_cmd import markets
from smart_trader.apps.smart_trader.cli.reset_cmd import reset
from smart_trader.apps.smart_trader.cli.resolve_cmd import resolve
from smart_trader.apps.smart_trader.cli.status_cmd import status
from smart_trader.apps.smart_trader.cli.stop_cmd import stop

app = typer.Typer(help="Paper-trading bot for prediction markets")

app.command()(cycle)
app.command()(resolve)
app.command()(status)
app.command()(markets)
app.command()(stop)
app.command()(cancel)
app.command()(reset)

__all__ = ["app"]
