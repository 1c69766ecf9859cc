"""Read-only Polymarket market data client."""

from smart_trader.clients.polymarket.client import PolymarketClient, parse_market
from smart_trader.clients.polymarket.exceptions import (
    PolymarketAPIError,
    PolymarketError,
)
from smart_trader.clients.polymarket.models import Market

__all__ = [
    "Market",
    "PolymarketAPIError",
    "PolymarketClient",
    "PolymarketError",
    "parse_market",
]
