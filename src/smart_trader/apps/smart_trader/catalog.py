"""Persistent snapshot of the market catalog.

Wrap ``PolymarketClient.fetch_all`` so an empty or failed fetch never
replaces the last good snapshot. The snapshot is stored in the trader
database, so it survives between invocations. A stale snapshot is served
with a warning; only an empty store yields an empty catalog.
"""

import logging
from dataclasses import dataclass

from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.polymarket.client import PolymarketClient
from smart_trader.clients.polymarket.exceptions import PolymarketError
from smart_trader.clients.polymarket.models import Market

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CatalogSnapshot:
    """Markets returned by one catalog read.

    Args:
        markets: Markets in volume order.
        fetched_at: Time the markets were fetched, Unix seconds.
        stale: Whether this is a previous snapshot served after a failed fetch.

    """

    markets: tuple[Market, ...]
    fetched_at: int
    stale: bool = False


class MarketCatalog:
    """Keep the last good market snapshot across catalog reads.

    Args:
        client: Polymarket client used to page the catalog.
        repository: Store holding the last good snapshot.

    """

    def __init__(self, client: PolymarketClient, repository: TraderRepository) -> None:
        """Initialize the catalog over a client and a snapshot store."""
        self._client = client
        self._repo = repository

    async def snapshot(self, max_total: int, now: int) -> CatalogSnapshot:
        """Fetch the catalog, falling back to the stored snapshot.

        Args:
            max_total: Upper bound on markets to request.
            now: Current time, Unix seconds.

        Returns:
            A fresh snapshot, the stored one marked stale, or an empty
            snapshot when nothing was ever fetched.

        """
        try:
            markets = await self._client.fetch_all(max_total)
        except PolymarketError as exc:
            logger.warning("Market catalog fetch failed: %s", exc)
            markets = []

        if markets:
            await self._repo.save_catalog_snapshot(markets, now)
            return CatalogSnapshot(markets=tuple(markets), fetched_at=now)

        stored = await self._repo.load_catalog_snapshot()
        if stored is not None:
            previous, fetched_at = stored
            logger.warning(
                "Empty catalog fetch, serving snapshot from %d (%d markets)",
                fetched_at,
                len(previous),
            )
            return CatalogSnapshot(markets=tuple(previous), fetched_at=fetched_at, stale=True)
        return CatalogSnapshot(markets=(), fetched_at=now)

    async def get_market(self, market_id: str) -> Market:
        """Fetch one market by ID from the live API."""
        return await self._client.get_market(market_id)
