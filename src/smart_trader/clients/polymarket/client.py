"""High-level async client for Polymarket market data.

Wrap the Gamma HTTP client with typed parsing and the paginated catalog
fetch used by the trading cycle. Raw Gamma rows are parsed leniently:
rows without a question or with undecodable outcome fields are dropped
rather than failing the whole page.
"""

import asyncio
import json
import logging
import math
from decimal import Decimal
from typing import Any

from smart_trader.clients.polymarket._constants import (
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_TIMEOUT,
    GAMMA_BASE_URL,
    MAX_CONSECUTIVE_PAGE_ERRORS,
)
from smart_trader.clients.polymarket._gamma_client import GammaClient
from smart_trader.clients.polymarket.exceptions import PolymarketAPIError
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import to_decimal
from smart_trader.core.timestamps import parse_optional_timestamp

logger = logging.getLogger(__name__)

_DEFAULT_OUTCOMES = ("Yes", "No")
_DEFAULT_PRICE = Decimal("0.5")
_SPORTS_LABELS = (
    "sports",
    "sport",
    "esports",
    "football",
    "soccer",
    "basketball",
    "baseball",
    "hockey",
    "tennis",
    "mma",
    "boxing",
    "cricket",
    "golf",
    "motorsport",
    "racing",
)
_LABEL_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("politics", ("politic", "election", "government")),
    ("crypto", ("crypto", "bitcoin", "defi", "blockchain")),
    ("entertainment", ("entertain", "culture", "music", "movie")),
    ("finance", ("business", "finance", "economics", "stocks")),
)


class PolymarketClient:
    """Read-only facade over the Gamma API for the trading cycle.

    Args:
        base_url: Gamma API base URL.
        timeout: Per-request timeout in seconds.
        page_size: Markets requested per page.
        retry_backoff: Seconds to wait before retrying a failed page.

    """

    def __init__(
        self,
        base_url: str = GAMMA_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Gamma API base URL.
            timeout: Per-request timeout in seconds.
            page_size: Markets requested per page.
            retry_backoff: Seconds to wait before retrying a failed page.

        """
        self._gamma = GammaClient(base_url=base_url, timeout=timeout)
        self._page_size = page_size
        self._retry_backoff = retry_backoff

    async def fetch_all(self, max_total: int) -> list[Market]:
        """Fetch active markets ordered by volume, de-duplicated by ID.

        Stop at a short page, at the page ceiling derived from
        ``max_total``, or after two consecutive failed pages. Each failed
        page is retried once at the same offset before it counts as failed.
        Whatever was collected before an early stop is returned.

        Args:
            max_total: Upper bound on markets to request.

        Returns:
            Parsed markets in the order the API returned them.

        """
        max_pages = max(1, math.ceil(max_total / self._page_size))
        markets: list[Market] = []
        seen: set[str] = set()
        consecutive_errors = 0
        offset = 0

        for page in range(max_pages):
            rows = await self._fetch_page(offset)
            if rows is None:
                consecutive_errors += 1
                if consecutive_errors >= MAX_CONSECUTIVE_PAGE_ERRORS:
                    logger.warning("Stopping pagination after %d failed pages", consecutive_errors)
                    break
                offset += self._page_size
                continue

            consecutive_errors = 0
            for raw in rows:
                market = parse_market(raw)
                if market is not None and market.id not in seen:
                    seen.add(market.id)
                    markets.append(market)

            if len(rows) < self._page_size:
                break
            offset += self._page_size
            logger.debug("Fetched page %d (%d markets so far)", page + 1, len(markets))

        logger.info("Fetched %d markets from Gamma API", len(markets))
        return markets

    async def _fetch_page(self, offset: int) -> list[dict[str, Any]] | None:
        """Fetch one page, retrying once after a short backoff.

        Args:
            offset: Pagination offset.

        Returns:
            Raw market rows, or ``None`` when both attempts failed.

        """
        for attempt in range(2):
            try:
                return await self._gamma.get_markets(
                    active=True,
                    closed=False,
                    limit=self._page_size,
                    offset=offset,
                )
            except PolymarketAPIError as exc:
                logger.warning("Market page at offset %d failed (attempt %d): %s", offset, attempt + 1, exc)
                if attempt == 0:
                    await asyncio.sleep(self._retry_backoff)
        return None

    async def get_market(self, market_id: str) -> Market:
        """Fetch a single market by its Gamma ID.

        Args:
            market_id: Gamma market identifier.

        Returns:
            The parsed market.

        Raises:
            PolymarketAPIError: When the request fails or the payload is unusable.

        """
        raw = await self._gamma.get_market_by_id(market_id)
        market = parse_market(raw)
        if market is None:
            raise PolymarketAPIError(msg=f"Unparsable market {market_id}", status_code=0)
        return market

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._gamma.close()

    async def __aenter__(self) -> "PolymarketClient":
        """Enter async context manager."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager."""
        await self.close()


def parse_market(raw: dict[str, Any]) -> Market | None:
    """Convert a raw Gamma market row into a typed ``Market``.

    Args:
        raw: Market dictionary from the Gamma API.

    Returns:
        The parsed market, or ``None`` if the row has no question or ID.

    """
    question = str(raw.get("question") or raw.get("title") or "").strip()
    market_id = str(raw.get("id") or "")
    if not question or not market_id:
        return None

    outcomes = tuple(str(o) for o in _decode_list(raw.get("outcomes"))) or _DEFAULT_OUTCOMES
    prices = tuple(to_decimal(p, _DEFAULT_PRICE) for p in _decode_list(raw.get("outcomePrices")))

    end_date = str(raw.get("endDate") or raw.get("endDateIso") or "")
    closed = raw.get("closed") is True
    return Market(
        id=market_id,
        question=question,
        condition_id=str(raw.get("conditionId") or market_id),
        slug=str(raw.get("slug") or ""),
        outcomes=outcomes,
        outcome_prices=prices,
        volume=to_decimal(raw.get("volume") or raw.get("volumeNum")),
        liquidity=to_decimal(raw.get("liquidity") or raw.get("liquidityNum")),
        end_date=end_date,
        end_ts=parse_optional_timestamp(end_date),
        active=raw.get("active") is not False and not closed,
        closed=closed,
        resolved=raw.get("resolved") in (True, "true"),
        uma_resolution_status=str(raw.get("umaResolutionStatus") or ""),
        category=categorize_raw(raw),
        description=str(raw.get("description") or ""),
    )


def categorize_raw(raw: dict[str, Any]) -> str:
    """Derive a coarse category from Gamma sports metadata and tag labels.

    Args:
        raw: Market dictionary from the Gamma API.

    Returns:
        ``"sports"``, a label-derived category, or ``""`` when unknown.

    """
    if raw.get("sportsMarketType") or raw.get("gameId") or raw.get("teamAID") or raw.get("teamBID"):
        return "sports"

    labels = _labels(raw.get("tags")) + _labels(raw.get("categories"))
    for event in raw.get("events") or []:
        if isinstance(event, dict):
            labels += _labels(event.get("tags")) + _labels(event.get("categories"))  # pyright: ignore[reportUnknownArgumentType, reportUnknownMemberType]

    if any(key in label for label in labels for key in _SPORTS_LABELS):
        return "sports"
    for category, keys in _LABEL_CATEGORIES:
        if any(key in label for label in labels for key in keys):
            return category
    return ""


def _labels(items: Any) -> list[str]:
    """Return lowercase ``label``/``slug`` values from a tag or category list."""
    if not isinstance(items, list):
        return []
    return [
        str(item.get("label") or item.get("slug") or "").lower()  # pyright: ignore[reportUnknownMemberType]
        for item in items  # pyright: ignore[reportUnknownVariableType]
        if isinstance(item, dict)
    ]


def _decode_list(value: Any) -> list[Any]:
    """Decode a Gamma list field that may arrive JSON-encoded or comma-separated."""
    if isinstance(value, list):
        return value  # pyright: ignore[reportUnknownVariableType]
    if isinstance(value, str) and value.strip():
        try:
            decoded = json.loads(value)
        except json.JSONDecodeError:
            return [part.strip() for part in value.split(",")]
        if isinstance(decoded, list):
            return decoded  # pyright: ignore[reportUnknownVariableType]
    return []
