"""Tests for the high-level Polymarket client and market parsing."""

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, patch

import pytest

from smart_trader.clients.polymarket.client import PolymarketClient, categorize_raw, parse_market
from smart_trader.clients.polymarket.exceptions import PolymarketAPIError

_PAGE_SIZE = 3
_END_2024 = 1735689600


def _row(market_id: str, **overrides: Any) -> dict[str, Any]:
    """Build a raw Gamma market row."""
    row: dict[str, Any] = {
        "id": market_id,
        "question": f"Will event {market_id} happen?",
        "conditionId": f"0x{market_id}",
        "slug": f"event-{market_id}",
        "outcomes": '["Yes", "No"]',
        "outcomePrices": '["0.62", "0.38"]',
        "volume": "12345.6",
        "liquidity": 8000,
        "endDate": "2025-01-01T00:00:00Z",
        "active": True,
        "closed": False,
    }
    row.update(overrides)
    return row


def _page(start: int, count: int) -> list[dict[str, Any]]:
    """Build a page of ``count`` rows with sequential IDs."""
    return [_row(str(i)) for i in range(start, start + count)]


class TestParseMarket:
    """Tests for parse_market."""

    def test_parses_json_encoded_fields(self) -> None:
        """Decode JSON-string outcomes and prices into typed values."""
        market = parse_market(_row("7"))

        assert market is not None
        assert market.outcomes == ("Yes", "No")
        assert market.outcome_prices == (Decimal("0.62"), Decimal("0.38"))
        assert market.volume == Decimal("12345.6")
        assert market.liquidity == Decimal(8000)
        assert market.end_ts == _END_2024
        assert market.condition_id == "0x7"
        assert market.yes_price == Decimal("0.62")

    def test_comma_separated_fallback(self) -> None:
        """Accept comma-separated outcome prices."""
        market = parse_market(_row("7", outcomePrices="0.3,0.7"))

        assert market is not None
        assert market.outcome_prices == (Decimal("0.3"), Decimal("0.7"))

    def test_missing_prices_left_empty(self) -> None:
        """Missing prices are not invented."""
        market = parse_market(_row("7", outcomePrices=None))

        assert market is not None
        assert market.outcome_prices == ()
        assert market.yes_price == Decimal(0)

    def test_missing_question_returns_none(self) -> None:
        """Rows without a question are dropped."""
        assert parse_market(_row("7", question="")) is None

    def test_missing_end_date(self) -> None:
        """A missing end date leaves end_ts as None."""
        market = parse_market(_row("7", endDate=None))

        assert market is not None
        assert market.end_ts is None

    def test_closed_market_inactive(self) -> None:
        """A closed market is never active."""
        market = parse_market(_row("7", closed=True))

        assert market is not None
        assert market.closed
        assert not market.active
        assert not market.is_settled

    def test_uma_resolved_is_settled(self) -> None:
        """A market with a resolved oracle status is settled."""
        market = parse_market(_row("7", closed=True, umaResolutionStatus="resolved"))

        assert market is not None
        assert market.is_settled

    def test_price_of_out_of_range(self) -> None:
        """Out-of-range outcome indices have price zero."""
        market = parse_market(_row("7"))

        assert market is not None
        assert market.price_of(5) == Decimal(0)
        assert market.outcome_name(1) == "No"


class TestCategorizeRaw:
    """Tests for categorize_raw."""

    def test_sports_metadata(self) -> None:
        """Sports metadata fields mark a market as sports."""
        assert categorize_raw({"sportsMarketType": "moneyline"}) == "sports"

    def test_sports_tag(self) -> None:
        """A sports tag label marks a market as sports."""
        assert categorize_raw({"tags": [{"label": "Soccer"}]}) == "sports"

    def test_event_tags(self) -> None:
        """Tags nested in events are considered."""
        raw = {"events": [{"tags": [{"slug": "us-politics"}]}]}
        assert categorize_raw(raw) == "politics"

    def test_unknown(self) -> None:
        """No usable metadata yields an empty category."""
        assert categorize_raw({}) == ""


class TestPolymarketClient:
    """Tests for PolymarketClient pagination."""

    @pytest.fixture
    def client(self) -> PolymarketClient:
        """Create a client with a tiny page size and no backoff."""
        return PolymarketClient(page_size=_PAGE_SIZE, retry_backoff=0)

    @pytest.mark.asyncio
    async def test_fetch_all_stops_at_short_page(self, client: PolymarketClient) -> None:
        """Pagination stops when a page is shorter than the page size."""
        pages = AsyncMock(side_effect=[_page(0, 3), _page(3, 1)])

        with patch.object(client._gamma, "get_markets", new=pages):
            markets = await client.fetch_all(max_total=30)

        assert [m.id for m in markets] == ["0", "1", "2", "3"]
        assert pages.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_all_respects_max_total(self, client: PolymarketClient) -> None:
        """The page ceiling derives from max_total."""
        pages = AsyncMock(side_effect=[_page(0, 3), _page(3, 3), _page(6, 3)])

        with patch.object(client._gamma, "get_markets", new=pages):
            markets = await client.fetch_all(max_total=6)

        assert len(markets) == 6
        assert pages.await_count == 2

    @pytest.mark.asyncio
    async def test_fetch_all_deduplicates(self, client: PolymarketClient) -> None:
        """Markets repeated across pages are kept once."""
        pages = AsyncMock(side_effect=[_page(0, 3), _page(2, 2)])

        with patch.object(client._gamma, "get_markets", new=pages):
            markets = await client.fetch_all(max_total=30)

        assert [m.id for m in markets] == ["0", "1", "2", "3"]

    @pytest.mark.asyncio
    async def test_failed_page_retried_once(self, client: PolymarketClient) -> None:
        """A failed page is retried at the same offset."""
        error = PolymarketAPIError(msg="boom", status_code=500)
        pages = AsyncMock(side_effect=[error, _page(0, 2)])

        with patch.object(client._gamma, "get_markets", new=pages):
            markets = await client.fetch_all(max_total=30)

        assert len(markets) == 2
        offsets = [call.kwargs["offset"] for call in pages.await_args_list]
        assert offsets == [0, 0]

    @pytest.mark.asyncio
    async def test_two_failed_pages_stop_with_partial(self, client: PolymarketClient) -> None:
        """Two consecutive failed pages stop pagination, keeping earlier data."""
        error = PolymarketAPIError(msg="boom", status_code=500)
        pages = AsyncMock(side_effect=[_page(0, 3), error, error, error, error])

        with patch.object(client._gamma, "get_markets", new=pages):
            markets = await client.fetch_all(max_total=30)

        assert len(markets) == 3
        assert pages.await_count == 5

    @pytest.mark.asyncio
    async def test_get_market(self, client: PolymarketClient) -> None:
        """get_market parses the single-market payload."""
        with patch.object(client._gamma, "get_market_by_id", new=AsyncMock(return_value=_row("9"))):
            market = await client.get_market("9")

        assert market.id == "9"

    @pytest.mark.asyncio
    async def test_get_market_unparsable(self, client: PolymarketClient) -> None:
        """An unusable payload raises PolymarketAPIError."""
        with (
            patch.object(client._gamma, "get_market_by_id", new=AsyncMock(return_value={"id": "9"})),
            pytest.raises(PolymarketAPIError, match="Unparsable"),
        ):
            await client.get_market("9")
