"""Tests for the advisory router and reply parsing."""

import json
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from smart_trader.apps.smart_trader.models import PerformanceHistory
from smart_trader.apps.smart_trader.prompt import build_prompt, history_line, market_line
from smart_trader.apps.smart_trader.router import (
    AdvisoryRouter,
    extract_json,
    normalize_recommendation,
    parse_response,
)
from smart_trader.clients.advisors.exceptions import AdvisoryAPIError
from smart_trader.clients.advisors.models import Completion
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import BetSide

_NOW = 1_700_000_000
_EXPECTED_COST = Decimal("0.045")


def _item(**overrides: Any) -> dict[str, Any]:
    """Build a raw recommendation item."""
    item: dict[str, Any] = {
        "marketId": "m1",
        "question": "Will the Senate pass the budget?",
        "pMarket": 0.40,
        "pReal": 0.55,
        "pLow": 0.50,
        "pHigh": 0.60,
        "confidence": 72,
        "recommendedSide": "YES",
        "sources": ["Reuters - 2024-01-01 - https://example.com"],
    }
    item.update(overrides)
    return item


def _provider(text: str, *, web: bool = True) -> MagicMock:
    """Build a fake provider returning ``text``."""
    provider = MagicMock()
    provider.name = "anthropic"
    provider.model = "claude-sonnet-4-5"
    provider.has_web_search = web
    provider.complete = AsyncMock(
        return_value=Completion(text=text, input_tokens=10_000, output_tokens=1_000, web_searches=3)
    )
    provider.close = AsyncMock()
    return provider


class TestExtractJson:
    """Tests for extract_json."""

    def test_bare_object(self) -> None:
        """A reply that is pure JSON parses directly."""
        assert extract_json('  {"summary": "x", "recommendations": []}  ') == {
            "summary": "x",
            "recommendations": [],
        }

    def test_fenced_block(self) -> None:
        """A fenced json block is extracted."""
        raw = 'Here you go:\n```json\n{"summary": "fenced"}\n```\nThanks'
        assert extract_json(raw) == {"summary": "fenced"}

    def test_prose_around_object(self) -> None:
        """The first balanced block with expected keys is used."""
        raw = 'I looked at these. {"summary": "ok", "recommendations": [{"a": {"b": 1}}]} Done.'
        parsed = extract_json(raw)
        assert parsed is not None
        assert parsed["summary"] == "ok"

    def test_unrelated_object_ignored(self) -> None:
        """A brace block without summary or recommendations is not accepted."""
        assert extract_json('note {"foo": 1} end') is None

    def test_garbage(self) -> None:
        """Unparsable text returns None."""
        assert extract_json("no json here {") is None


class TestNormalizeRecommendation:
    """Tests for normalize_recommendation."""

    def test_coherent_yes(self) -> None:
        """A coherent YES passes through with its edge."""
        rec = normalize_recommendation(_item())

        assert rec is not None
        assert rec.side is BetSide.YES
        assert rec.edge == Decimal("0.15")
        assert rec.confidence == 72
        assert rec.sources == ("Reuters - 2024-01-01 - https://example.com",)

    def test_skip_dropped(self) -> None:
        """SKIP and unknown sides are dropped."""
        assert normalize_recommendation(_item(recommendedSide="SKIP")) is None
        assert normalize_recommendation(_item(recommendedSide="MAYBE")) is None

    def test_no_with_probability_of_no_inverted(self) -> None:
        """A NO whose pReal is above 0.5 is read as P(NO) and inverted."""
        rec = normalize_recommendation(
            _item(recommendedSide="NO", pMarket=0.40, pReal=0.75, pLow=0.70, pHigh=0.80)
        )

        assert rec is not None
        assert rec.p_real == Decimal("0.25")
        assert rec.p_low == Decimal("0.20")
        assert rec.p_high == Decimal("0.30")
        assert rec.side is BetSide.NO

    def test_incoherent_yes_flipped(self) -> None:
        """YES with pReal below pMarket becomes NO."""
        rec = normalize_recommendation(_item(pMarket=0.60, pReal=0.45))

        assert rec is not None
        assert rec.side is BetSide.NO

    def test_incoherent_no_flipped(self) -> None:
        """NO with pReal above pMarket becomes YES."""
        rec = normalize_recommendation(_item(recommendedSide="NO", pMarket=0.30, pReal=0.45))

        assert rec is not None
        assert rec.side is BetSide.YES

    def test_edge_guard(self) -> None:
        """Edges above max_edge are dropped."""
        assert normalize_recommendation(_item(pMarket=0.20, pReal=0.70), max_edge=Decimal("0.40")) is None

    def test_missing_market_price_filled(self) -> None:
        """A missing pMarket falls back to the batch price of the market."""
        rec = normalize_recommendation(
            _item(pMarket=None, pReal=0.55), market_prices={"m1": Decimal("0.45")}
        )

        assert rec is not None
        assert rec.p_market == Decimal("0.45")
        assert rec.edge == Decimal("0.10")

    def test_sides_coherent_after_normalization(self) -> None:
        """Every surviving recommendation has side consistent with pReal vs pMarket."""
        cases = [
            _item(recommendedSide=side, pMarket=pm, pReal=pr)
            for side in ("YES", "NO")
            for pm in (0.2, 0.5, 0.8)
            for pr in (0.1, 0.3, 0.45, 0.55, 0.7, 0.9)
        ]
        for item in cases:
            rec = normalize_recommendation(item, max_edge=Decimal(1))
            if rec is None or rec.p_real == rec.p_market:
                continue
            expected = BetSide.YES if rec.p_real > rec.p_market else BetSide.NO
            assert rec.side is expected, item


class TestParseResponse:
    """Tests for parse_response."""

    def test_counts_dropped_and_skipped(self) -> None:
        """Skipped markets are kept; invalid items are counted as dropped."""
        body = {
            "summary": "two ideas",
            "skipped": [{"marketId": "m9", "question": "Q", "reason": "efficient"}],
            "recommendations": [_item(), _item(recommendedSide="SKIP"), "nonsense"],
        }
        recs, skipped, summary, dropped = parse_response(json.dumps(body))

        assert len(recs) == 1
        assert skipped[0].reason == "efficient"
        assert summary == "two ideas"
        assert dropped == 2

    def test_unparsable_reply(self) -> None:
        """A reply with no JSON yields nothing rather than raising."""
        assert parse_response("Sorry, I cannot help.") == ([], [], "", 0)


class TestPrompt:
    """Tests for prompt construction."""

    def test_market_line(self) -> None:
        """Market lines carry prices, volume, expiry and ID."""
        market = Market(
            id="m1",
            question="Will it snow?",
            outcome_prices=(Decimal("0.42"), Decimal("0.58")),
            volume=Decimal(1_500_000),
            liquidity=Decimal(12_000),
            end_ts=_NOW + 90 * 60,
        )
        line = market_line(1, market, _NOW)

        assert line.startswith('[1] "Will it snow?"')
        assert "YES=42¢ NO=58¢" in line
        assert "Vol=$1.5M" in line
        assert "Liq=$12K" in line
        assert "(90min)" in line
        assert line.endswith("ID:m1")

    def test_history_hint(self) -> None:
        """A poor record asks for more conservative picks."""
        line = history_line(PerformanceHistory(wins=3, losses=7, total_pnl=Decimal(-12)))
        assert "Poor" in line

    def test_prompt_without_web_search(self) -> None:
        """Providers without search get the no-web note."""
        prompt = build_prompt([], [], Decimal(100), None, _NOW, has_web_search=False)
        assert "no web search" in prompt
        assert "BLACKLIST" in prompt
        assert "(none)" in prompt


class TestAdvisoryRouter:
    """Tests for AdvisoryRouter.ask."""

    @pytest.mark.asyncio
    async def test_ask_records_usage(self) -> None:
        """A successful call returns recommendations and records usage."""
        provider = _provider(json.dumps({"summary": "s", "recommendations": [_item()]}))
        repository = MagicMock()
        repository.record_usage = AsyncMock()
        router = AdvisoryRouter(provider, repository)
        batch = [Market(id="m1", question="Will the Senate pass the budget?")]

        result = await router.ask(batch, [], Decimal(100), None, _NOW)

        assert len(result.recommendations) == 1
        assert result.usage.cost_usd == _EXPECTED_COST
        assert result.usage.web_searches == 3
        assert "Will the Senate pass the budget?" in result.prompt
        repository.record_usage.assert_awaited_once()
        assert repository.record_usage.call_args.kwargs["recommendations"] == 1

    @pytest.mark.asyncio
    async def test_empty_reply_still_records_usage(self) -> None:
        """An empty reply yields nothing but its tokens are still billed."""
        provider = _provider("")
        repository = MagicMock()
        repository.record_usage = AsyncMock()
        router = AdvisoryRouter(provider, repository)
        batch = [Market(id="m1", question="Will the Senate pass the budget?")]

        result = await router.ask(batch, [], Decimal(100), None, _NOW)

        assert result.recommendations == ()
        assert result.usage.cost_usd == _EXPECTED_COST
        repository.record_usage.assert_awaited_once()
        assert repository.record_usage.call_args.kwargs["recommendations"] == 0

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self) -> None:
        """Provider failures raise to the caller."""
        provider = _provider("")
        provider.complete = AsyncMock(side_effect=AdvisoryAPIError(msg="down", status_code=503))
        router = AdvisoryRouter(provider)

        with pytest.raises(AdvisoryAPIError):
            await router.ask([], [], Decimal(100), None, _NOW)

    @pytest.mark.asyncio
    async def test_close(self) -> None:
        """Closing the router closes the provider."""
        provider = _provider("{}")
        await AdvisoryRouter(provider).close()
        provider.close.assert_awaited_once()
