"""Tests for the candidate pool builder."""

from decimal import Decimal
from typing import Any

import pytest

from smart_trader.apps.smart_trader.categories import is_crypto, is_junk, is_stock, is_weather
from smart_trader.apps.smart_trader.config import PoolConfig
from smart_trader.apps.smart_trader.pool import build_pool, estimate_spread, filter_label, min_liquidity
from smart_trader.clients.polymarket.models import Market

_NOW = 1_700_000_000
_HOUR = 3600
_BANKROLL = Decimal(100)


def _market(market_id: str = "1", **overrides: Any) -> Market:
    """Build a market that passes every filter unless overridden."""
    fields: dict[str, Any] = {
        "id": market_id,
        "question": f"Will the Senate pass bill {market_id}?",
        "outcome_prices": (Decimal("0.40"), Decimal("0.60")),
        "volume": Decimal(20_000),
        "liquidity": Decimal(12_000),
        "end_ts": _NOW + 2 * _HOUR,
    }
    fields.update(overrides)
    return Market(**fields)


class TestEstimateSpread:
    """Tests for estimate_spread."""

    @pytest.mark.parametrize(
        ("liquidity", "expected"),
        [
            (Decimal(60_000), Decimal("0.01")),
            (Decimal(10_000), Decimal("0.025")),
            (Decimal(2_500), Decimal("0.045")),
            (Decimal(1_000), Decimal("0.06")),
            (Decimal(999), Decimal("0.08")),
        ],
    )
    def test_table(self, liquidity: Decimal, expected: Decimal) -> None:
        """Spread steps down as liquidity rises."""
        assert estimate_spread(liquidity) == expected


class TestMinLiquidity:
    """Tests for min_liquidity."""

    def test_small_bankroll_uses_floor(self) -> None:
        """A $100 bankroll needs 50 x $2.50 = $125, so the $1500 floor applies."""
        assert min_liquidity(_BANKROLL, PoolConfig()) == Decimal(1500)

    def test_large_bankroll_scales(self) -> None:
        """A $4000 bankroll needs 50 x $100 = $5000."""
        assert min_liquidity(Decimal(4000), PoolConfig()) == Decimal(5000)

    def test_capped(self) -> None:
        """Huge bankrolls are capped at liquidity_cap."""
        assert min_liquidity(Decimal(1_000_000), PoolConfig()) == Decimal(10_000)


class TestBuildPool:
    """Tests for build_pool."""

    def test_two_hours_left_passes(self) -> None:
        """A market ending in two hours passes when other floors are met."""
        pool, breakdown = build_pool([_market()], [], _NOW, _BANKROLL, PoolConfig())

        assert [m.id for m in pool] == ["1"]
        assert breakdown.passed == 1

    def test_five_minutes_left_excluded(self) -> None:
        """A market ending inside the ten-minute buffer is excluded."""
        pool, breakdown = build_pool(
            [_market(end_ts=_NOW + 5 * 60)], [], _NOW, _BANKROLL, PoolConfig()
        )

        assert pool == []
        assert breakdown.too_close == 1

    @pytest.mark.parametrize(
        ("overrides", "counter"),
        [
            ({"end_ts": None}, "no_end_date"),
            ({"end_ts": _NOW - 1}, "expired"),
            ({"closed": True}, "resolved"),
            ({"active": False}, "resolved"),
            ({"resolved": True}, "resolved"),
            ({"end_ts": _NOW + 200 * _HOUR}, "too_far_out"),
            ({"liquidity": Decimal(1000)}, "low_liquidity"),
            ({"volume": Decimal(100)}, "low_liquidity"),
            ({"outcome_prices": (Decimal("0.97"), Decimal("0.03"))}, "extreme_price"),
            ({"outcome_prices": (Decimal("0.05"), Decimal("0.95"))}, "extreme_price"),
            ({"question": "Will Elon Musk tweet 200-219 times this week?"}, "junk"),
            ({"category": "sports"}, "sports"),
        ],
    )
    def test_rejections(self, overrides: dict[str, Any], counter: str) -> None:
        """Each failing market increments exactly its own counter."""
        pool, breakdown = build_pool([_market(**overrides)], [], _NOW, _BANKROLL, PoolConfig())

        assert pool == []
        assert getattr(breakdown, counter) == 1
        assert breakdown.total == 1

    def test_wide_spread(self) -> None:
        """A tight max_spread rejects thin markets that clear the liquidity floor."""
        config = PoolConfig(max_spread=Decimal("0.03"))
        pool, breakdown = build_pool(
            [_market(liquidity=Decimal(5000))], [], _NOW, _BANKROLL, config
        )

        assert pool == []
        assert breakdown.wide_spread == 1

    def test_duplicate_open(self) -> None:
        """Markets already held are excluded."""
        pool, breakdown = build_pool([_market()], ["1"], _NOW, _BANKROLL, PoolConfig())

        assert pool == []
        assert breakdown.duplicate_open == 1

    def test_weather_relaxed_liquidity(self) -> None:
        """Weather markets more than 12h out use the relaxed floors and skip the spread check."""
        market = _market(
            question="Will the highest temperature in NYC be 41°F on March 3?",
            liquidity=Decimal(600),
            end_ts=_NOW + 20 * _HOUR,
        )
        pool, _ = build_pool([market], [], _NOW, _BANKROLL, PoolConfig())

        assert [m.id for m in pool] == ["1"]

    def test_weather_close_to_expiry_not_relaxed(self) -> None:
        """Inside 12h weather markets face the normal liquidity floor."""
        market = _market(
            question="Will the highest temperature in NYC be 41°F on March 3?",
            liquidity=Decimal(600),
            end_ts=_NOW + 6 * _HOUR,
        )
        pool, breakdown = build_pool([market], [], _NOW, _BANKROLL, PoolConfig())

        assert pool == []
        assert breakdown.low_liquidity == 1

    def test_crypto_bucket_joins_small_pool(self) -> None:
        """Crypto markets join when the clean pool is below target."""
        markets = [_market("1"), _market("2", question="Will Bitcoin close above $100k?")]
        pool, breakdown = build_pool(markets, [], _NOW, _BANKROLL, PoolConfig(min_pool_target=5))

        assert {m.id for m in pool} == {"1", "2"}
        assert breakdown.filter_level == 1
        assert filter_label(breakdown.filter_level) == "+Crypto"

    def test_buckets_withheld_when_pool_large_enough(self) -> None:
        """Crypto and stock buckets stay out once the clean pool meets the target."""
        markets = [
            _market("1"),
            _market("2", question="Will Bitcoin close above $100k?"),
            _market("3", question="Will Nvidia stock close higher on Friday?"),
        ]
        pool, breakdown = build_pool(markets, [], _NOW, _BANKROLL, PoolConfig(min_pool_target=1))

        assert [m.id for m in pool] == ["1"]
        assert breakdown.crypto == 1
        assert breakdown.stocks == 1
        assert breakdown.filter_level == 0

    def test_stock_bucket_level_two(self) -> None:
        """Stocks join after crypto when the pool is still short."""
        markets = [
            _market("2", question="Will Bitcoin close above $100k?"),
            _market("3", question="Will the Fed announce a rate cut?"),
        ]
        pool, breakdown = build_pool(markets, [], _NOW, _BANKROLL, PoolConfig(min_pool_target=5))

        assert len(pool) == 2
        assert breakdown.filter_level == 2

    def test_sorted_by_volume(self) -> None:
        """The pool is ordered by volume, highest first."""
        markets = [
            _market("1", volume=Decimal(5_000)),
            _market("2", volume=Decimal(50_000)),
            _market("3", volume=Decimal(10_000)),
        ]
        pool, _ = build_pool(markets, [], _NOW, _BANKROLL, PoolConfig())

        assert [m.id for m in pool] == ["2", "3", "1"]

    def test_every_rejection_counted_once(self) -> None:
        """Passed plus all rejection counters adds up to the total."""
        markets = [
            _market("1"),
            _market("2", end_ts=None),
            _market("3", category="sports"),
            _market("4", outcome_prices=(Decimal("0.99"), Decimal("0.01"))),
        ]
        _, breakdown = build_pool(markets, [], _NOW, _BANKROLL, PoolConfig())

        counts = breakdown.as_dict()
        rejected = sum(
            counts[name]
            for name in (
                "no_end_date",
                "expired",
                "resolved",
                "too_far_out",
                "too_close",
                "low_liquidity",
                "wide_spread",
                "extreme_price",
                "junk",
                "duplicate_open",
                "sports",
                "crypto",
                "stocks",
            )
        )
        assert rejected + breakdown.passed == breakdown.total


class TestCategories:
    """Tests for the topic keyword matchers."""

    def test_weather_word_boundaries(self) -> None:
        """Ukraine does not match rain."""
        assert is_weather("will it rain in london?")
        assert not is_weather("will ukraine sign a ceasefire?")
        assert is_weather("nyc high 41°f")

    def test_crypto_word_boundaries(self) -> None:
        """Canada does not match ada."""
        assert is_crypto("will eth flip btc?")
        assert not is_crypto("will canada hold an election?")

    def test_stock(self) -> None:
        """Macro data counts as stocks."""
        assert is_stock("will cpi come in above 3%?")
        assert not is_stock("will the senate confirm the nominee?")

    def test_junk(self) -> None:
        """Social-media counters and trivia are junk."""
        assert is_junk("how many tweets will elon post?")
        assert is_junk("will the mayor say 'crypto' during the speech?")
        assert not is_junk("will the senate pass the budget?")
