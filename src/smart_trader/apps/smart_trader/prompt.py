"""Advisory prompt construction.

One prompt per batch: the clock, bankroll and track record, the markets
already held, one compact line per market, and the JSON output contract
the router parses.
"""

from collections.abc import Sequence
from decimal import Decimal

from smart_trader.apps.smart_trader.models import Order, PerformanceHistory
from smart_trader.apps.smart_trader.pool import estimate_spread
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ONE, ZERO
from smart_trader.core.timestamps import SECONDS_PER_MINUTE, to_iso

_HUNDRED = Decimal(100)
_THOUSAND = Decimal(1_000)
_MILLION = Decimal(1_000_000)
_BLACKLIST_QUESTION_CHARS = 60

_NO_WEB_NOTE = (
    "NOTE: You have no web search. Rely on your own knowledge, say so in "
    "reasoning, and cap confidence at 65 for anything that depends on recent events."
)

_OUTPUT_CONTRACT = """OUTPUT: Raw JSON only, no code fence.
{
  "asOfUtc": "ISO timestamp",
  "summary": "1-2 lines",
  "skipped": [
    {"marketId": "ID", "question": "short", "reason": "brief why"}
  ],
  "recommendations": [
    {
      "marketId": "ID from market list",
      "question": "exact question",
      "category": "weather|politics|geopolitics|entertainment|finance|crypto|other",
      "clusterId": "cluster-id|null",
      "pMarket": 0.00, "pReal": 0.00, "pLow": 0.00, "pHigh": 0.00,
      "edge": 0.00, "evNet": 0.00,
      "confidence": 0,
      "recommendedSide": "YES|NO",
      "maxEntryPrice": 0.00, "sizeUsd": 0.00, "orderType": "LIMIT",
      "reasoning": "3-5 lines with data and logic",
      "sources": ["Source - YYYY-MM-DD - URL"],
      "risks": "1-2 lines",
      "resolutionCriteria": "how it resolves"
    }
  ]
}
List every market you did not recommend under "skipped" with a reason.
If nothing qualifies: {"summary": "reason", "skipped": [...], "recommendations": []}"""


def _cents(price: Decimal) -> str:
    return f"{price * _HUNDRED:.0f}¢"


def _usd_short(amount: Decimal) -> str:
    """Format a dollar amount as ``$1.2M``, ``$45K`` or ``$800``."""
    if amount >= _MILLION:
        return f"${amount / _MILLION:.1f}M"
    if amount >= _THOUSAND:
        return f"${amount / _THOUSAND:.0f}K"
    return f"${amount:.0f}"


def history_line(history: PerformanceHistory | None) -> str:
    """Summarize the settled-trade record with a calibration hint."""
    if history is None or history.total_trades == 0:
        return "HISTORY: No resolved trades yet. Be conservative and require strong evidence."
    rate = history.win_rate
    if rate >= 55:
        hint = "Calibration OK, maintain discipline."
    elif rate >= 45:
        hint = "Marginal, tighten confidence thresholds and require stronger edge."
    else:
        hint = "Poor, be more conservative: minimum confidence 70, minimum edge 0.12."
    return (
        f'HISTORY: {{"trades": {history.total_trades}, "wins": {history.wins}, '
        f'"losses": {history.losses}, "winRate": {rate / _HUNDRED:.2f}, '
        f'"pnl": {history.total_pnl:.2f}}} -> {hint}'
    )


def blacklist_lines(open_orders: Sequence[Order]) -> str:
    """Render the held positions the advisory must not recommend again."""
    lines = [
        f'  - [ID:{o.market_id}] "{o.market_question[:_BLACKLIST_QUESTION_CHARS]}" '
        f"→ {o.outcome} @ {_cents(o.price)}"
        for o in open_orders
        if ZERO < o.price < ONE
    ]
    return "\n".join(lines) if lines else "  (none)"


def market_line(index: int, market: Market, now: int) -> str:
    """Render one market as a single prompt line."""
    minutes_left = max(0, ((market.end_ts or now) - now) // SECONDS_PER_MINUTE)
    yes = market.yes_price
    no = market.price_of(1) if len(market.outcome_prices) > 1 else ONE - yes
    spread = estimate_spread(market.liquidity)
    return (
        f'[{index}] "{market.question}" | YES={_cents(yes)} NO={_cents(no)} '
        f"| Vol={_usd_short(market.volume)} | Liq={_usd_short(market.liquidity)} "
        f"| Spread=~{spread * _HUNDRED:.1f}% | Ends: {minutes_left / 60:.1f}h ({minutes_left}min) "
        f"| ID:{market.id}"
    )


def build_prompt(
    batch: Sequence[Market],
    open_orders: Sequence[Order],
    bankroll: Decimal,
    history: PerformanceHistory | None,
    now: int,
    *,
    has_web_search: bool = True,
    max_edge: Decimal = Decimal("0.40"),
) -> str:
    """Build the advisory prompt for one batch of markets.

    Args:
        batch: Markets to analyze.
        open_orders: Positions already held.
        bankroll: Available cash.
        history: Settled-trade record, if any.
        now: Current time, Unix seconds.
        has_web_search: Whether the provider can search the web.
        max_edge: Edge above which a recommendation is considered wrong.

    Returns:
        The prompt text.

    """
    count = len(batch)
    markets = "\n".join(market_line(i, m, now) for i, m in enumerate(batch, start=1))
    research = (
        f"Research every one of the {count} markets with web search before deciding."
        if has_web_search
        else _NO_WEB_NOTE
    )
    return f"""Prediction market mispricing scanner. Analyze {count} markets and find where public data disagrees with the market price.

UTC: {to_iso(now)} | BANKROLL: ${bankroll:.2f} | {history_line(history)}

{research}

BLACKLIST (already own, do not recommend):
{blacklist_lines(open_orders)}

MARKETS ({count}):
{markets}

MATH:
  pReal is ALWAYS the probability that the YES outcome happens, never the probability your bet wins.
  pMarket is the YES price shown above.
  side=YES requires pReal > pMarket; side=NO requires pReal < pMarket.
  edge = |pReal - pMarket|. An edge above {max_edge:.2f} means pReal is wrong; move it toward pMarket.
  minEdge = max(0.06, spread + 0.04).
  kelly = (pReal*b - q)/b with b = 1/price - 1, q = 1 - pReal. Size = kelly * 0.5 * bankroll, cap ${bankroll * Decimal("0.1"):.2f}.
  Confidence >= 60 required; fewer than 2 sources means confidence <= 40.
  CLUSTER RULE: at most one recommendation per cluster of mutually exclusive markets
  (same city and metric, e.g. "NYC 41°F" and "NYC 42-43°F"). Different cities are different clusters.
  Price must be between 5¢ and 95¢.

{_OUTPUT_CONTRACT}"""
