"""Advisory router: prompt, dispatch, parse, normalize, record.

Send one prompt per batch to the configured ``AdvisoryProvider`` and turn
its free-text reply into normalized ``Recommendation`` objects. A reply
that cannot be parsed yields zero recommendations rather than an error;
only provider failures raise.
"""

import json
import logging
import re
import time
from collections.abc import Sequence
from decimal import Decimal
from typing import Any

from smart_trader.apps.smart_trader.models import (
    AdvisoryResult,
    AdvisoryUsage,
    Order,
    PerformanceHistory,
    Recommendation,
    SkippedMarket,
)
from smart_trader.apps.smart_trader.prompt import build_prompt
from smart_trader.apps.smart_trader.repository import TraderRepository
from smart_trader.clients.advisors.pricing import token_cost
from smart_trader.clients.advisors.protocols import AdvisoryProvider
from smart_trader.clients.polymarket.models import Market
from smart_trader.core.models import ONE, ZERO, BetSide, to_decimal

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?\s*```")
_HALF = Decimal("0.5")
_COHERENCE_LOW = Decimal("0.01")
_COHERENCE_HIGH = Decimal("0.99")
_DEFAULT_MAX_EDGE = Decimal("0.40")


def extract_json(raw: str) -> dict[str, Any] | None:
    """Locate the JSON object in an advisory reply.

    Try, in order: the whole trimmed reply, a fenced code block, and the
    first balanced ``{...}`` block that carries ``summary`` or
    ``recommendations``.

    Args:
        raw: Provider text output.

    Returns:
        The decoded object, or ``None`` when no candidate parses.

    """
    trimmed = raw.strip()
    candidates: list[str] = []
    if trimmed.startswith("{"):
        candidates.append(trimmed)
    fence = _FENCE_RE.search(raw)
    if fence:
        candidates.append(fence.group(1).strip())
    for candidate in candidates:
        decoded = _loads_object(candidate)
        if decoded is not None:
            return decoded

    block = _first_brace_block(raw)
    if block is not None:
        decoded = _loads_object(block)
        if decoded is not None and ("summary" in decoded or "recommendations" in decoded):
            return decoded
    return None


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        return None
    return decoded if isinstance(decoded, dict) else None  # pyright: ignore[reportUnknownVariableType]


def _first_brace_block(raw: str) -> str | None:
    """Return the text from the first ``{`` to its matching ``}``."""
    start = raw.find("{")
    if start < 0:
        return None
    depth = 0
    for i in range(start, len(raw)):
        if raw[i] == "{":
            depth += 1
        elif raw[i] == "}":
            depth -= 1
            if depth == 0:
                return raw[start : i + 1]
    return None


def _int(value: Any) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _optional_decimal(value: Any) -> Decimal | None:
    result = to_decimal(value)
    return result if result else None


def normalize_recommendation(
    item: dict[str, Any],
    *,
    market_prices: dict[str, Decimal] | None = None,
    max_edge: Decimal = _DEFAULT_MAX_EDGE,
) -> Recommendation | None:
    """Turn one raw recommendation into a coherent ``Recommendation``.

    ``SKIP`` and unknown sides are dropped. A ``NO`` with ``pReal > 0.5``
    is read as P(NO) and inverted, interval included. When the market
    price is informative the side is flipped to agree with ``pReal`` versus
    ``pMarket``. Edges above ``max_edge`` are dropped.

    Args:
        item: Raw recommendation dictionary from the advisory JSON.
        market_prices: ``{market_id: yes_price}`` used when ``pMarket`` is missing.
        max_edge: Largest plausible edge.

    Returns:
        The normalized recommendation, or ``None`` if it was dropped.

    """
    side_text = str(item.get("recommendedSide") or "SKIP").upper()
    if side_text not in (BetSide.YES.value, BetSide.NO.value):
        return None
    side = BetSide(side_text)
    market_id = str(item.get("marketId") or "")

    p_real = to_decimal(item.get("pReal"))
    p_market = to_decimal(item.get("pMarket"))
    if p_market <= ZERO and market_prices and market_id in market_prices:
        p_market = market_prices[market_id]
    p_low = to_decimal(item.get("pLow"))
    p_high = to_decimal(item.get("pHigh"))

    if side is BetSide.NO and p_real > _HALF:
        p_real = ONE - p_real
        p_low, p_high = ONE - p_high, ONE - p_low

    if _COHERENCE_LOW < p_market < _COHERENCE_HIGH:
        if side is BetSide.YES and p_real < p_market:
            logger.warning("Side fix %s: YES with pReal %s < pMarket %s -> NO", market_id, p_real, p_market)
            side = BetSide.NO
        elif side is BetSide.NO and p_real > p_market:
            logger.warning("Side fix %s: NO with pReal %s > pMarket %s -> YES", market_id, p_real, p_market)
            side = BetSide.YES

    edge = abs(p_real - p_market)
    if edge > max_edge:
        logger.warning("Edge guard: dropping %s with edge %s", market_id, edge)
        return None

    sources = item.get("sources")
    return Recommendation(
        market_id=market_id,
        question=str(item.get("question") or ""),
        p_real=p_real,
        p_market=p_market,
        side=side,
        confidence=_int(item.get("confidence")),
        edge=edge,
        p_low=p_low,
        p_high=p_high,
        reasoning=str(item.get("reasoning") or ""),
        sources=tuple(str(s) for s in sources) if isinstance(sources, list) else (),  # pyright: ignore[reportUnknownArgumentType, reportUnknownVariableType]
        risks=str(item.get("risks") or ""),
        resolution_criteria=str(item.get("resolutionCriteria") or ""),
        cluster_id=str(item["clusterId"]) if item.get("clusterId") else None,
        ev_net=_optional_decimal(item.get("evNet")),
        max_entry_price=_optional_decimal(item.get("maxEntryPrice")),
        size_usd=_optional_decimal(item.get("sizeUsd")),
        order_type=str(item["orderType"]) if item.get("orderType") else None,
        category=str(item["category"]) if item.get("category") else None,
    )


def parse_response(
    text: str,
    *,
    market_prices: dict[str, Decimal] | None = None,
    max_edge: Decimal = _DEFAULT_MAX_EDGE,
) -> tuple[list[Recommendation], list[SkippedMarket], str, int]:
    """Parse an advisory reply.

    Args:
        text: Provider text output.
        market_prices: ``{market_id: yes_price}`` of the batch.
        max_edge: Largest plausible edge.

    Returns:
        ``(recommendations, skipped, summary, dropped)``; all empty when
        the reply holds no usable JSON.

    """
    parsed = extract_json(text)
    if parsed is None:
        logger.warning("Advisory reply held no parsable JSON (%d chars)", len(text))
        return [], [], "", 0

    skipped = [
        SkippedMarket(
            market_id=str(s.get("marketId") or ""),
            question=str(s.get("question") or ""),
            reason=str(s.get("reason") or "No reason given"),
        )
        for s in parsed.get("skipped") or []
        if isinstance(s, dict)
    ]

    recommendations: list[Recommendation] = []
    dropped = 0
    raw_recs = parsed.get("recommendations")
    for item in raw_recs if isinstance(raw_recs, list) else []:  # pyright: ignore[reportUnknownVariableType]
        rec = (
            normalize_recommendation(item, market_prices=market_prices, max_edge=max_edge)  # pyright: ignore[reportUnknownArgumentType]
            if isinstance(item, dict)
            else None
        )
        if rec is None:
            dropped += 1
        else:
            recommendations.append(rec)
    return recommendations, skipped, str(parsed.get("summary") or ""), dropped


class AdvisoryRouter:
    """Route batches to an advisory provider and record what each call cost.

    Args:
        provider: Provider that turns a prompt into text.
        repository: Store receiving per-call usage, or ``None`` to skip recording.
        max_edge: Largest plausible edge; larger ones are dropped.

    """

    def __init__(
        self,
        provider: AdvisoryProvider,
        repository: TraderRepository | None = None,
        max_edge: Decimal = _DEFAULT_MAX_EDGE,
    ) -> None:
        """Initialize the router."""
        self._provider = provider
        self._repository = repository
        self._max_edge = max_edge

    @property
    def provider(self) -> AdvisoryProvider:
        """Return the provider calls are routed to."""
        return self._provider

    async def ask(
        self,
        batch: Sequence[Market],
        open_orders: Sequence[Order],
        bankroll: Decimal,
        history: PerformanceHistory | None,
        now: int,
    ) -> AdvisoryResult:
        """Analyze one batch of markets.

        Args:
            batch: Markets to analyze.
            open_orders: Positions already held, listed as a blacklist.
            bankroll: Available cash.
            history: Settled-trade record for calibration.
            now: Current time, Unix seconds.

        Returns:
            Normalized recommendations plus usage and raw text.

        Raises:
            AdvisoryError: If the provider call fails.

        """
        prompt = build_prompt(
            batch,
            open_orders,
            bankroll,
            history,
            now,
            has_web_search=self._provider.has_web_search,
            max_edge=self._max_edge,
        )
        started = time.monotonic()
        completion = await self._provider.complete(prompt)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        model = self._provider.model
        usage = AdvisoryUsage(
            provider=self._provider.name,
            model=model,
            input_tokens=completion.input_tokens,
            output_tokens=completion.output_tokens,
            cost_usd=token_cost(completion.input_tokens, completion.output_tokens, model),
            response_time_ms=elapsed_ms,
            web_searches=completion.web_searches,
        )
        recs, skipped, summary, dropped = parse_response(
            completion.text,
            market_prices={m.id: m.yes_price for m in batch},
            max_edge=self._max_edge,
        )
        logger.info(
            "%s/%s: %d recommendations, %d skipped, %d dropped, $%.4f in %dms",
            usage.provider,
            model,
            len(recs),
            len(skipped),
            dropped,
            usage.cost_usd,
            elapsed_ms,
        )
        if self._repository is not None:
            await self._repository.record_usage(usage, now, recommendations=len(recs), summary=summary)
        return AdvisoryResult(
            recommendations=tuple(recs),
            skipped=tuple(skipped),
            usage=usage,
            summary=summary,
            prompt=prompt,
            raw_response=completion.text,
            dropped=dropped,
        )

    async def close(self) -> None:
        """Release the provider's network resources."""
        await self._provider.close()
