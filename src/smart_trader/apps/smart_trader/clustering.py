"""Cluster de-duplication and category diversification.

Markets that differ only in a number ("NYC high 41°F", "NYC high 42-43°F")
are mutually exclusive bins of one event. Only one market per cluster is
shown to the advisory, markets correlated with an open position are
dropped, and the shortlist is filled round-robin across topic buckets so
one busy category cannot crowd out the rest.
"""

import logging
import re
from collections.abc import Iterable, Sequence

from smart_trader.apps.smart_trader.categories import (
    ENTERTAINMENT_RE,
    GEOPOLITICS_RE,
    POLITICS_RE,
    is_crypto,
    is_stock,
    is_weather,
)
from smart_trader.apps.smart_trader.models import Order, Recommendation
from smart_trader.clients.polymarket.models import Market

logger = logging.getLogger(__name__)

CATEGORY_PRIORITY = (
    "politics",
    "geopolitics",
    "entertainment",
    "other",
    "finance",
    "crypto",
    "weather",
)
CATEGORY_CAPS: dict[str, int] = {
    "weather": 8,
    "politics": 12,
    "geopolitics": 10,
    "entertainment": 10,
    "finance": 8,
    "crypto": 6,
    "other": 10,
}
DEFAULT_CATEGORY_CAP = 10

_MIN_BROAD_KEY_LENGTH = 10
_EDGE_TIE = 0.005

_UNIT_RE = re.compile(r"°\s*[fc]\b")
_NUMBER = r"[-+]?\d[\d,]*(?:\.\d+)?"
_NUMBER_OR_RANGE_RE = re.compile(rf"{_NUMBER}(?:\s*(?:-|–|to)\s*{_NUMBER})?")
_NUMBER_RE = re.compile(_NUMBER)
_PLACEHOLDER_RUN_RE = re.compile(r"#(?:\s*#)+")
_SPACE_RE = re.compile(r"\s+")
_COMPARISON_RE = re.compile(
    r"\b(?:between|or below|or above|less than|more than|greater than|at least|at most|exactly)\b"
)
_STOP_WORDS_RE = re.compile(r"\b(?:will|the|be|on|in|this|a|an|of|for|to|and|or)\b")


def cluster_key(question: str) -> str:
    """Return the narrow cluster signature of a market question.

    Lowercase, drop temperature units, replace every number or numeric
    range with ``#`` and collapse whitespace.

    Args:
        question: Market question.

    Returns:
        The signature, empty for an empty question.

    """
    text = _UNIT_RE.sub("", question.lower().strip())
    text = _NUMBER_OR_RANGE_RE.sub("#", text)
    text = _PLACEHOLDER_RUN_RE.sub("#", text)
    return _SPACE_RE.sub(" ", text).strip()


def broad_cluster_key(question: str) -> str:
    """Return the broad cluster signature used to detect open-position overlap.

    Remove numbers, units, comparison phrases, stop words and question
    marks so "NYC ≤41°F" and "NYC between 42-43°F" collide.

    Args:
        question: Market question.

    Returns:
        The signature, or ``""`` when too short to be meaningful.

    """
    text = _NUMBER_RE.sub("", question.lower().strip())
    text = _UNIT_RE.sub("", text).replace("°", "")
    text = _COMPARISON_RE.sub("", text)
    text = _STOP_WORDS_RE.sub("", text)
    text = _SPACE_RE.sub(" ", text.replace("?", "")).strip()
    if len(text) < _MIN_BROAD_KEY_LENGTH:
        return ""
    return text


def dedupe(pool: Sequence[Market]) -> list[Market]:
    """Keep the highest-volume market of every narrow cluster.

    Markets with an empty key are their own cluster. Group order follows
    the first appearance of each cluster, so applying this twice is a no-op.

    Args:
        pool: Candidate markets.

    Returns:
        One representative per cluster.

    """
    best: dict[str, Market] = {}
    for market in pool:
        key = cluster_key(market.question) or f"__unique_{market.id}"
        current = best.get(key)
        if current is None or market.volume > current.volume:
            best[key] = market
    merged = len(pool) - len(best)
    if merged:
        logger.debug("Cluster dedup merged %d markets", merged)
    return list(best.values())


def drop_open_conflicts(pool: Sequence[Market], open_orders: Iterable[Order]) -> list[Market]:
    """Remove markets whose broad cluster already holds an open position.

    Args:
        pool: Candidate markets.
        open_orders: Orders still awaiting settlement.

    Returns:
        Markets with no broad-cluster overlap.

    """
    held = {key for order in open_orders if (key := broad_cluster_key(order.market_question))}
    if not held:
        return list(pool)
    kept: list[Market] = []
    for market in pool:
        key = broad_cluster_key(market.question)
        if key and key in held:
            logger.debug("Dropping %s: overlaps an open position", market.id)
            continue
        kept.append(market)
    return kept


def classify(market: Market) -> str:
    """Return the coarse topic category of a market."""
    if market.category == "sports":
        return "sports"
    question = market.question.lower()
    if is_crypto(question):
        return "crypto"
    if is_stock(question):
        return "finance"
    if is_weather(question):
        return "weather"
    if POLITICS_RE.search(question):
        return "politics"
    if GEOPOLITICS_RE.search(question):
        return "geopolitics"
    if ENTERTAINMENT_RE.search(question):
        return "entertainment"
    return "other"


def diversify(pool: Sequence[Market], max_size: int) -> list[Market]:
    """Fill a shortlist round-robin across capped category buckets.

    Args:
        pool: Candidate markets.
        max_size: Maximum shortlist length.

    Returns:
        Up to ``max_size`` markets interleaved by category priority.

    """
    buckets: dict[str, list[Market]] = {}
    for market in pool:
        buckets.setdefault(classify(market), []).append(market)
    for category, markets in buckets.items():
        markets.sort(key=lambda m: m.volume, reverse=True)
        del markets[CATEGORY_CAPS.get(category, DEFAULT_CATEGORY_CAP) :]

    order = [c for c in CATEGORY_PRIORITY if c in buckets]
    order += [c for c in buckets if c not in order]

    result: list[Market] = []
    depth = 0
    while len(result) < max_size:
        added = False
        for category in order:
            markets = buckets[category]
            if depth < len(markets):
                result.append(markets[depth])
                added = True
                if len(result) >= max_size:
                    break
        if not added:
            break
        depth += 1
    return result


def dedupe_recommendations(recs: Sequence[Recommendation]) -> list[Recommendation]:
    """Keep one recommendation per cluster.

    The cluster is the advisory's ``cluster_id``, else the broad key, else
    the narrow key of the question. The survivor has the largest absolute
    edge; edges within half a point are broken by confidence.

    Args:
        recs: Normalized recommendations.

    Returns:
        One recommendation per cluster, in first-seen cluster order.

    """
    groups: dict[str, list[Recommendation]] = {}
    for rec in recs:
        key = (
            rec.cluster_id
            or broad_cluster_key(rec.question)
            or cluster_key(rec.question)
            or f"__unique_{rec.market_id}"
        )
        groups.setdefault(key, []).append(rec)

    result: list[Recommendation] = []
    for key, group in groups.items():
        winner = group[0]
        for rec in group[1:]:
            diff = float(abs(rec.edge) - abs(winner.edge))
            if diff > _EDGE_TIE or (abs(diff) <= _EDGE_TIE and rec.confidence > winner.confidence):
                winner = rec
        if len(group) > 1:
            logger.info("Cluster %r: kept 1 of %d recommendations", key, len(group))
        result.append(winner)
    return result
