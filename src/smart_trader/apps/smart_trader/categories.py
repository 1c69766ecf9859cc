"""Keyword patterns used to filter and bucket markets by topic.

Topic words are matched on word boundaries so ``"Ukraine"`` is not a rain
market and ``"Canada"`` is not a crypto market. Junk phrases are plain
substrings because several of them are fragments (``"# of "``).
"""

import re

JUNK_PATTERNS: tuple[str, ...] = (
    "tweet",
    "tweets",
    "post on x",
    "post on twitter",
    "retweet",
    "truth social post",
    "truth social",
    "tiktok",
    "instagram",
    "youtube video",
    "viral",
    "# of ",
    "#1 free app",
    "app store",
    "play store",
    "how many",
    "number of",
    "followers",
    "subscribers",
    "most streamed",
    "most viewed",
    "elon musk",
    "musk post",
    "musk tweet",
    "spelling bee",
    "wordle",
    "jeopardy",
    "wheel of fortune",
    "chatgpt",
    "robot dancer",
    "robot dance",
    "have robot",
    "gala",
    "spring festival",
    "fundraiser",
    "160-179",
    "180-199",
    "200-219",
)

JUNK_REGEXES: tuple[re.Pattern[str], ...] = (
    re.compile(r"will .{1,40} say .{1,30} during"),
    re.compile(r"\d{2,3}-\d{2,3}\s*(posts?|tweets?|times?)"),
)


def _words(*words: str) -> re.Pattern[str]:
    """Compile an alternation of phrases anchored on word boundaries."""
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b")


WEATHER_RE = re.compile(
    r"°[cf]|\b(?:temperature|weather|rain|snow|hurricane|tornado|wind speed|heat wave|cold"
    r"|frost|humidity|celsius|fahrenheit|forecast|precipitation|storm|flood|drought"
    r"|wildfire|nws|noaa)\b"
)

CRYPTO_RE = _words(
    "bitcoin",
    "btc",
    "ethereum",
    "eth",
    "solana",
    "sol",
    "dogecoin",
    "doge",
    "crypto",
    "cryptocurrency",
    "blockchain",
    "defi",
    "nft",
    "token",
    "altcoin",
    "memecoin",
    "meme coin",
    "binance",
    "coinbase",
    "kraken",
    "market cap",
    "halving",
    "staking",
    "mining",
    "xrp",
    "ripple",
    "cardano",
    "ada",
    "polkadot",
    "dot",
    "avax",
    "avalanche",
    "matic",
    "polygon",
)

STOCK_RE = _words(
    "stock",
    "stocks",
    "s&p 500",
    "s&p500",
    "nasdaq",
    "dow jones",
    "nyse",
    "share price",
    "stock price",
    "ipo",
    "earnings",
    "quarterly report",
    "revenue",
    "fed",
    "federal reserve",
    "interest rate",
    "rate cut",
    "rate hike",
    "inflation",
    "cpi",
    "gdp",
    "unemployment rate",
    "treasury",
    "bond",
    "yield",
    "forex",
    "oil price",
    "gold price",
    "silver price",
    "commodity",
    "bull market",
    "bear market",
    "recession",
    "tesla stock",
    "apple stock",
    "nvidia",
)

POLITICS_RE = re.compile(
    r"\b(?:trump|biden|harris|congress|senate|house of rep|election|vote|poll|president"
    r"|governor|democrat|republican|gop|legislation|bill sign|executive order"
    r"|supreme court|scotus|impeach|primary|caucus|cabinet|veto|filibuster)"
)

GEOPOLITICS_RE = re.compile(
    r"\b(?:wars?|un)\b|\b(?:military|invasion|nato|united nations|sanction|tariff|ceasefire"
    r"|peace deal|treaty|summit|nuclear|missile|refugee|occupation|annexation)"
)

ENTERTAINMENT_RE = re.compile(
    r"\b(?:oscar|grammy|emmy|movie|film|box office|album|song|concert|tv show|series"
    r"|streaming|netflix|disney|spotify|billboard|ratings|premiere|celebrity|award)"
)


def is_junk(question: str) -> bool:
    """Return whether a lowercase question matches a junk phrase or pattern."""
    if any(pattern in question for pattern in JUNK_PATTERNS):
        return True
    return any(regex.search(question) for regex in JUNK_REGEXES)


def is_weather(question: str) -> bool:
    """Return whether a lowercase question is about weather."""
    return WEATHER_RE.search(question) is not None


def is_crypto(question: str) -> bool:
    """Return whether a lowercase question is about crypto assets."""
    return CRYPTO_RE.search(question) is not None


def is_stock(question: str) -> bool:
    """Return whether a lowercase question is about stocks or macro data."""
    return STOCK_RE.search(question) is not None
