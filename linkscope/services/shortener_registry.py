"""Known URL shortener hosts and the order in which to expand them."""

from typing import Dict, List, Tuple

from linkscope.services.interfaces import StrategyId


_FULL_LADDER = (
    StrategyId.DIRECT_NAVIGATION,
    StrategyId.BROWSER_PROBE,
    StrategyId.PAGE_REDIRECT,
    StrategyId.UNSHORTEN_API,
    StrategyId.EXPAND_API,
    StrategyId.PATTERN_SCRAPE,
    StrategyId.STATIC_TABLE,
)

_NO_SCRAPE_LADDER = tuple(s for s in _FULL_LADDER if s is not StrategyId.PATTERN_SCRAPE)

# Exact hostname -> strategy priority. Only bit.ly and tinyurl.com expose a
# public preview page worth scraping.
SHORTENER_STRATEGIES: Dict[str, Tuple[StrategyId, ...]] = {
    "bit.ly": _FULL_LADDER,
    "tinyurl.com": _FULL_LADDER,
    "t.co": _NO_SCRAPE_LADDER,
    "goo.gl": _NO_SCRAPE_LADDER,
    "ow.ly": _NO_SCRAPE_LADDER,
    "is.gd": _NO_SCRAPE_LADDER,
}


def lookup_strategy_order(hostname: str) -> List[StrategyId]:
    """Strategy priority for hostname; empty when the host is not a known shortener."""
    return list(SHORTENER_STRATEGIES.get((hostname or "").lower(), ()))


def is_shortener(hostname: str) -> bool:
    return (hostname or "").lower() in SHORTENER_STRATEGIES


def known_shorteners() -> List[str]:
    return sorted(SHORTENER_STRATEGIES)
