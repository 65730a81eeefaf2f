"""
Heuristic risk scoring for redirect chains.

Best-effort classification, not ground truth: every hop is checked against
every rule, contributions are summed, and the total is clamped to 0..100.
Signals are not normalised by chain length; a long chain of
bad hops accumulates quickly.
"""

import re
from typing import Dict, List, Tuple
from urllib.parse import urlparse, urlunparse

from linkscope.services.redirect_interfaces import RedirectChain, RedirectHop, RiskLevel
from linkscope.services.shortener_registry import is_shortener

MIN_SCORE = 0
MAX_SCORE = 100

CHAIN_LENGTH_POINTS_PER_HOP = 20
CHAIN_LENGTH_CAP = 40

HIGH_RISK_TLDS = ('.tk', '.ml', '.ga', '.cf', '.click', '.download', '.zip', '.exe')
MEDIUM_RISK_TLDS = ('.info', '.biz', '.name', '.mobi')
TRACKING_QUERY_MARKERS = ('redirect', 'ref=', 'utm_')
SUSPICIOUS_KEYWORDS = ('phish', 'scam', 'fake')
SUSPICIOUS_PORTS = (8080, 8000, 3000, 4000, 9000)
SAFE_DOMAINS = (
    'youtube.com', 'google.com', 'github.com', 'stackoverflow.com',
    'wikipedia.org', 'reddit.com', 'twitter.com', 'facebook.com',
    'linkedin.com', 'microsoft.com', 'apple.com', 'amazon.com'
)
MAX_SUBDOMAIN_LABELS = 4
MAX_URL_LENGTH = 200

IPV4_PATTERN = re.compile(r'^\d+\.\d+\.\d+\.\d+$')

SIGNAL_WEIGHTS: Dict[str, int] = {
    'high_risk_tld': 35,
    'medium_risk_tld': 15,
    'url_shortener': 25,
    'tracking_parameters': 10,
    'insecure_protocol': 30,
    'suspicious_keyword': 40,
    'excessive_subdomains': 15,
    'ip_address_host': 25,
    'suspicious_port': 10,
    'long_url': 10,
    'safe_domain': -20,
}

# (inclusive upper bound, level)
RISK_THRESHOLDS: Tuple[Tuple[int, RiskLevel], ...] = (
    (20, RiskLevel.SECURE),
    (40, RiskLevel.CAUTION),
    (70, RiskLevel.DANGER),
)


def chain_length_points(chain: RedirectChain) -> int:
    return min((len(chain) - 1) * CHAIN_LENGTH_POINTS_PER_HOP, CHAIN_LENGTH_CAP)


def _port_of(url: str):
    try:
        return urlparse(url).port
    except ValueError:
        return None


def normalized_href(url: str) -> str:
    """url with scheme and host lower-cased and an empty path written as '/'."""
    parsed = urlparse(url)
    userinfo, at, hostport = parsed.netloc.rpartition('@')
    return urlunparse(parsed._replace(
        scheme=parsed.scheme.lower(),
        netloc=f"{userinfo}{at}{hostport.lower()}",
        path=parsed.path or '/'
    ))


def hop_signals(hop: RedirectHop) -> List[str]:
    """Names of the signals a single hop triggers, in evaluation order."""
    parsed = urlparse(hop.url)
    href = normalized_href(hop.url)
    host = (parsed.hostname or '').lower()
    query = parsed.query
    signals = []

    if host.endswith(HIGH_RISK_TLDS):
        signals.append('high_risk_tld')
    if host.endswith(MEDIUM_RISK_TLDS):
        signals.append('medium_risk_tld')
    if is_shortener(host):
        signals.append('url_shortener')
    if any(marker in query for marker in TRACKING_QUERY_MARKERS):
        signals.append('tracking_parameters')
    if parsed.scheme.lower() == 'http':
        signals.append('insecure_protocol')
    if any(keyword in href for keyword in SUSPICIOUS_KEYWORDS):
        signals.append('suspicious_keyword')
    if len(host.split('.')) > MAX_SUBDOMAIN_LABELS:
        signals.append('excessive_subdomains')
    if IPV4_PATTERN.match(host):
        signals.append('ip_address_host')
    if _port_of(hop.url) in SUSPICIOUS_PORTS:
        signals.append('suspicious_port')
    if len(href) > MAX_URL_LENGTH:
        signals.append('long_url')
    if any(domain in host for domain in SAFE_DOMAINS):
        signals.append('safe_domain')
    return signals


def calculate_risk_score(chain: RedirectChain) -> int:
    """Additive risk score for the chain, clamped to 0..100."""
    score = chain_length_points(chain)

    for hop in chain:
        for signal in hop_signals(hop):
            score += SIGNAL_WEIGHTS[signal]
            if signal == 'safe_domain':
                # Deductions never take the running total below zero
                score = max(MIN_SCORE, score)

    return max(MIN_SCORE, min(score, MAX_SCORE))


def determine_risk_level(score: int) -> RiskLevel:
    """Map a 0..100 score to its risk level."""
    for upper_bound, level in RISK_THRESHOLDS:
        if score <= upper_bound:
            return level
    return RiskLevel.CRITICAL


class RiskScorer:
    """Scores and classifies redirect chains."""

    def score(self, chain: RedirectChain) -> int:
        return calculate_risk_score(chain)

    def classify(self, score: int) -> RiskLevel:
        return determine_risk_level(score)

    def explain(self, chain: RedirectChain) -> Dict[str, object]:
        """Per-hop breakdown of the signals behind a score."""
        return {
            'chain_length_points': chain_length_points(chain),
            'hops': [
                {'url': hop.url, 'signals': hop_signals(hop)}
                for hop in chain
            ],
            'score': calculate_risk_score(chain),
        }
