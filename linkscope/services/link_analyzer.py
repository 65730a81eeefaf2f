"""
Link Analyzer - single entry point for URL analysis.

Resolves the redirect chain, then scores it, tags threats and lays out the
display graph. Only malformed input and caller cancellation ever raise;
network trouble degrades into a shorter (possibly incomplete) chain.
"""

import random
import time
from typing import Dict, Optional

from linkscope.config.logging import get_logger
from linkscope.config.settings import Settings, get_settings
from linkscope.core.resilience import CircuitBreaker, Throttle
from linkscope.services.chain_resolver import ChainResolver
from linkscope.services.expansion_strategies import (
    DirectNavigationStrategy, ExpandApiStrategy, PageRedirectStrategy,
    PatternScrapeStrategy, StaticTableStrategy, UnshortenApiStrategy
)
from linkscope.services.interfaces import IExpansionStrategy, InvalidInputError, StrategyId
from linkscope.services.redirect_interfaces import (
    AnalysisMetadata, AnalysisResult, RedirectChain, is_absolute_http_url
)
from linkscope.services.scoring import RiskScorer
from linkscope.services.threat_identifier import ThreatIdentifier
from linkscope.services.topology import TopologyBuilder

logger = get_logger(__name__)


class LinkAnalyzer:
    """Composes resolver, scorer, threat identifier and topology builder."""

    def __init__(
        self,
        resolver: ChainResolver,
        scorer: Optional[RiskScorer] = None,
        threat_identifier: Optional[ThreatIdentifier] = None,
        topology: Optional[TopologyBuilder] = None
    ):
        self.resolver = resolver
        self.scorer = scorer or RiskScorer()
        self.threat_identifier = threat_identifier or ThreatIdentifier()
        self.topology = topology or TopologyBuilder()

    async def analyze(self, raw_url: str) -> AnalysisResult:
        """
        Analyze a URL and its redirect chain.

        Args:
            raw_url: Absolute http(s) URL as submitted by the user

        Returns:
            Aggregate analysis result

        Raises:
            InvalidInputError: raw_url is not an absolute http(s) URL
        """
        if not is_absolute_http_url(raw_url):
            raise InvalidInputError(f"Could not analyze this input: {raw_url!r}", raw_input=raw_url)

        start_time = time.perf_counter()
        chain = await self.resolver.resolve(raw_url)
        response_time = time.perf_counter() - start_time

        risk_score = self.scorer.score(chain)
        risk_level = self.scorer.classify(risk_score)
        threats = self.threat_identifier.identify(chain)
        nodes = self.topology.build(chain)
        scan_duration = time.perf_counter() - start_time

        result = AnalysisResult(
            requested_url=raw_url,
            chain=chain,
            risk_score=risk_score,
            risk_level=risk_level,
            threats=threats,
            network_nodes=nodes,
            scan_duration_seconds=scan_duration,
            metadata=self._build_metadata(chain, response_time)
        )

        logger.info(
            f"Analyzed {raw_url}: {result.total_redirect_count} redirects, "
            f"score {risk_score} ({risk_level.value}), {len(threats)} threats"
            + ("" if result.is_complete else ", incomplete")
        )
        return result

    @staticmethod
    def _build_metadata(chain: RedirectChain, response_time: float) -> AnalysisMetadata:
        final = chain.last
        is_https = final.scheme == "https"
        return AnalysisMetadata(
            domain=final.hostname,
            protocol=final.scheme,
            is_https=is_https,
            # No certificate is inspected; HTTPS stands in for a valid one
            has_valid_certificate_heuristic=is_https,
            response_time_seconds=response_time,
            content_type=final.headers.get("content-type"),
            server_headers=dict(final.headers)
        )

    async def close(self) -> None:
        await self.resolver.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def build_strategies(settings: Settings) -> Dict[StrategyId, IExpansionStrategy]:
    """Instantiate the expansion strategies enabled by settings."""
    api_options = dict(
        timeout=settings.STRATEGY_TIMEOUT,
        user_agent=settings.USER_AGENT,
        retry_count=settings.API_RETRY_COUNT
    )

    def guarded(name: str) -> dict:
        return dict(
            throttle=Throttle(settings.API_MIN_INTERVAL),
            breaker=CircuitBreaker(
                name,
                failure_threshold=settings.API_FAILURE_THRESHOLD,
                recovery_timeout=settings.API_RECOVERY_TIMEOUT
            ),
            **api_options
        )

    strategies = [
        DirectNavigationStrategy(
            timeout=settings.STRATEGY_TIMEOUT,
            user_agent=settings.USER_AGENT,
            max_redirects=settings.MAX_HOPS
        ),
        PageRedirectStrategy(timeout=settings.STRATEGY_TIMEOUT, user_agent=settings.USER_AGENT),
        UnshortenApiStrategy(endpoint=settings.UNSHORTEN_API_URL, **guarded("unshorten_api")),
        ExpandApiStrategy(endpoint=settings.EXPAND_API_URL, **guarded("expand_api")),
        PatternScrapeStrategy(proxy_url=settings.FETCH_PROXY_URL, **guarded("fetch_proxy")),
    ]

    if settings.ENABLE_BROWSER_PROBE:
        # Playwright is an optional extra; only import it when asked for
        from linkscope.services.browser_probe import BrowserProbeStrategy
        strategies.append(BrowserProbeStrategy(
            timeout=settings.STRATEGY_TIMEOUT,
            user_agent=settings.USER_AGENT
        ))

    if settings.ENABLE_DEMO_TABLE:
        logger.warning("Demo short-code table enabled; results for demo codes are canned")
        strategies.append(StaticTableStrategy(timeout=settings.STRATEGY_TIMEOUT))

    return {strategy.strategy_id: strategy for strategy in strategies}


# Factory function
def create_link_analyzer(settings: Optional[Settings] = None) -> LinkAnalyzer:
    """Factory function to create a LinkAnalyzer wired from settings."""
    settings = settings or get_settings()
    resolver = ChainResolver(
        build_strategies(settings),
        max_hops=settings.MAX_HOPS,
        per_hop_timeout=settings.PER_HOP_TIMEOUT,
        total_timeout=settings.TOTAL_TIMEOUT,
        mode=settings.STRATEGY_MODE
    )
    topology = TopologyBuilder(random.Random() if settings.LAYOUT_JITTER else None)
    return LinkAnalyzer(resolver, topology=topology)
