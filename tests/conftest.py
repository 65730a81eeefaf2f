"""Shared fixtures for the linkscope test suite."""

import asyncio
import logging
from typing import Dict, List, Optional

import pytest

from linkscope.services.interfaces import (
    ExpansionOutcome, IExpansionStrategy, NoChange, StrategyId
)
from linkscope.services.redirect_interfaces import (
    AnalysisMetadata, AnalysisResult, RedirectChain
)
from linkscope.services.scoring import calculate_risk_score, determine_risk_level
from linkscope.services.threat_identifier import identify_threats
from linkscope.services.topology import build_network_nodes


class ScriptedStrategy(IExpansionStrategy):
    """Test double answering from a url -> outcome script."""

    def __init__(
        self,
        strategy_id: StrategyId,
        script: Optional[Dict[str, ExpansionOutcome]] = None,
        delay: float = 0.0
    ):
        self.strategy_id = strategy_id
        self.script = dict(script or {})
        self.delay = delay
        self.calls: List[str] = []
        self.cancelled = False
        self.closed = False

    async def attempt(self, url: str) -> ExpansionOutcome:
        self.calls.append(url)
        if self.delay:
            try:
                await asyncio.sleep(self.delay)
            except asyncio.CancelledError:
                self.cancelled = True
                raise
        return self.script.get(url, NoChange())

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def restore_root_logging():
    """configure_logging() swaps root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def scripted_strategy():
    """Factory for scripted expansion strategies."""
    return ScriptedStrategy


def _result_for(urls, terminal_headers=None, incomplete=False) -> AnalysisResult:
    chain = RedirectChain.from_urls(urls, terminal_headers=terminal_headers, incomplete=incomplete)
    score = calculate_risk_score(chain)
    final = chain.last
    return AnalysisResult(
        requested_url=urls[0],
        chain=chain,
        risk_score=score,
        risk_level=determine_risk_level(score),
        threats=identify_threats(chain),
        network_nodes=build_network_nodes(chain),
        scan_duration_seconds=0.25,
        metadata=AnalysisMetadata(
            domain=final.hostname,
            protocol=final.scheme,
            is_https=final.scheme == "https",
            has_valid_certificate_heuristic=final.scheme == "https",
            content_type=final.headers.get("content-type"),
            server_headers=dict(final.headers)
        )
    )


@pytest.fixture
def make_result():
    """Factory building an AnalysisResult from a list of URLs."""
    return _result_for


@pytest.fixture
def secure_result():
    return _result_for(["https://www.example.com/"], {"content-type": "text/html"})


@pytest.fixture
def risky_result():
    return _result_for([
        "https://bit.ly/abc123",
        "http://tracker.example.net/click?utm_source=mail",
        "https://cdn.example.org/hop",
        "http://login-verify.tk/account",
    ])
