"""
Unit tests for LinkAnalyzer - the analysis facade.
"""

from unittest.mock import AsyncMock

import pytest

from linkscope.config.settings import Settings
from linkscope.services.chain_resolver import ChainResolver
from linkscope.services.interfaces import Failed, InvalidInput, InvalidInputError, Resolved, StrategyId
from linkscope.services.link_analyzer import LinkAnalyzer, build_strategies, create_link_analyzer
from linkscope.services.redirect_interfaces import AnalysisResult, RiskLevel, ThreatTag
from linkscope.services.shortener_registry import lookup_strategy_order


class TestLinkAnalyzer:
    """Test suite for the analysis facade."""

    @pytest.fixture
    def direct(self, scripted_strategy):
        return scripted_strategy(StrategyId.DIRECT_NAVIGATION)

    @pytest.fixture
    def analyzer(self, direct):
        return LinkAnalyzer(ChainResolver([direct]))

    @pytest.mark.asyncio
    async def test_analyze_composes_result(self, analyzer, direct):
        direct.script = {
            "https://bit.ly/a": Resolved(
                "http://example.tk/a",
                {"Content-Type": "text/html; charset=utf-8", "Server": "nginx"}
            )
        }

        result = await analyzer.analyze("https://bit.ly/a")

        assert isinstance(result, AnalysisResult)
        assert result.requested_url == "https://bit.ly/a"
        assert result.final_destination == "http://example.tk/a"
        assert result.total_redirect_count == 1
        assert result.risk_score == 100
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.threats == (ThreatTag.INSECURE_PROTOCOL,)
        assert [node.id for node in result.network_nodes] == ["node-0", "node-1"]
        assert result.scan_duration_seconds >= 0
        assert result.is_complete

        metadata = result.metadata
        assert metadata.domain == "example.tk"
        assert metadata.protocol == "http"
        assert metadata.is_https is False
        assert metadata.has_valid_certificate_heuristic is False
        assert metadata.content_type == "text/html; charset=utf-8"
        assert metadata.server_headers["server"] == "nginx"

    @pytest.mark.asyncio
    async def test_single_insecure_hop_is_danger(self, analyzer):
        result = await analyzer.analyze("http://example.tk/a")

        assert result.risk_score == 65
        assert result.risk_level == RiskLevel.DANGER
        assert result.total_redirect_count == 0

    @pytest.mark.asyncio
    async def test_unresolvable_shortener_is_still_a_result(self, analyzer, direct):
        direct.script = {"https://bit.ly/gone": Failed("HTTP 404")}

        result = await analyzer.analyze("https://bit.ly/gone")

        assert len(result.chain) == 1
        assert result.total_redirect_count == 0
        assert result.final_destination == "https://bit.ly/gone"
        assert result.metadata.is_https

    @pytest.mark.asyncio
    async def test_raising_strategy_still_yields_result(self, analyzer, direct):
        direct.attempt = AsyncMock(side_effect=ConnectionError("socket reset"))

        result = await analyzer.analyze("https://bit.ly/abc")

        assert result.final_destination == "https://bit.ly/abc"
        assert result.total_redirect_count == 0
        direct.attempt.assert_awaited_once_with("https://bit.ly/abc")

    @pytest.mark.asyncio
    async def test_relative_next_url_still_yields_result(self, analyzer, direct):
        direct.script = {"https://bit.ly/abc": Resolved("/landing")}

        result = await analyzer.analyze("https://bit.ly/abc")

        assert result.chain.urls == ["https://bit.ly/abc"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not a url", "", "javascript:alert(1)", "example.com"])
    async def test_invalid_input(self, analyzer, direct, raw):
        with pytest.raises(InvalidInputError) as exc_info:
            await analyzer.analyze(raw)

        assert exc_info.value.raw_input == raw
        assert direct.calls == []

    def test_invalid_input_alias(self):
        assert InvalidInput is InvalidInputError

    @pytest.mark.asyncio
    async def test_to_dict_is_json_ready(self, analyzer, direct):
        direct.script = {"https://bit.ly/a": Resolved("https://example.com/?utm_source=x")}

        data = (await analyzer.analyze("https://bit.ly/a")).to_dict()

        assert data["risk_score"] == 55
        assert data["risk_level"] == "danger"
        assert data["threats"] == ["tracking-parameters"]
        assert data["total_redirect_count"] == 1
        assert data["is_complete"] is True
        assert data["redirect_chain"][0]["status_code"] == 301
        assert data["redirect_chain"][1]["status_code"] == 200
        assert data["network_nodes"][1]["role"] == "destination"
        assert data["metadata"]["protocol"] == "https"

    @pytest.mark.asyncio
    async def test_context_manager_closes_strategies(self, analyzer, direct):
        async with analyzer:
            pass

        assert direct.closed


class TestLinkAnalyzerFactory:

    @pytest.fixture
    def settings(self):
        return Settings(_env_file=None)

    @pytest.mark.asyncio
    async def test_default_strategies(self, settings):
        strategies = build_strategies(settings)
        try:
            assert set(strategies) == {
                StrategyId.DIRECT_NAVIGATION,
                StrategyId.PAGE_REDIRECT,
                StrategyId.UNSHORTEN_API,
                StrategyId.EXPAND_API,
                StrategyId.PATTERN_SCRAPE,
            }
            assert strategies[StrategyId.UNSHORTEN_API].endpoint == settings.UNSHORTEN_API_URL
            assert strategies[StrategyId.UNSHORTEN_API].breaker is not strategies[StrategyId.EXPAND_API].breaker
        finally:
            for strategy in strategies.values():
                await strategy.close()

    @pytest.mark.asyncio
    async def test_demo_table_is_opt_in(self, settings):
        strategies = build_strategies(settings.model_copy(update={"ENABLE_DEMO_TABLE": True}))
        try:
            assert StrategyId.STATIC_TABLE in strategies
        finally:
            for strategy in strategies.values():
                await strategy.close()

    @pytest.mark.asyncio
    async def test_create_link_analyzer_uses_settings(self, settings):
        settings = settings.model_copy(update={"MAX_HOPS": 4, "TOTAL_TIMEOUT": 12.0, "LAYOUT_JITTER": True})

        analyzer = create_link_analyzer(settings)
        async with analyzer:
            assert analyzer.resolver.max_hops == 4
            assert analyzer.resolver.total_timeout == 12.0
            assert analyzer.topology.rng is not None

    @pytest.mark.asyncio
    async def test_hop_budget_covers_every_default_strategy(self, settings):
        strategies = build_strategies(settings)
        try:
            ladder = [s for s in lookup_strategy_order("bit.ly") if s in strategies]

            assert ladder[-1] == StrategyId.PATTERN_SCRAPE
            assert settings.PER_HOP_TIMEOUT >= len(ladder) * settings.STRATEGY_TIMEOUT
        finally:
            for strategy in strategies.values():
                await strategy.close()
