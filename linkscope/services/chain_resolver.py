"""
Redirect chain resolver.

Expands a URL hop by hop. For every hop the shortener registry picks which
strategies to try and in what order; the first one that reports a new URL
wins. Resolution stops at an unknown host, an unexpandable link, a cycle,
the hop bound, or the time budget. Network trouble never fails the call.
"""

import asyncio
import time
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from linkscope.config.logging import get_logger
from linkscope.config.settings import StrategyMode
from linkscope.services.interfaces import (
    ExpansionOutcome, Failed, IExpansionStrategy, InvalidInputError, NoChange,
    Resolved, StrategyId
)
from linkscope.services.redirect_interfaces import (
    RedirectChain, RedirectHop, hostname_of, is_absolute_http_url
)
from linkscope.services.shortener_registry import lookup_strategy_order

logger = get_logger(__name__)


class ChainResolver:
    """Builds a RedirectChain from a submitted URL."""

    def __init__(
        self,
        strategies: Union[Mapping[StrategyId, IExpansionStrategy], Iterable[IExpansionStrategy]],
        strategy_order: Callable[[str], List[StrategyId]] = lookup_strategy_order,
        max_hops: int = 10,
        per_hop_timeout: float = 16.0,
        total_timeout: float = 30.0,
        mode: StrategyMode = StrategyMode.SEQUENTIAL,
        clock: Callable[[], float] = time.monotonic
    ):
        if isinstance(strategies, Mapping):
            self.strategies: Dict[StrategyId, IExpansionStrategy] = dict(strategies)
        else:
            self.strategies = {s.strategy_id: s for s in strategies}
        self.strategy_order = strategy_order
        self.max_hops = max_hops
        self.per_hop_timeout = per_hop_timeout
        self.total_timeout = total_timeout
        self.mode = StrategyMode(mode)
        self._clock = clock

    def strategies_for(self, url: str) -> List[IExpansionStrategy]:
        """Registered strategies for url's host, in priority order."""
        return [
            self.strategies[strategy_id]
            for strategy_id in self.strategy_order(hostname_of(url))
            if strategy_id in self.strategies
        ]

    async def resolve(
        self,
        original_url: str,
        max_hops: Optional[int] = None,
        per_hop_timeout: Optional[float] = None,
        total_timeout: Optional[float] = None
    ) -> RedirectChain:
        """
        Resolve original_url into an ordered redirect chain

        Args:
            original_url: Absolute http(s) URL as submitted
            max_hops: Upper bound on chain length, original URL included
            per_hop_timeout: Budget for all strategy attempts on one hop
            total_timeout: Wall-clock budget for the whole resolution

        Returns:
            The chain; ``incomplete`` is set when a time budget cut it short

        Raises:
            InvalidInputError: original_url is not an absolute http(s) URL
            asyncio.CancelledError: the caller abandoned the request
        """
        if not is_absolute_http_url(original_url):
            raise InvalidInputError(f"Invalid URL: {original_url!r}", raw_input=original_url)

        max_hops = self.max_hops if max_hops is None else max_hops
        per_hop_timeout = self.per_hop_timeout if per_hop_timeout is None else per_hop_timeout
        total_timeout = self.total_timeout if total_timeout is None else total_timeout
        if max_hops < 1:
            raise ValueError("max_hops must be at least 1")

        deadline = self._clock() + total_timeout
        urls = [original_url]
        observed_at = [time.time()]
        terminal_headers: Dict[str, str] = {}
        incomplete = False
        max_hops_reached = False
        current = original_url

        for _ in range(max_hops - 1):
            strategies = self.strategies_for(current)
            if not strategies:
                logger.debug(f"{hostname_of(current)} is not a known shortener; chain is final")
                break

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(f"Resolution budget exhausted at hop {len(urls)} for {original_url}")
                incomplete = True
                break

            try:
                outcome = await asyncio.wait_for(
                    self._resolve_hop(current, strategies),
                    timeout=min(per_hop_timeout, remaining)
                )
            except asyncio.TimeoutError:
                logger.warning(f"Hop {len(urls)} timed out for {current}")
                incomplete = True
                break

            if not isinstance(outcome, Resolved):
                logger.debug(f"No expansion for {current}: {outcome}")
                break

            next_url = outcome.next_url
            if next_url in urls:
                logger.info(f"Redirect cycle detected at {next_url}; stopping")
                break

            logger.debug(f"Hop {len(urls)}: {current} -> {next_url}")
            urls.append(next_url)
            observed_at.append(time.time())
            terminal_headers = dict(outcome.headers)
            current = next_url
        else:
            max_hops_reached = bool(self.strategies_for(current))

        return self._build_chain(urls, observed_at, terminal_headers, incomplete, max_hops_reached)

    @staticmethod
    async def _attempt(strategy: IExpansionStrategy, url: str) -> ExpansionOutcome:
        """Run one strategy, turning raised errors and unusable URLs into Failed."""
        name = strategy.strategy_id.value
        try:
            outcome = await strategy.attempt(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Strategy {name} raised for {url}: {e}")
            return Failed(f"{type(e).__name__}: {e}")

        if isinstance(outcome, Resolved) and not is_absolute_http_url(outcome.next_url):
            logger.warning(f"Strategy {name} returned a non-absolute URL for {url}: {outcome.next_url!r}")
            return Failed(f"not an absolute http(s) URL: {outcome.next_url!r}")
        return outcome

    async def _resolve_hop(self, url: str, strategies: List[IExpansionStrategy]) -> ExpansionOutcome:
        if self.mode == StrategyMode.RACE and len(strategies) > 1:
            return await self._race(url, strategies)

        failures = []
        for strategy in strategies:
            outcome = await self._attempt(strategy, url)
            if isinstance(outcome, Resolved) and outcome.next_url != url:
                logger.debug(f"{strategy.strategy_id.value} resolved {url}")
                return outcome
            if isinstance(outcome, Failed):
                failures.append(f"{strategy.strategy_id.value}: {outcome.reason}")
        return Failed("; ".join(failures)) if failures else NoChange()

    async def _race(self, url: str, strategies: List[IExpansionStrategy]) -> ExpansionOutcome:
        """Run every strategy at once; the first to resolve wins and the rest are cancelled."""
        tasks = [asyncio.ensure_future(self._attempt(strategy, url)) for strategy in strategies]
        failures = []
        try:
            for next_done in asyncio.as_completed(tasks):
                outcome = await next_done
                if isinstance(outcome, Resolved) and outcome.next_url != url:
                    return outcome
                if isinstance(outcome, Failed):
                    failures.append(outcome.reason)
            return Failed("; ".join(failures)) if failures else NoChange()
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    @staticmethod
    def _build_chain(
        urls: List[str],
        observed_at: List[float],
        terminal_headers: Dict[str, str],
        incomplete: bool,
        max_hops_reached: bool
    ) -> RedirectChain:
        hops = []
        for index, url in enumerate(urls):
            if index < len(urls) - 1:
                hops.append(RedirectHop(url, 301, {"location": urls[index + 1]}, observed_at[index]))
            else:
                hops.append(RedirectHop(url, 200, terminal_headers, observed_at[index]))
        return RedirectChain(tuple(hops), incomplete=incomplete, max_hops_reached=max_hops_reached)

    async def close(self) -> None:
        for strategy in self.strategies.values():
            await strategy.close()
