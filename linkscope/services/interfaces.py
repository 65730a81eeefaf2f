"""Service interfaces, expansion outcomes and the error taxonomy.

Expansion strategies all satisfy one contract: given a URL, report the next
hop, report that nothing changed, or report why they could not tell.
Strategies never raise for network or parsing trouble; they fold it into
``Failed``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union


class StrategyId(Enum):
    """Identifiers for interchangeable one-hop expansion techniques."""
    DIRECT_NAVIGATION = "direct_navigation"
    BROWSER_PROBE = "browser_probe"
    PAGE_REDIRECT = "page_redirect"
    UNSHORTEN_API = "unshorten_api"
    EXPAND_API = "expand_api"
    PATTERN_SCRAPE = "pattern_scrape"
    STATIC_TABLE = "static_table"


@dataclass(frozen=True)
class Resolved:
    """The strategy found the next hop."""
    next_url: str
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NoChange:
    """The strategy ran cleanly but the URL does not redirect anywhere."""


@dataclass(frozen=True)
class Failed:
    """The strategy could not determine the next hop."""
    reason: str


ExpansionOutcome = Union[Resolved, NoChange, Failed]


class IExpansionStrategy(ABC):
    """Interface for one-hop expansion strategies"""

    strategy_id: StrategyId

    @abstractmethod
    async def attempt(self, url: str) -> ExpansionOutcome:
        """
        Try to resolve one hop of a possibly-shortened URL

        Args:
            url: Absolute http(s) URL of the current hop

        Returns:
            Resolved, NoChange or Failed. Must not raise for network or
            parsing errors; cancellation is allowed to propagate.
        """
        pass

    async def close(self) -> None:
        """Release any network resources held by the strategy."""
        return None


class LinkScopeError(Exception):
    """Base class for all linkscope errors."""
    pass


class InvalidInputError(LinkScopeError):
    """Raised when the submitted text is not an absolute http(s) URL."""

    def __init__(self, message: str, raw_input: Optional[str] = None):
        super().__init__(message)
        self.raw_input = raw_input


# Name used by callers that think in terms of the error taxonomy
InvalidInput = InvalidInputError


class ExpansionError(LinkScopeError):
    """A single strategy could not resolve a hop. Never leaves a strategy."""
    pass


class RateLimitError(ExpansionError):
    """The remote service answered 429."""

    def __init__(self, service: str, retry_after: Optional[float] = None):
        self.service = service
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for {service}")


class ServiceUnavailableError(LinkScopeError):
    """A circuit breaker is open for the remote service."""
    pass


__all__ = [
    "StrategyId",
    "Resolved",
    "NoChange",
    "Failed",
    "ExpansionOutcome",
    "IExpansionStrategy",
    "LinkScopeError",
    "InvalidInputError",
    "InvalidInput",
    "ExpansionError",
    "RateLimitError",
    "ServiceUnavailableError",
]
