"""
Redirect Chain Data Structures

Defines the immutable data model shared by the resolver, the scorer, the
threat identifier and the topology builder, along with the aggregate
analysis result handed to callers.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlparse


def is_absolute_http_url(value: Any) -> bool:
    """True when value parses as an absolute http or https URI with a host."""
    if not isinstance(value, str) or not value or value != value.strip():
        return False
    try:
        parsed = urlparse(value)
        # .port raises ValueError for out-of-range or non-numeric ports
        parsed.port
    except ValueError:
        return False
    if parsed.scheme.lower() not in ("http", "https"):
        return False
    return bool(parsed.netloc) and bool(parsed.hostname)


def hostname_of(url: str) -> str:
    """Lower-cased hostname of url, or an empty string."""
    return (urlparse(url).hostname or "").lower()


class RiskLevel(Enum):
    """Discrete risk classification, ordered by ascending severity"""
    SECURE = "secure"
    CAUTION = "caution"
    DANGER = "danger"
    CRITICAL = "critical"

    @property
    def severity(self) -> int:
        return _RISK_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other):
        if not isinstance(other, RiskLevel):
            return NotImplemented
        return self.severity >= other.severity


_RISK_ORDER = [RiskLevel.SECURE, RiskLevel.CAUTION, RiskLevel.DANGER, RiskLevel.CRITICAL]


class ThreatTag(Enum):
    """Closed vocabulary of chain-level threat tags"""
    MULTIPLE_REDIRECT_CHAIN = "multiple-redirect-chain"
    INSECURE_PROTOCOL = "insecure-protocol"
    CROSS_DOMAIN_REDIRECTION = "cross-domain-redirection"
    TRACKING_PARAMETERS = "tracking-parameters"

    @property
    def description(self) -> str:
        return THREAT_DESCRIPTIONS[self]


THREAT_DESCRIPTIONS = {
    ThreatTag.MULTIPLE_REDIRECT_CHAIN: "Multiple redirect chain detected",
    ThreatTag.INSECURE_PROTOCOL: "Insecure HTTP protocol in chain",
    ThreatTag.CROSS_DOMAIN_REDIRECTION: "Cross-domain redirections detected",
    ThreatTag.TRACKING_PARAMETERS: "Tracking parameters detected",
}


class NodeRole(Enum):
    """Display role of a hop in the topology graph"""
    ORIGIN = "origin"
    REDIRECT = "redirect"
    DESTINATION = "destination"
    TRACKER = "tracker"


@dataclass(frozen=True)
class RedirectHop:
    """A single observed URL in the redirect chain"""
    url: str
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    observed_at: float = field(default_factory=time.time)

    def __post_init__(self):
        if not is_absolute_http_url(self.url):
            raise ValueError(f"Hop URL is not an absolute http(s) URL: {self.url!r}")
        lowered = {str(k).lower(): str(v) for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", MappingProxyType(lowered))

    @property
    def hostname(self) -> str:
        return hostname_of(self.url)

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme.lower()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "status_code": self.status_code,
            "headers": dict(self.headers),
            "observed_at": self.observed_at,
        }


@dataclass(frozen=True)
class RedirectChain:
    """Ordered, non-empty sequence of hops from submitted URL to final destination"""
    hops: Tuple[RedirectHop, ...]
    incomplete: bool = False
    max_hops_reached: bool = False

    def __post_init__(self):
        hops = tuple(self.hops)
        if not hops:
            raise ValueError("A redirect chain needs at least one hop")
        for previous, current in zip(hops, hops[1:]):
            if previous.url == current.url:
                raise ValueError(f"Consecutive duplicate hop in chain: {current.url}")
        object.__setattr__(self, "hops", hops)

    @classmethod
    def from_urls(
        cls,
        urls: Sequence[str],
        terminal_headers: Optional[Mapping[str, str]] = None,
        incomplete: bool = False,
        max_hops_reached: bool = False
    ) -> "RedirectChain":
        """Build a chain with synthetic status codes: 301 for hops left behind, 200 at the end."""
        hops = []
        now = time.time()
        for index, url in enumerate(urls):
            if index < len(urls) - 1:
                hops.append(RedirectHop(url, 301, {"location": urls[index + 1]}, now))
            else:
                hops.append(RedirectHop(url, 200, dict(terminal_headers or {}), now))
        return cls(tuple(hops), incomplete=incomplete, max_hops_reached=max_hops_reached)

    def __len__(self) -> int:
        return len(self.hops)

    def __iter__(self) -> Iterator[RedirectHop]:
        return iter(self.hops)

    def __getitem__(self, index):
        return self.hops[index]

    @property
    def first(self) -> RedirectHop:
        return self.hops[0]

    @property
    def last(self) -> RedirectHop:
        return self.hops[-1]

    @property
    def urls(self) -> List[str]:
        return [hop.url for hop in self.hops]

    @property
    def hostnames(self) -> List[str]:
        return [hop.hostname for hop in self.hops]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hops": [hop.to_dict() for hop in self.hops],
            "incomplete": self.incomplete,
            "max_hops_reached": self.max_hops_reached,
        }


@dataclass(frozen=True)
class NetworkNode:
    """Presentational graph node for one hop"""
    id: str
    role: NodeRole
    position: Tuple[float, float]
    connections: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "position": {"x": self.position[0], "y": self.position[1]},
            "connections": list(self.connections),
        }


@dataclass(frozen=True)
class AnalysisMetadata:
    """Facts about the final destination"""
    domain: str
    protocol: str
    is_https: bool
    has_valid_certificate_heuristic: bool
    response_time_seconds: float = 0.0
    content_type: Optional[str] = None
    server_headers: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "domain": self.domain,
            "protocol": self.protocol,
            "is_https": self.is_https,
            "has_valid_certificate_heuristic": self.has_valid_certificate_heuristic,
            "response_time_seconds": self.response_time_seconds,
            "content_type": self.content_type,
            "server_headers": dict(self.server_headers),
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Complete result of analysing one submitted URL"""
    requested_url: str
    chain: RedirectChain
    risk_score: int
    risk_level: RiskLevel
    threats: Tuple[ThreatTag, ...]
    network_nodes: Tuple[NetworkNode, ...]
    scan_duration_seconds: float
    metadata: AnalysisMetadata
    analyzed_at: float = field(default_factory=time.time)

    @property
    def total_redirect_count(self) -> int:
        return len(self.chain) - 1

    @property
    def final_destination(self) -> str:
        return self.chain.last.url

    @property
    def is_complete(self) -> bool:
        return not self.chain.incomplete

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation suitable for a history store."""
        return {
            "requested_url": self.requested_url,
            "redirect_chain": [hop.to_dict() for hop in self.chain],
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.value,
            "threats": [threat.value for threat in self.threats],
            "total_redirect_count": self.total_redirect_count,
            "final_destination": self.final_destination,
            "network_nodes": [node.to_dict() for node in self.network_nodes],
            "scan_duration_seconds": self.scan_duration_seconds,
            "is_complete": self.is_complete,
            "max_hops_reached": self.chain.max_hops_reached,
            "metadata": self.metadata.to_dict(),
            "analyzed_at": self.analyzed_at,
        }


__all__ = [
    "is_absolute_http_url",
    "hostname_of",
    "RiskLevel",
    "ThreatTag",
    "THREAT_DESCRIPTIONS",
    "NodeRole",
    "RedirectHop",
    "RedirectChain",
    "NetworkNode",
    "AnalysisMetadata",
    "AnalysisResult",
]
