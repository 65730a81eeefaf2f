"""Chain-level threat tags, computed independently of the risk score."""

from typing import List, Tuple

from linkscope.services.redirect_interfaces import RedirectChain, ThreatTag

MULTIPLE_REDIRECT_THRESHOLD = 3
CROSS_DOMAIN_THRESHOLD = 2
TRACKING_URL_MARKERS = ('utm_', 'ref=', 'tracking')


def has_tracking_marker(url: str, markers: Tuple[str, ...] = TRACKING_URL_MARKERS) -> bool:
    return any(marker in url for marker in markers)


def identify_threats(chain: RedirectChain) -> Tuple[ThreatTag, ...]:
    """Ordered, duplicate-free threat tags for the chain."""
    threats: List[ThreatTag] = []

    if len(chain) > MULTIPLE_REDIRECT_THRESHOLD:
        threats.append(ThreatTag.MULTIPLE_REDIRECT_CHAIN)

    if any(hop.scheme == 'http' for hop in chain):
        threats.append(ThreatTag.INSECURE_PROTOCOL)

    if len(set(chain.hostnames)) > CROSS_DOMAIN_THRESHOLD:
        threats.append(ThreatTag.CROSS_DOMAIN_REDIRECTION)

    if any(has_tracking_marker(hop.url) for hop in chain):
        threats.append(ThreatTag.TRACKING_PARAMETERS)

    return tuple(threats)


class ThreatIdentifier:

    def identify(self, chain: RedirectChain) -> Tuple[ThreatTag, ...]:
        return identify_threats(chain)
