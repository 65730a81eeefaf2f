"""Display graph for a redirect chain: one node per hop, linked in order."""

import random
from typing import Optional, Tuple

from linkscope.services.redirect_interfaces import NetworkNode, NodeRole, RedirectChain
from linkscope.services.threat_identifier import has_tracking_marker

X_START = 10.0
X_SPAN = 80.0
Y_CENTER = 50.0
Y_JITTER = 15.0
NODE_TRACKING_MARKERS = ('utm_', 'ref=')


def node_id(index: int) -> str:
    return f"node-{index}"


class TopologyBuilder:
    """
    Lays hops out left to right across x in [10, 90].

    y carries no meaning. It stays on the centre line unless a random source
    is supplied, in which case it wanders by at most Y_JITTER.
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng

    def build(self, chain: RedirectChain) -> Tuple[NetworkNode, ...]:
        count = len(chain)
        spacing = X_SPAN / max(count - 1, 1)
        nodes = []

        for index, hop in enumerate(chain):
            if index == 0:
                role = NodeRole.ORIGIN
            elif index == count - 1:
                role = NodeRole.DESTINATION
            elif has_tracking_marker(hop.url, NODE_TRACKING_MARKERS):
                role = NodeRole.TRACKER
            else:
                role = NodeRole.REDIRECT

            y = Y_CENTER
            if self.rng is not None:
                y += (self.rng.random() - 0.5) * 2 * Y_JITTER

            connections = (node_id(index + 1),) if index < count - 1 else ()
            nodes.append(NetworkNode(
                id=node_id(index),
                role=role,
                position=(round(X_START + index * spacing, 4), round(y, 4)),
                connections=connections
            ))

        return tuple(nodes)


def build_network_nodes(chain: RedirectChain, jitter_rng: Optional[random.Random] = None) -> Tuple[NetworkNode, ...]:
    return TopologyBuilder(jitter_rng).build(chain)
