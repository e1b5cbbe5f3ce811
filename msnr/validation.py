"""
Relay-topology route validation.

Under the Relay topology the roof node must be the local node's direct
neighbour: a traceroute toward the mountain is only trusted when its forward
route reports exactly one intermediate hop, and that hop is the roof.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .nodes import format_node_id


@dataclass(frozen=True)
class RouteVerdict:
    accepted: bool
    reason: str

    def __bool__(self) -> bool:
        return self.accepted


def validate_relay_route(route: Sequence[int], roof_id: int | None) -> RouteVerdict:
    if roof_id is None:
        return RouteVerdict(False, "Roof node ID is not configured")
    if not route:
        return RouteVerdict(False, "route metadata is empty")
    if len(route) > 1:
        hops = " -> ".join(format_node_id(hop) for hop in route)
        return RouteVerdict(False, f"expected single hop via Roof, got {len(route)} hops ({hops})")
    if route[0] != roof_id:
        return RouteVerdict(
            False,
            f"single-hop route {format_node_id(route[0])} does not match Roof {format_node_id(roof_id)}",
        )
    return RouteVerdict(True, f"single hop via Roof ({format_node_id(roof_id)})")
