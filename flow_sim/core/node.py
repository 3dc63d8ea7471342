"""Node class for flow experiments.

This module defines the Node class, which represents an addressable endpoint
(host, gateway, base station or user equipment) in the simulated topology.
"""

from ipaddress import IPv4Address
from typing import TYPE_CHECKING, Dict, List, Optional

from flow_sim.core.enums import StackKind
from flow_sim.core.link import Link

if TYPE_CHECKING:
    from flow_sim.traffic.applications import PacketSink


class Node:
    """Represents a network node.

    Attributes:
        id: Unique identifier for the node.
        name: Human readable label.
        distance: Distance in meters from the node serving it, if any.
        addresses: Assigned network addresses, in assignment order.
        stack: Installed protocol stack kind.
        links: Adjacent links keyed by neighbour node ID.
        routing_table: Next hop for each reachable destination.
        sinks: Listening sinks keyed by port.
        serving_node: Base station the node is attached to, if any.
        bearer_active: Whether the default bearer is active.
    """

    def __init__(self, node_id: int, name: Optional[str] = None, distance: float = 0.0) -> None:
        self.id = node_id
        self.name = name or f"n{node_id}"
        self.distance = distance
        self.addresses: List[IPv4Address] = []
        self.stack = StackKind.NONE
        self.links: Dict[int, Link] = {}
        self.routing_table: Dict[int, int] = {}
        self.sinks: Dict[int, "PacketSink"] = {}
        self.serving_node: Optional[int] = None
        self.bearer_active = False

    @property
    def address(self) -> Optional[IPv4Address]:
        """Primary address, or None before assignment."""
        return self.addresses[0] if self.addresses else None

    def add_link(self, link: Link) -> None:
        """Register an adjacent link.

        Args:
            link: The link to add. This node must be one of its endpoints.
        """
        if self.id not in link.endpoints or link.a == link.b:
            raise ValueError(f"{link!r} is not attached to {self!r}")
        self.links[link.other_end(self.id)] = link

    def set_routing_table(self, routing_table: Dict[int, int]) -> None:
        self.routing_table = routing_table

    def next_hop(self, destination: int) -> Optional[int]:
        return self.routing_table.get(destination)

    def bind(self, port: int, sink: "PacketSink") -> None:
        self.sinks[port] = sink

    def unbind(self, port: int, sink: "PacketSink") -> None:
        if self.sinks.get(port) is sink:
            del self.sinks[port]

    def __repr__(self) -> str:
        return f"Node({self.id}, {self.name})"
