"""Packet class for flow experiments.

This module defines the Packet class, which represents one chunk of
application data travelling from a flow's sender to its sink.
"""

from dataclasses import dataclass, field
from itertools import count
from typing import List, Optional, Tuple

from flow_sim.core.enums import StackKind

_packet_ids = count(1)


@dataclass
class Packet:
    """Represents a network packet.

    Attributes:
        flow_id: Identifier of the flow that emitted the packet.
        source: Source node ID.
        destination: Destination node ID.
        port: Destination port on the sink node.
        size: Payload size in bytes.
        protocol: Stack kind the packet was sent with.
        creation_time: Time when the packet was handed to the socket.
        id: Unique identifier for the packet.
        current_node: Current node where the packet is located.
        hops: List of (node, time) pairs visited by the packet.
        arrival_time: Time when the packet reached its destination.
        dropped: Whether the packet was dropped.
    """

    flow_id: int
    source: int
    destination: int
    port: int
    size: int
    protocol: StackKind = StackKind.NONE
    creation_time: float = 0.0
    id: int = field(init=False)
    current_node: int = field(init=False)
    hops: List[Tuple[int, float]] = field(default_factory=list)
    arrival_time: Optional[float] = None
    dropped: bool = False

    def __post_init__(self):
        self.id = next(_packet_ids)
        self.current_node = self.source

    def record_hop(self, node: int, time: float) -> None:
        """Record a hop in the packet's journey.

        Args:
            node: Node ID where the packet has arrived.
            time: Current simulation time.
        """
        self.hops.append((node, time))
        self.current_node = node

    def get_hop_count(self) -> int:
        return len(self.hops)
