"""Socket factory capability for flow experiments.

Transport protocols are external collaborators: the driver only asks a
SocketFactory for a socket on the sender's node and pushes chunks through
it. The PacketSocketFactory shipped here carries each chunk hop by hop along
the routing tables without modelling handshakes, congestion control or
retransmission. A fixed send buffer bounds the bytes a socket keeps in
flight, so a bulk sender cannot queue more than that in the network.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

import simpy

from flow_sim.core.enums import StackKind
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.packet import Packet
from flow_sim.core.topology import Topology

Notify = Callable[..., None]

DEFAULT_SEND_BUFFER = 128 * 1024


def _ignore(*args: Any) -> None:
    pass


class Socket(ABC):
    """Sending side of a transport connection."""

    def __init__(self, topology: Topology, node_id: int, protocol: StackKind, notify: Optional[Notify] = None):
        self.topology = topology
        self.env = topology.env
        self.node_id = node_id
        self.protocol = protocol
        self.notify = notify or _ignore
        self.destination: Optional[int] = None
        self.port: Optional[int] = None
        self.flow_id: Optional[int] = None

    def connect(self, destination: int, port: int, flow_id: int) -> None:
        """Bind the socket to a (node, port) destination."""
        self.destination = destination
        self.port = port
        self.flow_id = flow_id

    @abstractmethod
    def send(self, size: int):
        """SimPy generator that returns once ``size`` bytes left the node.

        Returns:
            The packet that was sent.
        """
        pass


class PacketSocket(Socket):
    """Socket that forwards each chunk as one packet along the routed path.

    Attributes:
        window: Free bytes of the send buffer. A chunk takes its size out
            before transmission and gives it back once it was delivered or
            dropped.
    """

    def __init__(
        self,
        topology: Topology,
        node_id: int,
        protocol: StackKind,
        notify: Optional[Notify] = None,
        send_buffer: int = DEFAULT_SEND_BUFFER,
    ):
        super().__init__(topology, node_id, protocol, notify)
        if send_buffer <= 0:
            raise ConfigurationError(f"Send buffer must be positive, got {send_buffer}")
        self.window = simpy.Container(self.env, capacity=send_buffer, init=send_buffer)

    def send(self, size: int):
        if self.destination is None:
            raise ConfigurationError("Socket is not connected")
        packet = Packet(
            flow_id=self.flow_id,
            source=self.node_id,
            destination=self.destination,
            port=self.port,
            size=size,
            protocol=self.protocol,
            creation_time=self.env.now,
        )
        link = self.topology.next_link(self.node_id, self.destination)
        if link is None:
            raise ConfigurationError(
                f"No route from node {self.node_id} to node {self.destination}"
            )

        yield self.window.get(self._reserved(packet))
        packet.creation_time = self.env.now
        direction = link.direction_from(self.node_id)
        yield from link.transmit(packet, direction)
        self.notify("packet_sent", packet, self.env.now)
        self.env.process(self._propagate(packet, link, direction))
        return packet

    def _reserved(self, packet: Packet) -> int:
        return min(packet.size, self.window.capacity)

    def _propagate(self, packet: Packet, link, direction):
        """Packet's journey after leaving a node's transmitter."""
        while True:
            yield self.env.timeout(link.propagation_delay)
            next_node = link.other_end(packet.current_node)
            if not link.receive(packet, direction):
                packet.current_node = next_node
                self._drop(packet, "Error model")
                return
            packet.record_hop(next_node, self.env.now)

            if next_node == packet.destination:
                self._deliver(packet)
                return

            link = self.topology.next_link(next_node, packet.destination)
            if link is None:
                self._drop(packet, "No route to destination")
                return
            direction = link.direction_from(next_node)
            yield from link.transmit(packet, direction)

    def _deliver(self, packet: Packet) -> None:
        packet.arrival_time = self.env.now
        sink = self.topology.nodes[packet.destination].sinks.get(packet.port)
        if sink is None or not sink.receive(packet):
            self._drop(packet, "No listening sink")
            return
        self.window.put(self._reserved(packet))
        self.notify("packet_delivered", packet, self.env.now)

    def _drop(self, packet: Packet, reason: str) -> None:
        packet.dropped = True
        self.window.put(self._reserved(packet))
        self.notify("packet_dropped", packet, reason, self.env.now)


class SocketFactory(ABC):
    """Creates sockets of one protocol kind."""

    def __init__(self, protocol: StackKind) -> None:
        self.protocol = protocol

    @abstractmethod
    def create_socket(self, topology: Topology, node_id: int, notify: Optional[Notify] = None) -> Socket:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.protocol.value})"


class PacketSocketFactory(SocketFactory):
    """Factory for PacketSocket.

    Args:
        protocol: Stack kind of the sockets.
        send_buffer: Send buffer of each socket in bytes.
    """

    def __init__(self, protocol: StackKind, send_buffer: int = DEFAULT_SEND_BUFFER) -> None:
        super().__init__(protocol)
        self.send_buffer = send_buffer

    def create_socket(self, topology: Topology, node_id: int, notify: Optional[Notify] = None) -> Socket:
        node = topology.node(node_id)
        if node.stack is not self.protocol:
            raise ConfigurationError(
                f"{node!r} has no {self.protocol.value} stack installed"
            )
        return PacketSocket(topology, node_id, self.protocol, notify, self.send_buffer)


def socket_factory(kind: StackKind, overrides: Optional[Dict[StackKind, SocketFactory]] = None) -> SocketFactory:
    """Factory function to get the socket factory for a stack kind.

    Args:
        kind: Stack kind of the flow.
        overrides: Factories to use instead of the default for some kinds.

    Returns:
        The socket factory for ``kind``.
    """
    if overrides and kind in overrides:
        return overrides[kind]
    if kind is StackKind.NONE:
        raise ConfigurationError("No socket factory for a node without a stack")
    return PacketSocketFactory(kind)
