"""Bulk sender and sink applications for flow experiments."""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List

import simpy

from flow_sim.core.packet import Packet
from flow_sim.traffic.flows import FlowSpec
from flow_sim.traffic.sockets import Socket
from flow_sim.utils.metrics import DeliveryEvent

logger = logging.getLogger(__name__)

DeliveryCallback = Callable[[DeliveryEvent], None]


class Sink(ABC):
    """Capability of an endpoint that counts incoming application bytes."""

    @abstractmethod
    def total_bytes_received(self) -> int:
        pass

    @abstractmethod
    def subscribe(self, callback: DeliveryCallback) -> None:
        """Call ``callback`` with a DeliveryEvent for every delivery."""
        pass


class PacketSink(Sink):
    """Sink listening on one port of a node.

    Packets are accepted only while the sink is open; anything arriving
    before ``open`` or after ``close`` is discarded.

    Attributes:
        env: SimPy environment.
        node: Node the sink is bound to.
        port: Port the sink listens on.
        flow_id: Flow the sink belongs to.
        listening: Whether the sink currently accepts packets.
    """

    def __init__(self, env: simpy.Environment, node, port: int, flow_id: int) -> None:
        self.env = env
        self.node = node
        self.port = port
        self.flow_id = flow_id
        self.listening = False
        self.packets_received = 0
        self._total_rx = 0
        self._callbacks: List[DeliveryCallback] = []

    def open(self) -> None:
        self.node.bind(self.port, self)
        self.listening = True

    def close(self) -> None:
        self.listening = False
        self.node.unbind(self.port, self)

    def subscribe(self, callback: DeliveryCallback) -> None:
        self._callbacks.append(callback)

    def total_bytes_received(self) -> int:
        return self._total_rx

    def receive(self, packet: Packet) -> bool:
        """Accept a packet addressed to this sink.

        Returns:
            False if the sink is closed or the packet is for another flow.
        """
        if not self.listening or packet.flow_id != self.flow_id:
            return False
        self._total_rx += packet.size
        self.packets_received += 1
        event = DeliveryEvent(self.flow_id, packet.size, self.env.now)
        for callback in self._callbacks:
            callback(event)
        return True

    def __repr__(self) -> str:
        return f"PacketSink({self.node.id}:{self.port})"


class BulkSender:
    """Emits fixed-size chunks through a socket as fast as it accepts them.

    Attributes:
        socket: Connected socket to send through.
        spec: Flow specification being served.
        bytes_sent: Bytes that left the sender's node.
        packets_sent: Chunks that left the sender's node.
    """

    def __init__(self, socket: Socket, spec: FlowSpec) -> None:
        self.socket = socket
        self.spec = spec
        self.bytes_sent = 0
        self.packets_sent = 0

    @property
    def remaining(self):
        """Bytes left in the budget, or None when unbounded."""
        if not self.spec.payload.bounded:
            return None
        return self.spec.payload.max_bytes - self.bytes_sent

    def run(self):
        """SimPy generator sending until the budget is exhausted.

        Unbounded senders only return when interrupted.
        """
        chunk_size = self.spec.payload.chunk_size
        try:
            while True:
                remaining = self.remaining
                if remaining is not None and remaining <= 0:
                    logger.debug("%r exhausted its budget of %d bytes", self, self.spec.payload.max_bytes)
                    return
                size = chunk_size if remaining is None else min(chunk_size, remaining)
                yield from self.socket.send(size)
                self.bytes_sent += size
                self.packets_sent += 1
        except simpy.Interrupt as interrupt:
            # The chunk being transmitted, if any, is abandoned.
            logger.debug("%r stopped: %s", self, interrupt.cause)

    def __repr__(self) -> str:
        return f"BulkSender({self.spec.source}->{self.spec.sink}:{self.spec.port})"
