"""Link class for flow experiments.

This module defines the Link class, a bidirectional connection between two
nodes, and the LinkConfig used to describe its capacity and delay.
"""

import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import simpy

from flow_sim.core.enums import Direction
from flow_sim.core.error_model import RateErrorModel
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.packet import Packet

_RATE_UNITS = {
    "bps": 1.0,
    "b/s": 1.0,
    "kbps": 1e3,
    "kb/s": 1e3,
    "mbps": 1e6,
    "mb/s": 1e6,
    "gbps": 1e9,
    "gb/s": 1e9,
}
_TIME_UNITS = {"s": 1.0, "ms": 1e-3, "us": 1e-6}
_QUANTITY = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([A-Za-z/]+)\s*$")


def _parse_quantity(value: str, units: Dict[str, float], what: str) -> float:
    match = _QUANTITY.match(value)
    if match is None or match.group(2).lower() not in units:
        raise ConfigurationError(f"Cannot parse {what} {value!r}")
    return float(match.group(1)) * units[match.group(2).lower()]


@dataclass(frozen=True)
class LinkConfig:
    """Typed link parameters.

    Attributes:
        rate_bps: Link capacity in bits per second.
        delay: Propagation delay in seconds.
    """

    rate_bps: float
    delay: float

    def __post_init__(self):
        if self.rate_bps <= 0:
            raise ConfigurationError(f"Link rate must be positive, got {self.rate_bps}")
        if self.delay < 0:
            raise ConfigurationError(f"Link delay must be non-negative, got {self.delay}")

    @classmethod
    def from_strings(cls, rate: str, delay: str) -> "LinkConfig":
        """Build a config from notations such as ``"1Gbps"`` and ``"12ms"``."""
        return cls(
            _parse_quantity(rate, _RATE_UNITS, "data rate"),
            _parse_quantity(delay, _TIME_UNITS, "delay"),
        )


class Link:
    """Represents a bidirectional network link between two nodes.

    Each direction has its own transmitter, modelled as a SimPy resource of
    capacity one, so flows sharing a direction queue FIFO for the wire.

    Attributes:
        env: SimPy environment.
        id: Link identifier within its topology.
        a: First endpoint node ID.
        b: Second endpoint node ID.
        config: Capacity and delay of the link.
        kind: Free-form label ("p2p", "radio", ...).
        error_models: Receive error model per direction.
        packets_sent: Packets transmitted per direction.
        bytes_sent: Bytes transmitted per direction.
        packets_dropped: Packets lost per direction.
    """

    def __init__(
        self,
        env: simpy.Environment,
        link_id: int,
        a: int,
        b: int,
        config: LinkConfig,
        kind: str = "p2p",
    ):
        self.env = env
        self.id = link_id
        self.a = a
        self.b = b
        self.config = config
        self.kind = kind
        self.error_models: Dict[Direction, RateErrorModel] = {}
        self.resources = {
            Direction.FORWARD: simpy.Resource(env, capacity=1),
            Direction.REVERSE: simpy.Resource(env, capacity=1),
        }
        self.packets_sent = {Direction.FORWARD: 0, Direction.REVERSE: 0}
        self.bytes_sent = {Direction.FORWARD: 0, Direction.REVERSE: 0}
        self.packets_dropped = {Direction.FORWARD: 0, Direction.REVERSE: 0}

    @property
    def capacity(self) -> float:
        return self.config.rate_bps

    @property
    def propagation_delay(self) -> float:
        return self.config.delay

    @property
    def endpoints(self) -> Tuple[int, int]:
        return self.a, self.b

    def direction_from(self, node: int) -> Direction:
        """Direction of travel for a packet leaving ``node`` over this link."""
        if node == self.a:
            return Direction.FORWARD
        if node == self.b:
            return Direction.REVERSE
        raise ConfigurationError(f"Node {node} is not an endpoint of {self!r}")

    def other_end(self, node: int) -> int:
        return self.b if node == self.a else self.a

    def set_error_model(self, model: RateErrorModel, direction: Direction) -> None:
        """Attach a receive error model. A later model replaces an earlier one."""
        for d in direction.expand():
            self.error_models[d] = model

    def error_model(self, direction: Direction) -> Optional[RateErrorModel]:
        return self.error_models.get(direction)

    def calculate_transmission_delay(self, packet_size: int) -> float:
        """Transmission delay in seconds for a packet of ``packet_size`` bytes."""
        return (packet_size * 8) / self.config.rate_bps

    def transmit(self, packet: Packet, direction: Direction):
        """Serialize a packet onto the wire in the given direction.

        The transmitter is held for the transmission delay only; propagation
        happens after it has been released.

        Args:
            packet: The packet to send.
            direction: Direction of travel.
        """
        with self.resources[direction].request() as request:
            yield request
            yield self.env.timeout(self.calculate_transmission_delay(packet.size))
        self.packets_sent[direction] += 1
        self.bytes_sent[direction] += packet.size

    def receive(self, packet: Packet, direction: Direction) -> bool:
        """Apply the receive error model at the far end.

        Returns:
            True if the packet survived, False if it was lost.
        """
        model = self.error_models.get(direction)
        if model is not None and model.is_corrupt(packet):
            self.packets_dropped[direction] += 1
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"Link({self.a}<->{self.b}, {self.config.rate_bps/1000000:.1f}Mbps, "
            f"{self.config.delay*1000:.1f}ms)"
        )
