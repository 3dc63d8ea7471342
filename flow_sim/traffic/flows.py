"""Flow specifications for flow experiments.

This module defines the declarative description of a data transfer
(FlowSpec, PayloadPolicy) and the registry that validates and numbers them.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

from flow_sim.core.enums import StackKind
from flow_sim.core.errors import ConfigurationError, InvalidFlowSpec
from flow_sim.core.topology import Topology

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PayloadPolicy:
    """How much a bulk sender emits and in what chunks.

    Attributes:
        chunk_size: Bytes handed to the socket per send.
        max_bytes: Total byte budget, or None (or 0) for an unbounded stream.
    """

    chunk_size: int = 512
    max_bytes: Optional[int] = None

    @property
    def bounded(self) -> bool:
        return bool(self.max_bytes)

    @classmethod
    def unbounded(cls, chunk_size: int = 512) -> "PayloadPolicy":
        return cls(chunk_size=chunk_size)

    @classmethod
    def fixed(cls, max_bytes: int, chunk_size: int = 512) -> "PayloadPolicy":
        return cls(chunk_size=chunk_size, max_bytes=max_bytes)


@dataclass(frozen=True)
class FlowSpec:
    """A declared data transfer from a bulk sender to a sink.

    Attributes:
        source: Node ID the bulk sender runs on.
        sink: Node ID the sink listens on.
        port: Destination port on the sink node.
        protocol: Stack kind used by both ends.
        payload: Payload policy of the sender.
        start: Time the sender starts, relative to experiment start.
        stop: Time the flow stops, relative to experiment start.
        name: Optional label used in reports.
    """

    source: int
    sink: int
    port: int
    protocol: StackKind = StackKind.RELIABLE_STREAM
    payload: PayloadPolicy = field(default_factory=PayloadPolicy)
    start: float = 0.0
    stop: float = 0.0
    name: Optional[str] = None

    def overlaps(self, other: "FlowSpec") -> bool:
        """Whether the [start, stop) windows of both flows intersect."""
        return self.start < other.stop and other.start < self.stop


class FlowRegistry:
    """Validates and numbers flows for one experiment.

    Flow IDs are assigned in registration order, which is also the order
    simultaneous events of different flows are processed in.

    Attributes:
        topology: Topology the flows run on.
        stop_time: Global stop time of the experiment.
        flows: Registered flows keyed by flow ID.
        closed: Whether the registry still accepts flows.
    """

    def __init__(self, topology: Topology, stop_time: float) -> None:
        self.topology = topology
        self.stop_time = stop_time
        self.flows: Dict[int, FlowSpec] = {}
        self.closed = False

    def register_flow(self, spec: FlowSpec) -> int:
        """Validate and register a flow.

        Args:
            spec: The flow to register.

        Returns:
            The new flow ID.

        Raises:
            ConfigurationError: Unknown node, or the registry is closed.
            InvalidFlowSpec: Port conflict, bad payload or activation window.
        """
        if self.closed:
            raise ConfigurationError("Flows cannot be registered once the experiment has started")
        self.topology.node(spec.source)
        sink_node = self.topology.node(spec.sink)
        self._validate(spec)

        for flow_id, other in self.flows.items():
            if other.sink == spec.sink and other.port == spec.port and other.overlaps(spec):
                raise InvalidFlowSpec(
                    f"Port {spec.port} on {sink_node!r} is already bound by flow {flow_id}"
                )

        flow_id = len(self.flows)
        self.flows[flow_id] = spec
        logger.debug("Registered flow %d: %s", flow_id, spec)
        return flow_id

    def _validate(self, spec: FlowSpec) -> None:
        if spec.payload.chunk_size <= 0:
            raise InvalidFlowSpec(f"Chunk size must be positive, got {spec.payload.chunk_size}")
        if spec.payload.max_bytes is not None and spec.payload.max_bytes < 0:
            raise InvalidFlowSpec(f"Byte budget must be non-negative, got {spec.payload.max_bytes}")
        if not 0 < spec.port < 65536:
            raise InvalidFlowSpec(f"Port must be within 1-65535, got {spec.port}")
        if spec.start < 0 or spec.stop < 0:
            raise InvalidFlowSpec(f"Activation window [{spec.start}, {spec.stop}) must be non-negative")
        if spec.stop < spec.start:
            raise InvalidFlowSpec(f"Stop time {spec.stop} precedes start time {spec.start}")
        if spec.stop > self.stop_time:
            raise InvalidFlowSpec(
                f"Stop time {spec.stop} is beyond the experiment stop time {self.stop_time}"
            )
        if not isinstance(spec.protocol, StackKind) or spec.protocol is StackKind.NONE:
            raise InvalidFlowSpec(f"Flow needs a transport protocol, got {spec.protocol!r}")
        for node_id in (spec.source, spec.sink):
            node = self.topology.nodes[node_id]
            if node.stack is not spec.protocol:
                raise InvalidFlowSpec(
                    f"{node!r} has a {node.stack.value} stack, flow needs {spec.protocol.value}"
                )

    def close(self) -> None:
        self.closed = True

    def name_of(self, flow_id: int) -> str:
        return self.flows[flow_id].name or f"flow-{flow_id}"

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self.flows))

    def __len__(self) -> int:
        return len(self.flows)

    def items(self) -> List:
        return sorted(self.flows.items())
