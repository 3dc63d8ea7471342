"""Experiment driver for flow experiments.

This module defines the ExperimentDriver class, which owns the SimPy clock,
the topology, the flow registry and the metrics collector of one experiment,
runs every flow through its Armed -> Sending -> Stopped lifecycle and
produces the per-flow results.
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import simpy

from flow_sim.core.enums import FlowState, StackKind
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.packet import Packet
from flow_sim.core.topology import Topology
from flow_sim.traffic.applications import BulkSender, PacketSink
from flow_sim.traffic.flows import FlowRegistry, FlowSpec
from flow_sim.traffic.sockets import SocketFactory, socket_factory
from flow_sim.utils.metrics import ExperimentResult, MetricsCollector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExperimentConfig:
    """Typed parameters of one experiment run.

    Attributes:
        stop_time: Global stop time in seconds; also the throughput duration.
        seed: Seed for every random stream, or None for a fresh one.
        track_arrival: Whether to report first/last delivery times.
    """

    stop_time: float
    seed: Optional[int] = None
    track_arrival: bool = False

    def __post_init__(self):
        if self.stop_time <= 0:
            raise ConfigurationError(f"Stop time must be positive, got {self.stop_time}")


class FlowHandle:
    """Runtime state of one registered flow.

    Attributes:
        flow_id: Flow identifier.
        spec: The registered specification.
        state: Current lifecycle state.
        sender: Bulk sender on the source node.
        sink: Packet sink on the sink node.
        packets_lost: Packets of the flow dropped in the network.
    """

    def __init__(self, flow_id: int, spec: FlowSpec, sender: BulkSender, sink: PacketSink) -> None:
        self.flow_id = flow_id
        self.spec = spec
        self.state = FlowState.ARMED
        self.sender = sender
        self.sink = sink
        self.packets_lost = 0
        self.process: Optional[simpy.Process] = None

    def __repr__(self) -> str:
        return f"FlowHandle({self.flow_id}, {self.state.name})"


class ExperimentDriver:
    """Runs a set of independent flows on one simulated clock.

    Attributes:
        env: SimPy environment.
        config: Experiment parameters.
        topology: Topology owned by this experiment.
        registry: Flow registry.
        collector: Metrics collector fed by every sink.
        flows: Runtime state of each flow, filled by ``run``.
        results: Per-flow results once the run completed.
    """

    def __init__(
        self,
        config: ExperimentConfig,
        env: Optional[simpy.Environment] = None,
        socket_factories: Optional[Dict[StackKind, SocketFactory]] = None,
    ) -> None:
        """Initialize the driver.

        Args:
            config: Experiment parameters.
            env: SimPy environment to use (default: a new one).
            socket_factories: Socket factories overriding the default per stack kind.
        """
        self.env = env or simpy.Environment()
        seed = config.seed
        if seed is None:
            seed = int(np.random.default_rng().integers(2**31))
            config = replace(config, seed=seed)
        self.config = config
        self.topology = Topology(self.env, seed=seed)
        self.registry = FlowRegistry(self.topology, config.stop_time)
        self.collector = MetricsCollector(track_arrival=config.track_arrival)
        self.socket_factories = dict(socket_factories or {})
        self.flows: Dict[int, FlowHandle] = {}
        self.results: Optional[List[ExperimentResult]] = None
        self.started = False

        self.hooks: Dict[str, List[Callable[..., Any]]] = {
            "packet_sent": [],  # chunk left the sender's node
            "packet_delivered": [],  # chunk accepted by its sink
            "packet_dropped": [],  # chunk lost or undeliverable
            "flow_state": [],  # flow changed lifecycle state
            "sim_end": [],  # the simulation ends
        }
        self.register_hook("packet_dropped", self._count_loss)

    @property
    def stop_time(self) -> float:
        return self.config.stop_time

    def register_flow(self, spec: FlowSpec) -> int:
        """Register a flow. See FlowRegistry.register_flow."""
        return self.registry.register_flow(spec)

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Register a callback function for a specific event type.

        Args:
            event_type: The type of event to register for.
            callback: The function to call when the event occurs.
        """
        if event_type not in self.hooks:
            raise ValueError(f"Unknown hook type: {event_type}")
        self.hooks[event_type].append(callback)

    def call_hooks(self, event_type: str, *args: Any, **kwargs: Any) -> None:
        """Call all registered callbacks for the given event type."""
        for callback in self.hooks.get(event_type, []):
            callback(*args, **kwargs)

    def _count_loss(self, packet: Packet, reason: str, now: float) -> None:
        handle = self.flows.get(packet.flow_id)
        if handle is not None:
            handle.packets_lost += 1

    def _set_state(self, handle: FlowHandle, state: FlowState) -> None:
        if handle.state is FlowState.STOPPED:
            return
        logger.debug("Flow %d: %s -> %s at %.6fs", handle.flow_id, handle.state.name, state.name, self.env.now)
        handle.state = state
        self.call_hooks("flow_state", handle.flow_id, state, self.env.now)

    def _arm(self) -> None:
        """Bind every registered flow to a sender/sink pair, in registration order."""
        for flow_id, spec in self.registry.items():
            if not self.topology.is_reachable(spec.source, spec.sink):
                raise ConfigurationError(
                    f"Flow {flow_id}: node {spec.sink} is not reachable from node {spec.source}"
                )

        for flow_id, spec in self.registry.items():
            factory = socket_factory(spec.protocol, self.socket_factories)
            socket = factory.create_socket(self.topology, spec.source, self.call_hooks)
            socket.connect(spec.sink, spec.port, flow_id)
            sink = PacketSink(self.env, self.topology.nodes[spec.sink], spec.port, flow_id)
            sink.subscribe(self.collector.on_delivery)
            self.collector.register(flow_id, self.registry.name_of(flow_id))

            handle = FlowHandle(flow_id, spec, BulkSender(socket, spec), sink)
            self.flows[flow_id] = handle
            handle.process = self.env.process(self._flow_process(handle))

    def _flow_process(self, handle: FlowHandle):
        """Lifecycle of one flow on the shared clock."""
        spec = handle.spec
        yield self.env.timeout(spec.start)
        if spec.stop <= spec.start:
            self._set_state(handle, FlowState.STOPPED)
            return

        handle.sink.open()
        self._set_state(handle, FlowState.SENDING)
        sending = self.env.process(handle.sender.run())
        stop = self.env.timeout(spec.stop - spec.start)
        yield sending | stop

        if sending.is_alive:
            sending.interrupt("stop time reached")
        else:
            # Budget exhausted: the sink keeps listening until the stop time.
            self._set_state(handle, FlowState.STOPPED)
            yield stop
        self._set_state(handle, FlowState.STOPPED)
        handle.sink.close()

    def run(self) -> List[ExperimentResult]:
        """Run the experiment to its global stop time.

        Returns:
            One result per registered flow, ordered by flow ID.

        Raises:
            ConfigurationError: The experiment already ran, or a flow's
                endpoints are not mutually reachable.
        """
        if self.started:
            raise ConfigurationError("An experiment can only be run once")
        self.started = True
        self.registry.close()
        self.topology.freeze()
        self._arm()

        logger.info(
            "Running %d flow(s) for %.3fs (seed %s)", len(self.flows), self.stop_time, self.config.seed
        )
        self.env.run(until=self.stop_time)

        for handle in self.flows.values():
            self._set_state(handle, FlowState.STOPPED)
            handle.sink.close()

        results = []
        for result in self.collector.finalize(self.stop_time):
            handle = self.flows[result.flow_id]
            results.append(
                replace(
                    result,
                    bytes_sent=handle.sender.bytes_sent,
                    packets_lost=handle.packets_lost,
                )
            )
        self.results = results
        logger.info("Experiment finished at %.3fs", self.env.now)
        self.call_hooks("sim_end", results)
        return results

    def anomalies(self) -> List[ExperimentResult]:
        """Results whose arrival time was tracked but never observed."""
        if self.results is None:
            raise RuntimeError("run() has not been called")
        return [r for r in self.results if not r.arrival_observed]
