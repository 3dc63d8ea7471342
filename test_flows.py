"""Tests for flow specifications and the flow registry."""

import pytest
import simpy

from flow_sim.core.enums import StackKind
from flow_sim.core.errors import ConfigurationError, InvalidFlowSpec
from flow_sim.core.link import LinkConfig
from flow_sim.core.topology import Topology
from flow_sim.traffic.flows import FlowRegistry, FlowSpec, PayloadPolicy

TCP = StackKind.RELIABLE_STREAM


@pytest.fixture
def registry():
    topology = Topology(simpy.Environment())
    a, b = topology.create_nodes(2)
    topology.create_link(a, b, LinkConfig(1e6, 0.001))
    for node in (a, b):
        topology.install_stack(node, TCP)
    return FlowRegistry(topology, stop_time=10.0)


def flow(**kwargs):
    defaults = dict(source=0, sink=1, port=1100, protocol=TCP, start=0.0, stop=10.0)
    defaults.update(kwargs)
    return FlowSpec(**defaults)


def test_payload_policy():
    assert not PayloadPolicy.unbounded().bounded
    assert not PayloadPolicy(max_bytes=0).bounded
    fixed = PayloadPolicy.fixed(1024, chunk_size=256)
    assert fixed.bounded
    assert fixed.chunk_size == 256


def test_flow_ids_follow_registration_order(registry):
    assert registry.register_flow(flow(port=1100)) == 0
    assert registry.register_flow(flow(port=1200)) == 1
    assert list(registry) == [0, 1]
    assert registry.name_of(1) == "flow-1"


def test_fan_out_and_fan_in_by_port(registry):
    registry.register_flow(flow(port=1100))
    registry.register_flow(flow(port=1200))
    registry.register_flow(flow(source=1, sink=0, port=1100))
    assert len(registry) == 3


def test_port_reuse_on_same_sink_rejected(registry):
    registry.register_flow(flow(port=1100, start=0.0, stop=5.0))
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(port=1100, start=4.0, stop=6.0))


def test_port_reuse_with_disjoint_windows_allowed(registry):
    registry.register_flow(flow(port=1100, start=0.0, stop=5.0))
    assert registry.register_flow(flow(port=1100, start=5.0, stop=10.0)) == 1


def test_stop_before_start_rejected(registry):
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(start=5.0, stop=2.0))


def test_negative_window_rejected(registry):
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(start=-1.0, stop=2.0))


def test_window_beyond_experiment_rejected(registry):
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(start=0.0, stop=11.0))


def test_empty_window_allowed(registry):
    assert registry.register_flow(flow(start=3.0, stop=3.0)) == 0


@pytest.mark.parametrize("chunk_size", [0, -512])
def test_non_positive_chunk_size_rejected(registry, chunk_size):
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(payload=PayloadPolicy(chunk_size=chunk_size)))


def test_protocol_must_match_installed_stack(registry):
    with pytest.raises(InvalidFlowSpec):
        registry.register_flow(flow(protocol=StackKind.UNRELIABLE_THEN_RELIABLE))


def test_unknown_node_rejected(registry):
    with pytest.raises(ConfigurationError):
        registry.register_flow(flow(sink=5))


def test_closed_registry_rejects_flows(registry):
    registry.close()
    with pytest.raises(ConfigurationError):
        registry.register_flow(flow())
