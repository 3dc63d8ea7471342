"""Tests for the experiment driver: flow lifecycle, scheduling and results."""

import pytest

from flow_sim.core.enums import Direction, FlowState, StackKind
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.link import LinkConfig
from flow_sim.core.simulator import ExperimentConfig, ExperimentDriver
from flow_sim.traffic.flows import FlowSpec, PayloadPolicy
from flow_sim.traffic.sockets import PacketSocketFactory

TCP = StackKind.RELIABLE_STREAM


def make_driver(stop_time=5.0, rate=10e6, delay=0.001, loss=None, track_arrival=False, seed=11):
    driver = ExperimentDriver(
        ExperimentConfig(stop_time=stop_time, seed=seed, track_arrival=track_arrival)
    )
    topology = driver.topology
    sender, receiver = topology.create_nodes(2)
    link = topology.create_link(sender, receiver, LinkConfig(rate, delay))
    for node in (sender, receiver):
        topology.install_stack(node, TCP)
        topology.assign_address(node)
    if loss is not None:
        topology.attach_error_model(link, loss, Direction.BOTH)
    return driver, sender, receiver


def bulk(source, sink, port=1100, max_bytes=None, start=0.0, stop=5.0, chunk_size=512):
    return FlowSpec(
        source=source,
        sink=sink,
        port=port,
        protocol=TCP,
        payload=PayloadPolicy(chunk_size=chunk_size, max_bytes=max_bytes),
        start=start,
        stop=stop,
    )


def record_states(driver):
    states = []
    driver.register_hook("flow_state", lambda flow_id, state, now: states.append((flow_id, state, now)))
    return states


def test_bounded_flow_delivers_exact_budget():
    driver, sender, receiver = make_driver()
    driver.register_flow(bulk(sender, receiver, max_bytes=1048576))

    (result,) = driver.run()

    assert result.bytes_received == 1048576
    assert result.bytes_sent == 1048576
    assert result.packets_lost == 0
    assert driver.flows[0].state is FlowState.STOPPED


def test_bounded_flow_stops_before_its_stop_time():
    driver, sender, receiver = make_driver(track_arrival=True)
    states = record_states(driver)
    driver.register_flow(bulk(sender, receiver, max_bytes=100 * 512))

    (result,) = driver.run()

    assert [s for _, s, _ in states] == [FlowState.SENDING, FlowState.STOPPED]
    stopped_at = states[-1][2]
    assert stopped_at < 1.0
    assert result.last_arrival < 1.0
    assert result.bytes_received == 100 * 512


def test_last_chunk_is_truncated_to_budget():
    driver, sender, receiver = make_driver()
    driver.register_flow(bulk(sender, receiver, max_bytes=1000))
    (result,) = driver.run()
    assert result.bytes_sent == 1000
    assert result.bytes_received == 1000
    assert driver.flows[0].sender.packets_sent == 2


def test_unbounded_flow_is_stopped_at_its_stop_time():
    driver, sender, receiver = make_driver(stop_time=3.0, rate=1e6, delay=0.0, track_arrival=True)
    states = record_states(driver)
    driver.register_flow(bulk(sender, receiver, start=1.0, stop=2.0))

    (result,) = driver.run()

    assert states == [(0, FlowState.SENDING, 1.0), (0, FlowState.STOPPED, 2.0)]
    assert 0 < result.bytes_received <= result.bytes_sent
    assert result.bytes_received <= 1e6 / 8
    assert 1.0 <= result.first_arrival <= result.last_arrival < 2.0
    assert result.throughput_mbps == (result.bytes_received * 8) / (3.0 * 1e6)


def test_flow_with_empty_window_reports_zero_bytes():
    driver, sender, receiver = make_driver()
    states = record_states(driver)
    driver.register_flow(bulk(sender, receiver, start=5.0, stop=5.0))

    (result,) = driver.run()

    assert result.bytes_received == 0
    assert result.bytes_sent == 0
    assert result.throughput_mbps == 0.0
    assert FlowState.SENDING not in [s for _, s, _ in states]


def test_flows_on_distinct_ports_count_independently():
    driver, sender, receiver = make_driver()
    first = driver.register_flow(bulk(sender, receiver, port=1100, max_bytes=10000))
    second = driver.register_flow(bulk(sender, receiver, port=1200, max_bytes=20000))

    results = {r.flow_id: r for r in driver.run()}

    assert results[first].bytes_received == 10000
    assert results[second].bytes_received == 20000
    assert driver.flows[first].sink.total_bytes_received() == 10000
    assert driver.flows[second].sink.total_bytes_received() == 20000


def test_port_reused_by_consecutive_flows():
    driver, sender, receiver = make_driver(stop_time=2.0)
    driver.register_flow(bulk(sender, receiver, port=1100, max_bytes=5000, start=0.0, stop=1.0))
    driver.register_flow(bulk(sender, receiver, port=1100, max_bytes=5000, start=1.0, stop=2.0))

    results = driver.run()

    assert [r.bytes_received for r in results] == [5000, 5000]


def test_fan_in_from_two_sources():
    driver = ExperimentDriver(ExperimentConfig(stop_time=2.0, seed=1))
    topology = driver.topology
    a, b, sink = topology.create_nodes(3)
    topology.create_link(a, sink, LinkConfig(5e6, 0.001))
    topology.create_link(b, sink, LinkConfig(5e6, 0.001))
    for node in (a, b, sink):
        topology.install_stack(node, TCP)
    driver.register_flow(bulk(a, sink, port=1100, max_bytes=50000, stop=2.0))
    driver.register_flow(bulk(b, sink, port=1200, max_bytes=70000, stop=2.0))

    results = driver.run()

    assert [r.bytes_received for r in results] == [50000, 70000]


def test_shared_bottleneck_is_shared():
    driver = ExperimentDriver(ExperimentConfig(stop_time=2.0, seed=1))
    topology = driver.topology
    host, router, ue = topology.create_nodes(3)
    topology.create_link(host, router, LinkConfig(100e6, 0.001))
    topology.create_link(router, ue, LinkConfig(1e6, 0.001))
    for node in (host, ue):
        topology.install_stack(node, TCP)
    driver.register_flow(bulk(host, ue, port=1100, stop=2.0))
    driver.register_flow(bulk(host, ue, port=1200, stop=2.0))

    results = driver.run()

    total = sum(r.bytes_received for r in results)
    assert total <= 2.0 * 1e6 / 8
    assert all(r.bytes_received > 0 for r in results)


def test_no_loss_means_everything_sent_arrives():
    driver, sender, receiver = make_driver(loss=0.0)
    driver.register_flow(bulk(sender, receiver, max_bytes=200000))
    (result,) = driver.run()
    assert result.bytes_received == result.bytes_sent == 200000


def test_loss_reduces_delivered_bytes():
    driver, sender, receiver = make_driver(loss=0.2, seed=5)
    driver.register_flow(bulk(sender, receiver, max_bytes=512 * 1000))
    (result,) = driver.run()
    assert result.bytes_sent == 512 * 1000
    assert result.bytes_received < result.bytes_sent
    assert result.packets_lost == (result.bytes_sent - result.bytes_received) // 512


def test_total_loss_reports_no_arrival():
    driver, sender, receiver = make_driver(loss=1.0, track_arrival=True)
    driver.register_flow(bulk(sender, receiver, max_bytes=5120))

    (result,) = driver.run()

    assert result.bytes_received == 0
    assert result.last_arrival == -1.0
    assert not result.arrival_observed
    assert driver.anomalies() == [result]


def test_untracked_arrival_is_not_reported():
    driver, sender, receiver = make_driver()
    driver.register_flow(bulk(sender, receiver, max_bytes=5120))
    (result,) = driver.run()
    assert result.first_arrival is None and result.last_arrival is None
    assert result.arrival_observed
    assert driver.anomalies() == []


def test_same_seed_reproduces_results():
    outcomes = []
    for _ in range(2):
        driver, sender, receiver = make_driver(loss=0.1, seed=99)
        driver.register_flow(bulk(sender, receiver, max_bytes=512 * 500))
        outcomes.append(driver.run()[0].bytes_received)
    assert outcomes[0] == outcomes[1]


def test_unreachable_sink_fails_before_running():
    driver = ExperimentDriver(ExperimentConfig(stop_time=1.0, seed=1))
    a, b = driver.topology.create_nodes(2)
    for node in (a, b):
        driver.topology.install_stack(node, TCP)
    driver.register_flow(bulk(a, b, stop=1.0))

    with pytest.raises(ConfigurationError):
        driver.run()
    assert driver.env.now == 0


def test_registry_closed_after_run():
    driver, sender, receiver = make_driver()
    driver.register_flow(bulk(sender, receiver, max_bytes=512))
    driver.run()
    with pytest.raises(ConfigurationError):
        driver.register_flow(bulk(sender, receiver, port=1200))
    with pytest.raises(ConfigurationError):
        driver.run()


def test_hooks_see_packets():
    driver, sender, receiver = make_driver()
    sent, delivered = [], []
    driver.register_hook("packet_sent", lambda packet, now: sent.append(packet))
    driver.register_hook("packet_delivered", lambda packet, now: delivered.append(packet))
    driver.register_flow(bulk(sender, receiver, max_bytes=5120))

    driver.run()

    assert len(sent) == len(delivered) == 10
    assert all(p.get_hop_count() == 1 for p in delivered)
    link = driver.topology.links[0]
    assert link.packets_sent[Direction.FORWARD] == 10
    assert link.bytes_sent[Direction.FORWARD] == 5120
    assert link.packets_sent[Direction.REVERSE] == 0
    with pytest.raises(ValueError):
        driver.register_hook("unknown", print)


def test_custom_socket_factory_is_used():
    driver, sender, receiver = make_driver()
    factory = PacketSocketFactory(TCP, send_buffer=512)
    driver.socket_factories[TCP] = factory
    driver.register_flow(bulk(sender, receiver, max_bytes=5120))
    (result,) = driver.run()
    assert result.bytes_received == 5120
    assert driver.flows[0].sender.socket.window.capacity == 512


def test_stop_time_must_be_positive():
    with pytest.raises(ConfigurationError):
        ExperimentConfig(stop_time=0)


def test_simultaneous_flows_run_in_registration_order():
    driver, sender, receiver = make_driver(stop_time=3.0, rate=1e6)
    driver.register_flow(bulk(sender, receiver, port=1200, max_bytes=3 * 512, start=0.5, stop=3.0))
    driver.register_flow(bulk(sender, receiver, port=1100, max_bytes=3 * 512, start=0.5, stop=3.0))
    order = []
    driver.register_hook("packet_sent", lambda packet, now: order.append(packet.flow_id))

    driver.run()

    assert order == [0, 1, 0, 1, 0, 1]
