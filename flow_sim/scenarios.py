"""Experiment variants.

Each builder returns an ExperimentDriver with its topology built and its
flows registered, ready to ``run``. The fixed parameters of every variant
are the module constants below.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from flow_sim.core.enums import Direction, StackKind
from flow_sim.core.link import LinkConfig
from flow_sim.core.simulator import ExperimentConfig, ExperimentDriver
from flow_sim.core.topology import LinkQuality
from flow_sim.traffic.flows import FlowSpec, PayloadPolicy

SIMULATION_DURATION = 40.0
SEND_SIZE = 512
LOSS_RATE = 0.005
DEFAULT_DISTANCE = 250.0
DEFAULT_FILE_SIZE = "1MB"

DL_PORT = 1100
SECOND_DL_PORT = 1200
QUIC_DL_PORT = 1600

INTERNET_LINK = LinkConfig.from_strings("1Gbps", "12ms")
S1U_LINK = LinkConfig.from_strings("1Gb/s", "5ms")

DOWNLOAD_START = 0.01
LATE_FLOW_START = 2.0

P2P_LINK = LinkConfig.from_strings("500Kbps", "5ms")
P2P_DURATION = 10.0
P2P_START = 2.0

TCP = StackKind.RELIABLE_STREAM
QUIC = StackKind.UNRELIABLE_THEN_RELIABLE


@dataclass
class LteAccess:
    """Node IDs of an LTE-like access topology."""

    pgw: int
    enb: int
    remote_hosts: List[int] = field(default_factory=list)
    ues: List[int] = field(default_factory=list)


def build_lte_access(
    driver: ExperimentDriver,
    remote_stacks: Sequence[StackKind],
    ue_stacks: Sequence[StackKind],
    distance: float = DEFAULT_DISTANCE,
    quality: Optional[LinkQuality] = None,
    loss_rate: float = LOSS_RATE,
) -> LteAccess:
    """Build remote hosts <-> gateway <-> base station <-> devices.

    Every remote host reaches the gateway over its own lossy internet link;
    devices are attached to the single base station at ``distance`` meters.

    Args:
        driver: Driver whose topology is populated.
        remote_stacks: Stack kind of each remote host to create.
        ue_stacks: Stack kind of each device to create.
        distance: Distance between devices and base station in meters.
        quality: Radio link quality collaborator.
        loss_rate: Receive loss probability on the internet links.

    Returns:
        The node IDs created.
    """
    topology = driver.topology
    pgw = topology.create_node("pgw")
    enb = topology.create_node("enb")
    topology.create_link(enb, pgw, S1U_LINK, kind="s1u")
    access = LteAccess(pgw=pgw, enb=enb)

    for i, stack in enumerate(remote_stacks):
        host = topology.create_node(f"remote-host-{i}")
        topology.install_stack(host, stack)
        link = topology.create_link(pgw, host, INTERNET_LINK)
        topology.attach_error_model(link, loss_rate, Direction.BOTH)
        topology.assign_address(host)
        access.remote_hosts.append(host)

    for i, stack in enumerate(ue_stacks):
        ue = topology.create_node(f"ue-{i}", distance=distance)
        topology.install_stack(ue, stack)
        topology.assign_address(ue)
        topology.attach_and_activate_default_bearer(ue, enb, quality)
        access.ues.append(ue)

    return access


def throughput_over_lte(
    distance: float = DEFAULT_DISTANCE,
    seed: Optional[int] = None,
    quality: Optional[LinkQuality] = None,
    duration: float = SIMULATION_DURATION,
) -> ExperimentDriver:
    """One unbounded reliable-stream download to a device."""
    driver = ExperimentDriver(ExperimentConfig(stop_time=duration, seed=seed))
    access = build_lte_access(driver, [TCP], [TCP], distance, quality)
    driver.register_flow(
        FlowSpec(
            source=access.remote_hosts[0],
            sink=access.ues[0],
            port=DL_PORT,
            protocol=TCP,
            payload=PayloadPolicy.unbounded(SEND_SIZE),
            start=0.0,
            stop=duration,
            name="tcp",
        )
    )
    return driver


def download_time_over_lte(
    file_size: int,
    distance: float = DEFAULT_DISTANCE,
    seed: Optional[int] = None,
    quality: Optional[LinkQuality] = None,
    duration: float = SIMULATION_DURATION,
) -> ExperimentDriver:
    """Download of ``file_size`` bytes over the custom stack, tracking arrivals."""
    driver = ExperimentDriver(
        ExperimentConfig(stop_time=duration, seed=seed, track_arrival=True)
    )
    access = build_lte_access(driver, [QUIC], [QUIC], distance, quality)
    driver.register_flow(
        FlowSpec(
            source=access.remote_hosts[0],
            sink=access.ues[0],
            port=DL_PORT,
            protocol=QUIC,
            payload=PayloadPolicy.fixed(file_size, SEND_SIZE),
            start=DOWNLOAD_START,
            stop=duration,
            name="quic",
        )
    )
    return driver


def fairness_over_lte(
    distance: float = DEFAULT_DISTANCE,
    seed: Optional[int] = None,
    quality: Optional[LinkQuality] = None,
    duration: float = SIMULATION_DURATION,
) -> ExperimentDriver:
    """Two reliable-stream downloads sharing a device, plus a late custom-stack one."""
    driver = ExperimentDriver(ExperimentConfig(stop_time=duration, seed=seed))
    access = build_lte_access(driver, [TCP, QUIC], [TCP, QUIC], distance, quality)
    tcp_host, quic_host = access.remote_hosts
    tcp_ue, quic_ue = access.ues

    for i, port in enumerate((DL_PORT, SECOND_DL_PORT), start=1):
        driver.register_flow(
            FlowSpec(
                source=tcp_host,
                sink=tcp_ue,
                port=port,
                protocol=TCP,
                payload=PayloadPolicy.unbounded(SEND_SIZE),
                start=0.0,
                stop=duration,
                name=f"tcp-{i}",
            )
        )
    driver.register_flow(
        FlowSpec(
            source=quic_host,
            sink=quic_ue,
            port=QUIC_DL_PORT,
            protocol=QUIC,
            payload=PayloadPolicy.unbounded(SEND_SIZE),
            start=min(LATE_FLOW_START, duration),
            stop=duration,
            name="quic",
        )
    )
    return driver


def two_streams_same_receiver(
    seed: Optional[int] = None, duration: float = P2P_DURATION
) -> ExperimentDriver:
    """Two custom-stack flows between two directly connected nodes."""
    driver = ExperimentDriver(ExperimentConfig(stop_time=duration, seed=seed))
    topology = driver.topology
    sender, receiver = topology.create_nodes(2)
    topology.create_link(sender, receiver, P2P_LINK)
    for node in (sender, receiver):
        topology.install_stack(node, QUIC)
        topology.assign_address(node)

    for i, port in enumerate((DL_PORT, SECOND_DL_PORT), start=1):
        driver.register_flow(
            FlowSpec(
                source=sender,
                sink=receiver,
                port=port,
                protocol=QUIC,
                payload=PayloadPolicy.unbounded(SEND_SIZE),
                start=min(P2P_START, duration),
                stop=duration,
                name=f"quic-{i}",
            )
        )
    return driver
