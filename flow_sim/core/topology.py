"""Topology model for flow experiments.

This module defines the Topology class, which owns the nodes and links of one
experiment, installs protocol stacks, assigns addresses, attaches error
models and computes routing tables.
"""

import logging
from abc import ABC, abstractmethod
from ipaddress import IPv4Address, IPv4Network
from typing import Dict, Iterator, List, Optional, Union

import networkx as nx
import simpy

from flow_sim.core.enums import Direction, StackKind
from flow_sim.core.error_model import ErrorModelConfig, RateErrorModel
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.link import Link, LinkConfig
from flow_sim.core.node import Node

logger = logging.getLogger(__name__)


class LinkQuality(ABC):
    """Opaque radio channel collaborator.

    Maps the distance between a device and its serving node to the
    parameters of the radio link between them.
    """

    @abstractmethod
    def link_config(self, distance: float) -> LinkConfig:
        """Return the link parameters for a device at ``distance`` meters."""
        pass


class FixedLinkQuality(LinkQuality):
    """Link quality that does not depend on distance."""

    def __init__(self, config: LinkConfig) -> None:
        self.config = config

    def link_config(self, distance: float) -> LinkConfig:
        return self.config


DEFAULT_RADIO_QUALITY = FixedLinkQuality(LinkConfig(rate_bps=20e6, delay=0.001))


class Topology:
    """Nodes, links and stack bindings of one experiment.

    The topology is mutable until ``freeze`` is called by the driver; after
    that no node, link, stack, address or error model can be added.

    Attributes:
        env: SimPy environment.
        graph: NetworkX directed graph mirroring every link direction.
        nodes: Node objects keyed by node ID.
        links: Link objects keyed by link ID.
        frozen: Whether the topology is closed for modification.
    """

    def __init__(
        self,
        env: simpy.Environment,
        address_base: str = "10.1.0.0/16",
        seed: Optional[int] = None,
    ) -> None:
        """Initialize an empty topology.

        Args:
            env: SimPy environment.
            address_base: Network addresses are assigned from.
            seed: Base seed for error models attached without their own seed.
        """
        self.env = env
        self.graph = nx.DiGraph()
        self.nodes: Dict[int, Node] = {}
        self.links: Dict[int, Link] = {}
        self.frozen = False
        self.seed = seed
        try:
            self._addresses: Iterator[IPv4Address] = IPv4Network(address_base).hosts()
        except ValueError as e:
            raise ConfigurationError(f"Invalid address base {address_base!r}: {e}") from e

    def _check_mutable(self) -> None:
        if self.frozen:
            raise ConfigurationError("Topology cannot change once the experiment has started")

    def node(self, node_id: int) -> Node:
        """Look up a node, failing with ConfigurationError if unknown."""
        try:
            return self.nodes[node_id]
        except KeyError:
            raise ConfigurationError(f"Unknown node: {node_id!r}") from None

    def link(self, link_id: int) -> Link:
        """Look up a link, failing with ConfigurationError if unknown."""
        try:
            return self.links[link_id]
        except KeyError:
            raise ConfigurationError(f"Unknown link: {link_id!r}") from None

    def create_node(self, name: Optional[str] = None, distance: float = 0.0) -> int:
        """Add a node.

        Args:
            name: Optional label for the node.
            distance: Distance in meters to its future serving node.

        Returns:
            The new node ID.
        """
        self._check_mutable()
        if distance < 0:
            raise ConfigurationError(f"Distance must be non-negative, got {distance}")
        node_id = len(self.nodes)
        self.nodes[node_id] = Node(node_id, name, distance)
        self.graph.add_node(node_id)
        logger.debug("Created %r", self.nodes[node_id])
        return node_id

    def create_nodes(self, count: int, prefix: str = "n") -> List[int]:
        return [self.create_node(f"{prefix}{i}") for i in range(count)]

    def create_link(
        self,
        a: int,
        b: int,
        config: Union[LinkConfig, float],
        delay: Optional[float] = None,
        kind: str = "p2p",
    ) -> int:
        """Add a bidirectional link between two existing nodes.

        Args:
            a: First endpoint node ID.
            b: Second endpoint node ID.
            config: A LinkConfig, or the data rate in bits per second.
            delay: Propagation delay in seconds when ``config`` is a rate.
            kind: Label for the link.

        Returns:
            The new link ID.
        """
        self._check_mutable()
        node_a, node_b = self.node(a), self.node(b)
        if a == b:
            raise ConfigurationError(f"Cannot link node {a} to itself")
        if b in node_a.links:
            raise ConfigurationError(f"Nodes {a} and {b} are already linked")
        if not isinstance(config, LinkConfig):
            if delay is None:
                raise ConfigurationError("A propagation delay is required with a bare rate")
            config = LinkConfig(rate_bps=config, delay=delay)

        link_id = len(self.links)
        link = Link(self.env, link_id, a, b, config, kind)
        self.links[link_id] = link
        node_a.add_link(link)
        node_b.add_link(link)
        self.graph.add_edge(a, b, link=link_id, capacity=config.rate_bps, delay=config.delay)
        self.graph.add_edge(b, a, link=link_id, capacity=config.rate_bps, delay=config.delay)
        logger.debug("Created %r", link)
        return link_id

    def install_stack(self, node_id: int, kind: StackKind) -> None:
        """Install a protocol stack on a node.

        Installing the same kind twice is a no-op. Installing a different
        kind, or removing the stack with StackKind.NONE, is an error.
        """
        self._check_mutable()
        node = self.node(node_id)
        if not isinstance(kind, StackKind):
            raise ConfigurationError(f"Unknown stack kind: {kind!r}")
        if node.stack not in (StackKind.NONE, kind):
            raise ConfigurationError(
                f"{node!r} already has a {node.stack.value} stack, cannot install {kind.value}"
            )
        node.stack = kind

    def assign_address(self, node_id: int) -> IPv4Address:
        """Assign the next free address to a node and return it."""
        self._check_mutable()
        node = self.node(node_id)
        try:
            address = next(self._addresses)
        except StopIteration:
            raise ConfigurationError("Address pool exhausted") from None
        node.addresses.append(address)
        return address

    def attach_error_model(
        self,
        link_id: int,
        model: Union[ErrorModelConfig, RateErrorModel, float],
        direction: Direction = Direction.BOTH,
        seed: Optional[int] = None,
    ) -> RateErrorModel:
        """Attach a receive error model to a link.

        At most one model is kept per (link, direction); attaching another
        replaces the previous one. With ``Direction.BOTH`` each direction gets
        its own random stream.

        Args:
            link_id: Link to attach to.
            model: A model, its config, or a bare loss probability.
            direction: Direction(s) of travel the model applies to.
            seed: Seed for the model's random stream.

        Returns:
            The attached model (the last one for ``Direction.BOTH``).
        """
        self._check_mutable()
        link = self.link(link_id)
        if not isinstance(direction, Direction):
            raise ConfigurationError(f"Unknown direction: {direction!r}")
        if isinstance(model, (int, float)):
            model = ErrorModelConfig(float(model))

        attached = None
        for d in direction.expand():
            if isinstance(model, RateErrorModel):
                attached = model
            else:
                attached = RateErrorModel(model, self._model_seed(seed, link_id, d))
            link.set_error_model(attached, d)
        logger.debug("Attached %r to %r (%s)", attached, link, direction.name)
        return attached

    def _model_seed(self, seed: Optional[int], link_id: int, direction: Direction) -> Optional[int]:
        base = seed if seed is not None else self.seed
        if base is None:
            return None
        return base * 1000 + link_id * 2 + direction.value

    def attach_and_activate_default_bearer(
        self, ue: int, enb: int, quality: Optional[LinkQuality] = None
    ) -> int:
        """Attach a device to a base station and activate its default bearer.

        Creates the radio link whose parameters come from ``quality`` at the
        device's distance. Until this runs, the device has no path to the
        rest of the topology.

        Returns:
            ID of the radio link.
        """
        self._check_mutable()
        ue_node, enb_node = self.node(ue), self.node(enb)
        if ue_node.serving_node is not None:
            raise ConfigurationError(f"{ue_node!r} is already attached to node {ue_node.serving_node}")
        quality = quality or DEFAULT_RADIO_QUALITY
        link_id = self.create_link(ue, enb, quality.link_config(ue_node.distance), kind="radio")
        ue_node.serving_node = enb_node.id
        ue_node.bearer_active = True
        logger.info("Attached %r to %r, default bearer active", ue_node, enb_node)
        return link_id

    def compute_routes(self) -> None:
        """Compute shortest paths and set routing tables for all nodes."""
        for node in self.nodes.values():
            node.set_routing_table({})
        shortest_paths = nx.all_pairs_dijkstra_path(self.graph, weight="delay")

        for source, paths in shortest_paths:
            routing_table = {}
            for destination, path in paths.items():
                if source != destination and len(path) > 1:
                    routing_table[destination] = path[1]
            self.nodes[source].set_routing_table(routing_table)

    def is_reachable(self, source: int, destination: int) -> bool:
        """Whether both nodes can reach each other."""
        self.node(source)
        self.node(destination)
        return nx.has_path(self.graph, source, destination) and nx.has_path(
            self.graph, destination, source
        )

    def next_link(self, node_id: int, destination: int) -> Optional[Link]:
        """Link to take from ``node_id`` towards ``destination``, if routed."""
        node = self.nodes[node_id]
        hop = node.next_hop(destination)
        if hop is None:
            return None
        return node.links[hop]

    def freeze(self) -> None:
        """Close the topology for modification and compute routes."""
        if not self.frozen:
            self.compute_routes()
            self.frozen = True
