"""Visualization utilities for flow experiments.

This module provides functions for drawing the experiment topology with its
flows and for plotting per-flow results.
"""

import os
from typing import Iterable, List, Optional, Tuple

import matplotlib.pyplot as plt
import networkx as nx
import numpy as np

from flow_sim.core.topology import Topology
from flow_sim.traffic.flows import FlowSpec
from flow_sim.utils.metrics import ExperimentResult


def _finish(fig, filename: Optional[str], show: bool) -> None:
    if filename:
        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(filename)
        plt.close(fig)
    elif show:
        plt.show()


def save_network_visualization(
    topology: Topology,
    flows: Iterable[FlowSpec] = (),
    filename: Optional[str] = None,
    figsize: Tuple[int, int] = (10, 8),
    show: bool = True,
) -> None:
    """Draw the topology and the flows running over it.

    Args:
        topology: Topology to draw.
        flows: Flows drawn as dashed arrows from sender to sink.
        filename: Output filename, or None to show it immediately.
        figsize: Figure size as (width, height) in inches.
        show: Whether to show the figure when no filename is given.
    """
    fig = plt.figure(figsize=figsize)

    graph = topology.graph.to_undirected()
    pos = nx.spring_layout(graph, seed=1)
    labels = {node_id: node.name for node_id, node in topology.nodes.items()}

    nx.draw_networkx_nodes(graph, pos, node_size=500, node_color="lightblue")
    nx.draw_networkx_edges(graph, pos, edge_color="gray", arrows=False)

    for spec in flows:
        nx.draw_networkx_edges(
            topology.graph,
            pos,
            edgelist=[(spec.source, spec.sink)],
            width=2,
            alpha=0.4,
            edge_color="blue",
            style="dashed",
            connectionstyle="arc3,rad=0.2",
            arrows=True,
            arrowsize=30,
        )

    nx.draw_networkx_labels(graph, pos, labels=labels, font_size=12)

    edge_labels = {
        (u, v): f"{graph[u][v]['capacity']/1e6:g}Mbps\n{graph[u][v]['delay']*1000:.1f}ms"
        for u, v in graph.edges()
    }
    nx.draw_networkx_edge_labels(
        graph,
        pos,
        edge_labels=edge_labels,
        font_size=9,
        rotate=False,
        bbox=dict(facecolor="white", edgecolor="none", alpha=0.7),
    )

    plt.axis("off")
    plt.tight_layout()
    _finish(fig, filename, show)


def plot_flow_throughputs(
    results: List[ExperimentResult],
    filename: Optional[str] = None,
    show: bool = True,
) -> None:
    """Plot bytes received and throughput of every flow side by side.

    Args:
        results: Per-flow results of one experiment.
        filename: Output filename, or None to show the plot.
        show: Whether to show the plot when no filename is given.
    """
    names = [r.name for r in results]
    x = np.arange(len(results))

    fig, axes = plt.subplots(1, 2, figsize=(12, 5))

    axes[0].bar(x, [r.bytes_received / 1e6 for r in results], width=0.4)
    axes[0].set_ylabel("Received (MB)")
    axes[0].set_title("Bytes Received")
    axes[0].set_xticks(x)
    axes[0].set_xticklabels(names)

    axes[1].bar(x, [r.throughput_mbps for r in results], width=0.4, color="orange")
    axes[1].set_ylabel("Throughput (Mbps)")
    axes[1].set_title("Throughput")
    axes[1].set_xticks(x)
    axes[1].set_xticklabels(names)

    plt.tight_layout()
    _finish(fig, filename, show)
