"""Metrics utilities for flow experiments.

This module provides the MetricsCollector, which turns sink delivery events
into per-flow results, and helpers to save and compare those results.
"""

import csv
import json
import os
from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional

NO_ARRIVAL_OBSERVED = -1.0


@dataclass(frozen=True)
class DeliveryEvent:
    """Application bytes handed to a sink.

    Attributes:
        flow_id: Flow the bytes belong to.
        size: Bytes delivered by this event.
        timestamp: Simulated time of the delivery in seconds.
    """

    flow_id: int
    size: int
    timestamp: float


@dataclass(frozen=True)
class ExperimentResult:
    """Per-flow outcome of an experiment.

    Attributes:
        flow_id: Flow identifier.
        name: Flow label.
        bytes_received: Total bytes delivered to the sink.
        throughput_mbps: bytes_received * 8 / (duration * 1e6).
        first_arrival: First delivery time when arrivals are tracked.
        last_arrival: Last delivery time when arrivals are tracked.
        arrival_tracked: Whether the experiment tracks arrival times.
        bytes_sent: Bytes the sender put on the wire.
        packets_lost: Packets of this flow dropped in the network.
    """

    flow_id: int
    name: str
    bytes_received: int
    throughput_mbps: float
    first_arrival: Optional[float] = None
    last_arrival: Optional[float] = None
    arrival_tracked: bool = False
    bytes_sent: int = 0
    packets_lost: int = 0

    @property
    def arrival_observed(self) -> bool:
        """False when arrivals were tracked but nothing was ever delivered."""
        if not self.arrival_tracked:
            return True
        return self.last_arrival is not None and self.last_arrival != NO_ARRIVAL_OBSERVED


class _FlowCounters:
    __slots__ = ("name", "bytes_received", "deliveries", "first_seen", "last_seen")

    def __init__(self, name: str) -> None:
        self.name = name
        self.bytes_received = 0
        self.deliveries = 0
        self.first_seen: Optional[float] = None
        self.last_seen: Optional[float] = None


class MetricsCollector:
    """Accumulates delivery events per flow.

    One collector belongs to one experiment; sinks push events into it
    through ``on_delivery``.

    Attributes:
        track_arrival: Whether first/last delivery times are reported.
    """

    def __init__(self, track_arrival: bool = False) -> None:
        self.track_arrival = track_arrival
        self._flows: Dict[int, _FlowCounters] = {}
        self._results: Optional[List[ExperimentResult]] = None

    def register(self, flow_id: int, name: Optional[str] = None) -> None:
        """Declare a flow so it is reported even if nothing is delivered."""
        if flow_id not in self._flows:
            self._flows[flow_id] = _FlowCounters(name or f"flow-{flow_id}")

    def on_delivery(self, event: DeliveryEvent) -> None:
        """Record one delivery event.

        Args:
            event: The delivery to account for.
        """
        self.register(event.flow_id)
        counters = self._flows[event.flow_id]
        counters.bytes_received += event.size
        counters.deliveries += 1
        if counters.first_seen is None:
            counters.first_seen = event.timestamp
        counters.last_seen = event.timestamp

    def bytes_received(self, flow_id: int) -> int:
        counters = self._flows.get(flow_id)
        return counters.bytes_received if counters else 0

    def finalize(self, duration: float) -> List[ExperimentResult]:
        """Produce the per-flow results.

        Args:
            duration: Total experiment duration in seconds.

        Returns:
            One result per flow, ordered by flow ID.
        """
        if duration <= 0:
            raise ValueError(f"Duration must be positive, got {duration}")

        results = []
        for flow_id, counters in sorted(self._flows.items()):
            first = last = None
            if self.track_arrival:
                if counters.deliveries:
                    first, last = counters.first_seen, counters.last_seen
                else:
                    first = last = NO_ARRIVAL_OBSERVED
            results.append(
                ExperimentResult(
                    flow_id=flow_id,
                    name=counters.name,
                    bytes_received=counters.bytes_received,
                    throughput_mbps=(counters.bytes_received * 8) / (duration * 1e6),
                    first_arrival=first,
                    last_arrival=last,
                    arrival_tracked=self.track_arrival,
                )
            )
        self._results = results
        return results

    def anomalies(self) -> List[ExperimentResult]:
        """Finalized results whose arrival time was tracked but never observed."""
        if self._results is None:
            raise RuntimeError("finalize() has not been called")
        return [r for r in self._results if not r.arrival_observed]


def save_results_to_json(
    results: Iterable[ExperimentResult], filename: str = "results/results.json"
) -> None:
    """Save experiment results to a JSON file.

    Args:
        results: Results to save.
        filename: Output filename.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w") as f:
        json.dump([asdict(r) for r in results], f, indent=2)


def save_results_to_csv(
    results: Iterable[ExperimentResult], filename: str = "results/results.csv"
) -> None:
    """Save experiment results to a CSV file, one row per flow."""
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["Flow", "Name", "Bytes Received", "Throughput (Mbps)", "Last Arrival"]
        )
        for r in results:
            writer.writerow(
                [r.flow_id, r.name, r.bytes_received, r.throughput_mbps, r.last_arrival]
            )


def calculate_fairness_index(throughputs: Iterable[float]) -> float:
    """Calculate Jain's fairness index.

    Args:
        throughputs: Per-flow throughputs.

    Returns:
        Fairness index between 0 and 1 (1 is perfectly fair).
    """
    throughputs = list(throughputs)
    if not throughputs:
        return 0.0

    sum_throughput = sum(throughputs)
    sum_squared = sum(x**2 for x in throughputs)

    if sum_squared == 0:
        return 0.0

    return (sum_throughput**2) / (len(throughputs) * sum_squared)
