"""Tests for the metrics collector and result helpers."""

import csv
import json

import pytest

from flow_sim.utils.metrics import (
    NO_ARRIVAL_OBSERVED,
    DeliveryEvent,
    MetricsCollector,
    calculate_fairness_index,
    save_results_to_csv,
    save_results_to_json,
)


def test_throughput_formula():
    collector = MetricsCollector()
    collector.on_delivery(DeliveryEvent(0, 1_000_000, 1.0))
    collector.on_delivery(DeliveryEvent(0, 234_567, 2.0))

    for duration in (0.5, 3.0, 40.0):
        (result,) = collector.finalize(duration)
        assert result.bytes_received == 1_234_567
        assert result.throughput_mbps == (1_234_567 * 8) / (duration * 1e6)


def test_counters_are_per_flow():
    collector = MetricsCollector()
    collector.register(0, "a")
    collector.register(1, "b")
    collector.on_delivery(DeliveryEvent(0, 512, 0.1))
    collector.on_delivery(DeliveryEvent(0, 512, 0.2))

    a, b = collector.finalize(1.0)
    assert (a.name, a.bytes_received) == ("a", 1024)
    assert (b.name, b.bytes_received) == ("b", 0)
    assert collector.bytes_received(1) == 0


def test_first_and_last_arrival():
    collector = MetricsCollector(track_arrival=True)
    for t in (0.5, 0.7, 1.25):
        collector.on_delivery(DeliveryEvent(3, 100, t))

    (result,) = collector.finalize(2.0)
    assert result.first_arrival == 0.5
    assert result.last_arrival == 1.25
    assert result.arrival_observed


def test_no_arrival_observed_sentinel():
    collector = MetricsCollector(track_arrival=True)
    collector.register(0)

    (result,) = collector.finalize(10.0)

    assert result.last_arrival == NO_ARRIVAL_OBSERVED
    assert result.first_arrival == NO_ARRIVAL_OBSERVED
    assert not result.arrival_observed
    assert collector.anomalies() == [result]


def test_arrival_not_reported_when_untracked():
    collector = MetricsCollector()
    collector.register(0)
    (result,) = collector.finalize(10.0)
    assert result.last_arrival is None
    assert result.arrival_observed
    assert collector.anomalies() == []


def test_finalize_requires_positive_duration():
    collector = MetricsCollector()
    with pytest.raises(ValueError):
        collector.finalize(0)


def test_anomalies_before_finalize():
    with pytest.raises(RuntimeError):
        MetricsCollector().anomalies()


def test_fairness_index():
    assert calculate_fairness_index([5.0, 5.0, 5.0]) == pytest.approx(1.0)
    assert calculate_fairness_index([1.0, 0.0]) == pytest.approx(0.5)
    assert calculate_fairness_index([]) == 0.0
    assert calculate_fairness_index([0.0, 0.0]) == 0.0


def test_save_results(tmp_path):
    collector = MetricsCollector(track_arrival=True)
    collector.register(0, "tcp")
    collector.on_delivery(DeliveryEvent(0, 2048, 1.5))
    results = collector.finalize(4.0)

    json_file = tmp_path / "out" / "results.json"
    csv_file = tmp_path / "out" / "results.csv"
    save_results_to_json(results, str(json_file))
    save_results_to_csv(results, str(csv_file))

    data = json.loads(json_file.read_text())
    assert data[0]["name"] == "tcp"
    assert data[0]["bytes_received"] == 2048
    assert data[0]["last_arrival"] == 1.5

    with open(csv_file, newline="") as f:
        rows = list(csv.reader(f))
    assert rows[0][0] == "Flow"
    assert rows[1][1:3] == ["tcp", "2048"]
