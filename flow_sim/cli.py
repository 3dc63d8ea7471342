"""Command line entry points for the experiment variants."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from flow_sim import scenarios
from flow_sim.core.errors import FlowSimError
from flow_sim.core.simulator import ExperimentDriver
from flow_sim.utils.metrics import (
    ExperimentResult,
    calculate_fairness_index,
    save_results_to_csv,
    save_results_to_json,
)
from flow_sim.utils.sizes import parse_file_size
from flow_sim.utils.visualization import plot_flow_throughputs, save_network_visualization

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIGURATION_ERROR = 1
EXIT_NO_ARRIVAL = -1

DISTANCE_HELP = (
    "Distance between device and base station (in meters); only changes "
    "results with a distance-aware LinkQuality"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Flow experiments over a simulated network")
    parser.add_argument("--seed", type=int, default=None, help="Seed for reproducible runs")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--output-dir", default=None, help="Save results (JSON, CSV, plot) to this directory"
    )
    subparsers = parser.add_subparsers(dest="experiment", required=True)

    throughput = subparsers.add_parser(
        "throughput", help="Single reliable-stream download over LTE"
    )
    throughput.add_argument(
        "--distance", type=float, default=scenarios.DEFAULT_DISTANCE,
        help=DISTANCE_HELP,
    )

    download = subparsers.add_parser(
        "download-time", help="Time to download a file over the custom stack"
    )
    download.add_argument(
        "--fileSize", dest="file_size", default=scenarios.DEFAULT_FILE_SIZE,
        help="In the format of 10B, 10KB, 10MB",
    )
    download.add_argument(
        "--distance", type=float, default=scenarios.DEFAULT_DISTANCE,
        help=DISTANCE_HELP,
    )

    fairness = subparsers.add_parser(
        "fairness", help="Two reliable streams and a late custom-stack flow over LTE"
    )
    fairness.add_argument(
        "--distance", type=float, default=scenarios.DEFAULT_DISTANCE,
        help=DISTANCE_HELP,
    )

    subparsers.add_parser(
        "two-quic", help="Two custom-stack flows to the same receiver over one link"
    )
    return parser


def build_driver(args: argparse.Namespace) -> ExperimentDriver:
    """Build the driver of the selected variant.

    Raises:
        ParseError: ``--fileSize`` is malformed.
    """
    if args.experiment == "throughput":
        return scenarios.throughput_over_lte(args.distance, seed=args.seed)
    if args.experiment == "download-time":
        file_size = parse_file_size(args.file_size)
        return scenarios.download_time_over_lte(file_size, args.distance, seed=args.seed)
    if args.experiment == "fairness":
        return scenarios.fairness_over_lte(args.distance, seed=args.seed)
    return scenarios.two_streams_same_receiver(seed=args.seed)


def report(experiment: str, driver: ExperimentDriver, results: List[ExperimentResult]) -> int:
    """Print the metrics of a finished run and return the exit code."""
    if experiment == "throughput":
        result = results[0]
        print(f"Total Bytes Received: {result.bytes_received}")
        print(f"Throughput: {result.throughput_mbps} Mbps")
    elif experiment == "download-time":
        missing = driver.anomalies()
        if missing:
            for result in missing:
                print(
                    f"ERROR: Failed to track arrival times. "
                    f"[lastArrivalTime = {result.last_arrival}]"
                )
            return EXIT_NO_ARRIVAL
        print(results[0].last_arrival)
    elif experiment == "fairness":
        for result in results:
            print(f"{result.name.upper()} FLOW THROUGHPUT: {result.throughput_mbps} Mbps")
        index = calculate_fairness_index(r.throughput_mbps for r in results)
        print(f"Jain's Fairness Index: {index}")
    else:
        for result in results:
            print(f"Total Bytes Received: {result.bytes_received}")
    return EXIT_OK


def save_outputs(output_dir: str, experiment: str, driver: ExperimentDriver, results: List[ExperimentResult]) -> None:
    """Write results as JSON and CSV, plus topology and throughput plots."""
    save_results_to_json(results, os.path.join(output_dir, f"{experiment}.json"))
    save_results_to_csv(results, os.path.join(output_dir, f"{experiment}.csv"))
    plot_flow_throughputs(results, os.path.join(output_dir, f"{experiment}.png"), show=False)
    save_network_visualization(
        driver.topology,
        driver.registry.flows.values(),
        os.path.join(output_dir, f"{experiment}-topology.png"),
        show=False,
    )
    logger.info("Saved results to %s", output_dir)


def main(argv: Optional[List[str]] = None) -> int:
    """Run one experiment variant.

    Returns:
        0 on success, 1 on a configuration error, -1 when arrival times were
        tracked but nothing arrived.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        driver = build_driver(args)
        results = driver.run()
    except FlowSimError as e:
        print(f"ERROR: {e}")
        return EXIT_CONFIGURATION_ERROR

    code = report(args.experiment, driver, results)
    if args.output_dir:
        save_outputs(args.output_dir, args.experiment, driver, results)
    return code


if __name__ == "__main__":
    sys.exit(main())
