#!/usr/bin/env python3
"""Run a flow experiment variant.

Examples:
    python main.py throughput --distance 250
    python main.py download-time --fileSize 1MB
    python main.py fairness
    python main.py two-quic
"""

import sys

from flow_sim.cli import main

if __name__ == "__main__":
    sys.exit(main())
