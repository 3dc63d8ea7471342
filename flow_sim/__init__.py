"""Flow-level network experiment orchestration on top of SimPy.

Build a topology, register flows, run the simulated clock and collect
per-flow delivery metrics.
"""

__version__ = "0.1.0"
