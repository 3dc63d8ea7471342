"""Core components for flow experiments.

This module contains the topology model (Node, Link, Topology), the error
injection policy and the ExperimentDriver that runs flows on one SimPy clock.
"""
