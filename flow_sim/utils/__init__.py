"""Utilities for flow experiments: metrics, size parsing and plots."""
