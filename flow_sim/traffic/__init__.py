"""Traffic for flow experiments.

This module provides flow specifications, the flow registry, the socket
factory capability and the bulk sender / packet sink applications.
"""
