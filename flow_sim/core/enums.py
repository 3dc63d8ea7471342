"""Enumerations for flow experiments.

This module defines enumerations used throughout the flow simulator.
"""

from enum import Enum


class StackKind(Enum):
    """Protocol stack installed on a node.

    Attributes:
        NONE: No transport stack installed.
        RELIABLE_STREAM: Reliable byte-stream stack (TCP-like).
        UNRELIABLE_THEN_RELIABLE: Custom stack running a reliable stream over
            an unreliable datagram layer (QUIC-like).
    """

    NONE = "none"
    RELIABLE_STREAM = "reliable-stream"
    UNRELIABLE_THEN_RELIABLE = "unreliable-then-reliable"


class FlowState(Enum):
    """Lifecycle of a flow. STOPPED is terminal."""

    ARMED = 1
    SENDING = 2
    STOPPED = 3


class Direction(Enum):
    """Direction of travel over a link.

    FORWARD runs from the link's first endpoint to its second one.
    """

    FORWARD = 1
    REVERSE = 2
    BOTH = 3

    def expand(self):
        if self is Direction.BOTH:
            return (Direction.FORWARD, Direction.REVERSE)
        return (self,)


class ErrorUnit(Enum):
    """Unit a loss decision is made on."""

    PACKET = "packet"
