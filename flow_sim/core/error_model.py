"""Error injection policy for flow experiments.

This module defines the rate error model used to drop packets on a link with
a fixed, independent per-packet probability.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from flow_sim.core.enums import ErrorUnit
from flow_sim.core.errors import ConfigurationError
from flow_sim.core.packet import Packet


@dataclass(frozen=True)
class ErrorModelConfig:
    """Typed description of a rate error model.

    Attributes:
        loss_probability: Probability that one unit is lost, in [0, 1].
        unit: Unit each loss decision applies to.
    """

    loss_probability: float
    unit: ErrorUnit = ErrorUnit.PACKET

    def __post_init__(self):
        if not 0.0 <= self.loss_probability <= 1.0:
            raise ConfigurationError(
                f"Loss probability must be within [0, 1], got {self.loss_probability}"
            )
        if not isinstance(self.unit, ErrorUnit):
            raise ConfigurationError(f"Unsupported error unit: {self.unit!r}")


class RateErrorModel:
    """Drops each unit independently with a fixed probability.

    Decisions only depend on the model's own random stream, so one flow's
    losses never influence another's.

    Attributes:
        config: The validated configuration of this model.
        units_checked: Number of loss decisions made.
        units_lost: Number of units that were dropped.
    """

    def __init__(self, config: ErrorModelConfig, seed: Optional[int] = None):
        self.config = config
        self.rng = np.random.default_rng(seed)
        self.units_checked = 0
        self.units_lost = 0

    @property
    def loss_probability(self) -> float:
        return self.config.loss_probability

    def is_corrupt(self, packet: Packet) -> bool:
        """Decide whether the packet is lost.

        Args:
            packet: The packet being received.

        Returns:
            True if the packet must be dropped.
        """
        self.units_checked += 1
        if self.config.loss_probability <= 0.0:
            return False
        lost = bool(self.rng.random() < self.config.loss_probability)
        if lost:
            self.units_lost += 1
        return lost

    def __repr__(self) -> str:
        return f"RateErrorModel({self.config.loss_probability:.4f}/{self.config.unit.value})"
