"""Transport module: Interaction modules, propagation and scheduling."""

from uhecr_mc.transport.modules import InteractionModule, MaximumTrajectoryLength, MinimumEnergy, Module
from uhecr_mc.transport.propagation import StraightLinePropagation
from uhecr_mc.transport.scheduler import InteractionScheduler

__all__ = [
    "Module",
    "InteractionModule",
    "MinimumEnergy",
    "MaximumTrajectoryLength",
    "StraightLinePropagation",
    "InteractionScheduler",
]
