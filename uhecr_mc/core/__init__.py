"""Core module: Units, particle state, configuration and errors."""

from uhecr_mc.core.particle import Candidate, InteractionState, ParticleState
from uhecr_mc.core.config import SimulationConfig

__all__ = ["Candidate", "InteractionState", "ParticleState", "SimulationConfig"]
