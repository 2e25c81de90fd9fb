"""
Step integrators.

The scheduler only needs `propagate(candidate) -> step_taken`. Field-aware
integrators (magnetic deflection, adaptive step control) plug in behind the
same interface; StraightLinePropagation covers the field-free case.
"""

from abc import ABC, abstractmethod

from uhecr_mc.core import units
from uhecr_mc.core.particle import Candidate


class Propagator(ABC):
    """Advances a candidate and reports the step length taken [m]."""

    @abstractmethod
    def propagate(self, candidate: Candidate) -> float:
        """Move the candidate by at most candidate.next_step; return the step taken."""


class StraightLinePropagation(Propagator):
    """
    Rectilinear propagation without fields.

    Takes min(next_step, max_step), moves along the current direction and
    proposes max_step for the following step.
    """

    def __init__(self, max_step: float = 0.01 * units.Mpc, min_step: float = 0.0):
        """
        Parameters:
            max_step: Maximum step length [m]
            min_step: Minimum step length [m]
        """
        if max_step <= 0.0 or min_step < 0.0 or min_step > max_step:
            raise ValueError(f"invalid step limits: min_step={min_step}, max_step={max_step}")
        self.max_step = float(max_step)
        self.min_step = float(min_step)

    def propagate(self, candidate: Candidate) -> float:
        step = min(max(candidate.next_step, self.min_step), self.max_step)
        candidate.current.position += step * candidate.current.direction
        candidate.trajectory_length += step
        candidate.next_step = self.max_step
        return step

    def __repr__(self) -> str:
        return f"StraightLinePropagation(max_step={self.max_step / units.Mpc:g} Mpc)"
