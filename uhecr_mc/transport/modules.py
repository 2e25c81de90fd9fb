"""
Modules acting on candidates during propagation.

    Module              anything run once per step on a candidate
    InteractionModule   stochastic interaction with a pending free path
    MinimumEnergy       break condition on energy
    MaximumTrajectoryLength  break condition on travelled distance

An InteractionModule keeps at most one pending interaction per candidate, in
the candidate slot assigned at registration. The pending distance is drawn
once and then counted down step by step; it is only redrawn after the
interaction happened (or after the candidate changed).

resolve_interactions commits the pending interactions of several modules in
the order they occur along the step.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Optional, Sequence

from uhecr_mc.core import units
from uhecr_mc.core.errors import ConfigurationError, InternalConsistencyFault
from uhecr_mc.core.particle import (
    Candidate,
    STATUS_BELOW_ENERGY,
    STATUS_MAX_TRAJECTORY,
)


class Module(ABC):
    """Base class for everything the scheduler runs on a candidate."""

    description = 'Module'

    def prepare(self, candidate: Candidate, rng: np.random.Generator):
        """Called before the candidate is propagated; may limit the next step."""

    @abstractmethod
    def process(self, candidate: Candidate, step: float,
                rng: np.random.Generator) -> int:
        """
        Act on the candidate after it moved by `step` [m].

        Returns:
            Number of interactions performed
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self.description}')"


class InteractionModule(Module):
    """
    Stochastic interaction selected by competing free paths.

    Subclasses implement
        propose_interaction(candidate, rng) -> bool
            draw channel and free path, store them in the candidate slot
        commit_interaction(candidate)
            apply the pending interaction and clear the slot
    """

    def __init__(self):
        self.slot: Optional[int] = None

    def _require_slot(self) -> int:
        if self.slot is None:
            raise ConfigurationError(
                f"{self.description}: module is not registered with a scheduler")
        return self.slot

    @abstractmethod
    def propose_interaction(self, candidate: Candidate, rng: np.random.Generator) -> bool:
        """Sample the next interaction; False if none is possible."""

    @abstractmethod
    def commit_interaction(self, candidate: Candidate):
        """Perform the pending interaction on the candidate."""

    def prepare(self, candidate: Candidate, rng: np.random.Generator):
        slot = self._require_slot()
        if not candidate.has_interaction_state(slot):
            if not self.propose_interaction(candidate, rng):
                return
            candidate.get_interaction_state(slot).origin = candidate.trajectory_length
        state = candidate.get_interaction_state(slot)
        candidate.limit_next_step(state.point - candidate.trajectory_length)

    def process(self, candidate: Candidate, step: float,
                rng: np.random.Generator) -> int:
        self._require_slot()
        return resolve_interactions([self], candidate,
                                    candidate.trajectory_length - step, rng)

    def _take_state(self, candidate: Candidate):
        """Retrieve and clear this module's pending state."""
        slot = self._require_slot()
        state = candidate.get_interaction_state(slot)
        if state is None:
            raise InternalConsistencyFault(
                f"{self.description}: commit without a pending interaction")
        candidate.clear_interaction_state(slot)
        return state


def resolve_interactions(modules: Sequence[InteractionModule], candidate: Candidate,
                         start: float, rng: np.random.Generator) -> int:
    """
    Perform the interactions of all modules that fall inside the last step.

    The candidate has moved from trajectory length `start` to its current
    trajectory length. Pending interactions are committed in the order of the
    point where they happen, whichever module they belong to. A module that
    proposes during the step starts its free path at the last interaction
    point. When an interaction changes the particle, every pending state is
    dropped and redrawn from that point on.

    Afterwards the surviving states count from the end of the step and limit
    the next one.

    Returns:
        Number of interactions performed
    """
    end = candidate.trajectory_length
    n_interactions = 0
    declined = set()

    while candidate.active:
        origin = max(start, candidate.last_interaction_length)
        first = None
        for module in modules:
            slot = module.slot
            if not candidate.has_interaction_state(slot):
                if slot in declined or not module.propose_interaction(candidate, rng):
                    declined.add(slot)
                    continue
                candidate.get_interaction_state(slot).origin = origin
            state = candidate.get_interaction_state(slot)
            if first is None or state.point < first[1].point:
                first = (module, state)

        if first is None or first[1].point > end:
            break

        module, state = first
        pid = candidate.current.id
        energy = candidate.current.energy
        candidate.last_interaction_length = state.point
        module.commit_interaction(candidate)
        n_interactions += 1

        if candidate.current.id != pid or candidate.current.energy != energy:
            # rates of all modules depend on the old state
            candidate.clear_interaction_states()
            declined.clear()

    for module in modules:
        state = candidate.get_interaction_state(module.slot)
        if state is not None:
            state.distance = state.point - end
            state.origin = end
            candidate.limit_next_step(state.distance)
    return n_interactions


class MinimumEnergy(Module):
    """Deactivate candidates below a minimum energy."""

    description = 'MinimumEnergy'

    def __init__(self, min_energy: float):
        """
        Parameters:
            min_energy: Energy threshold [J]
        """
        self.min_energy = float(min_energy)

    def process(self, candidate, step, rng) -> int:
        if candidate.current.energy < self.min_energy:
            candidate.deactivate(STATUS_BELOW_ENERGY)
        return 0

    def __repr__(self) -> str:
        return f"MinimumEnergy({self.min_energy / units.EeV:g} EeV)"


class MaximumTrajectoryLength(Module):
    """Deactivate candidates after a maximum trajectory length."""

    description = 'MaximumTrajectoryLength'

    def __init__(self, max_length: float):
        """
        Parameters:
            max_length: Maximum trajectory length [m]
        """
        self.max_length = float(max_length)

    def prepare(self, candidate, rng):
        candidate.limit_next_step(max(self.max_length - candidate.trajectory_length, 0.0))

    def process(self, candidate, step, rng) -> int:
        if candidate.trajectory_length >= self.max_length:
            candidate.deactivate(STATUS_MAX_TRAJECTORY)
        return 0

    def __repr__(self) -> str:
        return f"MaximumTrajectoryLength({self.max_length / units.Mpc:g} Mpc)"
