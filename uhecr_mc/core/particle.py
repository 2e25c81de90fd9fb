"""
Particle and candidate state.

Nuclides are identified by a single integer in the PDG nucleus scheme:
    id = 1000000000 + 10000 * Z + 10 * A
so a neutron is 1000000010 and a proton 1000010010.
"""

import numpy as np
from typing import List, Optional, Tuple

from uhecr_mc.core import units


STATUS_ACTIVE = 'active'
STATUS_TERMINATED = 'terminated'
STATUS_BELOW_ENERGY = 'below_energy'
STATUS_MAX_TRAJECTORY = 'max_trajectory'

_NUCLEUS_BASE = 1000000000

# Common names for convenience in scripts and tests
_NUCLIDE_NAMES = {
    'neutron': (1, 0),
    'proton': (1, 1),
    'H-1': (1, 1),
    'deuteron': (2, 1),
    'H-2': (2, 1),
    'triton': (3, 1),
    'H-3': (3, 1),
    'He-3': (3, 2),
    'He-4': (4, 2),
    'alpha': (4, 2),
    'Li-7': (7, 3),
    'Be-8': (8, 4),
    'Be-9': (9, 4),
    'B-11': (11, 5),
    'C-12': (12, 6),
    'N-14': (14, 7),
    'O-16': (16, 8),
    'Ne-20': (20, 10),
    'Mg-24': (24, 12),
    'Si-28': (28, 14),
    'Fe-56': (56, 26),
}


def nucleus_id(A: int, Z: int) -> int:
    """
    Pack mass number A and charge number Z into a nuclide id.

    Raises:
        ValueError: if A < 1, Z < 0 or Z > A
    """
    A = int(A)
    Z = int(Z)
    if A < 1:
        raise ValueError(f"mass number must be >= 1, got A={A}")
    if Z < 0 or Z > A:
        raise ValueError(f"charge number must satisfy 0 <= Z <= A, got A={A}, Z={Z}")
    return _NUCLEUS_BASE + 10000 * Z + 10 * A


def is_nucleus(pid: int) -> bool:
    return int(pid) >= _NUCLEUS_BASE


def charge_number(pid: int) -> int:
    return (int(pid) - _NUCLEUS_BASE) // 10000


def mass_number(pid: int) -> int:
    return ((int(pid) - _NUCLEUS_BASE) % 10000) // 10


def parse_nuclide(name: str) -> Tuple[int, int]:
    """Parse 'Fe-56' → (A=56, Z=26)."""
    try:
        return _NUCLIDE_NAMES[name]
    except KeyError:
        raise ValueError(f"Unknown nuclide '{name}'. "
                         f"Available: {list(_NUCLIDE_NAMES.keys())}")


class ParticleState:
    """Identity, energy, position and direction of a particle."""

    def __init__(self, pid: int, energy: float,
                 position: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                 direction: Tuple[float, float, float] = (1.0, 0.0, 0.0)):
        """
        Parameters:
            pid: Nuclide id (see nucleus_id)
            energy: Energy [J]
            position: (x, y, z) position [m]
            direction: (dx, dy, dz) direction (normalized internally)
        """
        self.id = int(pid)
        self.energy = float(energy)
        self.position = np.array(position, dtype=np.float64)
        self.set_direction(direction)

    @classmethod
    def nucleus(cls, A: int, Z: int, energy: float, **kwargs) -> 'ParticleState':
        return cls(nucleus_id(A, Z), energy, **kwargs)

    def set_direction(self, direction):
        dir_array = np.array(direction, dtype=np.float64)
        norm = np.linalg.norm(dir_array)
        if norm == 0.0:
            raise ValueError("direction must be a non-zero vector")
        self.direction = dir_array / norm

    @property
    def charge_number(self) -> int:
        return charge_number(self.id)

    @property
    def mass_number(self) -> int:
        return mass_number(self.id)

    @property
    def lorentz_factor(self) -> float:
        """Energy over rest energy, E / (A m_nucleon c²)."""
        return self.energy / (self.mass_number * units.nucleon_mass_energy)

    def copy(self) -> 'ParticleState':
        return ParticleState(self.id, self.energy, self.position.copy(),
                             self.direction.copy())

    def __repr__(self) -> str:
        return (f"ParticleState(A={self.mass_number}, Z={self.charge_number}, "
                f"E={self.energy / units.EeV:.4g} EeV)")


class InteractionState:
    """
    Pending interaction of one module.

    `distance` is the free path [m] counted from `origin`, the trajectory
    length at which it started. Between steps origin equals the candidate's
    trajectory length, so distance is what is left to travel.
    """

    __slots__ = ('channel', 'distance', 'origin')

    def __init__(self, channel: int = 0, distance: float = np.inf, origin: float = 0.0):
        self.channel = channel
        self.distance = distance
        self.origin = origin

    @property
    def point(self) -> float:
        """Trajectory length at which the interaction happens."""
        return self.origin + self.distance

    def __repr__(self) -> str:
        return f"InteractionState(channel={self.channel}, distance={self.distance:.4g} m)"


class Candidate:
    """
    A particle being propagated, with its bookkeeping.

    Pending interactions are kept in a fixed-size slot list; slot i belongs
    to the module registered with id i in the scheduler.
    """

    def __init__(self, state: ParticleState, redshift: float = 0.0,
                 next_step: float = 0.01 * units.Mpc, n_slots: int = 0):
        """
        Parameters:
            state: Particle state at creation (copied into `initial`)
            redshift: Cosmological redshift of the candidate
            next_step: Proposed length of the next step [m]
            n_slots: Number of interaction slots to reserve
        """
        self.current = state
        self.initial = state.copy()
        self.redshift = float(redshift)
        self.trajectory_length = 0.0
        self.last_interaction_length = 0.0
        self.next_step = float(next_step)
        self.active = True
        self.status = STATUS_ACTIVE
        self._slots: List[Optional[InteractionState]] = [None] * n_slots
        self.secondaries: List['Candidate'] = []

    # ------------------------------------------------------------------
    # Pending interaction slots
    # ------------------------------------------------------------------

    @property
    def n_slots(self) -> int:
        return len(self._slots)

    def reserve_slots(self, n: int):
        """Grow the slot list to at least n entries."""
        if n > len(self._slots):
            self._slots.extend([None] * (n - len(self._slots)))

    def has_interaction_state(self, slot: int) -> bool:
        return self._slots[slot] is not None

    def get_interaction_state(self, slot: int) -> Optional[InteractionState]:
        return self._slots[slot]

    def set_interaction_state(self, slot: int, state: InteractionState):
        self._slots[slot] = state

    def clear_interaction_state(self, slot: int):
        self._slots[slot] = None

    def clear_interaction_states(self):
        for i in range(len(self._slots)):
            self._slots[i] = None

    # ------------------------------------------------------------------
    # Stepping and lifecycle
    # ------------------------------------------------------------------

    def limit_next_step(self, step: float):
        if step < self.next_step:
            self.next_step = step

    def deactivate(self, status: str = STATUS_TERMINATED):
        """Mark terminal; a terminal candidate keeps no pending interactions."""
        self.active = False
        self.status = status
        self.clear_interaction_states()

    def add_secondary(self, pid: int, energy: float) -> 'Candidate':
        """
        Spawn a secondary at the current position and direction.

        The secondary shares the source (initial state), trajectory length
        and redshift of its parent.
        """
        state = self.current.copy()
        state.id = int(pid)
        state.energy = float(energy)

        secondary = Candidate(state, redshift=self.redshift,
                              next_step=self.next_step, n_slots=self.n_slots)
        secondary.initial = self.initial.copy()
        secondary.trajectory_length = self.trajectory_length
        secondary.last_interaction_length = self.trajectory_length
        self.secondaries.append(secondary)
        return secondary

    def take_secondaries(self) -> List['Candidate']:
        """Hand over ownership of spawned secondaries."""
        secondaries = self.secondaries
        self.secondaries = []
        return secondaries

    def __repr__(self) -> str:
        return (f"Candidate({self.current!r}, z={self.redshift:g}, "
                f"L={self.trajectory_length / units.Mpc:.4g} Mpc, "
                f"status={self.status})")
