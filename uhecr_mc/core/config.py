"""
Run configuration.

Settings can be given in code or read from a YAML file:

    photon_field: CMB
    seed: 42
    step_length_mpc: 0.01
    min_energy_eev: 1.0
    max_trajectory_mpc: 100.0

Lengths are in Mpc and energies in EeV in the file; SimulationConfig
converts them to internal units.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from uhecr_mc.core import units
from uhecr_mc.core.errors import ConfigurationError, DataFileError


def default_data_dir() -> Path:
    """Data root: $UHECR_MC_DATA if set, otherwise <repo>/data."""
    env = os.environ.get('UHECR_MC_DATA')
    if env:
        return Path(env)
    return Path(__file__).parent.parent.parent / 'data'


class SimulationConfig:
    """Settings for building and running an interaction scheduler."""

    DEFAULTS: Dict[str, Any] = {
        'data_dir': None,
        'photon_field': 'CMB',
        'seed': None,
        'step_length_mpc': 0.01,
        'max_steps': 100000,
        'min_energy_eev': 0.0,
        'max_trajectory_mpc': 0.0,
        'n_processes': 1,
    }

    def __init__(self, **settings):
        unknown = set(settings) - set(self.DEFAULTS)
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys {sorted(unknown)}. "
                f"Available: {list(self.DEFAULTS.keys())}")

        values = dict(self.DEFAULTS)
        values.update(settings)

        self.data_dir = Path(values['data_dir']) if values['data_dir'] else default_data_dir()
        self.photon_field = str(values['photon_field'])
        self.seed = values['seed']
        self.step_length_mpc = self._number(values, 'step_length_mpc', positive=True)
        self.max_steps = int(self._number(values, 'max_steps', positive=True))
        self.min_energy_eev = self._number(values, 'min_energy_eev')
        self.max_trajectory_mpc = self._number(values, 'max_trajectory_mpc')
        self.n_processes = int(self._number(values, 'n_processes', positive=True))

        if self.seed is not None and (not isinstance(self.seed, int) or self.seed < 0):
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}")

    @staticmethod
    def _number(values: Dict[str, Any], key: str, positive: bool = False) -> float:
        try:
            value = float(values[key])
        except (TypeError, ValueError):
            raise ConfigurationError(f"{key} must be a number, got {values[key]!r}") from None
        if value < 0.0 or (positive and value == 0.0):
            raise ConfigurationError(
                f"{key} must be {'positive' if positive else 'non-negative'}, got {value}")
        return value

    @classmethod
    def from_dict(cls, settings: Optional[Dict[str, Any]]) -> 'SimulationConfig':
        if settings is None:
            settings = {}
        if not isinstance(settings, dict):
            raise ConfigurationError("configuration must be a mapping")
        return cls(**settings)

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> 'SimulationConfig':
        """
        Read settings from a YAML file.

        Raises:
            DataFileError: if the file cannot be read
            ConfigurationError: if the contents are not valid settings
        """
        path = Path(path)
        try:
            with open(path, 'r') as f:
                settings = yaml.safe_load(f)
        except OSError as e:
            raise DataFileError(f"could not open configuration {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"invalid YAML in {path}: {e}") from e
        return cls.from_dict(settings)

    # Values in internal units

    @property
    def step_length(self) -> float:
        return self.step_length_mpc * units.Mpc

    @property
    def min_energy(self) -> float:
        return self.min_energy_eev * units.EeV

    @property
    def max_trajectory_length(self) -> float:
        return self.max_trajectory_mpc * units.Mpc

    def to_dict(self) -> Dict[str, Any]:
        return {
            'data_dir': str(self.data_dir),
            'photon_field': self.photon_field,
            'seed': self.seed,
            'step_length_mpc': self.step_length_mpc,
            'max_steps': self.max_steps,
            'min_energy_eev': self.min_energy_eev,
            'max_trajectory_mpc': self.max_trajectory_mpc,
            'n_processes': self.n_processes,
        }

    def __repr__(self) -> str:
        return f"SimulationConfig({self.to_dict()})"


def build_scheduler(config: SimulationConfig, modules=None):
    """
    Wire an InteractionScheduler from a configuration.

    Parameters:
        config: Run settings
        modules: Interaction modules to use instead of PhotoDisintegration

    Returns:
        InteractionScheduler with break conditions and straight-line propagation
    """
    from uhecr_mc.physics.photodisintegration import PhotoDisintegration
    from uhecr_mc.transport.modules import MaximumTrajectoryLength, MinimumEnergy
    from uhecr_mc.transport.propagation import StraightLinePropagation
    from uhecr_mc.transport.scheduler import InteractionScheduler

    if modules is None:
        modules = [PhotoDisintegration(config.photon_field, data_dir=config.data_dir)]
    modules = list(modules)
    if config.min_energy > 0.0:
        modules.append(MinimumEnergy(config.min_energy))
    if config.max_trajectory_length > 0.0:
        modules.append(MaximumTrajectoryLength(config.max_trajectory_length))

    return InteractionScheduler(modules,
                                propagator=StraightLinePropagation(config.step_length),
                                seed=config.seed)
