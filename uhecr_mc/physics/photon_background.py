"""
Photon background models.

Every model exposes
    density(energy, redshift)   -> photons per unit energy per unit volume [1/(J m³)]
    redshift_scaling(redshift)  -> total density relative to redshift 0

Two variants:
    TabularPhotonField     interpolated from data files (or arrays)
    BlackbodyPhotonField   analytic Planck spectrum at a fixed temperature

Data files live in <data_dir>/Scaling/:
    <name>_photonEnergy.txt    photon energies [J], one per line, strictly increasing
    <name>_photonDensity.txt   densities [1/(J m³)], one per line, non-negative
    <name>_redshift.txt        redshifts, strictly increasing, first value 0

For redshift-dependent fields the density file holds |energy| x |redshift|
values with the energy index outermost (row i, column j <-> E_i, z_j).
"""

import logging
import numpy as np
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from scipy.integrate import trapezoid
from scipy.interpolate import RegularGridInterpolator

from uhecr_mc.core import units
from uhecr_mc.core.config import default_data_dir
from uhecr_mc.core.errors import ConfigurationError, DataFileError, DataValidationError

logger = logging.getLogger(__name__)


def read_column(path: Union[str, Path]) -> np.ndarray:
    """
    Read one numeric value per non-empty line.

    Raises:
        DataFileError: if the file cannot be opened or a line is not a number
    """
    path = Path(path)
    try:
        f = open(path, 'r')
    except OSError as e:
        raise DataFileError(f"could not open {path}: {e}") from e

    values = []
    with f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                values.append(float(line))
            except ValueError:
                raise DataFileError(
                    f"{path}:{lineno}: expected a number, got {line!r}") from None
    return np.array(values, dtype=np.float64)


class PhotonBackgroundModel(ABC):
    """Number density of background photons as a function of energy and redshift."""

    def __init__(self, field_name: str):
        self.field_name = field_name

    @abstractmethod
    def density(self, energy, redshift: float = 0.0):
        """Photon density per unit energy per unit volume [1/(J m³)]."""

    @abstractmethod
    def redshift_scaling(self, redshift: float) -> float:
        """Total photon density at `redshift` relative to redshift 0."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}('{self.field_name}')"


class TabularPhotonField(PhotonBackgroundModel):
    """
    Photon field interpolated from tabulated data.

    Outside the tabulated energy (and redshift) range the density is clamped
    to the boundary value.
    """

    def __init__(self, field_name: str, is_redshift_dependent: bool = True,
                 data_dir: Optional[Path] = None,
                 energy_unit: float = units.joule, density_unit: float = 1.0):
        """
        Load a field from <data_dir>/Scaling/<field_name>_*.txt.

        Parameters:
            field_name: File name prefix, e.g. 'IRB_Gilmore12'
            is_redshift_dependent: Whether a redshift grid is tabulated
            data_dir: Data root (auto-detected if None)
            energy_unit: Scale of the energy file values (default joule)
            density_unit: Scale of the density file values (default 1/(J m³))
        """
        if data_dir is None:
            data_dir = default_data_dir()
        scaling_dir = Path(data_dir) / 'Scaling'

        energies = read_column(scaling_dir / f'{field_name}_photonEnergy.txt') * energy_unit
        densities = read_column(scaling_dir / f'{field_name}_photonDensity.txt') * density_unit
        redshifts = None
        if is_redshift_dependent:
            redshifts = read_column(scaling_dir / f'{field_name}_redshift.txt')

        self._build(field_name, energies, densities, redshifts)
        logger.info("Loaded photon field %s: %d energies, %s redshifts",
                    field_name, len(self.energies),
                    len(self.redshifts) if self.redshifts is not None else 'no')

    @classmethod
    def from_arrays(cls, field_name: str, energies, densities,
                    redshifts=None) -> 'TabularPhotonField':
        """
        Build a field directly from arrays in internal units.

        `densities` is 1-D for a redshift-independent field, otherwise either
        flat (energy-major) or shaped (len(energies), len(redshifts)).
        """
        field = cls.__new__(cls)
        field._build(field_name,
                     np.asarray(energies, dtype=np.float64),
                     np.asarray(densities, dtype=np.float64),
                     None if redshifts is None else np.asarray(redshifts, dtype=np.float64))
        return field

    def _build(self, field_name, energies, densities, redshifts):
        PhotonBackgroundModel.__init__(self, field_name)
        self.is_redshift_dependent = redshifts is not None
        self.energies = energies.ravel().copy()
        self.redshifts = None if redshifts is None else redshifts.ravel().copy()
        self.densities = densities.ravel().copy()

        self._check_input_data()

        if self.is_redshift_dependent:
            self.densities = self.densities.reshape(len(self.energies), len(self.redshifts))
            self._interpolator = RegularGridInterpolator(
                (self.energies, self.redshifts), self.densities,
                method='linear', bounds_error=False, fill_value=None)
            self._init_redshift_scaling()
        else:
            self.redshift_scalings = None

        for array in (self.energies, self.densities, self.redshifts, self.redshift_scalings):
            if array is not None:
                array.flags.writeable = False

    def _check_input_data(self):
        """Validate sizes, monotonicity and signs of the raw grids."""
        E = self.energies
        n = self.densities

        if self.is_redshift_dependent:
            if n.size != E.size * self.redshifts.size:
                raise DataValidationError(
                    f"{self.field_name}: photon density has {n.size} values, expected "
                    f"len(energy) x len(redshift) = {E.size} x {self.redshifts.size}")
        elif E.size != n.size:
            raise DataValidationError(
                f"{self.field_name}: photon energy ({E.size}) and density ({n.size}) "
                f"inputs differ in length")

        if E.size < 2:
            raise DataValidationError(f"{self.field_name}: need at least two photon energies")
        if not np.all(np.isfinite(E)) or np.any(E <= 0.0):
            raise DataValidationError(f"{self.field_name}: photon energies must be positive")
        if np.any(np.diff(E) <= 0.0):
            raise DataValidationError(
                f"{self.field_name}: photon energies are not strictly increasing")
        if not np.all(np.isfinite(n)) or np.any(n < 0.0):
            raise DataValidationError(f"{self.field_name}: photon density must be non-negative")

        if self.is_redshift_dependent:
            z = self.redshifts
            if z.size < 2:
                raise DataValidationError(f"{self.field_name}: need at least two redshifts")
            if z[0] != 0.0:
                raise DataValidationError(f"{self.field_name}: redshift input must start with zero")
            if not np.all(np.isfinite(z)) or np.any(np.diff(z) <= 0.0):
                raise DataValidationError(
                    f"{self.field_name}: redshift values are not strictly increasing")

    def _init_redshift_scaling(self):
        """Total density per redshift row relative to the z = 0 row."""
        totals = trapezoid(self.densities, self.energies, axis=0)
        n0 = totals[0]
        if not n0 > 0.0:
            raise DataValidationError(
                f"{self.field_name}: total photon density at redshift 0 is not positive")
        scalings = totals / n0
        if np.any(scalings <= 0.0):
            raise DataValidationError(
                f"{self.field_name}: redshift scaling produced a non-positive factor")
        self.redshift_scalings = scalings

    def density(self, energy, redshift: float = 0.0):
        E = np.clip(np.asarray(energy, dtype=np.float64),
                    self.energies[0], self.energies[-1])
        if not self.is_redshift_dependent:
            result = np.interp(E, self.energies, self.densities)
        else:
            z = np.clip(redshift, self.redshifts[0], self.redshifts[-1])
            E, z = np.broadcast_arrays(E, z)
            points = np.stack([E.ravel(), z.ravel()], axis=-1)
            result = self._interpolator(points).reshape(E.shape)
        if np.ndim(result) == 0:
            return float(result)
        return result

    def redshift_scaling(self, redshift: float) -> float:
        if not self.is_redshift_dependent:
            return 1.0
        if redshift > self.redshifts[-1]:
            return 0.0
        if redshift < self.redshifts[0]:
            return 1.0
        return float(np.interp(redshift, self.redshifts, self.redshift_scalings))


class BlackbodyPhotonField(PhotonBackgroundModel):
    """Planck spectrum at a fixed temperature; the redshift argument is ignored."""

    def __init__(self, field_name: str = 'CMB', temperature: float = 2.73 * units.kelvin):
        if not temperature > 0.0:
            raise ConfigurationError(
                f"blackbody temperature must be positive, got {temperature}")
        super().__init__(field_name)
        self.temperature = float(temperature)

    def density(self, energy, redshift: float = 0.0):
        E = np.asarray(energy, dtype=np.float64)
        kT = units.k_boltzmann * self.temperature
        result = 8.0 * np.pi * (E / (units.h_planck * units.c_light))**3 / np.expm1(E / kT)
        if np.ndim(result) == 0:
            return float(result)
        return result

    def redshift_scaling(self, redshift: float) -> float:
        return 1.0
