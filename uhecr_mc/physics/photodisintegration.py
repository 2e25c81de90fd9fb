"""
Photodisintegration of nuclei on background photons.

Interaction rates are tabulated per nuclide (Z, N) and disintegration
channel on a fixed grid of log10(Lorentz factor):
    lg_i = 6 + 8 i / 199,  i = 0 ... 199

Table file format (plain text):
    # comment lines start with '#'
    Z N channel r_0 r_1 ... r_199
where the rates r_i are given in 1/Mpc and converted to 1/m on load.

The channel code packs the number of emitted particles as decimal digits,
most significant first:
    neutrons, protons, deuterons, tritons, He-3, He-4
e.g. 100001 = one neutron and one alpha.
"""

import logging
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from scipy.interpolate import make_interp_spline

from uhecr_mc.core import units
from uhecr_mc.core.config import default_data_dir
from uhecr_mc.core.errors import ConfigurationError, DataFileError, DataValidationError
from uhecr_mc.core.particle import Candidate, InteractionState, nucleus_id
from uhecr_mc.transport.modules import InteractionModule

logger = logging.getLogger(__name__)

SAMPLE_COUNT = 200
LG_MIN = 6.0
LG_MAX = 14.0
LG_GRID = LG_MIN + np.arange(SAMPLE_COUNT) * (LG_MAX - LG_MIN) / (SAMPLE_COUNT - 1)
LG_GRID.flags.writeable = False

# Emitted particles in channel-digit order: (name, A, Z)
EMITTED_PARTICLES = (
    ('neutron', 1, 0),
    ('proton', 1, 1),
    ('deuteron', 2, 1),
    ('triton', 3, 1),
    ('He-3', 3, 2),
    ('He-4', 4, 2),
)

TABLE_FILES = {
    'CMB': 'PDtable_CMB.txt',
    'IRB': 'PDtable_IRB.txt',
    'CMB_IRB': 'PDtable_CMB_IRB.txt',
}


def encode_channel(counts: Sequence[int]) -> int:
    """
    Pack six emission counts (n, p, d, t, He-3, He-4) into a channel code.

    Raises:
        ValueError: if there are not six counts or a count is outside 0-9
    """
    if len(counts) != 6:
        raise ValueError(f"expected 6 emission counts, got {len(counts)}")
    code = 0
    for count in counts:
        count = int(count)
        if count < 0 or count > 9:
            raise ValueError(f"emission count must be a single digit, got {count}")
        code = 10 * code + count
    return code


def decode_channel(code: int) -> Tuple[int, int, int, int, int, int]:
    """Unpack a channel code into (n, p, d, t, He-3, He-4)."""
    code = int(code)
    return tuple((code // 10**k) % 10 for k in range(5, -1, -1))


def channel_mass_charge_change(code: int) -> Tuple[int, int]:
    """(dA, dZ) of the remnant for a channel."""
    counts = decode_channel(code)
    dA = -sum(n * A for n, (_, A, _) in zip(counts, EMITTED_PARTICLES))
    dZ = -sum(n * Z for n, (_, _, Z) in zip(counts, EMITTED_PARTICLES))
    return dA, dZ


class DisintegrationChannel:
    """One disintegration channel of a nuclide with its rate curve."""

    def __init__(self, Z: int, N: int, code: int, rates: np.ndarray):
        """
        Parameters:
            Z: Charge number of the disintegrating nucleus
            N: Neutron number of the disintegrating nucleus
            code: Packed channel code
            rates: Interaction rates [1/m] on LG_GRID
        """
        self.Z = int(Z)
        self.N = int(N)
        self.code = int(code)
        self.counts = decode_channel(code)
        self.dA, self.dZ = channel_mass_charge_change(code)
        self.rates = np.array(rates, dtype=np.float64)
        self.rates.flags.writeable = False

    def rate(self, lg: float) -> float:
        """Interaction rate [1/m] at log10(Lorentz factor) lg."""
        return float(np.interp(lg, LG_GRID, self.rates))

    def __repr__(self) -> str:
        return f"DisintegrationChannel(Z={self.Z}, N={self.N}, channel={self.code:06d})"


def validate_row(Z: int, N: int, code: int, rates: np.ndarray, where: str = ''):
    """
    Check one table row.

    Raises:
        DataValidationError: on a negative nuclide, an impossible channel code,
            bad rates, or a channel emitting more protons/neutrons than available
    """
    if Z < 0 or N < 0 or Z + N < 1:
        raise DataValidationError(f"{where}invalid nuclide Z={Z}, N={N}")
    if code < 0 or code > 999999:
        raise DataValidationError(f"{where}channel code {code} is not six digits")
    if rates.shape != (SAMPLE_COUNT,):
        raise DataValidationError(
            f"{where}expected {SAMPLE_COUNT} rates, got {rates.size}")
    if not np.all(np.isfinite(rates)) or np.any(rates < 0.0):
        raise DataValidationError(f"{where}rates must be finite and non-negative")
    dA, dZ = channel_mass_charge_change(code)
    if Z + dZ < 0 or N + (dA - dZ) < 0:
        raise DataValidationError(
            f"{where}channel {code:06d} emits more nucleons than Z={Z}, N={N} provides "
            f"(dA={dA}, dZ={dZ})")


def _parse_table(path: Path) -> np.ndarray:
    """
    Parse an ASCII table into rows of [Z, N, channel, r_0 ... r_199] (rates in 1/Mpc).

    Raises:
        DataFileError: if the file cannot be read or a line is malformed
    """
    try:
        f = open(path, 'r')
    except OSError as e:
        raise DataFileError(f"could not open file {path}: {e}") from e

    rows = []
    with f:
        for lineno, line in enumerate(f, start=1):
            if line.startswith('#') or not line.strip():
                continue
            fields = line.split()
            if len(fields) != 3 + SAMPLE_COUNT:
                raise DataFileError(
                    f"{path}:{lineno}: expected {3 + SAMPLE_COUNT} fields, got {len(fields)}")
            try:
                row = [int(fields[0]), int(fields[1]), int(fields[2])]
                row.extend(float(v) for v in fields[3:])
            except ValueError:
                raise DataFileError(f"{path}:{lineno}: non-numeric field") from None
            rows.append(row)

    if not rows:
        return np.zeros((0, 3 + SAMPLE_COUNT))
    return np.array(rows, dtype=np.float64)


def load_table(path: Union[str, Path], use_cache: bool = True) -> np.ndarray:
    """
    Load a disintegration table as an array of rows.

    Tries the binary .npy cache next to the file first (much faster), falls
    back to the ASCII file and writes the cache for next time.
    """
    path = Path(path)
    npy_file = path.with_suffix('.npy')

    if use_cache and npy_file.exists() and path.exists() and \
            npy_file.stat().st_mtime >= path.stat().st_mtime:
        try:
            data = np.load(npy_file)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable cache %s: %s", npy_file.name, e)
        else:
            if data.ndim == 2 and data.shape[1] == 3 + SAMPLE_COUNT:
                return data
            logger.warning("Ignoring cache %s with shape %s", npy_file.name, data.shape)

    data = _parse_table(path)

    if use_cache:
        try:
            np.save(npy_file, data)
            logger.info("Cached %s as %s (faster next time)", path.name, npy_file.name)
        except OSError as e:
            logger.warning("Could not write cache %s: %s", npy_file, e)
    return data


class DisintegrationTable:
    """Disintegration channels grouped by nuclide, with rate splines."""

    def __init__(self, data: np.ndarray, source: str = '<array>'):
        """
        Parameters:
            data: Rows [Z, N, channel, r_0 ... r_199] with rates in 1/Mpc
            source: Name used in error messages
        """
        self.source = source
        grouped: Dict[Tuple[int, int], List[DisintegrationChannel]] = {}

        for i, row in enumerate(np.atleast_2d(data)):
            if row.size == 0:
                continue
            Z, N, code = int(row[0]), int(row[1]), int(row[2])
            rates = row[3:] / units.Mpc
            validate_row(Z, N, code, rates, where=f"{source} row {i}: ")
            grouped.setdefault((Z, N), []).append(DisintegrationChannel(Z, N, code, rates))

        self._channels = grouped
        self._codes = {}
        self._splines = {}
        for key, channels in grouped.items():
            self._codes[key] = np.array([c.code for c in channels], dtype=np.int64)
            rates = np.array([c.rates for c in channels])
            # piecewise linear spline of all channel rates at once
            self._splines[key] = make_interp_spline(LG_GRID, rates, k=1, axis=1)

    @property
    def n_channels(self) -> int:
        return sum(len(c) for c in self._channels.values())

    @property
    def nuclides(self) -> List[Tuple[int, int]]:
        return sorted(self._channels.keys())

    def channels(self, Z: int, N: int) -> List[DisintegrationChannel]:
        return list(self._channels.get((Z, N), []))

    def codes(self, Z: int, N: int) -> np.ndarray:
        return self._codes.get((Z, N), np.zeros(0, dtype=np.int64))

    def rates(self, Z: int, N: int, lg: float) -> np.ndarray:
        """Rates [1/m] of all channels of (Z, N) at log10(Lorentz factor) lg."""
        spline = self._splines.get((Z, N))
        if spline is None:
            return np.zeros(0)
        return np.maximum(spline(lg), 0.0)


class PhotoDisintegration(InteractionModule):
    """
    Photodisintegration of nuclei: emission of nucleons and light nuclei.

    Example:
        pd = PhotoDisintegration('CMB')
        scheduler = InteractionScheduler([pd])
    """

    def __init__(self, photon_field: str = 'CMB', data_dir: Optional[Path] = None,
                 use_cache: bool = True):
        """
        Parameters:
            photon_field: Background selector ('CMB', 'IRB' or 'CMB_IRB')
            data_dir: Data root containing PhotoDisintegration/ (auto-detected if None)
            use_cache: Use and write the binary .npy table cache
        """
        super().__init__()
        if photon_field not in TABLE_FILES:
            raise ConfigurationError(
                f"PhotoDisintegration: unknown photon background '{photon_field}'. "
                f"Available: {list(TABLE_FILES.keys())}")
        if data_dir is None:
            data_dir = default_data_dir()

        self.photon_field = photon_field
        self.description = f'PhotoDisintegration:{photon_field}'
        path = Path(data_dir) / 'PhotoDisintegration' / TABLE_FILES[photon_field]
        self._init_table(path, use_cache)

    @classmethod
    def from_file(cls, path: Union[str, Path], use_cache: bool = False,
                  description: Optional[str] = None) -> 'PhotoDisintegration':
        """Build the module from an explicit table file."""
        module = cls.__new__(cls)
        InteractionModule.__init__(module)
        module.photon_field = None
        module.description = description or f'PhotoDisintegration:{Path(path).stem}'
        module._init_table(Path(path), use_cache)
        return module

    def _init_table(self, path: Path, use_cache: bool):
        data = load_table(path, use_cache=use_cache)
        self.table = DisintegrationTable(data, source=path.name)
        logger.info("Loaded photodisintegration table %s: %d channels for %d nuclides",
                    path.name, self.table.n_channels, len(self.table.nuclides))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def channels(self, Z: int, N: int) -> List[DisintegrationChannel]:
        return self.table.channels(Z, N)

    def rates(self, Z: int, N: int, lg: float) -> np.ndarray:
        return self.table.rates(Z, N, lg)

    def mean_free_path(self, Z: int, N: int, lg: float) -> float:
        """Mean free path [m] summed over all channels (inf if none)."""
        total = float(np.sum(self.table.rates(Z, N, lg)))
        return 1.0 / total if total > 0.0 else np.inf

    # ------------------------------------------------------------------
    # Interaction
    # ------------------------------------------------------------------

    def propose_interaction(self, candidate: Candidate, rng: np.random.Generator) -> bool:
        A = candidate.current.mass_number
        Z = candidate.current.charge_number
        N = A - Z

        codes = self.table.codes(Z, N)
        if codes.size == 0:
            return False

        # photon energies scale with (1+z), scale the nucleus accordingly
        z = candidate.redshift
        lg = np.log10(candidate.current.lorentz_factor * (1.0 + z))
        if lg < LG_MIN or lg > LG_MAX:
            return False

        rates = self.table.rates(Z, N, lg)
        positive = rates > 0.0
        if not np.any(positive):
            return False
        # U in (0, 1): no zero free path, no 0 / 0
        u = rng.random(codes.size)
        zero = u == 0.0
        while np.any(zero):
            u[zero] = rng.random(int(np.count_nonzero(zero)))
            zero = u == 0.0
        distances = np.full(codes.size, np.inf)
        distances[positive] = -np.log(u[positive]) / rates[positive]
        i = int(np.argmin(distances))
        if not np.isfinite(distances[i]):
            return False

        # photon density grows as (1+z)^3
        distance = distances[i] / (1.0 + z)**3
        candidate.set_interaction_state(self._require_slot(),
                                        InteractionState(int(codes[i]), distance))
        return True

    def commit_interaction(self, candidate: Candidate):
        state = self._take_state(candidate)
        counts = decode_channel(state.channel)
        dA, dZ = channel_mass_charge_change(state.channel)

        A = candidate.current.mass_number
        Z = candidate.current.charge_number
        energy_per_nucleon = candidate.current.energy / A

        # secondaries first: they inherit the parent's position and direction
        for n, (_, a, z) in zip(counts, EMITTED_PARTICLES):
            for _ in range(n):
                candidate.add_secondary(nucleus_id(a, z), energy_per_nucleon * a)

        new_A = A + dA
        if new_A > 0:
            candidate.current.id = nucleus_id(new_A, Z + dZ)
            candidate.current.energy = energy_per_nucleon * new_A
        else:
            candidate.deactivate()
