"""
Sampling of the background photon energy in photopion interactions.

For a nucleon of energy E at redshift z, the photon energy ε is drawn from
the differential interaction probability

    p(ε) ∝ n(ε, z) / ε² · ∫_{s_th}^{s_max(ε)} (s - m²) σ(s) ds

which has no closed-form inverse, so rejection sampling is used:
    CMB: uniform proposals under a constant envelope (1.6 x estimated peak)
    IRB: power-law proposals (index 4) under a tabulated bound, capped retries

Energies inside the kernels are GeV (nucleon) and eV (photon); the public
interface works in internal units (joule).
"""

import logging
import numpy as np
import numba
from typing import Optional, Tuple

from uhecr_mc.core import units
from uhecr_mc.core.errors import ConfigurationError, NumericalExhaustion
from uhecr_mc.physics.cross_section import (
    GAUSS_NODES,
    GAUSS_WEIGHTS,
    MASS_NEUTRON_GEV,
    MASS_PROTON_GEV,
    S_THRESHOLD,
    integrate_functs,
    nucleon_mass,
)

logger = logging.getLogger(__name__)

CMB_TEMPERATURE = 2.73        # K at z = 0
K_BOLTZMANN_EV = 8.619e-5     # eV/K
ENVELOPE_FACTOR = 1.6
IRB_MAX_ATTEMPTS = 100000
IRB_EPS_MIN = 0.00395         # eV
IRB_EPS_MAX = 12.2            # eV
IRB_Z_MAX = 5.0
IRB_PROPOSAL_INDEX = 4.0

# Primack et al. (1999) infrared background
# x: log10(wavelength-like variable 1.2398 (1+z) / ε), y: log10(νI_ν [nW/m²/sr])
_IRB_X = np.array([-1.0, -0.75, -0.5, -0.25, 0.0, 0.25, 0.5, 0.75, 1.0, 1.25, 1.5,
                   1.75, 2.0, 2.25, 2.5])
_IRB_Y = np.array([-0.214401, 0.349313, 0.720354, 0.890389, 1.16042, 1.24692, 1.06525,
                   0.668659, 0.536312, 0.595859, 0.457456, 0.623521, 1.20208, 1.33657,
                   1.04461])
_IRB_X.flags.writeable = False
_IRB_Y.flags.writeable = False
_IRB_FLUX_CONVERSION = 3.82182e3   # nW/cm³/sr -> eV/cm³

BACKGROUNDS = {'CMB': 1, 'IRB': 2}


@numba.njit(fastmath=True, cache=True)
def cmb_density(eps: float, tbb: float) -> float:
    """Blackbody photon density [1/(eV cm³)] at temperature tbb [K]."""
    return 1.318e13 * eps * eps / (np.exp(eps / (K_BOLTZMANN_EV * tbb)) - 1.0)


@numba.njit(fastmath=True, cache=True)
def irb_density(eps: float, z: float) -> float:
    """Infrared background photon density [1/(eV cm³)] from the tabulated spectrum."""
    if z > IRB_Z_MAX:
        return 0.0
    X = 1.2398 * (1.0 + z) / eps
    if X > 500.0:
        return 0.0
    lx = np.log10(X)
    n = _IRB_X.shape[0]
    if lx <= _IRB_X[0]:
        return 0.0
    if lx >= _IRB_X[n - 1]:
        # linear extrapolation beyond the last point
        result = (_IRB_Y[n - 1] - _IRB_Y[n - 2]) / (_IRB_X[n - 1] - _IRB_X[n - 2]) * \
            (lx - _IRB_X[n - 2]) + _IRB_Y[n - 2]
    else:
        index = 1
        while _IRB_X[index] < lx:
            index += 1
        result = (_IRB_Y[index] - _IRB_Y[index - 1]) / (_IRB_X[index] - _IRB_X[index - 1]) * \
            (lx - _IRB_X[index - 1]) + _IRB_Y[index - 1]
    flux = 10.0**result
    return flux * (1.0 + z)**4 / (eps * eps) / _IRB_FLUX_CONVERSION


@numba.njit(fastmath=True, cache=True)
def prob_eps(eps: float, on_proton: bool, e_in: float, tbb: float) -> float:
    """
    Unnormalized probability of interacting with a CMB photon of energy eps.

    Parameters:
        eps: Photon energy [eV]
        on_proton: Nucleon type
        e_in: Nucleon energy [GeV]
        tbb: Background temperature [K]
    """
    mass = nucleon_mass(on_proton)
    gamma = e_in / mass
    beta = np.sqrt(1.0 - 1.0 / gamma / gamma)
    photon_density = cmb_density(eps, tbb)
    if photon_density == 0.0:
        return 0.0
    s_min = S_THRESHOLD
    s_max = max(s_min, mass * mass + 2.0 * eps / 1.e9 * e_in * (1.0 + beta))
    s_integral = integrate_functs(s_min, s_max, on_proton)
    return photon_density / eps / eps * s_integral / 8.0 / beta / e_in / e_in * 1.e18 * 1.e6


@numba.njit(fastmath=True, cache=True)
def integrate_prob_eps(eps_min: float, eps_max: float, on_proton: bool,
                       e_in: float, tbb: float) -> float:
    """Gauss-Legendre integral of prob_eps over [eps_min, eps_max]."""
    xm = 0.5 * (eps_max + eps_min)
    xr = 0.5 * (eps_max - eps_min)
    total = 0.0
    for i in range(GAUSS_NODES.shape[0]):
        total += GAUSS_WEIGHTS[i] * prob_eps(xm + xr * GAUSS_NODES[i], on_proton, e_in, tbb)
    return xr * total


@numba.njit(fastmath=True, cache=True)
def irb_bound(eps_min: float, eps_max: float, z: float) -> float:
    """Maximum of ε² n(ε) on a logarithmic grid over [eps_min, eps_max]."""
    i_max = int(10.0 * np.log(eps_max / eps_min)) + 1
    de = np.log(eps_max / eps_min) / i_max
    rmax = 0.0
    for i in range(i_max):
        eps = eps_min * np.exp(i * de)
        value = eps * eps * irb_density(eps, z)
        if value > rmax:
            rmax = value
    return rmax


class PhotonFieldSampler:
    """
    Draw the photon energy for photopion production on a nucleon.

    Usage:
        sampler = PhotonFieldSampler('CMB', seed=1)
        eps = sampler.sample_eps(True, 1e20 * eV, redshift=0.0)
    """

    def __init__(self, background=None, seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Parameters:
            background: 'CMB' (1) or 'IRB' (2); None leaves the sampler unconfigured
            seed: Seed for the sampler's own random generator
            rng: Random generator to use instead of a seeded one
        """
        self.background = None
        if background is not None:
            self.background = self._resolve(background)
        self.rng = rng if rng is not None else np.random.default_rng(seed)

    @staticmethod
    def _resolve(background) -> str:
        if isinstance(background, str):
            key = background.upper()
            if key in BACKGROUNDS:
                return key
        elif isinstance(background, (int, np.integer)) and not isinstance(background, bool):
            for key, flag in BACKGROUNDS.items():
                if flag == background:
                    return key
        raise ConfigurationError(
            f"Unknown photon background {background!r}. Must be 1 (CMB) or 2 (IRB).")

    def _require_background(self):
        if self.background is None:
            raise ConfigurationError("select photon field first: 1 (CMB) or 2 (IRB)")

    def photon_density(self, eps_eV: float, redshift: float = 0.0) -> float:
        """Photon density of the configured background [1/(eV cm³)]."""
        self._require_background()
        if self.background == 'CMB':
            return cmb_density(eps_eV, CMB_TEMPERATURE * (1.0 + redshift))
        return irb_density(eps_eV, redshift)

    def energy_bounds(self, on_proton: bool, energy_GeV: float,
                      redshift: float = 0.0) -> Tuple[float, float]:
        """
        Kinematically allowed photon energy range [eV].

        Parameters:
            on_proton: Nucleon type
            energy_GeV: Nucleon energy [GeV]
            redshift: Redshift of the interaction

        Returns:
            (eps_min, eps_max); eps_min > eps_max means no interaction is possible
        """
        self._require_background()
        mass = MASS_PROTON_GEV if on_proton else MASS_NEUTRON_GEV
        if energy_GeV <= mass:
            return np.inf, 0.0
        momentum = np.sqrt(energy_GeV * energy_GeV - mass * mass)
        eps_threshold = (S_THRESHOLD - mass * mass) / 2.0 / (energy_GeV + momentum) * 1.e9
        if self.background == 'CMB':
            tbb = CMB_TEMPERATURE * (1.0 + redshift)
            return eps_threshold, 0.007 * tbb
        return max(IRB_EPS_MIN, eps_threshold), IRB_EPS_MAX

    def sample_eps(self, on_proton: bool, energy: float, redshift: float = 0.0,
                   rng: Optional[np.random.Generator] = None,
                   strict: bool = False) -> float:
        """
        Sample the energy of the interacting background photon.

        Parameters:
            on_proton: True for a proton, False for a neutron
            energy: Nucleon energy [J]
            redshift: Redshift of the interaction
            rng: Random generator (defaults to the sampler's own)
            strict: Raise NumericalExhaustion instead of returning 0

        Returns:
            Photon energy [J] in the observer frame, or 0 if no interaction
            could be sampled
        """
        self._require_background()
        if rng is None:
            rng = self.rng

        e_in = energy / units.GeV
        eps_min, eps_max = self.energy_bounds(on_proton, e_in, redshift)
        if eps_min > eps_max:
            logger.debug("sample_eps (%s): below threshold for nucleon energy %g GeV",
                         self.background, e_in)
            return 0.0

        if self.background == 'CMB':
            eps = self._sample_cmb(on_proton, e_in, redshift, eps_min, eps_max, rng)
        else:
            try:
                eps = self._sample_irb(redshift, eps_min, eps_max, rng)
            except NumericalExhaustion:
                if strict:
                    raise
                logger.debug("sample_eps (IRB): no photon accepted for nucleon energy %g GeV",
                             e_in)
                return 0.0
        return eps * units.eV

    def sample_eps_many(self, on_proton: bool, energy: float, redshift: float = 0.0,
                        n: int = 1000) -> np.ndarray:
        """Draw n independent photon energies [J]."""
        return np.array([self.sample_eps(on_proton, energy, redshift) for _ in range(n)])

    @staticmethod
    def _sample_cmb(on_proton, e_in, redshift, eps_min, eps_max, rng) -> float:
        # bounds, peak and weighting density all at the redshifted temperature
        tbb = CMB_TEMPERATURE * (1.0 + redshift)
        cnorm = integrate_prob_eps(eps_min, eps_max, on_proton, e_in, tbb)

        # approximate peak location of prob_eps
        epskt = K_BOLTZMANN_EV * tbb
        eps_peak = (3.e-3 * (e_in * epskt * 1.e-9)**(-0.97) + 0.047) / 3.9e2 * tbb
        p_max = ENVELOPE_FACTOR * prob_eps(eps_peak, on_proton, e_in, tbb) / cnorm

        while True:
            eps = eps_min + rng.random() * (eps_max - eps_min)
            p_eps = prob_eps(eps, on_proton, e_in, tbb) / cnorm
            if rng.random() * p_max <= p_eps:
                return eps

    @staticmethod
    def _sample_irb(redshift, eps_min, eps_max, rng) -> float:
        rmax = irb_bound(eps_min, eps_max, redshift)
        if rmax <= 0.0:
            return 0.0

        beta = IRB_PROPOSAL_INDEX
        e1 = eps_min**(1.0 - beta)
        e2 = eps_max**(1.0 - beta)
        for _ in range(IRB_MAX_ATTEMPTS):
            eps = (rng.random() * (e1 - e2) + e2)**(1.0 / (1.0 - beta))
            if rng.random() < eps * eps * irb_density(eps, redshift) / rmax:
                return eps
        raise NumericalExhaustion(
            f"no IRB photon accepted after {IRB_MAX_ATTEMPTS} attempts")

