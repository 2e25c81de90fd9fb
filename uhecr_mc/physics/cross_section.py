"""
Total photon-nucleon cross section for photopion production.

Empirical parameterization from the SOPHIA event generator:
    - 9 baryon resonances (Breit-Wigner, separate proton/neutron tables)
    - direct single- and double-pion production
    - fragmentation, multipion production and diffractive scattering

All kernels take the photon energy x in the nucleon rest frame [GeV] and
return the cross section in microbarn.

References:
    - Mücke et al., Comput. Phys. Commun. 124, 290 (2000)
"""

import numpy as np
import numba

from uhecr_mc.core.errors import InternalConsistencyFault

# Nucleon rest masses [GeV/c²]
MASS_PROTON_GEV = 0.93827
MASS_NEUTRON_GEV = 0.93947

# Pion production threshold in s [GeV²]
S_THRESHOLD = 1.1646


def _frozen(values) -> np.ndarray:
    array = np.array(values, dtype=np.float64)
    array.flags.writeable = False
    return array


# Resonance tables: entries 0-8 proton, 9-17 neutron
AMRES = _frozen([1.231, 1.440, 1.515, 1.525, 1.675, 1.680, 1.690, 1.895, 1.950,
                 1.231, 1.440, 1.515, 1.525, 1.675, 1.675, 1.690, 1.895, 1.950])
BGAMMA = _frozen([5.6, 0.5, 4.6, 2.5, 1.0, 2.1, 2.0, 0.2, 1.0,
                  6.1, 0.3, 4.0, 2.5, 0.0, 0.2, 2.0, 0.2, 1.0])
WIDTH = _frozen([0.11, 0.35, 0.11, 0.1, 0.16, 0.125, 0.29, 0.35, 0.3,
                 0.11, 0.35, 0.11, 0.1, 0.16, 0.150, 0.29, 0.35, 0.3])
RATIOJ = _frozen([1., 0.5, 1., 0.5, 0.5, 1.5, 1., 1.5, 2.,
                  1., 0.5, 1., 0.5, 0.5, 1.5, 1., 1.5, 2.])
# Squared masses: index 0 neutron, index 1 proton
AM2 = _frozen([0.882792, 0.880351])

# 16-point Gauss-Legendre nodes and weights on [-1, 1]
_GL_NODES, _GL_WEIGHTS = np.polynomial.legendre.leggauss(16)
GAUSS_NODES = _frozen(_GL_NODES)
GAUSS_WEIGHTS = _frozen(_GL_WEIGHTS)


@numba.njit(fastmath=True, cache=True)
def nucleon_mass(on_proton: bool) -> float:
    """Nucleon rest mass [GeV/c²]."""
    if on_proton:
        return MASS_PROTON_GEV
    return MASS_NEUTRON_GEV


@numba.njit(fastmath=True, cache=True)
def power_law_shape(x: float, xth: float, xmax: float, alpha: float) -> float:
    """
    Shape of the direct pion production channels.

        Pl(x) = ((x - xth)/(xmax - xth))^(a - alpha) * (x/xmax)^(-a),  a = alpha*xmax/xth

    Zero below the threshold xth.
    """
    if xth > x:
        return 0.0
    a = alpha * xmax / xth
    prod1 = ((x - xth) / (xmax - xth))**(a - alpha)
    prod2 = (x / xmax)**(-a)
    return prod1 * prod2


# fastmath is left off: a NaN input has to reach the fault branch
@numba.njit(cache=True)
def turn_on(x: float, th: float, w: float) -> float:
    """
    Linear turn-on factor: 0 below th, 1 above th + w.

    Raises:
        InternalConsistencyFault: if x is not comparable (NaN)
    """
    wth = w + th
    if x <= th:
        return 0.0
    elif x > th and x < wth:
        return (x - th) / w
    elif x >= wth:
        return 1.0
    else:
        raise InternalConsistencyFault("turn_on evaluated outside its domain")


@numba.njit(fastmath=True, cache=True)
def breit_wigner(sigma_0: float, gamma: float, mass_res: float,
                 eps_prime: float, on_proton: bool) -> float:
    """Breit-Wigner resonance of mass `mass_res` and width `gamma` [GeV]."""
    mass = nucleon_mass(on_proton)
    s = mass * mass + 2.0 * mass * eps_prime
    gam2s = gamma * gamma * s
    return sigma_0 * (s / eps_prime / eps_prime) * gam2s / \
        ((s - mass_res * mass_res) * (s - mass_res * mass_res) + gam2s)


@numba.njit(fastmath=True, cache=True)
def cross_section(x: float, on_proton: bool) -> float:
    """
    Total photon-nucleon cross section [μb].

    Parameters:
        x: Photon energy in the nucleon rest frame [GeV]
        on_proton: True for a proton target, False for a neutron

    Returns:
        Cross section [μb], zero below the pion production threshold
    """
    mass = nucleon_mass(on_proton)
    s = mass * mass + 2.0 * mass * x
    if s < S_THRESHOLD:
        return 0.0

    idx = 0 if on_proton else 9
    am2 = AM2[1] if on_proton else AM2[0]

    cross_res = 0.0
    cross_dir = 0.0
    if x <= 10.0:
        # resonances
        for i in range(9):
            sig0 = 4.893089117 / am2 * RATIOJ[i + idx] * BGAMMA[i + idx]
            bw = breit_wigner(sig0, WIDTH[i + idx], AMRES[i + idx], x, on_proton)
            if i == 0:
                cross_res += bw * turn_on(x, 0.152, 0.17)
            else:
                cross_res += bw * turn_on(x, 0.15, 0.38)

        # direct single pion production, with bump/dip correction
        cross_dir1 = 92.7 * power_law_shape(x, 0.152, 0.25, 2.0)
        if x > 0.1 and x < 0.6:
            cross_dir1 += 40.0 * np.exp(-(x - 0.29) * (x - 0.29) / 0.002) \
                - 15.0 * np.exp(-(x - 0.37) * (x - 0.37) / 0.002)
        # direct double pion production
        cross_dir2 = 37.7 * power_law_shape(x, 0.4, 0.6, 2.0)
        cross_dir = cross_dir1 + cross_dir2

    # fragmentation
    cross_frag2 = 80.3 if on_proton else 60.2
    cross_frag2 *= turn_on(x, 0.5, 0.1) * s**(-0.34)

    cs_multidiff = 0.0
    if x > 0.85:
        # multipion production and diffractive scattering
        ss1 = (x - 0.85) / 0.69
        ss2 = 29.3 if on_proton else 26.4
        ss2 *= s**(-0.34) + 59.3 * s**0.095
        cs_multidiff = (1.0 - np.exp(-ss1)) * ss2
        cs_multi = 0.89 * cs_multidiff
        cross_diffr = 0.11 * cs_multidiff

        ss1 = (x - 0.85)**0.75 / 0.64
        ss2 = 74.1 * x**(-0.44) + 62.0 * s**0.08
        cs_tmp = 0.96 * (1.0 - np.exp(-ss1)) * ss2
        cross_diffr1 = 0.14 * cs_tmp
        cross_diffr2 = 0.013 * cs_tmp

        # move the shortfall between fragmentation and multipion
        cs_delta = cross_frag2 - (cross_diffr1 + cross_diffr2 - cross_diffr)
        if cs_delta < 0.0:
            cross_frag2 = 0.0
            cs_multi += cs_delta
        else:
            cross_frag2 = cs_delta
        cross_diffr = cross_diffr1 + cross_diffr2
        cs_multidiff = cs_multi + cross_diffr

    return cross_res + cross_dir + cs_multidiff + cross_frag2


@numba.njit(fastmath=True, cache=True)
def functs(s: float, on_proton: bool) -> float:
    """Integrand (s - m²) σ(s) of the photopion interaction probability [GeV² μb]."""
    mass = nucleon_mass(on_proton)
    factor = s - mass * mass
    eps_prime = factor / 2.0 / mass
    return factor * cross_section(eps_prime, on_proton)


@numba.njit(fastmath=True, cache=True)
def integrate_functs(s_min: float, s_max: float, on_proton: bool) -> float:
    """Gauss-Legendre integral of functs over [s_min, s_max]."""
    xm = 0.5 * (s_max + s_min)
    xr = 0.5 * (s_max - s_min)
    total = 0.0
    for i in range(GAUSS_NODES.shape[0]):
        total += GAUSS_WEIGHTS[i] * functs(xm + xr * GAUSS_NODES[i], on_proton)
    return xr * total


@numba.njit(fastmath=True, cache=True)
def cross_section_array(x: np.ndarray, on_proton: bool) -> np.ndarray:
    """Vectorized cross_section over an array of rest-frame photon energies."""
    result = np.empty(x.shape[0], dtype=np.float64)
    for i in range(x.shape[0]):
        result[i] = cross_section(x[i], on_proton)
    return result


def gauss_integrate(func, a: float, b: float) -> float:
    """
    Fixed-order (16-point) Gauss-Legendre quadrature of a vectorized callable.

    Parameters:
        func: Callable accepting a numpy array of abscissas
        a, b: Integration bounds

    Returns:
        Approximation of the integral of func over [a, b]
    """
    xm = 0.5 * (b + a)
    xr = 0.5 * (b - a)
    values = np.asarray(func(xm + xr * GAUSS_NODES), dtype=np.float64)
    return float(xr * np.sum(GAUSS_WEIGHTS * values))


def threshold_energy(on_proton: bool) -> float:
    """Rest-frame photon energy [GeV] at the pion production threshold."""
    mass = MASS_PROTON_GEV if on_proton else MASS_NEUTRON_GEV
    return (S_THRESHOLD - mass * mass) / (2.0 * mass)
