"""
Unit system for uhecr_mc.

All quantities are stored internally in SI base units:
    energy      joule
    length      meter
    temperature kelvin
    mass        kilogram

Multiply by a scale to convert into internal units, divide to convert out:
    E = 200 * EeV           # -> joule
    d / Mpc                 # meter -> Mpc
"""

import numpy as np

# Base units
meter = 1.0
second = 1.0
kilogram = 1.0
joule = 1.0
kelvin = 1.0

# Physical constants (CODATA, SI)
c_light = 2.99792458e8                 # m/s
c_squared = c_light * c_light
h_planck = 6.62607015e-34              # J s
k_boltzmann = 1.380649e-23             # J/K
eplus = 1.602176634e-19                # C

amu = 1.66053906660e-27                # kg
mass_proton = 1.67262192369e-27        # kg
mass_neutron = 1.67492749804e-27       # kg
mass_electron = 9.1093837015e-31       # kg

# Rest energy per nucleon, used for Lorentz factors of nuclei
nucleon_mass_energy = amu * c_squared  # J

# Energy scales
eV = eplus * joule
keV = 1e3 * eV
MeV = 1e6 * eV
GeV = 1e9 * eV
TeV = 1e12 * eV
PeV = 1e15 * eV
EeV = 1e18 * eV
ZeV = 1e21 * eV

# Length scales
centimeter = 1e-2 * meter
km = 1e3 * meter
au = 149597870700.0 * meter
pc = 3.0856775814913673e16 * meter
kpc = 1e3 * pc
Mpc = 1e6 * pc
Gpc = 1e9 * pc

# Cross-section scales
barn = 1e-28 * meter**2
mbarn = 1e-3 * barn
mubarn = 1e-6 * barn


def to_unit(value, unit: float):
    """Express an internal-unit quantity (scalar or array) in the given unit."""
    return np.asarray(value, dtype=np.float64) / unit
