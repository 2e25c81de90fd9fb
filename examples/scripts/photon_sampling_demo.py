"""
Background Photon Sampling

Draws target photon energies for photopion production of a proton in the
CMB and compares the histogram with the normalized interaction probability.
"""

import time
import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from uhecr_mc.core import units
from uhecr_mc.physics.photon_sampling import (
    CMB_TEMPERATURE,
    PhotonFieldSampler,
    integrate_prob_eps,
    prob_eps,
)


def sample_histogram(energy_EeV: float = 100.0, redshift: float = 0.0,
                     n_samples: int = 20000, seed: int = 42, save_path=None):
    """
    Sample photon energies and overlay the analytic distribution.

    Parameters:
        energy_EeV: Proton energy [EeV]
        redshift: Redshift of the interaction
        n_samples: Number of photons to draw
        seed: Random seed
        save_path: Path to save figure (optional)
    """
    sampler = PhotonFieldSampler('CMB', seed=seed)
    energy = energy_EeV * units.EeV
    e_in = energy / units.GeV

    eps_min, eps_max = sampler.energy_bounds(True, e_in, redshift)
    print(f"\n{'='*70}")
    print(f"CMB Photon Sampling")
    print(f"{'='*70}")
    print(f"  Proton energy: {energy_EeV} EeV")
    print(f"  Redshift: {redshift}")
    print(f"  Photon energy range: {eps_min*1e3:.3f} - {eps_max*1e3:.3f} meV")

    start = time.time()
    eps = sampler.sample_eps_many(True, energy, redshift, n=n_samples) / units.eV
    elapsed = time.time() - start
    print(f"  Samples: {n_samples:,} in {elapsed:.2f}s")
    print(f"  Mean photon energy: {np.mean(eps)*1e3:.3f} meV")
    print(f"{'='*70}\n")

    tbb = CMB_TEMPERATURE * (1.0 + redshift)
    grid = np.linspace(eps_min, eps_max, 400)
    norm = integrate_prob_eps(eps_min, eps_max, True, e_in, tbb)
    pdf = np.array([prob_eps(x, True, e_in, tbb) for x in grid]) / norm

    plt.figure(figsize=(10, 6))
    plt.hist(eps * 1e3, bins=80, density=True, alpha=0.5, label='Monte Carlo')
    plt.plot(grid * 1e3, pdf / 1e3, 'r-', linewidth=2, label='p(ε)')
    plt.xlabel('ε [meV]', fontsize=14, fontweight='bold')
    plt.ylabel('Probability density [1/meV]', fontsize=14, fontweight='bold')
    plt.title(f'Target photons for a {energy_EeV:g} EeV proton', fontsize=16, fontweight='bold')
    plt.grid(True, alpha=0.3, linestyle='--')
    plt.legend(fontsize=12)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"Figure saved: {save_path}")

    return plt.gcf()


if __name__ == "__main__":
    sample_histogram(save_path='cmb_photon_sampling.png')
    plt.show()
