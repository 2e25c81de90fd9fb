"""
Photopion Cross Section

Plots the total photon-nucleon cross section against the photon energy in
the nucleon rest frame, for proton and neutron targets.

Expected features:
    - Threshold at ε' ≈ 0.15 GeV
    - Δ(1232) resonance peak of ~500 μb at ε' ≈ 0.3 GeV
    - Slowly rising plateau of ~120 μb above a few GeV
"""

import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from uhecr_mc.physics.cross_section import cross_section_array, threshold_energy


def plot_cross_section(save_path=None):
    """
    Plot σ(ε') for proton and neutron targets.

    Parameters:
        save_path: Path to save figure (optional)
    """
    eps_prime = np.logspace(-1, 2, 2000)  # GeV
    sigma_p = cross_section_array(eps_prime, True)
    sigma_n = cross_section_array(eps_prime, False)

    print(f"\n{'='*70}")
    print(f"Photopion Cross Section")
    print(f"{'='*70}")
    print(f"  Threshold (proton): {threshold_energy(True)*1e3:.1f} MeV")
    print(f"  Threshold (neutron): {threshold_energy(False)*1e3:.1f} MeV")
    i_peak = np.argmax(sigma_p)
    print(f"  Peak (proton): {sigma_p[i_peak]:.0f} μb at {eps_prime[i_peak]:.3f} GeV")
    print(f"{'='*70}\n")

    plt.figure(figsize=(10, 6))
    plt.plot(eps_prime, sigma_p, 'b-', linewidth=2, label='proton')
    plt.plot(eps_prime, sigma_n, 'r--', linewidth=2, label='neutron')

    plt.xscale('log')
    plt.xlabel("ε' [GeV]", fontsize=14, fontweight='bold')
    plt.ylabel('σ [μb]', fontsize=14, fontweight='bold')
    plt.title('Photopion Production Cross Section', fontsize=16, fontweight='bold')
    plt.grid(True, alpha=0.3, linestyle='--')
    plt.legend(fontsize=12)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"Figure saved: {save_path}")

    return plt.gcf()


if __name__ == "__main__":
    plot_cross_section(save_path='cross_section.png')
    plt.show()
