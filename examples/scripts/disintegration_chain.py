"""
Photodisintegration Chain

Propagates iron nuclei through a photon background and shows how the
primary is broken down and which secondaries are produced.

If no PhotoDisintegration data directory is available, a toy table with
single-nucleon emission at constant rates is written to a temporary
directory so the example still runs.
"""

import tempfile
from collections import Counter
import numpy as np
import matplotlib.pyplot as plt
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from uhecr_mc.core import units
from uhecr_mc.core.config import default_data_dir
from uhecr_mc.core.particle import Candidate, ParticleState
from uhecr_mc.physics.photodisintegration import SAMPLE_COUNT, PhotoDisintegration
from uhecr_mc.transport.modules import MaximumTrajectoryLength, MinimumEnergy
from uhecr_mc.transport.propagation import StraightLinePropagation
from uhecr_mc.transport.scheduler import InteractionScheduler


def write_toy_table(path: Path, A: int = 56, Z: int = 26, rate_per_Mpc: float = 0.05):
    """Neutron and proton emission for every nuclide below (A, Z)."""
    rates = ' '.join([f'{rate_per_Mpc:g}'] * SAMPLE_COUNT)
    with open(path, 'w') as f:
        f.write('# toy photodisintegration table, rates in 1/Mpc\n')
        for a in range(A, 1, -1):
            for z in range(0, min(a, Z) + 1):
                n = a - z
                if n > 0:
                    f.write(f'{z} {n} 100000 {rates}\n')
                if z > 0:
                    f.write(f'{z} {n} 010000 {rates}\n')


def load_module():
    table = default_data_dir() / 'PhotoDisintegration' / 'PDtable_CMB.txt'
    if table.exists():
        return PhotoDisintegration('CMB')

    tmp = Path(tempfile.mkdtemp()) / 'PDtable_toy.txt'
    print(f"No data found at {table}, writing toy table to {tmp}")
    write_toy_table(tmp)
    return PhotoDisintegration.from_file(tmp, description='PhotoDisintegration:toy')


def run_chain(n_primaries: int = 200, energy_EeV: float = 300.0,
              max_distance_Mpc: float = 200.0, seed: int = 7, save_path=None):
    """
    Propagate iron primaries and histogram the final mass numbers.

    Parameters:
        n_primaries: Number of Fe-56 primaries
        energy_EeV: Primary energy [EeV]
        max_distance_Mpc: Source distance [Mpc]
        seed: Random seed
        save_path: Path to save figure (optional)
    """
    print(f"\n{'='*70}")
    print(f"Photodisintegration Chain")
    print(f"{'='*70}")
    print(f"  Primary: Fe-56 @ {energy_EeV} EeV")
    print(f"  Distance: {max_distance_Mpc} Mpc")
    print(f"  Primaries: {n_primaries:,}")
    print(f"{'='*70}\n")

    pd = load_module()
    scheduler = InteractionScheduler(
        [pd,
         MinimumEnergy(1.0 * units.EeV),
         MaximumTrajectoryLength(max_distance_Mpc * units.Mpc)],
        propagator=StraightLinePropagation(1.0 * units.Mpc),
        seed=seed)

    primaries = [Candidate(ParticleState.nucleus(56, 26, energy_EeV * units.EeV))
                 for _ in range(n_primaries)]
    stats = scheduler.run(primaries, verbose=True)

    arrived = [c for c in stats['candidates'] if c.status == 'max_trajectory']
    masses = Counter(c.current.mass_number for c in arrived)
    primary_A = np.array([c.current.mass_number for c in primaries])

    print(f"\n  Mean remnant mass number: {np.mean(primary_A):.1f}")
    print(f"  Arrived: {len(arrived)}")
    for A in sorted(masses)[:6]:
        print(f"    A = {A:2d}: {masses[A]}")

    A_values = np.arange(1, 57)
    counts = np.array([masses.get(A, 0) for A in A_values])

    plt.figure(figsize=(10, 6))
    plt.bar(A_values, counts, color='steelblue')
    plt.yscale('log')
    plt.xlabel('Mass number A', fontsize=14, fontweight='bold')
    plt.ylabel('Arriving particles', fontsize=14, fontweight='bold')
    plt.title(f'Fe-56 @ {energy_EeV:g} EeV after {max_distance_Mpc:g} Mpc',
              fontsize=16, fontweight='bold')
    plt.grid(True, alpha=0.3, linestyle='--')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=300, bbox_inches='tight')
        print(f"Figure saved: {save_path}")

    return stats


if __name__ == "__main__":
    run_chain(save_path='disintegration_chain.png')
    plt.show()
