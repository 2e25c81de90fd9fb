"""
Convert photodisintegration rate tables from ASCII to binary NumPy format.

Parsing the 203-column text tables dominates start-up time; np.load of the
.npy copy is far faster. Critical for multiprocessing where every worker
loads the tables again.

Usage:
    python scripts/convert_pd_tables.py [data_dir]
"""

import time
import sys
from pathlib import Path

import numpy as np

# Add parent directory to path to import uhecr_mc
sys.path.insert(0, str(Path(__file__).parent.parent))

from uhecr_mc.core.config import default_data_dir
from uhecr_mc.physics.photodisintegration import DisintegrationTable, load_table


def convert_tables(data_dir=None):
    """Convert all PDtable_*.txt files to .npy format."""
    data_path = Path(data_dir) if data_dir else default_data_dir()
    table_path = data_path / 'PhotoDisintegration'

    if not table_path.exists():
        print(f"Error: {table_path} does not exist")
        return

    txt_files = sorted(table_path.glob('PDtable_*.txt'))

    if not txt_files:
        print(f"No PDtable_*.txt files found in {table_path}")
        return

    print(f"Found {len(txt_files)} photodisintegration tables")
    print(f"Converting ASCII → binary NumPy format...\n")

    total_time_ascii = 0
    total_time_binary = 0

    for txt_file in txt_files:
        print(f"Processing: {txt_file.name}")

        start = time.time()
        data = load_table(txt_file, use_cache=False)
        time_ascii = time.time() - start
        total_time_ascii += time_ascii
        print(f"  ASCII load: {time_ascii*1000:.1f}ms ({data.shape[0]} channels)")

        # Validate before caching
        table = DisintegrationTable(data, source=txt_file.name)
        print(f"  Nuclides: {len(table.nuclides)}")

        npy_file = txt_file.with_suffix('.npy')
        np.save(npy_file, data)

        start = time.time()
        loaded = np.load(npy_file)
        time_binary = time.time() - start
        total_time_binary += time_binary
        print(f"  Binary load: {time_binary*1000:.1f}ms")

        assert np.array_equal(data, loaded), "Data mismatch!"

        speedup = time_ascii / time_binary if time_binary > 0 else float('inf')
        print(f"  Speedup: {speedup:.0f}x faster")
        print(f"  ✓ Saved: {npy_file.name}\n")

    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"Files converted: {len(txt_files)}")
    print(f"Total ASCII load time: {total_time_ascii*1000:.1f}ms")
    print(f"Total binary load time: {total_time_binary*1000:.1f}ms")

    print("\nBinary files (.npy) will be used automatically by PhotoDisintegration.")


if __name__ == "__main__":
    convert_tables(sys.argv[1] if len(sys.argv) > 1 else None)
