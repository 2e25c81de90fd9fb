"""Shared fixtures: small photodisintegration tables and seeded generators."""

import numpy as np
import pytest

from uhecr_mc.physics.photodisintegration import SAMPLE_COUNT, PhotoDisintegration


def table_row(Z, N, code, rates):
    """One table line; `rates` is a scalar (constant curve) or SAMPLE_COUNT values in 1/Mpc."""
    if np.isscalar(rates):
        rates = [rates] * SAMPLE_COUNT
    return f"{Z} {N} {code:06d} " + " ".join(f"{r:.8g}" for r in rates)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


@pytest.fixture
def write_table(tmp_path):
    """Write table rows to a file and return its path."""
    def _write(rows, name="PDtable_test.txt", header=True):
        path = tmp_path / name
        lines = ["# Z N channel rates[1/Mpc]"] if header else []
        lines.extend(table_row(*row) for row in rows)
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def make_module(write_table):
    """PhotoDisintegration built from rows and registered in slot 0."""
    def _make(rows):
        module = PhotoDisintegration.from_file(write_table(rows))
        module.slot = 0
        return module
    return _make
