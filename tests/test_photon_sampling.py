"""Rejection sampling of background photon energies."""

import numpy as np
import pytest

from uhecr_mc.core import units
from uhecr_mc.core.errors import ConfigurationError, NumericalExhaustion
from uhecr_mc.physics import photon_sampling
from uhecr_mc.physics.photon_sampling import (
    CMB_TEMPERATURE,
    IRB_EPS_MAX,
    IRB_EPS_MIN,
    PhotonFieldSampler,
    cmb_density,
    irb_density,
    prob_eps,
)

PROTON_ENERGY = 100 * units.EeV


class TestConfiguration:
    @pytest.mark.parametrize("background, expected", [
        ('CMB', 'CMB'), ('irb', 'IRB'), (1, 'CMB'), (2, 'IRB'),
    ])
    def test_resolve(self, background, expected):
        assert PhotonFieldSampler(background).background == expected

    @pytest.mark.parametrize("background", [0, 3, 'URB', True, 1.0])
    def test_unknown_background(self, background):
        with pytest.raises(ConfigurationError):
            PhotonFieldSampler(background)

    def test_unconfigured(self):
        sampler = PhotonFieldSampler()
        with pytest.raises(ConfigurationError):
            sampler.sample_eps(True, PROTON_ENERGY)
        with pytest.raises(ConfigurationError):
            sampler.energy_bounds(True, 1e11)


class TestDensities:
    def test_cmb_formula(self):
        eps = 1e-3
        expected = 1.318e13 * eps**2 / (np.exp(eps / (8.619e-5 * 2.73)) - 1.0)
        assert cmb_density(eps, 2.73) == pytest.approx(expected, rel=1e-6)

    def test_cmb_redshifted_temperature(self):
        sampler = PhotonFieldSampler('CMB')
        assert sampler.photon_density(1e-3, 1.0) == pytest.approx(
            cmb_density(1e-3, 2 * CMB_TEMPERATURE))

    def test_weighting_uses_redshifted_temperature(self):
        eps, e_in = 1e-3, 1e11
        t0, t1 = CMB_TEMPERATURE, 2 * CMB_TEMPERATURE
        ratio = prob_eps(eps, True, e_in, t1) / prob_eps(eps, True, e_in, t0)
        assert ratio == pytest.approx(cmb_density(eps, t1) / cmb_density(eps, t0), rel=1e-6)

    def test_irb_positive_in_range(self):
        assert irb_density(0.1, 0.0) > 0.0

    def test_irb_zero_beyond_redshift_limit(self):
        assert irb_density(0.1, 6.0) == 0.0

    def test_irb_zero_at_long_wavelength(self):
        assert irb_density(1e-4, 0.0) == 0.0


class TestBounds:
    def test_cmb_bounds(self):
        sampler = PhotonFieldSampler('CMB')
        eps_min, eps_max = sampler.energy_bounds(True, 1e11, 0.0)
        assert 0.0 < eps_min < eps_max
        assert eps_max == pytest.approx(0.007 * CMB_TEMPERATURE)

    def test_irb_bounds(self):
        sampler = PhotonFieldSampler('IRB')
        eps_min, eps_max = sampler.energy_bounds(True, 1e11, 0.0)
        assert eps_min == IRB_EPS_MIN
        assert eps_max == IRB_EPS_MAX

    def test_at_rest(self):
        sampler = PhotonFieldSampler('CMB')
        eps_min, eps_max = sampler.energy_bounds(True, 0.5, 0.0)
        assert eps_min > eps_max


class TestSampleCMB:
    def test_within_bounds(self):
        sampler = PhotonFieldSampler('CMB', seed=1)
        eps_min, eps_max = sampler.energy_bounds(True, PROTON_ENERGY / units.GeV)
        eps = sampler.sample_eps_many(True, PROTON_ENERGY, n=300) / units.eV
        assert np.all(eps >= eps_min)
        assert np.all(eps <= eps_max)
        # spread over the allowed range, not stuck at a point
        assert np.std(eps) > 0.0

    def test_neutron(self):
        sampler = PhotonFieldSampler('CMB', seed=2)
        assert sampler.sample_eps(False, PROTON_ENERGY) > 0.0

    def test_redshift_raises_photon_energies(self):
        sampler = PhotonFieldSampler('CMB', seed=3)
        eps0 = sampler.sample_eps_many(True, PROTON_ENERGY, 0.0, n=500)
        eps1 = sampler.sample_eps_many(True, PROTON_ENERGY, 1.0, n=500)
        assert np.mean(eps1) > np.mean(eps0)

    def test_reproducible(self):
        a = PhotonFieldSampler('CMB', seed=7).sample_eps_many(True, PROTON_ENERGY, n=20)
        b = PhotonFieldSampler('CMB', seed=7).sample_eps_many(True, PROTON_ENERGY, n=20)
        np.testing.assert_array_equal(a, b)

    @pytest.mark.parametrize("energy", [1.0 * units.GeV, 1.0 * units.PeV])
    def test_below_pion_threshold(self, energy):
        sampler = PhotonFieldSampler('CMB', seed=8)
        for _ in range(20):
            assert sampler.sample_eps(True, energy) == 0.0

    def test_below_threshold_draws_nothing(self):
        sampler = PhotonFieldSampler('CMB')
        rng = np.random.default_rng(0)
        before = rng.bit_generator.state
        assert sampler.sample_eps(True, 0.5 * units.GeV, rng=rng) == 0.0
        assert rng.bit_generator.state == before


class TestSampleIRB:
    def test_within_bounds(self):
        sampler = PhotonFieldSampler('IRB', seed=4)
        eps = sampler.sample_eps_many(True, PROTON_ENERGY, n=200) / units.eV
        assert np.all(eps >= IRB_EPS_MIN)
        assert np.all(eps <= IRB_EPS_MAX)

    def test_beyond_redshift_limit(self):
        sampler = PhotonFieldSampler('IRB', seed=5)
        assert sampler.sample_eps(True, PROTON_ENERGY, redshift=6.0) == 0.0

    def test_exhaustion_returns_zero(self, monkeypatch):
        monkeypatch.setattr(photon_sampling, 'IRB_MAX_ATTEMPTS', 0)
        sampler = PhotonFieldSampler('IRB', seed=6)
        assert sampler.sample_eps(True, PROTON_ENERGY) == 0.0

    def test_exhaustion_strict(self, monkeypatch):
        monkeypatch.setattr(photon_sampling, 'IRB_MAX_ATTEMPTS', 0)
        sampler = PhotonFieldSampler('IRB', seed=6)
        with pytest.raises(NumericalExhaustion):
            sampler.sample_eps(True, PROTON_ENERGY, strict=True)
