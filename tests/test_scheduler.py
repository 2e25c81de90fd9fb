"""Interaction modules, propagation and the interaction scheduler."""

import numpy as np
import pytest

from uhecr_mc.core import units
from uhecr_mc.core.particle import (
    Candidate,
    InteractionState,
    ParticleState,
    STATUS_BELOW_ENERGY,
    STATUS_MAX_TRAJECTORY,
    nucleus_id,
)
from uhecr_mc.physics.photodisintegration import PhotoDisintegration
from scipy.stats import chisquare

from uhecr_mc.transport.modules import (
    InteractionModule,
    MaximumTrajectoryLength,
    MinimumEnergy,
    resolve_interactions,
)
from uhecr_mc.transport.propagation import StraightLinePropagation
from uhecr_mc.transport.scheduler import InteractionScheduler


class HalvingInteraction(InteractionModule):
    """Halves the energy every `distance` meters."""

    description = 'Halving'

    def __init__(self, distance):
        super().__init__()
        self.distance = distance
        self.n_proposed = 0

    def propose_interaction(self, candidate, rng):
        self.n_proposed += 1
        candidate.set_interaction_state(self.slot, InteractionState(0, self.distance))
        return True

    def commit_interaction(self, candidate):
        self._take_state(candidate)
        candidate.current.energy /= 2


class EmitNeutron(InteractionModule):
    """Splits off one neutron every `distance` meters while neutrons are left."""

    description = 'EmitNeutron'

    def __init__(self, distance):
        super().__init__()
        self.distance = distance

    def propose_interaction(self, candidate, rng):
        state = candidate.current
        if state.mass_number < 2 or state.mass_number == state.charge_number:
            return False
        candidate.set_interaction_state(self.slot, InteractionState(100000, self.distance))
        return True

    def commit_interaction(self, candidate):
        self._take_state(candidate)
        state = candidate.current
        A, Z = state.mass_number, state.charge_number
        candidate.add_secondary(nucleus_id(1, 0), state.energy / A)
        state.energy *= (A - 1) / A
        state.id = nucleus_id(A - 1, Z)


class FixedPath(InteractionModule):
    """Interacts every `distance` meters and records where."""

    description = 'FixedPath'

    def __init__(self, distance, changes_particle=True, log=None):
        super().__init__()
        self.distance = distance
        self.changes_particle = changes_particle
        self.hits = []
        self.log = log

    def propose_interaction(self, candidate, rng):
        candidate.set_interaction_state(self.slot, InteractionState(0, self.distance))
        return True

    def commit_interaction(self, candidate):
        self._take_state(candidate)
        self.hits.append(candidate.last_interaction_length)
        if self.log is not None:
            self.log.append(self)
        if self.changes_particle:
            candidate.current.energy *= 0.99


class ConstantRate(InteractionModule):
    """Exponential free paths at a fixed rate [1/m]; every hit loses a little energy."""

    description = 'ConstantRate'

    def __init__(self, rate):
        super().__init__()
        self.rate = rate
        self.n_hits = 0

    def propose_interaction(self, candidate, rng):
        candidate.set_interaction_state(
            self.slot, InteractionState(0, rng.exponential(1.0 / self.rate)))
        return True

    def commit_interaction(self, candidate):
        self._take_state(candidate)
        self.n_hits += 1
        candidate.current.energy *= 1.0 - 1e-6


def make_candidate(A=4, Z=2, energy=100 * units.EeV):
    return Candidate(ParticleState.nucleus(A, Z, energy))


class TestPropagation:
    def test_straight_line(self):
        prop = StraightLinePropagation(max_step=2.0)
        c = make_candidate()
        c.next_step = 1.5
        assert prop.propagate(c) == 1.5
        np.testing.assert_allclose(c.current.position, [1.5, 0, 0])
        assert c.trajectory_length == 1.5
        assert c.next_step == 2.0

    def test_step_capped(self):
        prop = StraightLinePropagation(max_step=2.0)
        c = make_candidate()
        c.next_step = 10.0
        assert prop.propagate(c) == 2.0

    def test_invalid_limits(self):
        with pytest.raises(ValueError):
            StraightLinePropagation(max_step=0.0)
        with pytest.raises(ValueError):
            StraightLinePropagation(max_step=1.0, min_step=2.0)


class TestInteractionModule:
    def test_countdown(self, rng):
        module = HalvingInteraction(3.0)
        module.slot = 0
        c = make_candidate()
        c.reserve_slots(1)
        E = c.current.energy

        module.prepare(c, rng)
        assert c.next_step == 3.0
        c.trajectory_length = 1.0
        assert module.process(c, 1.0, rng) == 0
        assert c.get_interaction_state(0).distance == pytest.approx(2.0)
        assert c.current.energy == E
        # not redrawn while pending
        module.prepare(c, rng)
        assert module.n_proposed == 1

    def test_several_interactions_in_one_step(self, rng):
        module = HalvingInteraction(0.3)
        module.slot = 0
        c = make_candidate()
        c.reserve_slots(1)
        E = c.current.energy

        c.trajectory_length = 1.0
        assert module.process(c, 1.0, rng) == 3
        assert c.current.energy == pytest.approx(E / 8)
        assert c.get_interaction_state(0).distance == pytest.approx(0.2)

    def test_change_clears_other_modules(self, rng):
        first = HalvingInteraction(1.0)
        other = HalvingInteraction(5.0)
        first.slot, other.slot = 0, 1
        c = make_candidate()
        c.reserve_slots(2)
        c.set_interaction_state(1, InteractionState(0, 5.0))

        # first commits at 1.0, re-proposes and keeps the rest of the step
        c.trajectory_length = 1.5
        first.process(c, 1.5, rng)
        assert not c.has_interaction_state(1)
        assert c.get_interaction_state(0).distance == pytest.approx(0.5)


class TestSeveralModules:
    def make_scheduler(self, *modules):
        return InteractionScheduler(modules, propagator=StraightLinePropagation(100.0), seed=1)

    def test_redrawn_path_starts_at_interaction(self):
        a = FixedPath(1.0)
        b = FixedPath(1.5, changes_particle=False)
        scheduler = self.make_scheduler(a, b)
        c = make_candidate()
        for _ in range(3):
            scheduler.step([c])

        # every hit of a changes the particle, so b never gets 1.5 m
        assert a.hits == pytest.approx([1.0, 2.0, 3.0])
        assert b.hits == []
        assert c.trajectory_length == pytest.approx(3.0)

    def test_unchanged_particle_keeps_other_paths(self):
        a = FixedPath(1.0, changes_particle=False)
        b = FixedPath(1.5, changes_particle=False)
        scheduler = self.make_scheduler(a, b)
        c = make_candidate()
        for _ in range(4):
            scheduler.step([c])

        assert a.hits == pytest.approx([1.0, 2.0, 3.0])
        assert b.hits == pytest.approx([1.5, 3.0])
        assert scheduler.n_interactions == 5

    def test_order_within_one_step(self, rng):
        log = []
        a = FixedPath(0.6, changes_particle=False, log=log)
        b = FixedPath(0.5, changes_particle=False, log=log)
        a.slot, b.slot = 0, 1
        c = make_candidate()
        c.reserve_slots(2)
        c.trajectory_length = 1.0

        assert resolve_interactions([a, b], c, 0.0, rng) == 3
        assert log == [b, a, b]
        assert a.hits == pytest.approx([0.6])
        assert b.hits == pytest.approx([0.5, 1.0])
        assert c.get_interaction_state(0).distance == pytest.approx(0.2)
        assert c.get_interaction_state(1).distance == pytest.approx(0.5)
        assert c.next_step == pytest.approx(0.2)

    def test_competing_rates(self):
        slow, fast = ConstantRate(1.0), ConstantRate(3.0)
        scheduler = InteractionScheduler([slow, fast, MaximumTrajectoryLength(1000.0)], seed=5)
        stats = scheduler.run([make_candidate()])

        n_total = slow.n_hits + fast.n_hits
        assert stats['n_interactions'] == n_total
        assert n_total == pytest.approx(4000, rel=0.1)
        _, p_value = chisquare([slow.n_hits, fast.n_hits], [n_total / 4, 3 * n_total / 4])
        assert p_value > 1e-3


class TestBreakConditions:
    def test_minimum_energy(self, rng):
        c = make_candidate(energy=1 * units.EeV)
        MinimumEnergy(2 * units.EeV).process(c, 0.0, rng)
        assert not c.active
        assert c.status == STATUS_BELOW_ENERGY

    def test_maximum_trajectory_limits_step(self, rng):
        module = MaximumTrajectoryLength(10.0)
        c = make_candidate()
        c.trajectory_length = 7.0
        c.next_step = 100.0
        module.prepare(c, rng)
        assert c.next_step == pytest.approx(3.0)
        module.process(c, 0.0, rng)
        assert c.active
        c.trajectory_length = 10.0
        module.process(c, 0.0, rng)
        assert c.status == STATUS_MAX_TRAJECTORY


class TestScheduler:
    def test_slots_assigned_in_order(self):
        a, b = HalvingInteraction(1.0), HalvingInteraction(1.0)
        scheduler = InteractionScheduler([a, MinimumEnergy(0.0), b])
        assert (a.slot, b.slot) == (0, 1)
        assert scheduler.n_slots == 2

    def test_register_twice(self):
        a = HalvingInteraction(1.0)
        scheduler = InteractionScheduler([a])
        with pytest.raises(ValueError):
            scheduler.add(a)

    def test_step_limited_by_pending_interaction(self):
        scheduler = InteractionScheduler(
            [HalvingInteraction(0.003 * units.Mpc)],
            propagator=StraightLinePropagation(0.01 * units.Mpc), seed=1)
        c = make_candidate()
        scheduler.step([c])
        assert c.trajectory_length == pytest.approx(0.003 * units.Mpc)
        assert scheduler.n_interactions == 1

    def test_secondaries_join_after_step(self):
        scheduler = InteractionScheduler(
            [EmitNeutron(0.005 * units.Mpc)],
            propagator=StraightLinePropagation(0.01 * units.Mpc), seed=1)
        c = make_candidate()
        secondaries = scheduler.step([c])

        assert len(secondaries) == 1
        neutron = secondaries[0]
        assert neutron.current.id == nucleus_id(1, 0)
        # spawned mid-step, not moved yet
        assert neutron.trajectory_length == pytest.approx(0.005 * units.Mpc)
        assert neutron.n_slots == scheduler.n_slots
        assert c.secondaries == []

    def test_run_until_break(self):
        scheduler = InteractionScheduler(
            [MaximumTrajectoryLength(0.05 * units.Mpc)],
            propagator=StraightLinePropagation(0.01 * units.Mpc))
        c = make_candidate()
        stats = scheduler.run([c])
        assert c.status == STATUS_MAX_TRAJECTORY
        assert c.trajectory_length == pytest.approx(0.05 * units.Mpc)
        assert stats['n_inactive'] == 1
        assert stats['n_secondaries'] == 0

    def test_run_max_steps(self):
        scheduler = InteractionScheduler([], seed=1)
        c = make_candidate()
        stats = scheduler.run([c], max_steps=10)
        assert stats['n_steps'] == 10
        assert c.active

    def test_run_chain(self):
        scheduler = InteractionScheduler(
            [EmitNeutron(0.02 * units.Mpc), MaximumTrajectoryLength(1.0 * units.Mpc)],
            propagator=StraightLinePropagation(0.1 * units.Mpc), seed=1)
        E = 100 * units.EeV
        c = make_candidate(A=4, Z=2, energy=E)
        stats = scheduler.run([c])

        # He-4 -> He-3 -> He-2, then no neutrons are left
        assert stats['n_secondaries'] == 2
        assert stats['n_interactions'] == stats['n_secondaries']
        products = stats['candidates']
        assert sum(p.current.mass_number for p in products) == 4
        assert sum(p.current.energy for p in products) == pytest.approx(E)
        assert all(p.status == STATUS_MAX_TRAJECTORY for p in products)


@pytest.fixture
def be8_module(write_table):
    return PhotoDisintegration.from_file(write_table([(4, 4, 2, 100.0)]))


class TestPhotoDisintegrationRun:
    def make_scheduler(self, module, seed=3):
        return InteractionScheduler(
            [module, MaximumTrajectoryLength(1.0 * units.Mpc)],
            propagator=StraightLinePropagation(0.1 * units.Mpc), seed=seed)

    def test_run(self, be8_module):
        scheduler = self.make_scheduler(be8_module)
        c = Candidate(ParticleState.nucleus(8, 4, 8 * units.nucleon_mass_energy * 1e10))
        stats = scheduler.run([c])
        assert stats['n_interactions'] == 1
        assert stats['n_secondaries'] == 2
        assert stats['n_candidates'] == 3
        alphas = stats['candidates'][1:]
        assert all(a.current.id == nucleus_id(4, 2) for a in alphas)
        assert all(a.status == STATUS_MAX_TRAJECTORY for a in alphas)

    @pytest.mark.parametrize("n_processes", [1, 2])
    def test_run_parallel(self, be8_module, n_processes):
        scheduler = self.make_scheduler(be8_module)
        energy = 8 * units.nucleon_mass_energy * 1e10
        candidates = [Candidate(ParticleState.nucleus(8, 4, energy)) for _ in range(4)]
        stats = scheduler.run_parallel(candidates, n_processes=n_processes)
        assert stats['n_interactions'] == 4
        assert stats['n_secondaries'] == 8
        assert stats['n_generations'] == 2
        assert stats['n_inactive'] == 12

    def test_parallel_reproducible(self, be8_module):
        energy = 8 * units.nucleon_mass_energy * 1e10
        lengths = []
        for _ in range(2):
            scheduler = self.make_scheduler(be8_module, seed=11)
            stats = scheduler.run_parallel(
                [Candidate(ParticleState.nucleus(8, 4, energy)) for _ in range(3)],
                n_processes=1)
            lengths.append([c.trajectory_length for c in stats['candidates']])
        assert lengths[0] == lengths[1]
