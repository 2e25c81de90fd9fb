"""
Interaction scheduler: drives candidates through modules step by step.

Each step, for every active candidate:
    1. modules prepare: interaction modules without a pending interaction
       propose one; pending distances limit the next step
    2. the propagator advances the candidate
    3. interactions inside the step are committed in the order they occur
       along the trajectory, across all interaction modules; then the other
       modules (break conditions) process the candidate
    4. spawned secondaries go to a buffer that joins the active pool only
       after every candidate finished the step
"""

import time
import numpy as np
from typing import Callable, Iterable, List, Optional, Tuple

from tqdm import tqdm

from uhecr_mc.core.particle import Candidate
from uhecr_mc.transport.modules import InteractionModule, Module, resolve_interactions
from uhecr_mc.transport.propagation import Propagator, StraightLinePropagation


# Scheduler instance for each worker process
_worker_scheduler = None


def _init_worker(scheduler_or_factory):
    """Initialize worker process with its own scheduler instance."""
    global _worker_scheduler
    if callable(scheduler_or_factory) and not isinstance(scheduler_or_factory,
                                                         InteractionScheduler):
        _worker_scheduler = scheduler_or_factory()
    else:
        _worker_scheduler = scheduler_or_factory


def _propagate_candidate_worker(work_item):
    """
    Worker function for parallel propagation.

    Parameters:
        work_item: (candidate, seed_sequence, max_steps)

    Returns:
        (candidate, secondaries, n_interactions, n_steps)
    """
    candidate, seed_seq, max_steps = work_item
    _worker_scheduler.rng = np.random.default_rng(seed_seq)
    secondaries, n_interactions, n_steps = _worker_scheduler.propagate_candidate(
        candidate, max_steps)
    return candidate, secondaries, n_interactions, n_steps


class InteractionScheduler:
    """
    Composes modules over a pool of candidates.

    Example:
        pd = PhotoDisintegration('CMB')
        scheduler = InteractionScheduler([pd, MinimumEnergy(1 * EeV)], seed=1)
        stats = scheduler.run([Candidate(ParticleState.nucleus(56, 26, 100 * EeV))])
    """

    def __init__(self, modules: Iterable[Module] = (),
                 propagator: Optional[Propagator] = None,
                 seed: Optional[int] = None,
                 rng: Optional[np.random.Generator] = None):
        """
        Parameters:
            modules: Modules in processing order; interaction modules get
                     candidate slots in registration order
            propagator: Step integrator (straight lines if None)
            seed: Seed for the scheduler's random generator
            rng: Random generator to use instead of a seeded one
        """
        self.modules: List[Module] = []
        self.interaction_modules: List[InteractionModule] = []
        for module in modules:
            self.add(module)

        self.propagator = propagator if propagator is not None else StraightLinePropagation()
        self.seed = seed
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.n_interactions = 0

    def add(self, module: Module):
        """Register a module; interaction modules receive the next free slot."""
        if isinstance(module, InteractionModule):
            if module in self.interaction_modules:
                raise ValueError(f"{module!r} is already registered")
            module.slot = len(self.interaction_modules)
            self.interaction_modules.append(module)
        self.modules.append(module)

    @property
    def n_slots(self) -> int:
        return len(self.interaction_modules)

    def admit(self, candidate: Candidate):
        """Make room for every interaction module's pending state."""
        candidate.reserve_slots(self.n_slots)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------

    def process_candidate(self, candidate: Candidate) -> int:
        """
        Advance one candidate by one step.

        Returns:
            Number of interactions performed
        """
        if not candidate.active:
            return 0

        start = candidate.trajectory_length
        for module in self.modules:
            module.prepare(candidate, self.rng)

        step = self.propagator.propagate(candidate)

        n_interactions = resolve_interactions(self.interaction_modules, candidate,
                                              start, self.rng)
        for module in self.modules:
            if not candidate.active:
                break
            if not isinstance(module, InteractionModule):
                module.process(candidate, step, self.rng)
        return n_interactions

    def step(self, candidates: Iterable[Candidate]) -> List[Candidate]:
        """
        Advance all active candidates by one step.

        Returns:
            Secondaries spawned during the step (not yet stepped)
        """
        buffer = []
        for candidate in candidates:
            if candidate.active:
                self.admit(candidate)
                self.n_interactions += self.process_candidate(candidate)
            buffer.extend(candidate.take_secondaries())

        for secondary in buffer:
            self.admit(secondary)
        return buffer

    def propagate_candidate(self, candidate: Candidate,
                            max_steps: int = 100000) -> Tuple[List[Candidate], int, int]:
        """
        Step a single candidate until it is inactive or max_steps is reached.

        Secondaries are collected but not propagated.

        Returns:
            (secondaries, n_interactions, n_steps)
        """
        self.admit(candidate)
        buffer = []
        n_interactions = 0
        n_steps = 0
        while candidate.active and n_steps < max_steps:
            n_interactions += self.process_candidate(candidate)
            buffer.extend(candidate.take_secondaries())
            n_steps += 1

        for secondary in buffer:
            self.admit(secondary)
        return buffer, n_interactions, n_steps

    # ------------------------------------------------------------------
    # Runs
    # ------------------------------------------------------------------

    def run(self, candidates: Iterable[Candidate], max_steps: int = 100000,
            verbose: bool = False) -> dict:
        """
        Propagate candidates and all their secondaries.

        Parameters:
            candidates: Initial candidates
            max_steps: Maximum number of scheduler steps
            verbose: Show progress information

        Returns:
            Dictionary with run statistics and the list of all candidates
        """
        pool = list(candidates)
        all_candidates = list(pool)
        for candidate in pool:
            self.admit(candidate)

        n_initial = len(pool)
        n_interactions_start = self.n_interactions
        n_steps = 0

        if verbose:
            print(f"\nPropagating {n_initial} candidates...")
            print(f"  Modules: {', '.join(m.description for m in self.modules)}")
            print(f"  Propagator: {self.propagator!r}")

        progress = tqdm(total=max_steps, disable=not verbose, unit='step')
        while n_steps < max_steps:
            pool = [c for c in pool if c.active]
            if not pool:
                break
            secondaries = self.step(pool)
            pool.extend(secondaries)
            all_candidates.extend(secondaries)
            n_steps += 1
            progress.update(1)
            progress.set_postfix(active=len(pool))
        progress.close()

        stats = self._summarize(all_candidates, n_initial, n_steps,
                                self.n_interactions - n_interactions_start)
        if verbose:
            self._report(stats)
        return stats

    def run_parallel(self, candidates: Iterable[Candidate], n_processes: Optional[int] = None,
                     max_steps: int = 100000,
                     scheduler_factory: Optional[Callable[[], 'InteractionScheduler']] = None,
                     verbose: bool = False) -> dict:
        """
        Propagate candidates in parallel, one worker task per candidate.

        Candidates do not interact with one another, so each worker steps its
        candidate to the end on its own random stream. Secondaries are merged
        into the pool between generations.

        Parameters:
            candidates: Initial candidates
            n_processes: Number of worker processes (default: cpu_count)
            max_steps: Maximum number of steps per candidate
            scheduler_factory: Picklable callable building a worker scheduler
                               (default: a copy of this scheduler)
            verbose: Print progress information

        Returns:
            Dictionary with run statistics and the list of all candidates
        """
        import multiprocessing as mp

        if n_processes is None:
            n_processes = mp.cpu_count()

        generation = list(candidates)
        for candidate in generation:
            self.admit(candidate)
        n_initial = len(generation)
        all_candidates = []
        total_interactions = 0
        total_steps = 0
        n_generations = 0
        seed_seq = np.random.SeedSequence(self.seed)

        if verbose:
            print(f"\nParallel propagation: {n_initial} candidates on {n_processes} cores")

        start_time = time.time()

        init_arg = scheduler_factory if scheduler_factory is not None else self
        pool = None
        saved_rng = self.rng
        if n_processes > 1:
            pool = mp.Pool(n_processes, initializer=_init_worker, initargs=(init_arg,))
        else:
            _init_worker(init_arg)

        try:
            while generation:
                work_items = [(c, s, max_steps)
                              for c, s in zip(generation, seed_seq.spawn(len(generation)))]
                if pool is not None:
                    results = pool.map(_propagate_candidate_worker, work_items)
                else:
                    results = [_propagate_candidate_worker(item) for item in work_items]

                next_generation = []
                for candidate, secondaries, n_interactions, n_steps in results:
                    all_candidates.append(candidate)
                    next_generation.extend(secondaries)
                    total_interactions += n_interactions
                    total_steps += n_steps

                n_generations += 1
                if verbose:
                    print(f"  Generation {n_generations}: {len(generation)} candidates, "
                          f"{len(next_generation)} secondaries")
                for secondary in next_generation:
                    self.admit(secondary)
                generation = next_generation
        finally:
            if pool is not None:
                pool.close()
                pool.join()
            self.rng = saved_rng

        elapsed = time.time() - start_time
        self.n_interactions += total_interactions

        stats = self._summarize(all_candidates, n_initial, total_steps, total_interactions)
        stats['n_generations'] = n_generations
        stats['elapsed_time'] = elapsed
        if verbose:
            self._report(stats)
            print(f"  Time: {elapsed:.1f}s")
        return stats

    @staticmethod
    def _summarize(all_candidates, n_initial, n_steps, n_interactions) -> dict:
        return {
            'n_steps': n_steps,
            'n_candidates': len(all_candidates),
            'n_secondaries': len(all_candidates) - n_initial,
            'n_interactions': n_interactions,
            'n_inactive': sum(1 for c in all_candidates if not c.active),
            'candidates': all_candidates,
        }

    @staticmethod
    def _report(stats: dict):
        print(f"\nPropagation complete!")
        print(f"  Total steps: {stats['n_steps']}")
        print(f"  Interactions: {stats['n_interactions']}")
        print(f"  Secondaries: {stats['n_secondaries']}")
        print(f"  Inactive: {stats['n_inactive']}/{stats['n_candidates']}")

    def __repr__(self) -> str:
        return f"InteractionScheduler({self.modules!r})"
