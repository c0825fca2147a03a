"""
Success-history based adaptive differential evolution (SHADE).

One generation is the sequence

    ShadeAdaptation -> CurrentToPBestMutation -> Crossover -> CorrectBounds
    -> Evaluate -> UpdateBestIndividual -> KeepParentsArchiveUpdate
    -> ShadeHistoryUpdate -> KeepBetterAtIndex

The mutation stage keeps a copy of the parents in ``state.shade.parents``
and writes the trial vectors into the population as unevaluated
individuals, so the generic evaluation and best-tracking stages work on
them unchanged. Selection happens index by index at the end.

References
----------
Tanabe, R. and Fukunaga, A. (2013). Success-history based parameter
adaptation for differential evolution. IEEE CEC 2013, 71-78.
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np
from scipy.stats import cauchy

from .errors import ConfigurationError, DegenerateStateError
from .state import AdaptationMemory, Archive, ShadeMemory

logger = logging.getLogger(__name__)

# Spread of the F (Cauchy) and CR (normal) samples around the memory entries
F_SCALE = 0.1
CR_SCALE = 0.1


def minimum_population_size(y):
    """Smallest population that always yields ``2 * y`` distinct donors besides target and p-best."""
    return 2 * y + 2


def p_best_count(p_min, population_size):
    return int(min(population_size, max(2, round(p_min * population_size))))


def _require_shade(state, stage):
    if state.shade is None:
        raise DegenerateStateError(f"{stage} requires ShadeInit")
    return state.shade


def _require_parents(state, stage):
    shade = _require_shade(state, stage)
    if shade.parents is None:
        raise DegenerateStateError(f"{stage} requires CurrentToPBestMutation")
    return shade


@dataclass(frozen=True, eq=False)
class ShadeInit:
    """
    Create the adaptation memory and the archive.

    Parameters
    ----------
    history : int
        Number of memory slots H
    max_archive : int
        Archive capacity
    f_init : float
        Initial scale factor of every slot
    cr_init : float
        Initial crossover rate of every slot
    """

    history: int
    max_archive: int
    f_init: float = 0.5
    cr_init: float = 0.5

    def __post_init__(self):
        if self.history < 1:
            raise ConfigurationError(f"history must be >= 1, got {self.history}")
        if self.max_archive < 1:
            raise ConfigurationError(f"max_archive must be >= 1, got {self.max_archive}")
        if not 0.0 < self.f_init <= 1.0:
            raise ConfigurationError(f"f must be in (0, 1], got {self.f_init}")
        if not 0.0 <= self.cr_init <= 1.0:
            raise ConfigurationError(f"cr must be in [0, 1], got {self.cr_init}")

    def __call__(self, state):
        population = state.require_population()
        state.shade = ShadeMemory(
            adaptation=AdaptationMemory(self.history, self.f_init, self.cr_init),
            archive=Archive(self.max_archive, population.dimension),
        )


def sample_scale_factors(rng, locations):
    """
    Cauchy samples around ``locations``; non-positive draws are redrawn and
    draws above 1 are truncated to 1.
    """
    f = np.empty(locations.size)
    pending = np.arange(locations.size)
    while pending.size:
        draws = cauchy.rvs(loc=locations[pending], scale=F_SCALE, random_state=rng)
        draws = np.atleast_1d(draws)
        accepted = draws > 0
        f[pending[accepted]] = np.minimum(draws[accepted], 1.0)
        pending = pending[~accepted]
    return f


def sample_crossover_rates(rng, locations):
    return np.clip(rng.normal(locations, CR_SCALE), 0.0, 1.0)


@dataclass(frozen=True, eq=False)
class ShadeAdaptation:
    """Draw a memory slot per individual and sample its F and CR from it."""

    def __call__(self, state):
        shade = _require_shade(state, "ShadeAdaptation")
        population = state.require_population()
        memory = shade.adaptation

        index = state.rng.integers(memory.size, size=population.size)
        shade.f = sample_scale_factors(state.rng, memory.f[index])
        shade.cr = sample_crossover_rates(state.rng, memory.cr[index])


@dataclass(frozen=True, eq=False)
class CurrentToPBestMutation:
    """
    current-to-pbest/y mutation with archive.

    For target ``i`` with scale factor ``F_i``::

        v_i = x_i + F_i * (x_pbest - x_i) + F_i * sum_k (x_r1k - x_r2k)

    ``x_pbest`` is drawn uniformly from the best ``max(2, round(p_min * N))``
    individuals. The ``r1`` donors come from the population, the ``r2`` donors
    from the population joined with the archive; all donors are distinct from
    each other, from the target and from the p-best.

    Parameters
    ----------
    y : int
        Number of difference vectors
    p_min : float
        Fraction of the population eligible as p-best, in (0, 1]
    """

    y: int = 1
    p_min: float = 0.1

    def __post_init__(self):
        if self.y < 1:
            raise ConfigurationError(f"y must be >= 1, got {self.y}")
        if not 0.0 < self.p_min <= 1.0:
            raise ConfigurationError(f"p_min must be in (0, 1], got {self.p_min}")

    def __call__(self, state):
        shade = _require_shade(state, "CurrentToPBestMutation")
        if shade.f is None:
            raise DegenerateStateError("CurrentToPBestMutation requires ShadeAdaptation")

        population = state.require_population()
        n = population.size
        if n < minimum_population_size(self.y):
            raise DegenerateStateError(
                f"population of {n} is too small for {self.y} difference vectors, "
                f"need at least {minimum_population_size(self.y)}"
            )

        rng = state.rng
        parents = population.copy()
        x = parents.positions
        pool = np.vstack([x, shade.archive.entries]) if len(shade.archive) else x
        top = parents.ranking()[:p_best_count(self.p_min, n)]

        mutants = np.empty_like(x)
        for i in range(n):
            pbest = top[rng.integers(top.size)]
            excluded = {i, int(pbest)}

            candidates = np.array([j for j in range(n) if j not in excluded])
            r1 = rng.choice(candidates, size=self.y, replace=False)

            excluded.update(int(j) for j in r1)
            candidates = np.array([j for j in range(len(pool)) if j not in excluded])
            r2 = rng.choice(candidates, size=self.y, replace=False)

            difference = np.sum(x[r1] - pool[r2], axis=0)
            mutants[i] = x[i] + shade.f[i] * (x[pbest] - x[i]) + shade.f[i] * difference

        shade.parents = parents
        population.positions = mutants
        population.invalidate()


class CrossoverKind(Enum):
    BINOMIAL = "binomial"
    EXPONENTIAL = "exponential"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"Unknown crossover '{value}', expected one of {[k.value for k in cls]}"
            ) from None


def binomial_mask(rng, n, dimension, rates):
    """Each dimension from the mutant with probability CR; one random dimension always."""
    mask = rng.random((n, dimension)) < rates[:, np.newaxis]
    forced = rng.integers(dimension, size=n)
    mask[np.arange(n), forced] = True
    return mask


def exponential_mask(rng, n, dimension, rates):
    """A wrapped block of dimensions from the mutant, starting at a random index."""
    mask = np.zeros((n, dimension), dtype=bool)
    for i in range(n):
        start = rng.integers(dimension)
        length = 1
        while length < dimension and rng.random() < rates[i]:
            length += 1
        mask[i, (start + np.arange(length)) % dimension] = True
    return mask


@dataclass(frozen=True, eq=False)
class Crossover:
    """
    Combine parents and mutants into trial vectors.

    The crossover rate of each individual is the one sampled by
    :class:`ShadeAdaptation` when present, otherwise the fixed ``rate``.
    """

    kind: CrossoverKind = CrossoverKind.BINOMIAL
    rate: float = 0.5

    def __post_init__(self):
        object.__setattr__(self, "kind", CrossoverKind.parse(self.kind))
        if not 0.0 <= self.rate <= 1.0:
            raise ConfigurationError(f"crossover rate must be in [0, 1], got {self.rate}")

    @property
    def name(self):
        return f"Crossover[{self.kind.value}]"

    def __call__(self, state):
        shade = _require_parents(state, "Crossover")
        population = state.require_population()
        n, dimension = population.positions.shape

        rates = shade.cr if shade.cr is not None else np.full(n, self.rate)
        if self.kind is CrossoverKind.BINOMIAL:
            mask = binomial_mask(state.rng, n, dimension, rates)
        else:
            mask = exponential_mask(state.rng, n, dimension, rates)

        population.positions = np.where(mask, population.positions, shade.parents.positions)
        population.invalidate()


def _successes(shade, population):
    return population.objectives <= shade.parents.objectives


@dataclass(frozen=True, eq=False)
class KeepParentsArchiveUpdate:
    """Push every parent beaten (or tied) by its trial into the archive."""

    def __call__(self, state):
        shade = _require_parents(state, "KeepParentsArchiveUpdate")
        population = state.require_population()
        for i in np.where(_successes(shade, population))[0]:
            shade.archive.push(shade.parents.positions[i], state.rng)


def weighted_lehmer_mean(values, weights):
    return float(np.sum(weights * values ** 2) / np.sum(weights * values))


@dataclass(frozen=True, eq=False)
class ShadeHistoryUpdate:
    """
    Write the weighted means of the successful F and CR values to the
    current memory slot.

    Weights are the fitness improvements of the successful trials
    normalized to sum to one, so a tie counts as a success with zero
    weight. F uses the weighted Lehmer mean, CR the weighted arithmetic
    mean. The memory is left untouched when no trial improved on its parent.
    """

    def __call__(self, state):
        shade = _require_parents(state, "ShadeHistoryUpdate")
        population = state.require_population()

        success = _successes(shade, population)
        if not np.any(success):
            return

        delta = np.abs(shade.parents.objectives[success] - population.objectives[success])
        total = delta.sum()
        if total == 0:
            logger.debug("memory unchanged, %d ties and no improvement", delta.size)
            return
        weights = delta / total

        f = weighted_lehmer_mean(shade.f[success], weights)
        cr = float(np.sum(weights * shade.cr[success]))
        shade.adaptation.write(f, cr)
        logger.debug("memory update F=%.4f CR=%.4f from %d successes", f, cr, delta.size)


@dataclass(frozen=True, eq=False)
class KeepBetterAtIndex:
    """Restore every parent whose trial was worse, then drop the generation's scratch data."""

    def __call__(self, state):
        shade = _require_parents(state, "KeepBetterAtIndex")
        population = state.require_population()

        failed = ~_successes(shade, population)
        population.positions[failed] = shade.parents.positions[failed]
        population.objectives[failed] = shade.parents.objectives[failed]

        shade.parents = None
        shade.f = None
        shade.cr = None
