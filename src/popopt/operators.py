"""
Stages shared by every algorithm: initialization, evaluation and
global-best tracking.
"""

import logging
from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError
from .state import Population

logger = logging.getLogger(__name__)


def random_positions(rng, n, lower, upper):
    """Uniform samples from the box ``[lower, upper]``, shape (n, D)."""
    return lower + rng.random((n, lower.size)) * (upper - lower)


@dataclass(frozen=True, eq=False)
class RandomSpread:
    """Replace the population with ``population_size`` uniform random positions."""

    population_size: int

    def __post_init__(self):
        if self.population_size < 1:
            raise ConfigurationError(
                f"population_size must be >= 1, got {self.population_size}"
            )

    def __call__(self, state):
        positions = random_positions(state.rng, self.population_size, state.lower, state.upper)
        state.population = Population.unevaluated(positions)


@dataclass(frozen=True, eq=False)
class Evaluate:
    """Evaluate every individual whose objective value is still undefined."""

    def __call__(self, state):
        population = state.require_population()
        pending = np.where(~population.evaluated)[0]
        if pending.size == 0:
            return

        population.objectives[pending] = state.evaluator.evaluate_batch(
            population.positions[pending],
            indices=pending,
            generation=state.iteration,
        )


@dataclass(frozen=True, eq=False)
class UpdateBestIndividual:
    """Keep ``state.best`` at the best individual seen so far; it never regresses."""

    def __call__(self, state):
        population = state.require_population()
        index = population.best_index()
        candidate = population.objectives[index]

        if state.best is None or candidate < state.best.objective:
            state.best = population.individual(index)
            logger.debug(
                "new best %.6e at iteration %d", state.best.objective, state.iteration
            )


def current_best(state):
    """Best individual of the run, or of the population if none recorded yet."""
    if state.best is not None:
        return state.best
    population = state.require_population()
    return population.individual(population.best_index())

