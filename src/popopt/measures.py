"""
Diversity, improvement and step-size measures.

Every measure is recomputed from the current population and stored in
``state.measures`` as a :class:`~popopt.state.MeasureValue`. The normalized
value divides by an upper bound of the measure inside the feasible
region, so thresholds carry over between problems:

* dimension-wise diversity: mean absolute deviation from the per-dimension
  mean, relative to half the dimension's range
* pairwise distance diversity: mean Euclidean distance between
  individuals, relative to the diagonal of the region
* minimum individual distance: smallest distance between two individuals,
  relative to the diagonal
* radius diversity: largest distance from the centroid, relative to the
  diagonal
"""

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np
from scipy.spatial.distance import pdist

from .state import MeasureValue

logger = logging.getLogger(__name__)


class Diversity(Enum):
    DIMENSION_WISE = "dimension_wise_diversity"
    PAIRWISE_DISTANCE = "pairwise_distance_diversity"
    MINIMUM_DISTANCE = "minimum_individual_distance"
    RADIUS = "radius_diversity"


IMPROVEMENT = "fitness_improvement"
STEP_SIZE = "euclidean_step_size"


def _diagonal(lower, upper):
    return float(np.linalg.norm(upper - lower))


def dimension_wise_diversity(positions, lower, upper):
    deviation = np.mean(np.abs(positions - positions.mean(axis=0)), axis=0)
    value = float(np.mean(deviation))
    normalized = float(np.mean(deviation / ((upper - lower) / 2.0)))
    return MeasureValue(value, normalized)


def pairwise_distance_diversity(positions, lower, upper):
    if len(positions) < 2:
        return MeasureValue(0.0, 0.0)
    value = float(np.mean(pdist(positions)))
    return MeasureValue(value, value / _diagonal(lower, upper))


def minimum_individual_distance(positions, lower, upper):
    if len(positions) < 2:
        return MeasureValue(0.0, 0.0)
    value = float(np.min(pdist(positions)))
    return MeasureValue(value, value / _diagonal(lower, upper))


def radius_diversity(positions, lower, upper):
    centroid = positions.mean(axis=0)
    value = float(np.max(np.linalg.norm(positions - centroid, axis=1)))
    return MeasureValue(value, value / _diagonal(lower, upper))


DIVERSITY_FUNCTIONS = {
    Diversity.DIMENSION_WISE: dimension_wise_diversity,
    Diversity.PAIRWISE_DISTANCE: pairwise_distance_diversity,
    Diversity.MINIMUM_DISTANCE: minimum_individual_distance,
    Diversity.RADIUS: radius_diversity,
}


@dataclass(frozen=True, eq=False)
class MeasureDiversity:
    """Stage storing one diversity measure under ``kind.value``."""

    kind: Diversity

    @property
    def name(self):
        return f"MeasureDiversity[{self.kind.value}]"

    def __call__(self, state):
        population = state.require_population()
        state.measures[self.kind.value] = DIVERSITY_FUNCTIONS[self.kind](
            population.positions, state.lower, state.upper
        )


def all_diversity_measures():
    return tuple(MeasureDiversity(kind) for kind in Diversity)


@dataclass(frozen=True, eq=False)
class FitnessImprovement:
    """
    Improvement of the global best since the previous measurement.

    ``value`` is the absolute decrease of the best objective, ``normalized``
    the decrease relative to the previous best's magnitude. The total
    improvement since the first measurement is kept in ``state.measures``
    under ``total_improvement``.
    """

    def __call__(self, state):
        memory = state.memory_for(self)
        best = state.best_objective_value
        if best is None:
            return

        previous = memory.get("previous", best)
        initial = memory.setdefault("initial", best)
        memory["previous"] = best

        improvement = previous - best
        relative = improvement / abs(previous) if previous != 0 else 0.0
        state.measures[IMPROVEMENT] = MeasureValue(float(improvement), float(relative))
        state.measures["total_improvement"] = MeasureValue(
            float(initial - best),
            float((initial - best) / abs(initial)) if initial != 0 else 0.0,
        )


@dataclass
class StepSizes:
    """Per-individual displacement since the previous measurement."""

    individual: np.ndarray
    mean: float
    variance: float
    normalized_mean: float


@dataclass(frozen=True, eq=False)
class EuclideanStepSize:
    """
    Mean and variance of the Euclidean distance each individual moved
    since the previous measurement. Nothing is stored on the first call or
    when the population size changed.
    """

    def __call__(self, state):
        population = state.require_population()
        memory = state.memory_for(self)
        previous = memory.get("positions")
        memory["positions"] = population.positions.copy()

        if previous is None or previous.shape != population.positions.shape:
            return

        steps = np.linalg.norm(population.positions - previous, axis=1)
        mean = float(np.mean(steps))
        state.measures[STEP_SIZE] = StepSizes(
            individual=steps,
            mean=mean,
            variance=float(np.var(steps)),
            normalized_mean=mean / _diagonal(state.lower, state.upper),
        )
