"""
Tests for the diversity, improvement and step-size measures.

Testing Framework: pytest + Hypothesis
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from popopt.benchmarks import make_problem
from popopt.measures import (
    DIVERSITY_FUNCTIONS,
    IMPROVEMENT,
    STEP_SIZE,
    Diversity,
    EuclideanStepSize,
    FitnessImprovement,
    MeasureDiversity,
    dimension_wise_diversity,
    minimum_individual_distance,
    pairwise_distance_diversity,
    radius_diversity,
)
from popopt.problem import Evaluator
from popopt.state import Individual, OptimizationState, Population

LOWER = np.array([-5.0, -5.0])
UPPER = np.array([5.0, 5.0])


def make_state(positions):
    state = OptimizationState.create(Evaluator(make_problem("sphere", 2)), 0)
    state.population = Population.unevaluated(positions)
    return state


@pytest.mark.parametrize("kind", list(Diversity))
def test_collapsed_population_has_zero_diversity(kind):
    positions = np.tile([1.0, -2.0], (6, 1))
    measure = DIVERSITY_FUNCTIONS[kind](positions, LOWER, UPPER)
    assert measure.value == 0.0
    assert measure.normalized == 0.0


def test_opposite_corners_reach_upper_bound():
    positions = np.array([LOWER, UPPER])
    assert dimension_wise_diversity(positions, LOWER, UPPER).normalized == pytest.approx(1.0)
    assert pairwise_distance_diversity(positions, LOWER, UPPER).normalized == pytest.approx(1.0)
    assert minimum_individual_distance(positions, LOWER, UPPER).normalized == pytest.approx(1.0)
    assert radius_diversity(positions, LOWER, UPPER).normalized == pytest.approx(0.5)


def test_minimum_distance_finds_closest_pair():
    positions = np.array([[0.0, 0.0], [3.0, 4.0], [0.0, 0.5]])
    assert minimum_individual_distance(positions, LOWER, UPPER).value == pytest.approx(0.5)


def test_single_individual_has_no_pairwise_diversity():
    positions = np.array([[1.0, 1.0]])
    assert pairwise_distance_diversity(positions, LOWER, UPPER).value == 0.0
    assert minimum_individual_distance(positions, LOWER, UPPER).value == 0.0


# =============================================================================
# Property: normalized diversity of a feasible population lies in [0, 1]
# =============================================================================

@settings(max_examples=100)
@given(
    seed=st.integers(min_value=0, max_value=2**32 - 1),
    n=st.integers(min_value=1, max_value=40),
    kind=st.sampled_from(list(Diversity)),
)
def test_property_normalized_diversity_is_bounded(seed, n, kind):
    """Property: for any feasible population every normalized diversity is in [0, 1]."""
    rng = np.random.default_rng(seed)
    positions = LOWER + rng.random((n, 2)) * (UPPER - LOWER)
    measure = DIVERSITY_FUNCTIONS[kind](positions, LOWER, UPPER)
    assert 0.0 <= measure.normalized <= 1.0 + 1e-12


def test_stage_stores_measure_under_its_name():
    state = make_state([[0.0, 0.0], [1.0, 0.0]])
    MeasureDiversity(Diversity.MINIMUM_DISTANCE)(state)
    assert state.measures["minimum_individual_distance"].value == pytest.approx(1.0)


def test_fitness_improvement_tracks_previous_best():
    state = make_state([[0.0, 0.0]])
    measure = FitnessImprovement()

    measure(state)
    assert IMPROVEMENT not in state.measures

    state.best = Individual(np.zeros(2), 10.0)
    measure(state)
    assert state.measures[IMPROVEMENT].value == 0.0

    state.best = Individual(np.zeros(2), 4.0)
    measure(state)
    assert state.measures[IMPROVEMENT].value == pytest.approx(6.0)
    assert state.measures[IMPROVEMENT].normalized == pytest.approx(0.6)

    state.best = Individual(np.zeros(2), 3.0)
    measure(state)
    assert state.measures[IMPROVEMENT].value == pytest.approx(1.0)
    assert state.measures["total_improvement"].value == pytest.approx(7.0)


def test_step_size_needs_previous_positions():
    state = make_state([[0.0, 0.0], [1.0, 1.0]])
    measure = EuclideanStepSize()

    measure(state)
    assert STEP_SIZE not in state.measures

    state.population.positions = np.array([[3.0, 4.0], [1.0, 1.0]])
    measure(state)
    steps = state.measures[STEP_SIZE]
    np.testing.assert_allclose(steps.individual, [5.0, 0.0])
    assert steps.mean == pytest.approx(2.5)
    assert steps.variance == pytest.approx(6.25)
    assert steps.normalized_mean == pytest.approx(2.5 / np.sqrt(200.0))
