"""
Tests for boundary correction.

Testing Framework: pytest + Hypothesis
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from popopt.benchmarks import make_problem
from popopt.boundary import BoundaryPolicy, CorrectBounds, correct_bounds
from popopt.errors import ConfigurationError
from popopt.problem import Evaluator
from popopt.state import OptimizationState, Population

LOWER = np.array([-5.0, -5.0, 0.0])
UPPER = np.array([5.0, 5.0, 1.0])


def overshooting_positions(rng, n):
    """Positions spread over three times the feasible region."""
    width = UPPER - LOWER
    return LOWER - width + rng.random((n, LOWER.size)) * 3 * width


# =============================================================================
# Property: every policy leaves the population feasible
# =============================================================================

@settings(max_examples=100)
@given(
    seed=st.integers(min_value=0, max_value=2**32 - 1),
    n=st.integers(min_value=1, max_value=30),
    policy=st.sampled_from(list(BoundaryPolicy)),
)
def test_property_corrected_positions_are_feasible(seed, n, policy):
    """
    Property: after any boundary correction every coordinate lies within
    [lower_d, upper_d], and feasible coordinates are left untouched.
    """
    rng = np.random.default_rng(seed)
    positions = overshooting_positions(rng, n)
    original = positions.copy()
    velocities = rng.uniform(-1.0, 1.0, positions.shape)

    corrected = correct_bounds(positions, LOWER, UPPER, policy, rng, velocities=velocities)

    assert np.all(positions >= LOWER)
    assert np.all(positions <= UPPER)
    np.testing.assert_array_equal(positions[~corrected], original[~corrected])


def test_saturation_clamps_and_stops():
    rng = np.random.default_rng(0)
    positions = np.array([[6.0, -7.0, 0.5]])
    velocities = np.array([[1.0, -2.0, 0.3]])

    correct_bounds(positions, LOWER, UPPER, BoundaryPolicy.SATURATION, rng, velocities)

    np.testing.assert_array_equal(positions, [[5.0, -5.0, 0.5]])
    np.testing.assert_array_equal(velocities, [[0.0, 0.0, 0.3]])


def test_cosine_with_zero_angle_reverses_velocity():
    rng = np.random.default_rng(0)
    positions = np.array([[6.0, 0.0, 0.5]])
    velocities = np.array([[2.0, 1.0, 0.1]])

    correct_bounds(positions, LOWER, UPPER, BoundaryPolicy.COSINE, rng, velocities, angle=0.0)

    np.testing.assert_array_equal(positions, [[5.0, 0.0, 0.5]])
    np.testing.assert_allclose(velocities, [[-2.0, 1.0, 0.1]])


def test_cosine_random_angle_damps_and_reverses():
    rng = np.random.default_rng(1)
    positions = np.full((50, 3), 10.0)
    velocities = np.full((50, 3), 3.0)

    correct_bounds(positions, LOWER, UPPER, BoundaryPolicy.COSINE, rng, velocities)

    assert np.all(velocities <= 0.0)
    assert np.all(velocities >= -3.0)


def test_one_tailed_normal_redraws_on_violated_side():
    rng = np.random.default_rng(2)
    positions = np.array([[6.0, -9.0, 0.5]] * 200)
    velocities = np.ones_like(positions)

    correct_bounds(positions, LOWER, UPPER, BoundaryPolicy.ONE_TAILED_NORMAL, rng, velocities)

    # Redraws concentrate near the violated bound
    assert np.mean(positions[:, 0]) > 3.0
    assert np.mean(positions[:, 1]) < -3.0
    assert np.all(positions[:, 2] == 0.5)
    assert np.all(velocities[:, :2] == 0.0)
    assert np.all(velocities[:, 2] == 1.0)


def test_feasible_population_is_unchanged():
    rng = np.random.default_rng(3)
    positions = np.array([[0.0, 1.0, 0.2], [-5.0, 5.0, 1.0]])
    original = positions.copy()
    corrected = correct_bounds(positions, LOWER, UPPER, BoundaryPolicy.ONE_TAILED_NORMAL, rng)
    assert not corrected.any()
    np.testing.assert_array_equal(positions, original)


def test_stage_invalidates_only_corrected_individuals():
    state = OptimizationState.create(Evaluator(make_problem("sphere", 2)), 0)
    state.population = Population(
        np.array([[0.0, 0.0], [7.0, 0.0], [1.0, -1.0]]), np.array([0.0, 49.0, 2.0])
    )

    CorrectBounds("saturation")(state)

    np.testing.assert_array_equal(state.population.evaluated, [True, False, True])
    np.testing.assert_array_equal(state.population.positions[1], [5.0, 0.0])


def test_unknown_policy_is_rejected():
    with pytest.raises(ConfigurationError):
        CorrectBounds("reflect")
    with pytest.raises(ConfigurationError):
        CorrectBounds("saturation", scale=0.0)
