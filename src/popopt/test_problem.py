"""
Tests for the evaluator, bounds handling and the benchmark suite.

Testing Framework: pytest + Hypothesis
"""

import pickle

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from popopt.benchmarks import FUNCTIONS, BenchmarkSuite, make_problem
from popopt.errors import ConfigurationError, EvaluationError
from popopt.problem import Evaluator, normalize_positions, validate_bounds


class BrokenProblem:
    name = "broken"
    lower = np.array([-1.0, -1.0])
    upper = np.array([1.0, 1.0])
    known_optimum = None
    dimension = 2

    def __init__(self, value=None):
        self.value = value

    def evaluate(self, x):
        if self.value is None:
            raise ZeroDivisionError("division by zero")
        return self.value


# =============================================================================
# Bounds
# =============================================================================

@pytest.mark.parametrize(
    "lower, upper",
    [
        ([0.0, 0.0], [1.0]),
        ([], []),
        ([0.0, 1.0], [1.0, 1.0]),
        ([0.0, -np.inf], [1.0, 1.0]),
        ([[0.0]], [[1.0]]),
    ],
)
def test_invalid_bounds_are_rejected(lower, upper):
    with pytest.raises(ConfigurationError):
        validate_bounds(lower, upper)


def test_normalize_positions_maps_box_to_unit_cube():
    lower, upper = validate_bounds([-5.0, 0.0], [5.0, 2.0])
    normalized = normalize_positions([[-5.0, 0.0], [0.0, 1.0], [5.0, 2.0]], lower, upper)
    np.testing.assert_allclose(normalized, [[0.0, 0.0], [0.5, 0.5], [1.0, 1.0]])


# =============================================================================
# Evaluator
# =============================================================================

def test_evaluator_counts_every_call():
    evaluator = Evaluator(make_problem("sphere", 3))
    evaluator.evaluate(np.zeros(3))
    evaluator.evaluate_batch(np.ones((4, 3)))
    assert evaluator.evaluations == 5


def test_evaluator_reports_context_of_failures():
    evaluator = Evaluator(BrokenProblem())
    with pytest.raises(EvaluationError) as excinfo:
        evaluator.evaluate_batch(np.zeros((3, 2)), indices=[4, 5, 6], generation=7)

    error = excinfo.value
    assert error.generation == 7
    assert error.individual == 4
    assert isinstance(error.__cause__, ZeroDivisionError)
    assert evaluator.evaluations == 1


@pytest.mark.parametrize("value", [np.nan, np.inf])
def test_non_finite_objective_is_an_evaluation_error(value):
    with pytest.raises(EvaluationError):
        Evaluator(BrokenProblem(value)).evaluate(np.zeros(2))


@pytest.mark.parametrize("position", [np.zeros(3), np.array([2.0, 0.0])])
def test_wrong_shape_or_infeasible_position_is_rejected(position):
    with pytest.raises(EvaluationError):
        Evaluator(BrokenProblem(1.0)).evaluate(position)


def test_evaluator_exposes_problem_metadata():
    evaluator = Evaluator(make_problem("rastrigin", 4, 2))
    assert evaluator.dimension == 4
    assert evaluator.name == "rastrigin_i2_d4"
    assert evaluator.known_optimum == make_problem("rastrigin", 4, 2).known_optimum
    assert Evaluator(BrokenProblem()).known_optimum is None


# =============================================================================
# Benchmarks
# =============================================================================

@settings(max_examples=100, deadline=None)
@given(
    function=st.sampled_from(sorted(FUNCTIONS)),
    dimension=st.integers(min_value=2, max_value=10),
    instance=st.integers(min_value=1, max_value=50),
)
def test_property_known_optimum_is_a_lower_bound(function, dimension, instance):
    """
    Property: no sampled point of any instance scores below its known
    optimum, and the feasible box is the BBOB domain.
    """
    problem = make_problem(function, dimension, instance)

    np.testing.assert_array_equal(problem.lower, np.full(dimension, -5.0))
    np.testing.assert_array_equal(problem.upper, np.full(dimension, 5.0))

    rng = np.random.default_rng(instance)
    for x in rng.uniform(problem.lower, problem.upper, (10, dimension)):
        assert problem.evaluate(x) >= problem.known_optimum - 1e-9


@pytest.mark.parametrize("function", ["sphere", "ellipsoid", "rastrigin"])
@pytest.mark.parametrize("instance", [1, 2, 7])
def test_known_optimum_is_attained_at_optimum_position(function, instance):
    problem = make_problem(function, 5, instance)
    position = np.array(problem.optimum_position)

    assert np.all(position >= problem.lower) and np.all(position <= problem.upper)
    assert problem.evaluate(position) == pytest.approx(problem.known_optimum, abs=1e-8)


def test_instances_are_deterministic_and_distinct():
    assert make_problem("rastrigin", 5, 3) == make_problem("rastrigin", 5, 3)
    assert (
        make_problem("rastrigin", 5, 3).optimum_position
        != make_problem("rastrigin", 5, 4).optimum_position
    )


def test_evaluation_counts_go_through_evaluator_only():
    problem = make_problem("sphere", 3, 1)
    evaluator = Evaluator(problem)
    evaluator.evaluate(np.array(problem.optimum_position))
    assert evaluator.evaluations == 1
    assert evaluator.evaluate(np.zeros(3)) > problem.known_optimum


@pytest.mark.parametrize(
    "function, dimension, instance",
    [("ackley", 2, 1), ("sphere", 0, 1), ("sphere", 2, 0)],
)
def test_make_problem_rejects_invalid_arguments(function, dimension, instance):
    with pytest.raises(ConfigurationError):
        make_problem(function, dimension, instance)


def test_suite_yields_every_combination():
    suite = BenchmarkSuite(("sphere", "rosenbrock"), (2, 5), (1, 2, 3))
    problems = list(suite.problems())

    assert len(problems) == len(suite) == 12
    assert problems[0].name == "sphere_i1_d2"
    assert problems[-1].name == "rosenbrock_i3_d5"
    assert problems[-1].function_id == 8


def test_problems_can_be_sent_to_worker_processes():
    problem = make_problem("bent_cigar", 3, 2)
    copy = pickle.loads(pickle.dumps(problem))
    x = np.full(3, 0.5)
    assert copy == problem
    assert copy.evaluate(x) == problem.evaluate(x)


def test_suite_rejects_unknown_function():
    with pytest.raises(ConfigurationError):
        BenchmarkSuite(("sphere", "griewank"), (2,), (1,))
