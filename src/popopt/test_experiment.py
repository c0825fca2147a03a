"""
Tests for the experiment driver.

Testing Framework: pytest + Hypothesis
"""

import numpy as np
import pytest
from hypothesis import given, settings, strategies as st

from popopt.config import ExperimentConfig, PSOConfig, SHADEConfig
from popopt.experiment import (
    RunSpec,
    append_result,
    execute_run,
    expand,
    grid_points,
    optimize,
    read_results,
    run_experiment,
    seed_for,
)
from popopt.benchmarks import make_problem


class ExplodingProblem:
    """Benchmark-like problem whose objective always fails."""

    function = "exploding"
    instance = 1
    dimension = 2
    known_optimum = None
    lower = np.array([-1.0, -1.0])
    upper = np.array([1.0, 1.0])

    def evaluate(self, x):
        raise FloatingPointError("overflow")


def small_config(tmp_path, **overrides):
    values = dict(
        algorithm="pso",
        functions=["sphere"],
        dimensions=[2],
        instances=2,
        runs=2,
        output=str(tmp_path / "results" / "runs.jsonl"),
        pso=PSOConfig(evaluations=100),
    )
    values.update(overrides)
    return ExperimentConfig(**values)


# =============================================================================
# Run expansion
# =============================================================================

@settings(max_examples=100)
@given(
    runs=st.integers(min_value=1, max_value=20),
    instances=st.integers(min_value=1, max_value=20),
)
def test_property_seeds_are_unique(runs, instances):
    """Property: every (run, instance) pair of an experiment gets its own positive seed."""
    seeds = [
        seed_for(run, position, instances)
        for run in range(1, runs + 1)
        for position in range(instances)
    ]
    assert len(set(seeds)) == len(seeds)
    assert min(seeds) == 1


def test_grid_points_cover_every_combination():
    points = grid_points({"w": [0.5, 0.7], "c1": [1.0, 1.5, 2.0]})
    assert len(points) == 6
    assert {"c1": 2.0, "w": 0.5} in points
    assert grid_points({}) == [{}]


def test_expand_builds_one_spec_per_run(tmp_path):
    config = small_config(
        tmp_path,
        functions=["sphere", "rastrigin"],
        instances=3,
        runs=2,
        grid={"w": [0.5, 0.7], "c1": [1.0, 2.0]},
    )
    specs = expand(config)

    assert len(specs) == 4 * 2 * 2 * 3
    assert len({(s.problem.name, s.run, tuple(s.parameters.items())) for s in specs}) == len(specs)
    assert {s.config.w for s in specs} == {0.5, 0.7}
    assert all(s.problem.instance >= 1 for s in specs)


def test_run_identity_names_the_run():
    spec = RunSpec("shade", make_problem("rastrigin", 5, 2), run=3, seed=9,
                   config=SHADEConfig(), parameters={"history": 5})
    assert spec.identity() == {
        "algorithm": "shade",
        "function": "rastrigin",
        "instance": 2,
        "dimension": 5,
        "run": 3,
        "seed": 9,
        "history": 5,
    }


# =============================================================================
# Single runs
# =============================================================================

def test_optimize_is_reproducible():
    problem = make_problem("ellipsoid", 3, 1)
    first = optimize("shade", SHADEConfig(evaluations=300), problem, seed=4)
    second = optimize("shade", SHADEConfig(evaluations=300), problem, seed=4)
    assert first.best.objective == second.best.objective


def test_execute_run_reports_best_and_records():
    spec = RunSpec("pso", make_problem("sphere", 2, 1), run=1, seed=1,
                   config=PSOConfig(evaluations=100), log_every=2)
    result = execute_run(spec)

    assert not result.failed
    assert result.evaluations >= 100
    assert result.distance_to_optimum >= 0.0
    assert len(result.best_position) == 2
    assert [r["iteration"] for r in result.records] == list(range(0, 10, 2))


def test_failed_run_is_captured_with_its_identity():
    spec = RunSpec("pso", ExplodingProblem(), run=2, seed=5, config=PSOConfig(evaluations=50))
    result = execute_run(spec)

    assert result.failed
    assert "function=exploding" in result.error
    assert "FloatingPointError" in result.error
    assert result.best_value is None


def test_results_log_is_appended(tmp_path):
    path = str(tmp_path / "nested" / "log.jsonl")
    spec = RunSpec("pso", make_problem("sphere", 2, 1), run=1, seed=1,
                   config=PSOConfig(evaluations=40))
    result = execute_run(spec)

    append_result(path, result)
    append_result(path, result)

    lines = read_results(path)
    assert len(lines) == 2
    assert lines[0]["identity"]["seed"] == 1
    assert lines[0]["best_value"] == pytest.approx(result.best_value)


# =============================================================================
# Whole experiments
# =============================================================================

def test_run_experiment_in_process(tmp_path):
    config = small_config(tmp_path)
    results = run_experiment(config, show_progress=False)

    assert len(results) == 4
    assert not any(r.failed for r in results)
    assert len({r.identity["seed"] for r in results}) == 4

    lines = read_results(config.output)
    assert len(lines) == 4
    assert all(line["records"] for line in lines)


def test_worker_processes_give_same_results(tmp_path):
    config = small_config(tmp_path)
    sequential = run_experiment(config, processes=1, output="", show_progress=False)
    parallel = run_experiment(config, processes=2, output="", show_progress=False)

    assert [r.identity for r in parallel] == [r.identity for r in sequential]
    assert [r.best_value for r in parallel] == [r.best_value for r in sequential]


def test_failed_runs_do_not_stop_the_experiment(tmp_path):
    # Not validated, so the invalid grid point only fails at run time
    config = small_config(tmp_path, grid={"population_size": [1, 10]})
    results = run_experiment(config, show_progress=False)

    assert len(results) == 8
    failed = [r for r in results if r.failed]
    assert len(failed) == 4
    assert all(r.identity["population_size"] == 1 for r in failed)
    assert len(read_results(config.output)) == 8


def test_empty_output_disables_results_log(tmp_path):
    config = small_config(tmp_path, runs=1, instances=1)
    run_experiment(config, output="", show_progress=True)
    assert not (tmp_path / "results").exists()
