"""
Tests for configuration sections and config files.

Testing Framework: pytest
"""

import json

import pytest

from popopt.benchmarks import make_problem
from popopt.config import (
    EVALUATIONS_PER_DIMENSION,
    DiversificationConfig,
    ExperimentConfig,
    PSOConfig,
    SHADEConfig,
    load_config,
)
from popopt.errors import ConfigurationError


def test_default_sections_are_valid():
    PSOConfig().validate()
    SHADEConfig().validate()
    DiversificationConfig().validate()
    ExperimentConfig().validate()


def test_pso_resolve_fills_problem_defaults():
    problem = make_problem("sphere", 4)
    resolved = PSOConfig().resolve(problem)

    assert resolved.evaluations == EVALUATIONS_PER_DIMENSION * 4
    assert resolved.v_max == pytest.approx(5.0)


def test_resolve_keeps_explicit_values():
    resolved = PSOConfig(evaluations=123, v_max=0.5).resolve(make_problem("sphere", 2))
    assert resolved.evaluations == 123
    assert resolved.v_max == 0.5


def test_shade_resolve_fills_problem_defaults():
    resolved = SHADEConfig(population_size=40).resolve(make_problem("rastrigin", 3))

    assert resolved.evaluations == EVALUATIONS_PER_DIMENSION * 3
    assert resolved.p_min == pytest.approx(2.0 / 40)
    assert resolved.max_archive == 40


def test_resolve_does_not_modify_original():
    config = SHADEConfig()
    config.resolve(make_problem("sphere", 2))
    assert config.p_min is None
    assert config.max_archive is None


@pytest.mark.parametrize(
    "section, data",
    [
        (PSOConfig, {"inertia": 0.5}),
        (SHADEConfig, {"memory": 10}),
        (PSOConfig, {"diversification": {"trigger": "diversity"}}),
        (ExperimentConfig, {"pso": {"speed": 1}}),
    ],
)
def test_unknown_option_is_rejected(section, data):
    with pytest.raises(ConfigurationError, match="Unknown"):
        section.from_dict(data)


@pytest.mark.parametrize(
    "factory",
    [
        lambda: PSOConfig(population_size=1),
        lambda: PSOConfig(v_max=-1.0),
        lambda: PSOConfig(boundary="reflect"),
        lambda: PSOConfig(diversification=DiversificationConfig(new_pop=11)),
        lambda: SHADEConfig(population_size=5, y=2),
        lambda: SHADEConfig(cr=1.5),
        lambda: SHADEConfig(f=0.0),
        lambda: SHADEConfig(p_min=0.0),
        lambda: SHADEConfig(crossover="arithmetic"),
        lambda: DiversificationConfig(condition="stagnation"),
        lambda: DiversificationConfig(mechanism="mutation"),
        lambda: DiversificationConfig(condition="periodic", parameter=2.5),
        lambda: DiversificationConfig(window=1),
        lambda: DiversificationConfig(replacement="oldest"),
        lambda: DiversificationConfig(termination_type="forever"),
    ],
)
def test_out_of_range_values_are_rejected(factory):
    with pytest.raises(ConfigurationError):
        factory().validate()


def test_nested_sections_are_parsed():
    config = ExperimentConfig.from_dict(
        {
            "algorithm": "diversified_pso",
            "pso": {
                "evaluations": 500,
                "diversification": {"condition": "periodic", "parameter": 10},
            },
        }
    )
    assert isinstance(config.pso.diversification, DiversificationConfig)
    assert config.pso.diversification.parameter == 10
    assert config.algorithm_config is config.pso


def test_diversified_algorithms_need_a_diversification_section():
    with pytest.raises(ConfigurationError, match="diversification"):
        ExperimentConfig.from_dict({"algorithm": "restart_pso"})


@pytest.mark.parametrize(
    "grid",
    [
        {"momentum": [0.1]},
        {"w": []},
        {"w": 0.5},
        {"population_size": [10, 1]},
        {"diversification": [None]},
    ],
)
def test_invalid_grid_is_rejected(grid):
    with pytest.raises(ConfigurationError):
        ExperimentConfig.from_dict({"algorithm": "pso", "grid": grid})


def test_grid_is_checked_against_the_selected_algorithm():
    config = ExperimentConfig.from_dict({"algorithm": "shade", "grid": {"history": [5, 50]}})
    assert config.algorithm_config is config.shade

    with pytest.raises(ConfigurationError):
        ExperimentConfig.from_dict({"algorithm": "pso", "grid": {"history": [5, 50]}})


def test_grid_combinations_are_validated_together():
    # Each value is valid alone; together the population is below the y=3 floor
    grid = {"y": [3], "population_size": [5]}
    with pytest.raises(ConfigurationError, match="population"):
        ExperimentConfig.from_dict({"algorithm": "shade", "grid": grid})

    ExperimentConfig.from_dict({"algorithm": "shade", "grid": {"y": [3], "population_size": [8]}})


def test_config_survives_dict_conversion():
    config = ExperimentConfig.from_dict(
        {
            "algorithm": "diversified_pso",
            "functions": ["sphere", "rastrigin"],
            "grid": {"w": [0.5, 0.7]},
            "pso": {"diversification": {"mechanism": "nuclear_reaction"}},
        }
    )
    assert ExperimentConfig.from_dict(config.to_dict()) == config


# =============================================================================
# Config files
# =============================================================================

def test_load_config_reads_json_file(tmp_path):
    path = tmp_path / "experiment.json"
    path.write_text(json.dumps({"algorithm": "shade", "dimensions": [2, 5], "runs": 3}))

    config = load_config(path)

    assert config.algorithm == "shade"
    assert config.dimensions == [2, 5]
    assert config.runs == 3


def test_missing_config_file_is_a_configuration_error(tmp_path):
    with pytest.raises(ConfigurationError, match="not found"):
        load_config(tmp_path / "missing.json")


def test_malformed_config_file_is_a_configuration_error(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text('{"algorithm": "pso",')
    with pytest.raises(ConfigurationError, match="not valid JSON"):
        load_config(path)
