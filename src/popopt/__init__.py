"""
Population-based optimization pipelines.

Particle swarm and SHADE algorithms are assembled from small stages and
condition predicates, interpreted by a pipeline engine against a per-run
optimization state, and benchmarked on the BBOB function suite.
"""

from .algorithms import (
    basic_pso,
    behaviour_pso,
    build_algorithm,
    diversified_pso,
    random_restart_pso,
    restart_pso,
    shade,
)
from .benchmarks import BenchmarkProblem, BenchmarkSuite, make_problem
from .config import (
    DiversificationConfig,
    ExperimentConfig,
    PSOConfig,
    SHADEConfig,
    load_config,
)
from .errors import (
    ConfigurationError,
    DegenerateStateError,
    EvaluationError,
    OptimizationError,
    PipelineError,
    RunError,
)
from .experiment import optimize, run_experiment
from .pipeline import branch, branch_optional, loop_while, run, sequence
from .problem import Evaluator
from .state import OptimizationState

__version__ = "0.1.0"

__all__ = [
    'basic_pso',
    'behaviour_pso',
    'build_algorithm',
    'diversified_pso',
    'random_restart_pso',
    'restart_pso',
    'shade',
    'BenchmarkProblem',
    'BenchmarkSuite',
    'make_problem',
    'DiversificationConfig',
    'ExperimentConfig',
    'PSOConfig',
    'SHADEConfig',
    'load_config',
    'ConfigurationError',
    'DegenerateStateError',
    'EvaluationError',
    'OptimizationError',
    'PipelineError',
    'RunError',
    'optimize',
    'run_experiment',
    'branch',
    'branch_optional',
    'loop_while',
    'run',
    'sequence',
    'Evaluator',
    'OptimizationState',
]
