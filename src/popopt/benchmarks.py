"""
BBOB benchmark problems backed by IOHexperimenter (``ioh``).

A :class:`BenchmarkProblem` is a small, picklable record of one BBOB
function instance: function name, instance, bounds, optimum. The ``ioh``
problem itself is built lazily and cached per process, so the record can
be handed to worker processes and every worker evaluates against its own
copy.

The suite is immutable after construction and can be shared by all
worker processes of an experiment.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Tuple

import ioh
import numpy as np

from .errors import ConfigurationError

# BBOB function ids (Hansen et al., 2009)
FUNCTIONS: Dict[str, int] = {
    "sphere": 1,
    "ellipsoid": 2,
    "rastrigin": 3,
    "bueche_rastrigin": 4,
    "linear_slope": 5,
    "attractive_sector": 6,
    "step_ellipsoid": 7,
    "rosenbrock": 8,
    "rosenbrock_rotated": 9,
    "ellipsoid_rotated": 10,
    "discus": 11,
    "bent_cigar": 12,
    "sharp_ridge": 13,
    "different_powers": 14,
    "rastrigin_rotated": 15,
    "weierstrass": 16,
    "schaffers10": 17,
    "schaffers1000": 18,
    "griewank_rosenbrock": 19,
    "schwefel": 20,
    "gallagher101": 21,
    "gallagher21": 22,
    "katsuura": 23,
    "lunacek_bi_rastrigin": 24,
}


@lru_cache(maxsize=None)
def bbob_problem(function_id, instance, dimension):
    """The ``ioh`` BBOB problem for one (function, instance, dimension), built once per process."""
    return ioh.get_problem(
        function_id,
        instance=instance,
        dimension=dimension,
        problem_class=ioh.ProblemClass.BBOB,
    )


@dataclass(frozen=True)
class BenchmarkProblem:
    """
    One instance of a BBOB function.

    Attributes
    ----------
    function : str
        Name of the function in :data:`FUNCTIONS`
    instance : int
        BBOB instance, >= 1
    lower_bounds, upper_bounds : tuple of float
        Feasible box reported by ``ioh``
    optimum_position : tuple of float
        Location of the optimum
    known_optimum : float
        Objective value at the optimum
    """

    function: str
    instance: int
    lower_bounds: Tuple[float, ...]
    upper_bounds: Tuple[float, ...]
    optimum_position: Tuple[float, ...]
    known_optimum: float

    @property
    def function_id(self):
        return FUNCTIONS[self.function]

    @property
    def name(self):
        return f"{self.function}_i{self.instance}_d{self.dimension}"

    @property
    def dimension(self):
        return len(self.lower_bounds)

    @property
    def lower(self):
        return np.array(self.lower_bounds)

    @property
    def upper(self):
        return np.array(self.upper_bounds)

    def evaluate(self, x):
        problem = bbob_problem(self.function_id, self.instance, self.dimension)
        return float(problem(np.asarray(x, dtype=np.float64)))


def make_problem(function, dimension, instance=1):
    """
    Build a benchmark problem.

    Parameters
    ----------
    function : str
        Name of the BBOB function
    dimension : int
        Number of decision variables
    instance : int
        BBOB instance; each instance moves the optimum and changes its value

    Returns
    -------
    BenchmarkProblem
    """
    if function not in FUNCTIONS:
        raise ConfigurationError(
            f"Unknown benchmark function '{function}', expected one of {sorted(FUNCTIONS)}"
        )
    if dimension < 1:
        raise ConfigurationError(f"dimension must be >= 1, got {dimension}")
    if instance < 1:
        raise ConfigurationError(f"instance must be >= 1, got {instance}")

    problem = bbob_problem(FUNCTIONS[function], instance, dimension)
    return BenchmarkProblem(
        function=function,
        instance=instance,
        lower_bounds=tuple(float(v) for v in problem.bounds.lb),
        upper_bounds=tuple(float(v) for v in problem.bounds.ub),
        optimum_position=tuple(float(v) for v in problem.optimum.x),
        known_optimum=float(problem.optimum.y),
    )


@dataclass(frozen=True)
class BenchmarkSuite:
    """
    Read-only collection of benchmark problems.

    Built once per process and handed to every worker.
    """

    functions: Tuple[str, ...]
    dimensions: Tuple[int, ...]
    instances: Tuple[int, ...]

    def __post_init__(self):
        for function in self.functions:
            if function not in FUNCTIONS:
                raise ConfigurationError(f"Unknown benchmark function '{function}'")

    def problems(self):
        """Yield every problem of the suite in function, dimension, instance order."""
        for function in self.functions:
            for dimension in self.dimensions:
                for instance in self.instances:
                    yield make_problem(function, dimension, instance)

    def __len__(self):
        return len(self.functions) * len(self.dimensions) * len(self.instances)
