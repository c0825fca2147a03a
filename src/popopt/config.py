"""
Configuration of algorithms and experiments.

Every section is a dataclass with a ``validate()`` method raising
:class:`~popopt.errors.ConfigurationError`. Sections are built from plain
dicts (``from_dict``) or from a JSON file (:func:`load_config`); unknown
keys are rejected. Defaults that depend on the problem (``v_max``,
``p_min``, ``max_archive``, ``evaluations``) stay ``None`` until
``resolve(problem)`` fills them in.
"""

import itertools
import json
import logging
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from .benchmarks import FUNCTIONS
from .boundary import BoundaryPolicy
from .diversification import CenterStrategy, Leader, ReplacementStrategy, TerminationType
from .errors import ConfigurationError
from .shade import CrossoverKind, minimum_population_size

logger = logging.getLogger(__name__)

EVALUATIONS_PER_DIMENSION = 10000

CONDITIONS = ("evaluations", "diversity", "periodic", "flat_history")
MECHANISMS = ("restart", "explosion", "nuclear_reaction", "stepped_leader")
ALGORITHMS = ("pso", "random_restart_pso", "restart_pso", "diversified_pso", "shade")


def _from_dict(cls, data, nested=None):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigurationError(f"{cls.__name__} expects a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {cls.__name__} option(s): {', '.join(unknown)}")

    values = dict(data)
    for key, section in (nested or {}).items():
        if key in values and values[key] is not None:
            values[key] = section.from_dict(values[key])
    config = cls(**values)
    config.validate()
    return config


def _check(condition, message):
    if not condition:
        raise ConfigurationError(message)


def _check_choice(value, choices, name):
    _check(value in choices, f"{name} must be one of {list(choices)}, got '{value}'")


@dataclass
class DiversificationConfig:
    """
    When and how a swarm is diversified.

    Attributes
    ----------
    condition : str
        ``evaluations``: best value stagnated for ``parameter`` evaluations;
        ``diversity``: normalized minimum individual distance below
        ``parameter``; ``periodic``: every ``parameter`` iterations;
        ``flat_history``: best value varied less than ``parameter`` over
        ``window`` iterations
    mechanism : str
        ``restart`` reinitializes the whole swarm, the others generate
        ``new_pop`` candidates merged with ``replacement``
    """

    condition: str = "diversity"
    parameter: float = 0.05
    window: int = 10
    mechanism: str = "explosion"
    new_pop: int = 5
    replacement: str = "worst"
    center: str = "best"
    mu: float = 0.1
    termination_type: str = "iterations"
    termination_value: int = 5
    leader: str = "best"

    @classmethod
    def from_dict(cls, data):
        return _from_dict(cls, data)

    def validate(self):
        _check_choice(self.condition, CONDITIONS, "condition")
        _check_choice(self.mechanism, MECHANISMS, "mechanism")
        _check(self.parameter > 0, f"parameter must be positive, got {self.parameter}")
        if self.condition in ("evaluations", "periodic"):
            _check(
                float(self.parameter).is_integer(),
                f"parameter of the '{self.condition}' condition must be a whole number, "
                f"got {self.parameter}",
            )
        _check(self.window >= 2, f"window must be >= 2, got {self.window}")
        _check(self.new_pop >= 1, f"new_pop must be >= 1, got {self.new_pop}")
        _check(self.mu > 0, f"mu must be positive, got {self.mu}")
        _check(
            self.termination_value >= 1,
            f"termination_value must be >= 1, got {self.termination_value}",
        )
        ReplacementStrategy.parse(self.replacement)
        CenterStrategy.parse(self.center)
        TerminationType.parse(self.termination_type)
        Leader.parse(self.leader)


@dataclass
class PSOConfig:
    """Particle swarm parameters; ``v_max`` defaults to half the range of the first dimension."""

    evaluations: Optional[int] = None
    population_size: int = 10
    w: float = 0.7
    c1: float = 1.5
    c2: float = 1.5
    v_max: Optional[float] = None
    boundary: str = "saturation"
    restart_interval: int = 100
    diversification: Optional[DiversificationConfig] = None

    @classmethod
    def from_dict(cls, data):
        return _from_dict(cls, data, {"diversification": DiversificationConfig})

    def validate(self):
        if self.evaluations is not None:
            _check(self.evaluations >= 1, f"evaluations must be >= 1, got {self.evaluations}")
        _check(
            self.population_size >= 2,
            f"population_size must be >= 2, got {self.population_size}",
        )
        _check(self.c1 >= 0 and self.c2 >= 0, f"c1 and c2 must be >= 0, got {self.c1}, {self.c2}")
        if self.v_max is not None:
            _check(self.v_max > 0, f"v_max must be positive, got {self.v_max}")
        _check(
            self.restart_interval >= 1,
            f"restart_interval must be >= 1, got {self.restart_interval}",
        )
        BoundaryPolicy.parse(self.boundary)
        if self.diversification is not None:
            self.diversification.validate()
            _check(
                self.diversification.new_pop <= self.population_size,
                f"new_pop ({self.diversification.new_pop}) must not exceed "
                f"population_size ({self.population_size})",
            )

    def resolve(self, problem):
        """Copy with the problem-dependent defaults filled in."""
        resolved = replace(
            self,
            evaluations=self.evaluations or EVALUATIONS_PER_DIMENSION * problem.dimension,
            v_max=self.v_max or float(problem.upper[0] - problem.lower[0]) / 2.0,
        )
        resolved.validate()
        return resolved


@dataclass
class SHADEConfig:
    """
    SHADE parameters.

    ``p_min`` defaults to ``2 / population_size`` and ``max_archive`` to
    ``population_size``. ``f`` and ``cr`` initialize every memory slot.
    """

    evaluations: Optional[int] = None
    population_size: int = 20
    y: int = 1
    p_min: Optional[float] = None
    max_archive: Optional[int] = None
    history: int = 10
    f: float = 0.5
    cr: float = 0.5
    crossover: str = "binomial"
    boundary: str = "cosine"

    @classmethod
    def from_dict(cls, data):
        return _from_dict(cls, data)

    def validate(self):
        if self.evaluations is not None:
            _check(self.evaluations >= 1, f"evaluations must be >= 1, got {self.evaluations}")
        _check(self.y >= 1, f"y must be >= 1, got {self.y}")
        floor = minimum_population_size(self.y)
        _check(
            self.population_size >= floor,
            f"population_size must be >= {floor} for y={self.y}, got {self.population_size}",
        )
        if self.p_min is not None:
            _check(0.0 < self.p_min <= 1.0, f"p_min must be in (0, 1], got {self.p_min}")
        if self.max_archive is not None:
            _check(self.max_archive >= 1, f"max_archive must be >= 1, got {self.max_archive}")
        _check(self.history >= 1, f"history must be >= 1, got {self.history}")
        _check(0.0 < self.f <= 1.0, f"f must be in (0, 1], got {self.f}")
        _check(0.0 <= self.cr <= 1.0, f"cr must be in [0, 1], got {self.cr}")
        CrossoverKind.parse(self.crossover)
        BoundaryPolicy.parse(self.boundary)

    def resolve(self, problem):
        resolved = replace(
            self,
            evaluations=self.evaluations or EVALUATIONS_PER_DIMENSION * problem.dimension,
            p_min=self.p_min or min(1.0, 2.0 / self.population_size),
            max_archive=self.max_archive or self.population_size,
        )
        resolved.validate()
        return resolved


@dataclass
class ExperimentConfig:
    """
    A grid of runs.

    Attributes
    ----------
    algorithm : str
        One of :data:`ALGORITHMS`
    functions, dimensions : list
        Benchmark functions and dimensions
    instances : int
        Instances ``1..instances`` of every function
    runs : int
        Independent runs per instance
    grid : dict
        Algorithm option name to list of values; every combination is run
    processes : int
        Worker processes, 1 runs in-process
    output : str
        JSON-lines results log, appended to
    log_every : int
        Iterations between metric records
    """

    algorithm: str = "pso"
    functions: List[str] = field(default_factory=lambda: ["sphere"])
    dimensions: List[int] = field(default_factory=lambda: [2])
    instances: int = 5
    runs: int = 5
    grid: Dict[str, List[Any]] = field(default_factory=dict)
    processes: int = 1
    output: str = "results/results.jsonl"
    log_every: int = 1
    pso: PSOConfig = field(default_factory=PSOConfig)
    shade: SHADEConfig = field(default_factory=SHADEConfig)

    @classmethod
    def from_dict(cls, data):
        return _from_dict(cls, data, {"pso": PSOConfig, "shade": SHADEConfig})

    @property
    def algorithm_config(self):
        return self.shade if self.algorithm == "shade" else self.pso

    def validate(self):
        _check_choice(self.algorithm, ALGORITHMS, "algorithm")
        _check(len(self.functions) > 0, "functions must not be empty")
        for function in self.functions:
            _check_choice(function, sorted(FUNCTIONS), "function")
        _check(len(self.dimensions) > 0, "dimensions must not be empty")
        for dimension in self.dimensions:
            _check(dimension >= 1, f"dimension must be >= 1, got {dimension}")
        _check(self.instances >= 1, f"instances must be >= 1, got {self.instances}")
        _check(self.runs >= 1, f"runs must be >= 1, got {self.runs}")
        _check(self.processes >= 1, f"processes must be >= 1, got {self.processes}")
        _check(self.log_every >= 1, f"log_every must be >= 1, got {self.log_every}")

        if self.algorithm in ("restart_pso", "diversified_pso"):
            _check(
                self.pso.diversification is not None,
                f"{self.algorithm} requires a pso.diversification section",
            )

        section = self.algorithm_config
        known = {f.name for f in fields(section)}
        for key, values in self.grid.items():
            _check(key in known, f"grid option '{key}' is not a {type(section).__name__} option")
            _check(key != "diversification", "diversification cannot be swept in a grid")
            _check(
                isinstance(values, list) and len(values) > 0,
                f"grid option '{key}' needs a non-empty list of values",
            )
        for point in grid_points(self.grid):
            # Every grid point must be a valid configuration on its own
            replace(section, **point).validate()

        self.pso.validate()
        self.shade.validate()

    def to_dict(self):
        return asdict(self)


def grid_points(grid):
    """Every combination of the grid's option values, in sorted key order."""
    if not grid:
        return [{}]
    keys = sorted(grid)
    return [dict(zip(keys, values)) for values in itertools.product(*(grid[k] for k in keys))]


def load_config(path):
    """Read and validate an :class:`ExperimentConfig` from a JSON file."""
    path = Path(path)
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigurationError(f"Config file not found: {path}") from None
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Config file {path} is not valid JSON: {e}") from e

    config = ExperimentConfig.from_dict(data)
    logger.info("loaded %s config from %s", config.algorithm, path)
    return config
