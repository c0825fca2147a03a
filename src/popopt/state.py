"""
Data structures threaded through an optimization pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
from deap import tools

from .errors import ConfigurationError, DegenerateStateError


class RollingBuffer:
    """
    Fixed-size rolling buffer for bounded history tracking.

    The oldest entry is discarded once the buffer is full.
    """

    def __init__(self, max_size: int):
        if max_size < 1:
            raise ConfigurationError(f"max_size must be >= 1, got {max_size}")

        self.buffer = []
        self.max_size = max_size

    def append(self, value):
        self.buffer.append(value)

        if len(self.buffer) > self.max_size:
            self.buffer.pop(0)

    def clear(self):
        self.buffer.clear()

    @property
    def full(self):
        return len(self.buffer) == self.max_size

    def __len__(self):
        return len(self.buffer)

    def __getitem__(self, index):
        return self.buffer[index]

    def __iter__(self):
        return iter(self.buffer)

    def to_list(self):
        return list(self.buffer)


@dataclass
class Individual:
    """A position together with its objective value."""

    position: np.ndarray
    objective: float


@dataclass
class Population:
    """
    Fixed-size set of candidate solutions.

    Objective values are NaN until the individual has been evaluated.
    """

    positions: np.ndarray      # (N, D)
    objectives: np.ndarray     # (N,)

    @classmethod
    def unevaluated(cls, positions):
        positions = np.array(positions, dtype=np.float64)
        return cls(positions, np.full(len(positions), np.nan))

    @property
    def size(self):
        return self.positions.shape[0]

    @property
    def dimension(self):
        return self.positions.shape[1]

    @property
    def evaluated(self):
        return ~np.isnan(self.objectives)

    def invalidate(self, indices=None):
        """Mark individuals as needing evaluation (all when ``indices`` is None)."""
        if indices is None:
            self.objectives[:] = np.nan
        else:
            self.objectives[indices] = np.nan

    def ranking(self):
        """Indices ordered from best to worst objective, unevaluated last."""
        return np.argsort(np.where(self.evaluated, self.objectives, np.inf), kind="stable")

    def best_index(self):
        if not np.any(self.evaluated):
            raise DegenerateStateError("Population has no evaluated individual")
        return int(np.nanargmin(self.objectives))

    def individual(self, index):
        return Individual(self.positions[index].copy(), float(self.objectives[index]))

    def copy(self):
        return Population(self.positions.copy(), self.objectives.copy())


@dataclass
class SwarmMemory:
    """Velocities and personal bests of a particle swarm."""

    velocities: np.ndarray         # (N, D)
    best_positions: np.ndarray     # (N, D)
    best_objectives: np.ndarray    # (N,)


class AdaptationMemory:
    """
    Circular history of successful (F, CR) pairs used by SHADE.

    Parameters
    ----------
    size : int
        Number of slots H
    f_init : float
        Initial scale factor in every slot
    cr_init : float
        Initial crossover rate in every slot
    """

    def __init__(self, size, f_init=0.5, cr_init=0.5):
        if size < 1:
            raise ConfigurationError(f"history size must be >= 1, got {size}")
        if not 0.0 < f_init <= 1.0:
            raise ConfigurationError(f"initial F must be in (0, 1], got {f_init}")
        if not 0.0 <= cr_init <= 1.0:
            raise ConfigurationError(f"initial CR must be in [0, 1], got {cr_init}")

        self.f = np.full(size, float(f_init))
        self.cr = np.full(size, float(cr_init))
        self.cursor = 0

    @property
    def size(self):
        return self.f.size

    def __len__(self):
        return self.size

    def write(self, f, cr):
        """Store a pair in the current slot and advance the cursor."""
        self.f[self.cursor] = f
        self.cr[self.cursor] = cr
        self.cursor = (self.cursor + 1) % self.size


class Archive:
    """
    Bounded pool of discarded parent positions.

    When full, a uniformly random entry is evicted to make room.
    """

    def __init__(self, capacity, dimension):
        if capacity < 1:
            raise ConfigurationError(f"archive capacity must be >= 1, got {capacity}")

        self.capacity = capacity
        self.entries = np.empty((0, dimension))

    def __len__(self):
        return self.entries.shape[0]

    def push(self, position, rng):
        position = np.asarray(position, dtype=np.float64)[np.newaxis, :]
        if len(self) < self.capacity:
            self.entries = np.vstack([self.entries, position])
        else:
            self.entries[rng.integers(len(self))] = position[0]


@dataclass
class ShadeMemory:
    """
    SHADE bookkeeping for one run.

    The per-generation arrays are filled by the adaptation and mutation
    stages and consumed by the archive, history and replacement stages.
    """

    adaptation: AdaptationMemory
    archive: Archive
    f: Optional[np.ndarray] = None                  # (N,) sampled scale factors
    cr: Optional[np.ndarray] = None                 # (N,) sampled crossover rates
    parents: Optional[Population] = None


@dataclass
class Offspring:
    """Candidates produced by a diversification mechanism."""

    positions: np.ndarray
    velocities: Optional[np.ndarray] = None
    info: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MeasureValue:
    """A measured quantity and its value normalized to [0, 1]."""

    value: float
    normalized: float


@dataclass(eq=False)
class OptimizationState:
    """
    Mutable record owned by a single run.

    Attributes
    ----------
    evaluator : Evaluator
        Objective evaluator of the run, counts evaluations
    rng : numpy.random.Generator
        Random source of the run
    population : Population
        Current population, None until initialized
    swarm : SwarmMemory
        PSO velocities and personal bests, None for non-swarm algorithms
    shade : ShadeMemory
        SHADE adaptation memory and archive, None for non-SHADE algorithms
    best : Individual
        Best individual seen over the whole run
    iteration : int
        Number of the loop pass being executed, 0 during initialization
    measures : dict
        Latest diversity, improvement and step-size measures by name
    offspring : Offspring
        Candidates waiting to be merged by a replacement operator
    logbook : deap.tools.Logbook
        Metric records appended by the logger stage
    log_config : LogConfig
        Schedule and extractors used by the logger stage
    """

    evaluator: Any
    rng: np.random.Generator
    population: Optional[Population] = None
    swarm: Optional[SwarmMemory] = None
    shade: Optional[ShadeMemory] = None
    best: Optional[Individual] = None
    iteration: int = 0
    measures: Dict[str, Any] = field(default_factory=dict)
    offspring: Optional[Offspring] = None
    logbook: tools.Logbook = field(default_factory=tools.Logbook)
    log_config: Any = None
    component_memory: Dict[int, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def create(cls, evaluator, seed, log_config=None):
        """Fresh state for a run with its own seeded random source."""
        return cls(evaluator=evaluator, rng=make_rng(seed), log_config=log_config)

    @property
    def evaluations(self):
        return self.evaluator.evaluations

    @property
    def lower(self):
        return self.evaluator.lower

    @property
    def upper(self):
        return self.evaluator.upper

    @property
    def best_objective_value(self):
        return None if self.best is None else self.best.objective

    def require_population(self):
        if self.population is None:
            raise DegenerateStateError("Stage requires an initialized population")
        return self.population

    def memory_for(self, component):
        """
        Private scratch dict of a pipeline component for this run.

        Components stay plain configuration data; whatever they need to
        remember between calls (history windows, previous positions) lives
        here and dies with the run.
        """
        return self.component_memory.setdefault(id(component), {})


def make_rng(seed):
    """Seeded random source; the same seed always yields the same stream."""
    return np.random.default_rng(seed)
