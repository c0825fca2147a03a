"""
Diversification (exploration) and restart stages for particle swarms.

A diversification step has two halves. A mechanism generates ``new_pop``
fresh candidates into ``state.offspring``; a replacement operator then
chooses which particles those candidates overwrite. The assembly runs
bound correction, evaluation and best tracking afterwards, exactly as
after a normal swarm step.

Mechanisms are open-ended: anything with a ``generate(state, count)``
method returning an :class:`~popopt.state.Offspring` can be plugged into
:class:`Diversify`. Three are provided:

* :class:`Explosion` samples uniformly in a ``v_max`` box around a centre.
* :class:`NuclearReaction` runs a Gaussian walk with halving step size
  from randomly chosen nuclei of the population.
* :class:`SteppedLeader` samples around a leader with a per-dimension
  spread equal to its distance to another particle.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import numpy as np

from .errors import ConfigurationError, DegenerateStateError
from .operators import Evaluate, RandomSpread, UpdateBestIndividual, current_best
from .pipeline import sequence
from .state import Offspring
from .swarm import ParticleSwarmInit, random_velocities

logger = logging.getLogger(__name__)


def _parse(enum_cls, value, what):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ConfigurationError(
            f"Unknown {what} '{value}', expected one of {[m.value for m in enum_cls]}"
        ) from None


class CenterStrategy(Enum):
    BEST = "best"
    RANDOM_NEW = "random_new"
    RANDOM_SOLUTION = "random_solution"

    @classmethod
    def parse(cls, value):
        return _parse(cls, value, "center strategy")

    def select(self, state):
        """Position around which new candidates are generated."""
        if self is CenterStrategy.BEST:
            return current_best(state).position.copy()
        if self is CenterStrategy.RANDOM_NEW:
            return state.lower + state.rng.random(state.lower.size) * (state.upper - state.lower)
        population = state.require_population()
        return population.positions[state.rng.integers(population.size)].copy()


class ReplacementStrategy(Enum):
    BEST = "best"
    WORST = "worst"
    RANDOM = "random"

    @classmethod
    def parse(cls, value):
        return _parse(cls, value, "replacement strategy")

    def select(self, population, count, rng):
        """Indices of the ``count`` individuals to overwrite."""
        if self is ReplacementStrategy.BEST:
            return population.ranking()[:count]
        if self is ReplacementStrategy.WORST:
            return population.ranking()[::-1][:count]
        return rng.choice(population.size, size=count, replace=False)


class TerminationType(Enum):
    ITERATIONS = "iterations"
    SCALE = "scale"

    @classmethod
    def parse(cls, value):
        return _parse(cls, value, "termination type")


class DiversificationMechanism(Protocol):
    def generate(self, state, count) -> Offspring:
        ...


@dataclass(frozen=True, eq=False)
class Explosion:
    """
    Uniform samples in ``[center - v_max, center + v_max]``.

    Velocities of the new candidates are drawn uniformly from
    ``[-v_max, v_max]``.
    """

    v_max: float
    center: CenterStrategy = CenterStrategy.BEST

    def __post_init__(self):
        object.__setattr__(self, "center", CenterStrategy.parse(self.center))
        if not self.v_max > 0:
            raise ConfigurationError(f"v_max must be positive, got {self.v_max}")

    def generate(self, state, count):
        center = self.center.select(state)
        dimension = center.size
        positions = center + state.rng.uniform(-self.v_max, self.v_max, (count, dimension))
        velocities = random_velocities(state.rng, count, dimension, self.v_max)
        return Offspring(positions, velocities, {"center": center})


@dataclass(frozen=True, eq=False)
class NuclearReaction:
    """
    Gaussian walk from random nuclei.

    Each candidate starts at a randomly chosen particle and takes Gaussian
    steps whose standard deviation starts at ``mu`` times the range of each
    dimension and halves after every step.

    Parameters
    ----------
    mu : float
        Initial step size as a fraction of the range
    termination_type : TerminationType
        ``ITERATIONS`` takes exactly ``termination_value`` steps; ``SCALE``
        stops once the step size fraction drops below
        ``10 ** -termination_value``
    termination_value : int
        Step count or scale exponent
    """

    mu: float = 0.1
    termination_type: TerminationType = TerminationType.ITERATIONS
    termination_value: int = 5

    def __post_init__(self):
        object.__setattr__(
            self, "termination_type", TerminationType.parse(self.termination_type)
        )
        if not self.mu > 0:
            raise ConfigurationError(f"mu must be positive, got {self.mu}")
        if self.termination_value < 1:
            raise ConfigurationError(
                f"termination_value must be >= 1, got {self.termination_value}"
            )

    def steps(self):
        if self.termination_type is TerminationType.ITERATIONS:
            return self.termination_value
        # Halvings until mu * 2**-k < 10**-termination_value
        threshold = 10.0 ** -self.termination_value
        if self.mu < threshold:
            return 1
        return int(np.floor(np.log2(self.mu / threshold))) + 1

    def generate(self, state, count):
        population = state.require_population()
        width = state.upper - state.lower
        nuclei = state.rng.integers(population.size, size=count)
        positions = population.positions[nuclei].copy()

        steps = self.steps()
        scale = self.mu
        for _ in range(steps):
            positions += state.rng.normal(0.0, 1.0, positions.shape) * (scale * width)
            scale /= 2.0

        return Offspring(positions, None, {"nuclei": nuclei, "steps": steps})


class Leader(Enum):
    BEST = "best"
    RANDOM = "random"

    @classmethod
    def parse(cls, value):
        return _parse(cls, value, "leader")


@dataclass(frozen=True, eq=False)
class SteppedLeader:
    """
    Candidates ``leader + N(0, |leader - x_r|)`` per dimension, where ``x_r``
    is a particle chosen at random for every candidate.
    """

    leader: Leader = Leader.BEST

    def __post_init__(self):
        object.__setattr__(self, "leader", Leader.parse(self.leader))

    def generate(self, state, count):
        population = state.require_population()
        if self.leader is Leader.BEST:
            leader = current_best(state).position
        else:
            leader = population.positions[state.rng.integers(population.size)]

        others = population.positions[state.rng.integers(population.size, size=count)]
        spread = np.abs(leader - others)
        positions = leader + state.rng.normal(0.0, 1.0, spread.shape) * spread
        return Offspring(positions, None, {"leader": leader.copy()})


@dataclass(frozen=True, eq=False)
class Diversify:
    """Stage writing ``new_pop`` candidates of ``mechanism`` to ``state.offspring``."""

    mechanism: DiversificationMechanism
    new_pop: int

    def __post_init__(self):
        if self.new_pop < 1:
            raise ConfigurationError(f"new_pop must be >= 1, got {self.new_pop}")

    @property
    def name(self):
        return f"Diversify[{type(self.mechanism).__name__}]"

    def __call__(self, state):
        state.offspring = self.mechanism.generate(state, self.new_pop)
        logger.info(
            "diversification (%s) at iteration %d, evaluations %d",
            type(self.mechanism).__name__, state.iteration, state.evaluations,
        )


@dataclass(frozen=True, eq=False)
class ReplaceN:
    """
    Merge ``state.offspring`` into the swarm.

    The selected particles take the new positions, become unevaluated and
    get new velocities (the mechanism's when it provides any, otherwise
    uniform in ``[-v_max, v_max]``). Their personal best is reset to the new
    position so the old attractor does not pull them straight back.
    """

    strategy: ReplacementStrategy
    new_pop: int
    v_max: float

    def __post_init__(self):
        object.__setattr__(self, "strategy", ReplacementStrategy.parse(self.strategy))
        if self.new_pop < 1:
            raise ConfigurationError(f"new_pop must be >= 1, got {self.new_pop}")
        if not self.v_max > 0:
            raise ConfigurationError(f"v_max must be positive, got {self.v_max}")

    @property
    def name(self):
        return f"ReplaceN[{self.strategy.value}]"

    def __call__(self, state):
        population = state.require_population()
        offspring = state.offspring
        if offspring is None:
            raise DegenerateStateError("ReplaceN requires offspring from a diversification stage")

        count = min(self.new_pop, len(offspring.positions), population.size)
        targets = self.strategy.select(population, count, state.rng)

        population.positions[targets] = offspring.positions[:count]
        population.invalidate(targets)

        swarm = state.swarm
        if swarm is not None:
            if offspring.velocities is not None:
                swarm.velocities[targets] = offspring.velocities[:count]
            else:
                swarm.velocities[targets] = random_velocities(
                    state.rng, count, population.dimension, self.v_max
                )
            swarm.best_positions[targets] = population.positions[targets]
            swarm.best_objectives[targets] = np.inf

        state.offspring = None


def full_restart(population_size, v_max):
    """
    Reinitialize the whole swarm: new random positions and velocities,
    evaluated, with personal bests reset. The run's global best is kept.
    """
    return sequence(
        RestartNotice(),
        RandomSpread(population_size),
        Evaluate(),
        UpdateBestIndividual(),
        ParticleSwarmInit(v_max),
    )


@dataclass(frozen=True, eq=False)
class RestartNotice:
    def __call__(self, state):
        logger.info(
            "restart at iteration %d, evaluations %d", state.iteration, state.evaluations
        )
