r"""
Global-best particle swarm stages.

The velocity update is defined as:

.. math::

   v_{ij}(t + 1) = w * v_{ij}(t) + c_{1}r_{1j}(t)[y_{ij}(t) − x_{ij}(t)]
                   + c_{2}r_{2j}(t)[\hat{y}_{j}(t) − x_{ij}(t)]

followed by clamping to :math:`[-v_{max}, v_{max}]` and the position update
:math:`x_{i}(t+1) = x_{i}(t) + v_{i}(t+1)`. Here :math:`y_i` is the personal
best of particle :math:`i` and :math:`\hat{y}` the global best.

Evaluation, bound correction and best tracking are separate stages that an
assembly runs right after :class:`ParticleVelocitiesUpdate`.
"""

from dataclasses import dataclass

import numpy as np

from .errors import ConfigurationError, DegenerateStateError
from .operators import current_best
from .state import SwarmMemory


def _check_v_max(v_max):
    if not v_max > 0:
        raise ConfigurationError(f"v_max must be positive, got {v_max}")


def random_velocities(rng, n, dimension, v_max):
    return rng.uniform(-v_max, v_max, (n, dimension))


@dataclass(frozen=True, eq=False)
class ParticleSwarmInit:
    """
    Attach velocities and personal bests to an evaluated population.

    Velocities are drawn uniformly from ``[-v_max, v_max]``; personal bests
    start at the current positions.
    """

    v_max: float

    def __post_init__(self):
        _check_v_max(self.v_max)

    def __call__(self, state):
        population = state.require_population()
        state.swarm = SwarmMemory(
            velocities=random_velocities(
                state.rng, population.size, population.dimension, self.v_max
            ),
            best_positions=population.positions.copy(),
            best_objectives=np.where(
                population.evaluated, population.objectives, np.inf
            ),
        )


@dataclass(frozen=True, eq=False)
class ParticleVelocitiesUpdate:
    """
    Move every particle by its updated velocity.

    Parameters
    ----------
    w : float
        Inertia weight
    c1 : float
        Cognitive coefficient, attraction to the personal best
    c2 : float
        Social coefficient, attraction to the global best
    v_max : float
        Velocity cap per dimension
    """

    w: float
    c1: float
    c2: float
    v_max: float

    def __post_init__(self):
        _check_v_max(self.v_max)
        if self.c1 < 0 or self.c2 < 0:
            raise ConfigurationError(
                f"c1 and c2 must be non-negative, got c1={self.c1}, c2={self.c2}"
            )

    def __call__(self, state):
        population = state.require_population()
        swarm = state.swarm
        if swarm is None:
            raise DegenerateStateError("ParticleVelocitiesUpdate requires ParticleSwarmInit")

        x = population.positions
        shape = x.shape
        r1 = state.rng.random(shape)
        r2 = state.rng.random(shape)
        global_best = current_best(state).position

        cognitive = self.c1 * r1 * (swarm.best_positions - x)
        social = self.c2 * r2 * (global_best - x)
        velocities = self.w * swarm.velocities + cognitive + social

        swarm.velocities = np.clip(velocities, -self.v_max, self.v_max)
        population.positions = x + swarm.velocities
        population.invalidate()


@dataclass(frozen=True, eq=False)
class ParticleSwarmUpdate:
    """Replace personal bests that were matched or improved by the current positions."""

    def __call__(self, state):
        population = state.require_population()
        swarm = state.swarm
        if swarm is None:
            raise DegenerateStateError("ParticleSwarmUpdate requires ParticleSwarmInit")

        improved = population.evaluated & (population.objectives <= swarm.best_objectives)
        swarm.best_positions[improved] = population.positions[improved]
        swarm.best_objectives[improved] = population.objectives[improved]
