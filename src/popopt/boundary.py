"""
Boundary correction of infeasible coordinates.

Three policies are available:

* ``SATURATION``: clamp to the violated bound and zero the velocity
  component.
* ``COSINE``: scale the velocity component by ``-cos(theta)`` and clamp
  the position to the bound. ``theta`` is fixed when configured, otherwise
  drawn uniformly from ``[0, pi/2)`` per violation.
* ``ONE_TAILED_NORMAL``: discard the coordinate and redraw it from a normal
  distribution centred on the violated bound, truncated to the feasible
  side. The velocity component is zeroed.

Coordinates that are already feasible are never touched.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np
from scipy.stats import truncnorm

from .errors import ConfigurationError


class BoundaryPolicy(Enum):
    SATURATION = "saturation"
    COSINE = "cosine"
    ONE_TAILED_NORMAL = "one_tailed_normal"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(
                f"Unknown boundary policy '{value}', expected one of "
                f"{[p.value for p in cls]}"
            ) from None


def correct_bounds(positions, lower, upper, policy, rng, velocities=None,
                   angle=None, scale=0.1):
    """
    Correct infeasible coordinates in place.

    Parameters
    ----------
    positions : numpy.ndarray
        Positions of shape (N, D), modified in place
    lower, upper : numpy.ndarray
        Bounds of shape (D,)
    policy : BoundaryPolicy
        Correction policy
    rng : numpy.random.Generator
        Random source of the run
    velocities : numpy.ndarray, optional
        Velocities of shape (N, D), modified in place when given
    angle : float, optional
        Fixed reflection angle for ``COSINE``
    scale : float
        Standard deviation of the ``ONE_TAILED_NORMAL`` redraw as a
        fraction of the dimension's range

    Returns
    -------
    numpy.ndarray
        Boolean mask of the coordinates that were corrected
    """
    below = positions < lower
    above = positions > upper
    violated = below | above
    if not np.any(violated):
        return violated

    if policy is BoundaryPolicy.SATURATION:
        np.clip(positions, lower, upper, out=positions)
        if velocities is not None:
            velocities[violated] = 0.0

    elif policy is BoundaryPolicy.COSINE:
        if velocities is not None:
            if angle is None:
                theta = rng.uniform(0.0, np.pi / 2.0, size=int(violated.sum()))
            else:
                theta = angle
            velocities[violated] *= -np.cos(theta)
        np.clip(positions, lower, upper, out=positions)

    elif policy is BoundaryPolicy.ONE_TAILED_NORMAL:
        rows, cols = np.nonzero(violated)
        width = (upper - lower)[cols]
        sigma = scale * width
        # Truncate at the opposite bound so the redraw is always feasible
        offsets = truncnorm.rvs(
            0.0, width / sigma, loc=0.0, scale=sigma, random_state=rng
        )
        offsets = np.minimum(offsets, width)
        from_lower = below[rows, cols]
        positions[rows, cols] = np.where(
            from_lower, lower[cols] + offsets, upper[cols] - offsets
        )
        if velocities is not None:
            velocities[violated] = 0.0

    return violated


@dataclass(frozen=True, eq=False)
class CorrectBounds:
    """Stage applying :func:`correct_bounds` to the population (and swarm velocities)."""

    policy: BoundaryPolicy = BoundaryPolicy.SATURATION
    angle: Optional[float] = None
    scale: float = 0.1

    def __post_init__(self):
        object.__setattr__(self, "policy", BoundaryPolicy.parse(self.policy))
        if not self.scale > 0:
            raise ConfigurationError(f"scale must be positive, got {self.scale}")

    @property
    def name(self):
        return f"CorrectBounds[{self.policy.value}]"

    def __call__(self, state):
        population = state.require_population()
        velocities = state.swarm.velocities if state.swarm is not None else None
        if velocities is not None and velocities.shape != population.positions.shape:
            velocities = None

        corrected = correct_bounds(
            population.positions,
            state.lower,
            state.upper,
            self.policy,
            state.rng,
            velocities=velocities,
            angle=self.angle,
            scale=self.scale,
        )
        population.invalidate(np.any(corrected, axis=1))


def saturation():
    return CorrectBounds(BoundaryPolicy.SATURATION)


def cosine_correction(angle=None):
    return CorrectBounds(BoundaryPolicy.COSINE, angle=angle)


def one_tailed_normal_correction(scale=0.1):
    return CorrectBounds(BoundaryPolicy.ONE_TAILED_NORMAL, scale=scale)
