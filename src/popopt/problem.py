"""
Objective evaluator and feasible-region handling.

A problem is anything exposing ``evaluate(x)``, ``lower``, ``upper``,
``dimension`` and optionally ``known_optimum`` and ``name``. The
:class:`Evaluator` wraps a problem for one run: it counts evaluations and
turns failures into :class:`~popopt.errors.EvaluationError` with enough
context to reproduce them.
"""

from typing import Optional, Protocol

import numpy as np

from .errors import ConfigurationError, EvaluationError


class Problem(Protocol):
    """Single-objective box-constrained minimization problem."""

    name: str
    lower: np.ndarray
    upper: np.ndarray
    known_optimum: Optional[float]

    @property
    def dimension(self) -> int:
        ...

    def evaluate(self, x: np.ndarray) -> float:
        ...


def validate_bounds(lower, upper):
    """
    Check and convert a pair of bound vectors.

    Parameters
    ----------
    lower : array-like
        Lower bound of every dimension
    upper : array-like
        Upper bound of every dimension

    Returns
    -------
    tuple of numpy.ndarray
        ``(lower, upper)`` as float arrays

    Raises
    ------
    ConfigurationError
        If the shapes differ, the region is empty or a bound is not finite
    """
    lower = np.asarray(lower, dtype=np.float64)
    upper = np.asarray(upper, dtype=np.float64)

    if lower.ndim != 1 or lower.shape != upper.shape:
        raise ConfigurationError(
            f"Bounds must be two vectors of equal length, got shapes "
            f"{lower.shape} and {upper.shape}"
        )
    if lower.size == 0:
        raise ConfigurationError("Bounds cannot be empty")
    if not (np.all(np.isfinite(lower)) and np.all(np.isfinite(upper))):
        raise ConfigurationError("Bounds must be finite")

    # Zero-width dimensions break every normalization downstream
    if np.any(upper <= lower):
        bad = np.where(upper <= lower)[0]
        raise ConfigurationError(
            f"Invalid bounds at dimensions {bad.tolist()}: upper must exceed lower"
        )

    return lower, upper


def normalize_positions(positions, lower, upper):
    """
    Map positions from the feasible region into the unit hypercube.

    Formula:
        normalized = (x - lower) / (upper - lower)
    """
    return (np.asarray(positions, dtype=np.float64) - lower) / (upper - lower)


class Evaluator:
    """
    Per-run handle on a problem that counts objective evaluations.

    Attributes
    ----------
    problem : Problem
        The wrapped problem
    evaluations : int
        Number of objective evaluations performed so far
    """

    def __init__(self, problem):
        self.problem = problem
        self.lower, self.upper = validate_bounds(problem.lower, problem.upper)
        self.evaluations = 0

    @property
    def dimension(self):
        return self.lower.size

    @property
    def known_optimum(self):
        return getattr(self.problem, "known_optimum", None)

    @property
    def name(self):
        return getattr(self.problem, "name", type(self.problem).__name__)

    def evaluate(self, position, generation=None, individual=None):
        """
        Evaluate a single position.

        Parameters
        ----------
        position : array-like
            Candidate solution of length ``dimension``
        generation : int, optional
            Iteration counter, reported on failure
        individual : int, optional
            Population index, reported on failure

        Returns
        -------
        float
            Objective value

        Raises
        ------
        EvaluationError
            On dimension mismatch, infeasible position, evaluator failure
            or a non-finite objective value
        """
        x = np.asarray(position, dtype=np.float64)

        if x.shape != (self.dimension,):
            raise EvaluationError(
                f"Position has shape {x.shape}, problem {self.name} expects "
                f"({self.dimension},)",
                generation=generation,
                individual=individual,
            )
        if np.any(x < self.lower) or np.any(x > self.upper):
            raise EvaluationError(
                f"Position outside the feasible region of {self.name}",
                generation=generation,
                individual=individual,
            )

        try:
            value = float(self.problem.evaluate(x))
        except Exception as e:
            raise EvaluationError(
                f"Evaluation of {self.name} failed: {type(e).__name__}: {e}",
                generation=generation,
                individual=individual,
            ) from e
        finally:
            self.evaluations += 1

        if not np.isfinite(value):
            raise EvaluationError(
                f"Objective of {self.name} returned non-finite value {value}",
                generation=generation,
                individual=individual,
            )

        return value

    def evaluate_batch(self, positions, indices=None, generation=None):
        """
        Evaluate several positions in order.

        Parameters
        ----------
        positions : numpy.ndarray
            Array of shape (n, dimension)
        indices : sequence of int, optional
            Population indices of the rows, used for error context
        generation : int, optional
            Iteration counter, used for error context

        Returns
        -------
        numpy.ndarray
            Objective values of shape (n,)
        """
        if indices is None:
            indices = range(len(positions))
        return np.array(
            [
                self.evaluate(x, generation=generation, individual=int(idx))
                for x, idx in zip(positions, indices)
            ],
            dtype=np.float64,
        )
