"""
Condition predicates over the optimization state.

Conditions gate loops and branches. They are configuration data; the few
that need history keep it in ``state.memory_for(self)`` so one pipeline
can be run many times with fresh state.
"""

from dataclasses import dataclass
from enum import Enum

import numpy as np

from .errors import ConfigurationError
from .state import RollingBuffer


class Counter(Enum):
    ITERATIONS = "iterations"
    EVALUATIONS = "evaluations"

    def read(self, state):
        if self is Counter.ITERATIONS:
            return state.iteration
        return state.evaluations


@dataclass(frozen=True, eq=False)
class LessThanN:
    """True while the counter is below ``n``; budgets for the outer loop."""

    n: int
    counter: Counter = Counter.EVALUATIONS

    def __post_init__(self):
        if self.n < 1:
            raise ConfigurationError(f"{self.counter.value} budget must be >= 1, got {self.n}")

    @classmethod
    def evaluations(cls, n):
        return cls(n, Counter.EVALUATIONS)

    @classmethod
    def iterations(cls, n):
        return cls(n, Counter.ITERATIONS)

    def __call__(self, state):
        return self.counter.read(state) < self.n


@dataclass(frozen=True, eq=False)
class EveryN:
    """
    Periodic trigger.

    For iterations this is ``iteration % n == 0`` and holds for every check
    made during that iteration, so two stages gated by the same period both
    fire. Evaluations advance in batches, so for them the condition is true
    on the first check at a multiple of ``n`` and afterwards whenever another
    multiple of ``n`` was crossed since the previous check; no period is
    skipped.
    """

    n: int
    counter: Counter = Counter.ITERATIONS

    def __post_init__(self):
        if self.n < 1:
            raise ConfigurationError(f"period must be >= 1, got {self.n}")

    @classmethod
    def iterations(cls, n):
        return cls(n, Counter.ITERATIONS)

    @classmethod
    def evaluations(cls, n):
        return cls(n, Counter.EVALUATIONS)

    def __call__(self, state):
        value = self.counter.read(state)
        if self.counter is Counter.ITERATIONS:
            return value % self.n == 0

        memory = state.memory_for(self)
        last = memory.get("last")
        memory["last"] = value

        if last is None:
            return value % self.n == 0
        return value // self.n > last // self.n


@dataclass(frozen=True, eq=False)
class StagnationForN:
    """
    True once the best objective value has not changed for ``n`` counter units.

    The counter restarts after each trigger, so a mechanism fired by this
    condition gets ``n`` units to produce an improvement before firing again.
    """

    n: int
    counter: Counter = Counter.EVALUATIONS

    def __post_init__(self):
        if self.n < 1:
            raise ConfigurationError(f"stagnation window must be >= 1, got {self.n}")

    def __call__(self, state):
        memory = state.memory_for(self)
        value = self.counter.read(state)
        best = state.best_objective_value

        if "best" not in memory or best != memory["best"]:
            memory["best"] = best
            memory["since"] = value
            return False

        if value - memory["since"] >= self.n:
            memory["since"] = value
            return True
        return False


@dataclass(frozen=True, eq=False)
class FlatHistory:
    """
    True when the best objective varied less than ``tolerance`` over the
    last ``window`` checks. The history is cleared after each trigger.
    """

    window: int
    tolerance: float = 1e-12

    def __post_init__(self):
        if self.window < 2:
            raise ConfigurationError(f"history window must be >= 2, got {self.window}")
        if self.tolerance < 0:
            raise ConfigurationError(f"tolerance must be >= 0, got {self.tolerance}")

    def __call__(self, state):
        memory = state.memory_for(self)
        history = memory.setdefault("history", RollingBuffer(self.window))
        history.append(state.best_objective_value)

        if not history.full:
            return False

        values = np.array(history.to_list(), dtype=np.float64)
        if values.max() - values.min() < self.tolerance:
            history.clear()
            return True
        return False


@dataclass(frozen=True, eq=False)
class MetricBelow:
    """
    True when a normalized measure is below ``threshold``.

    False while the measure has not been computed yet.
    """

    metric: str
    threshold: float

    def __call__(self, state):
        measure = state.measures.get(self.metric)
        if measure is None:
            return False
        return measure.normalized < self.threshold
