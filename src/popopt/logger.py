"""
Metric records of a run.

A :class:`LogConfig` pairs a schedule condition with named extractors.
The :class:`Logger` stage appends one record to ``state.logbook`` (a
``deap.tools.Logbook``) whenever the schedule fires; each record holds
``iteration`` and one key per extractor.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict

from .conditions import EveryN
from .measures import Diversity


def evaluations(state):
    return state.evaluations


def best_objective_value(state):
    return state.best_objective_value


def objective_values(state):
    population = state.population
    return None if population is None else population.objectives.tolist()


def distance_to_optimum(state):
    optimum = state.evaluator.known_optimum
    if optimum is None or state.best is None:
        return None
    return state.best.objective - optimum


def normalized_measure(name):
    """Extractor for the normalized value of a measure (None until computed)."""

    def extract(state):
        measure = state.measures.get(name)
        return None if measure is None else measure.normalized

    extract.__name__ = name
    return extract


def step_size(state):
    steps = state.measures.get("euclidean_step_size")
    return None if steps is None else steps.normalized_mean


def improvement(state):
    value = state.measures.get("fitness_improvement")
    return None if value is None else value.value


DEFAULT_EXTRACTORS = {
    "evaluations": evaluations,
    "best_objective_value": best_objective_value,
}


def diversity_extractors(kinds=tuple(Diversity)):
    return {kind.value: normalized_measure(kind.value) for kind in kinds}


@dataclass(frozen=True, eq=False)
class LogConfig:
    """
    Parameters
    ----------
    schedule : callable
        Condition deciding when a record is appended
    extractors : dict
        Record key to ``extractor(state)``
    """

    schedule: Callable = field(default_factory=lambda: EveryN.iterations(1))
    extractors: Dict[str, Callable] = field(default_factory=lambda: dict(DEFAULT_EXTRACTORS))

    def with_extractors(self, extractors):
        merged = dict(self.extractors)
        merged.update(extractors)
        return LogConfig(self.schedule, merged)


def standard_log_config(every=1, diversity=(Diversity.MINIMUM_DISTANCE,)):
    """Evaluations, best value, gap to the optimum and the given diversity measures."""
    extractors = dict(DEFAULT_EXTRACTORS)
    extractors["distance_to_optimum"] = distance_to_optimum
    extractors.update(diversity_extractors(diversity))
    return LogConfig(EveryN.iterations(every), extractors)


@dataclass(frozen=True, eq=False)
class Logger:
    """Append a record to the run's logbook when the log schedule fires."""

    def __call__(self, state):
        config = state.log_config
        if config is None or not config.schedule(state):
            return
        values = {name: extract(state) for name, extract in config.extractors.items()}
        state.logbook.record(iteration=state.iteration, **values)
