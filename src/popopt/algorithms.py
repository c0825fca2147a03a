"""
Named algorithm assemblies.

Each function returns a pipeline (plain data) for :func:`popopt.pipeline.run`.
Parameters are validated here, before any evaluation budget is spent.
"""

import logging

from .boundary import CorrectBounds
from .conditions import Counter, EveryN, FlatHistory, LessThanN, MetricBelow, StagnationForN
from .diversification import (
    Diversify,
    Explosion,
    NuclearReaction,
    ReplaceN,
    SteppedLeader,
    full_restart,
)
from .errors import ConfigurationError
from .logger import Logger
from .measures import (
    Diversity,
    EuclideanStepSize,
    FitnessImprovement,
    MeasureDiversity,
    all_diversity_measures,
)
from .operators import Evaluate, RandomSpread, UpdateBestIndividual
from .pipeline import branch, branch_optional, loop_while, sequence
from .shade import (
    CurrentToPBestMutation,
    Crossover,
    KeepBetterAtIndex,
    KeepParentsArchiveUpdate,
    ShadeAdaptation,
    ShadeHistoryUpdate,
    ShadeInit,
    minimum_population_size,
)
from .swarm import ParticleSwarmInit, ParticleSwarmUpdate, ParticleVelocitiesUpdate

logger = logging.getLogger(__name__)


def _check_budget(evaluations, population_size, floor=2):
    if evaluations < 1:
        raise ConfigurationError(f"evaluations must be >= 1, got {evaluations}")
    if population_size < floor:
        raise ConfigurationError(
            f"population_size must be >= {floor}, got {population_size}"
        )


def _check_new_pop(new_pop, population_size):
    if not 1 <= new_pop <= population_size:
        raise ConfigurationError(
            f"new_pop must be in [1, {population_size}], got {new_pop}"
        )


def _swarm_init(population_size, v_max):
    return sequence(
        RandomSpread(population_size),
        Evaluate(),
        UpdateBestIndividual(),
        ParticleSwarmInit(v_max),
    )


def _swarm_step(w, c1, c2, v_max, boundary):
    return sequence(ParticleVelocitiesUpdate(w, c1, c2, v_max), CorrectBounds(boundary))


def basic_pso(evaluations, population_size, w, c1, c2, v_max, boundary="saturation"):
    """Global-best PSO measuring the minimum individual distance every iteration."""
    _check_budget(evaluations, population_size)
    measure = MeasureDiversity(Diversity.MINIMUM_DISTANCE)
    return sequence(
        _swarm_init(population_size, v_max),
        measure,
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            _swarm_step(w, c1, c2, v_max, boundary),
            Evaluate(),
            UpdateBestIndividual(),
            ParticleSwarmUpdate(),
            measure,
            Logger(),
        ),
    )


def behaviour_pso(evaluations, population_size, w, c1, c2, v_max, boundary="saturation"):
    """
    Global-best PSO recording every diversity measure, the fitness
    improvement and the step size each iteration.
    """
    _check_budget(evaluations, population_size)
    measures = sequence(*all_diversity_measures(), FitnessImprovement(), EuclideanStepSize())
    return sequence(
        _swarm_init(population_size, v_max),
        measures,
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            _swarm_step(w, c1, c2, v_max, boundary),
            Evaluate(),
            UpdateBestIndividual(),
            ParticleSwarmUpdate(),
            measures,
            Logger(),
        ),
    )


def random_restart_pso(evaluations, population_size, w, c1, c2, v_max, restart_interval,
                       boundary="saturation"):
    """PSO whose swarm is reinitialized every ``restart_interval`` iterations."""
    _check_budget(evaluations, population_size)
    measures = all_diversity_measures()
    return sequence(
        _swarm_init(population_size, v_max),
        *measures,
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            _swarm_step(w, c1, c2, v_max, boundary),
            Evaluate(),
            UpdateBestIndividual(),
            *measures,
            ParticleSwarmUpdate(),
            Logger(),
            branch_optional(
                EveryN.iterations(restart_interval),
                sequence(full_restart(population_size, v_max), *measures, Logger()),
            ),
        ),
    )


def restart_pso(evaluations, population_size, w, c1, c2, v_max, condition, boundary="cosine"):
    """
    PSO that reinitializes the whole swarm whenever ``condition`` holds and
    takes a normal swarm step otherwise.
    """
    _check_budget(evaluations, population_size)
    measure = MeasureDiversity(Diversity.MINIMUM_DISTANCE)
    return sequence(
        _swarm_init(population_size, v_max),
        measure,
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            branch(
                condition,
                full_restart(population_size, v_max),
                sequence(
                    _swarm_step(w, c1, c2, v_max, boundary),
                    Evaluate(),
                    UpdateBestIndividual(),
                ),
            ),
            measure,
            ParticleSwarmUpdate(),
            Logger(),
        ),
    )


def diversified_pso(evaluations, population_size, w, c1, c2, v_max, condition, mechanism,
                    new_pop, replacement, boundary="cosine"):
    """
    PSO with a diversification step.

    Whenever ``condition`` holds, ``mechanism`` generates ``new_pop``
    candidates that replace particles chosen by ``replacement``; otherwise
    the swarm takes a normal step. Both branches are followed by bound
    correction, evaluation, best tracking and the personal-best update.

    Parameters
    ----------
    condition : callable
        Trigger of the diversification step
    mechanism : DiversificationMechanism
        Candidate generator, e.g. :class:`~popopt.diversification.Explosion`
    new_pop : int
        Number of candidates per diversification step
    replacement : ReplacementStrategy or str
        ``best``, ``worst`` or ``random``
    """
    _check_budget(evaluations, population_size)
    _check_new_pop(new_pop, population_size)
    measure = MeasureDiversity(Diversity.MINIMUM_DISTANCE)
    return sequence(
        _swarm_init(population_size, v_max),
        measure,
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            branch(
                condition,
                sequence(
                    Diversify(mechanism, new_pop),
                    ReplaceN(replacement, new_pop, v_max),
                    CorrectBounds(boundary),
                ),
                _swarm_step(w, c1, c2, v_max, boundary),
            ),
            Evaluate(),
            UpdateBestIndividual(),
            measure,
            ParticleSwarmUpdate(),
            Logger(),
        ),
    )


def shade(evaluations, population_size, y, p_min, max_archive, history, f=0.5, cr=0.5,
          crossover="binomial", boundary="cosine"):
    """
    SHADE with current-to-pbest/y mutation and an external archive.

    Raises
    ------
    ConfigurationError
        If the population is smaller than ``2 * y + 2`` or any parameter
        is out of range
    """
    _check_budget(evaluations, population_size, floor=minimum_population_size(y))
    measure = MeasureDiversity(Diversity.MINIMUM_DISTANCE)
    return sequence(
        RandomSpread(population_size),
        Evaluate(),
        UpdateBestIndividual(),
        measure,
        ShadeInit(history, max_archive, f, cr),
        Logger(),
        loop_while(
            LessThanN.evaluations(evaluations),
            ShadeAdaptation(),
            CurrentToPBestMutation(y, p_min),
            Crossover(crossover, cr),
            CorrectBounds(boundary),
            Evaluate(),
            UpdateBestIndividual(),
            KeepParentsArchiveUpdate(),
            ShadeHistoryUpdate(),
            KeepBetterAtIndex(),
            measure,
            Logger(),
        ),
    )


def diversification_condition(config):
    """Condition described by a :class:`~popopt.config.DiversificationConfig`."""
    if config.condition == "evaluations":
        return StagnationForN(int(config.parameter), Counter.EVALUATIONS)
    if config.condition == "periodic":
        return EveryN.iterations(int(config.parameter))
    if config.condition == "flat_history":
        return FlatHistory(config.window, config.parameter)
    return MetricBelow(Diversity.MINIMUM_DISTANCE.value, config.parameter)


def diversification_mechanism(config, v_max):
    if config.mechanism == "explosion":
        return Explosion(v_max, config.center)
    if config.mechanism == "nuclear_reaction":
        return NuclearReaction(config.mu, config.termination_type, config.termination_value)
    if config.mechanism == "stepped_leader":
        return SteppedLeader(config.leader)
    raise ConfigurationError(f"'{config.mechanism}' is not a candidate-generating mechanism")


def build_algorithm(name, config, problem):
    """
    Assemble the algorithm ``name`` from a section of an experiment config.

    Parameters
    ----------
    name : str
        One of ``pso``, ``random_restart_pso``, ``restart_pso``,
        ``diversified_pso`` and ``shade``
    config : PSOConfig or SHADEConfig
        Algorithm parameters
    problem : Problem
        Supplies the defaults that depend on bounds and dimension

    Returns
    -------
    tuple
        The pipeline and the resolved config
    """
    config = config.resolve(problem)

    if name == "shade":
        pipeline = shade(
            config.evaluations, config.population_size, config.y, config.p_min,
            config.max_archive, config.history, config.f, config.cr,
            config.crossover, config.boundary,
        )
        return pipeline, config

    common = (config.evaluations, config.population_size, config.w, config.c1, config.c2,
              config.v_max)

    if name == "pso":
        pipeline = behaviour_pso(*common, boundary=config.boundary)
    elif name == "random_restart_pso":
        pipeline = random_restart_pso(*common, config.restart_interval, boundary=config.boundary)
    elif name in ("restart_pso", "diversified_pso"):
        diversification = config.diversification
        if diversification is None:
            raise ConfigurationError(f"{name} requires a diversification section")
        condition = diversification_condition(diversification)
        if name == "restart_pso" or diversification.mechanism == "restart":
            pipeline = restart_pso(*common, condition, boundary=config.boundary)
        else:
            pipeline = diversified_pso(
                *common,
                condition,
                diversification_mechanism(diversification, config.v_max),
                diversification.new_pop,
                diversification.replacement,
                boundary=config.boundary,
            )
    else:
        raise ConfigurationError(f"Unknown algorithm '{name}'")

    logger.debug("assembled %s for %s", name, getattr(problem, "name", problem))
    return pipeline, config
