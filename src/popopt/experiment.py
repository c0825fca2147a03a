"""
Experiment driver: expands a configuration into independent runs,
dispatches them over worker processes and appends one JSON line per run
to the results log.

Runs share nothing mutable. Each worker receives a :class:`RunSpec`
holding the immutable benchmark problem and the algorithm config, and
builds its own evaluator, random source and state from it.
"""

import json
import logging
import os
import time
from dataclasses import asdict, dataclass, field, replace
from multiprocessing import Pool, cpu_count
from typing import Any, Dict, List, Optional

import numpy as np

from .algorithms import build_algorithm
from .benchmarks import BenchmarkSuite
from .config import grid_points
from .errors import OptimizationError, RunError
from .logger import standard_log_config
from .measures import Diversity
from .pipeline import run
from .problem import Evaluator
from .state import OptimizationState
from .utils import create_progress_bar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunSpec:
    """Everything a worker needs to execute one run."""

    algorithm: str
    problem: Any
    run: int
    seed: int
    config: Any
    parameters: Dict[str, Any] = field(default_factory=dict)
    log_every: int = 1

    def identity(self):
        return {
            "algorithm": self.algorithm,
            "function": self.problem.function,
            "instance": self.problem.instance,
            "dimension": self.problem.dimension,
            "run": self.run,
            "seed": self.seed,
            **self.parameters,
        }


@dataclass
class RunResult:
    """Outcome of one run; ``error`` is set instead of the best values when the run failed."""

    identity: Dict[str, Any]
    best_value: Optional[float] = None
    best_position: Optional[List[float]] = None
    distance_to_optimum: Optional[float] = None
    evaluations: int = 0
    elapsed: float = 0.0
    records: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def failed(self):
        return self.error is not None


def seed_for(run_number, instance_position, instances):
    """
    Seed of run ``run_number`` (1-based) on the instance at
    ``instance_position`` (0-based) of ``instances`` instances.

    Every (run, instance) pair gets a distinct seed.
    """
    return (run_number - 1) * instances + instance_position + 1


def expand(config):
    """
    All runs of an experiment.

    Parameters
    ----------
    config : ExperimentConfig
        Validated experiment configuration

    Returns
    -------
    list of RunSpec
    """
    suite = BenchmarkSuite(
        tuple(config.functions),
        tuple(config.dimensions),
        tuple(range(1, config.instances + 1)),
    )
    base = config.algorithm_config

    specs = []
    for parameters in grid_points(config.grid):
        algorithm_config = replace(base, **parameters)
        for run_number in range(1, config.runs + 1):
            for problem in suite.problems():
                specs.append(
                    RunSpec(
                        algorithm=config.algorithm,
                        problem=problem,
                        run=run_number,
                        seed=seed_for(run_number, problem.instance - 1, config.instances),
                        config=algorithm_config,
                        parameters=parameters,
                        log_every=config.log_every,
                    )
                )
    return specs


def optimize(algorithm, config, problem, seed, log_config=None):
    """
    Run one algorithm on one problem.

    Returns
    -------
    OptimizationState
        Final state of the run

    Raises
    ------
    OptimizationError
        On invalid parameters or a failed run
    """
    pipeline, _ = build_algorithm(algorithm, config, problem)
    state = OptimizationState.create(Evaluator(problem), seed, log_config)
    return run(state, pipeline)


def execute_run(spec):
    """Execute a run and capture its outcome; failures are recorded, not raised."""
    identity = spec.identity()
    log_config = standard_log_config(spec.log_every, tuple(Diversity))
    start = time.perf_counter()

    try:
        state = optimize(spec.algorithm, spec.config, spec.problem, spec.seed, log_config)
    except OptimizationError as e:
        error = RunError(str(e), **identity)
        logger.error("%s", error)
        return RunResult(identity, elapsed=time.perf_counter() - start, error=str(error))

    best = state.best
    optimum = state.evaluator.known_optimum
    return RunResult(
        identity=identity,
        best_value=best.objective,
        best_position=best.position.tolist(),
        distance_to_optimum=None if optimum is None else best.objective - optimum,
        evaluations=state.evaluations,
        elapsed=time.perf_counter() - start,
        records=list(state.logbook),
    )


def _execute_indexed(args):
    spec, idx = args
    return execute_run(spec), idx


def _to_json(value):
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def append_result(path, result):
    """Append ``result`` as one JSON line to ``path``."""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "a") as f:
        f.write(json.dumps(asdict(result), default=_to_json) + "\n")


def read_results(path):
    with open(path) as f:
        return [json.loads(line) for line in f if line.strip()]


def run_experiment(config, processes=None, output=None, show_progress=True):
    """
    Execute every run of ``config``.

    Parameters
    ----------
    config : ExperimentConfig
        Validated experiment configuration
    processes : int, optional
        Worker processes, defaults to ``config.processes``; 1 runs in-process
    output : str, optional
        Results log, defaults to ``config.output``; an empty string disables writing
    show_progress : bool
        Display a rich progress bar

    Returns
    -------
    list of RunResult
        Results in run order, failed runs included
    """
    processes = processes or config.processes
    output = config.output if output is None else output
    specs = expand(config)
    results = [None] * len(specs)
    tasks = [(spec, idx) for idx, spec in enumerate(specs)]

    logger.info(
        "running %d runs of %s on %d process(es)", len(specs), config.algorithm, processes
    )

    def collect(outcomes, progress=None, task=None):
        for result, idx in outcomes:
            results[idx] = result
            if output:
                append_result(output, result)
            if progress is not None:
                progress.update(task, advance=1)

    def dispatch(progress=None, task=None):
        if processes == 1:
            collect(map(_execute_indexed, tasks), progress, task)
            return

        pool = Pool(processes=min(processes, cpu_count(), len(tasks)) or 1)
        try:
            collect(pool.imap_unordered(_execute_indexed, tasks), progress, task)
            pool.close()
        except BaseException:
            pool.terminate()
            raise
        finally:
            pool.join()

    if show_progress:
        with create_progress_bar(config.algorithm) as progress:
            task = progress.add_task(config.algorithm, total=len(tasks))
            dispatch(progress, task)
    else:
        dispatch()

    failed = sum(result.failed for result in results)
    if failed:
        logger.warning("%d of %d runs failed", failed, len(results))
    return results
