"""
Command line interface.

    popopt run --algorithm shade --function rastrigin --dimension 10 --set history=50
    popopt experiment experiments/pso.json --processes 8
    popopt tune --algorithm pso --function sphere --dimension 10 --seed 3 --set w=0.6

``tune`` prints only ``<cost> <seconds>`` on stdout so it can serve as a
target runner for parameter tuners such as irace.
"""

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict

from rich.traceback import install

from .benchmarks import FUNCTIONS, make_problem
from .config import ALGORITHMS, PSOConfig, SHADEConfig, load_config
from .errors import OptimizationError
from .experiment import optimize, run_experiment
from .logger import standard_log_config
from .utils import console, log_error, log_message, section_rule, setup_logging, summary_panel

logger = logging.getLogger(__name__)


def parse_assignment(text):
    """Parse ``key=value``; the value is read as JSON when possible, else kept as a string."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got '{text}'")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        value = raw
    return key.strip(), value


def algorithm_config(algorithm, assignments, base=None):
    """Algorithm config from an optional base dict updated with ``--set`` overrides."""
    data = dict(base or {})
    for key, value in assignments:
        data[key] = value
    section = SHADEConfig if algorithm == "shade" else PSOConfig
    return section.from_dict(data)


def add_problem_arguments(parser):
    parser.add_argument("--algorithm", choices=ALGORITHMS, default="pso")
    parser.add_argument("--function", choices=sorted(FUNCTIONS), default="sphere")
    parser.add_argument("--dimension", type=int, default=2)
    parser.add_argument("--instance", type=int, default=1)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument(
        "--config", type=str, default=None,
        help="JSON experiment config supplying the algorithm section",
    )
    parser.add_argument(
        "--set", dest="assignments", type=parse_assignment, action="append", default=[],
        metavar="KEY=VALUE", help="override an algorithm option (repeatable)",
    )


def _base_section(args):
    """The algorithm section of the experiment file given with ``--config``, as a dict."""
    if args.config is None:
        return None
    config = load_config(args.config)
    return asdict(config.shade if args.algorithm == "shade" else config.pso)


def command_run(args):
    problem = make_problem(args.function, args.dimension, args.instance)
    config = algorithm_config(args.algorithm, args.assignments, _base_section(args))

    section_rule(f"{args.algorithm} on {problem.name}")
    start = time.perf_counter()
    state = optimize(
        args.algorithm, config, problem, args.seed, standard_log_config(args.log_every)
    )
    elapsed = time.perf_counter() - start

    rows = [
        ("Iterations", state.iteration),
        ("Evaluations", state.evaluations),
        ("Best value", f"{state.best.objective:.6e}"),
        ("Distance to optimum", f"{state.best.objective - problem.known_optimum:.6e}"),
        ("Seed", args.seed),
        ("Time", f"{elapsed:.2f}s"),
    ]
    console.print(summary_panel("Optimization Complete", rows))
    if args.output:
        with open(args.output, "w") as f:
            json.dump(list(state.logbook), f, indent=2)
        log_message(f"metric records written to {args.output}", emoji="💾")


def command_experiment(args):
    config = load_config(args.config)
    output = args.output if args.output is not None else config.output
    results = run_experiment(config, processes=args.processes, output=output)

    failed = [r for r in results if r.failed]
    rows = [
        ("Runs", len(results)),
        ("Failed", len(failed)),
        ("Results log", output or "-"),
    ]
    console.print(summary_panel("Experiment Complete", rows,
                                border_style="red" if failed else "green"))
    return 1 if failed else 0


def command_tune(args):
    problem = make_problem(args.function, args.dimension, args.instance)
    config = algorithm_config(args.algorithm, args.assignments, _base_section(args))

    start = time.perf_counter()
    state = optimize(args.algorithm, config, problem, args.seed)
    elapsed = time.perf_counter() - start

    cost = state.best.objective - problem.known_optimum if args.gap else state.best.objective
    print(f"{cost} {elapsed}")


def build_parser():
    parser = argparse.ArgumentParser(prog="popopt", description="population-based optimization pipelines")
    parser.add_argument("--log-level", default="INFO", help="logging level (default: INFO)")
    parser.add_argument("--log-file", default=None, help="append log records to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="optimize one benchmark problem")
    add_problem_arguments(run_parser)
    run_parser.add_argument("--log-every", type=int, default=1)
    run_parser.add_argument("--output", type=str, default=None,
                            help="write the metric records to this JSON file")
    run_parser.set_defaults(handler=command_run)

    experiment_parser = subparsers.add_parser("experiment", help="run an experiment grid")
    experiment_parser.add_argument("config", type=str, help="path to the experiment JSON config")
    experiment_parser.add_argument("--processes", type=int, default=None)
    experiment_parser.add_argument("--output", type=str, default=None)
    experiment_parser.set_defaults(handler=command_experiment)

    tune_parser = subparsers.add_parser("tune", help="single run printing '<cost> <seconds>'")
    add_problem_arguments(tune_parser)
    tune_parser.add_argument("--gap", action="store_true",
                             help="report the distance to the optimum instead of the value")
    tune_parser.set_defaults(handler=command_tune)

    return parser


def main(argv=None):
    install(show_locals=False)
    args = build_parser().parse_args(argv)
    # tune keeps stdout clean for the tuner
    level = "WARNING" if args.command == "tune" else args.log_level.upper()
    setup_logging(level, args.log_file)

    try:
        return args.handler(args) or 0
    except OptimizationError as e:
        log_error("optimization failed", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
