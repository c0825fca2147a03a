"""
Pipeline engine.

An algorithm is a tree of plain data nodes built with :func:`sequence`,
:func:`loop_while`, :func:`branch` and :func:`branch_optional`. Leaves are
stages: callables taking the :class:`~popopt.state.OptimizationState` and
mutating it in place. Conditions are callables returning a bool.

Building a pipeline has no side effects; :func:`run` interprets it against
one state.

Example
-------
>>> algorithm = sequence(
...     RandomSpread(10), Evaluate(), UpdateBestIndividual(),
...     loop_while(LessThanN.evaluations(500), sequence(...)),
... )
>>> state = run(OptimizationState.create(evaluator, seed=1), algorithm)
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Tuple

from .errors import OptimizationError, PipelineError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Sequence:
    nodes: Tuple[Any, ...]


@dataclass(frozen=True, eq=False)
class Loop:
    condition: Callable
    body: Any


@dataclass(frozen=True, eq=False)
class Branch:
    condition: Callable
    then: Any
    otherwise: Any = None


def sequence(*nodes):
    """Run ``nodes`` in order."""
    flat = []
    for node in nodes:
        # Nested sequences add nothing but depth
        if isinstance(node, Sequence):
            flat.extend(node.nodes)
        else:
            flat.append(node)
    return Sequence(tuple(flat))


def loop_while(condition, *body):
    """
    Repeat ``body`` while ``condition`` holds.

    The condition is checked against the current state before every pass.
    ``state.iteration`` is advanced at the start of each pass.
    """
    return Loop(condition, sequence(*body))


def branch(condition, then, otherwise):
    """Run exactly one of ``then`` and ``otherwise``."""
    return Branch(condition, then, otherwise)


def branch_optional(condition, then):
    """Run ``then`` only if ``condition`` holds; otherwise pass the state through."""
    return Branch(condition, then, None)


def node_name(node):
    return getattr(node, "name", None) or getattr(node, "__name__", None) or type(node).__name__


def run(state, pipeline):
    """
    Execute ``pipeline`` against ``state`` and return the final state.

    Raises
    ------
    OptimizationError
        Project errors propagate unchanged and stop the run
    PipelineError
        Any other exception raised by a stage, chained to the original
    """
    _execute(pipeline, state)
    return state


def _execute(node, state):
    if isinstance(node, Sequence):
        for child in node.nodes:
            _execute(child, state)
    elif isinstance(node, Loop):
        while _check(node.condition, state):
            state.iteration += 1
            logger.debug("iteration %d (evaluations: %d)", state.iteration, state.evaluations)
            _execute(node.body, state)
    elif isinstance(node, Branch):
        if _check(node.condition, state):
            _execute(node.then, state)
        elif node.otherwise is not None:
            _execute(node.otherwise, state)
    else:
        _call(node, state)


def _check(condition, state):
    return bool(_call(condition, state))


def _call(component, state):
    try:
        return component(state)
    except OptimizationError:
        raise
    except Exception as e:
        raise PipelineError(node_name(component), state.iteration, e) from e
