"""
Exception hierarchy for popopt.

Construction errors are raised before any evaluation budget is spent,
evaluation and degenerate-state errors abort the run they occur in.
"""


class OptimizationError(Exception):
    """Base class of every error raised by popopt."""


class ConfigurationError(OptimizationError, ValueError):
    """Invalid algorithm parameters detected while assembling a run."""


class EvaluationError(OptimizationError, RuntimeError):
    """
    Objective evaluation failed during a run.

    Parameters
    ----------
    message : str
        Description of the failure
    generation : int, optional
        Iteration counter at the time of the failure
    individual : int, optional
        Index of the individual being evaluated
    """

    def __init__(self, message, generation=None, individual=None):
        self.generation = generation
        self.individual = individual
        context = []
        if generation is not None:
            context.append(f"generation={generation}")
        if individual is not None:
            context.append(f"individual={individual}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)


class DegenerateStateError(OptimizationError, RuntimeError):
    """A stage found the optimization state unusable."""


class PipelineError(OptimizationError, RuntimeError):
    """A stage failed with an error that is not an OptimizationError."""

    def __init__(self, stage, iteration, cause):
        self.stage = stage
        self.iteration = iteration
        super().__init__(
            f"stage {stage} failed at iteration {iteration}: "
            f"{type(cause).__name__}: {cause}"
        )


class RunError(OptimizationError, RuntimeError):
    """
    A single experiment run failed.

    Carries the identifying parameters of the run so the enclosing
    experiment can report it and carry on with the remaining runs.
    """

    def __init__(self, message, **run_parameters):
        self.run_parameters = run_parameters
        details = ", ".join(f"{key}={value}" for key, value in run_parameters.items())
        super().__init__(f"{message} [{details}]" if details else message)
