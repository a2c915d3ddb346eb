"""Exception taxonomy for pipeline orchestration."""

from typing import Optional


class PipelineError(Exception):
    """Base class for orchestration errors."""


class ConcurrentRunError(PipelineError):
    """Raised when a run is requested while another run is still in flight.

    Callers treat this as "skip, another run is active", not as a pipeline
    defect.
    """

    def __init__(self, active_run_id: Optional[str] = None):
        self.active_run_id = active_run_id
        message = "Another pipeline run is already in progress"
        if active_run_id:
            message = f"{message} (run {active_run_id})"
        super().__init__(message)


class StepError(PipelineError):
    """Raised by a step to report a failure with a human-readable message."""

    def __init__(self, step: str, message: str):
        self.step = step
        self.message = message
        super().__init__(message)


class StepCancelled(StepError):
    """The step was interrupted by a cancellation signal."""

    def __init__(self, step: str, message: str = "cancelled"):
        super().__init__(step, message)


class StepTimeout(StepError):
    """The step exceeded its time budget."""

    def __init__(self, step: str, timeout: float):
        self.timeout = timeout
        super().__init__(step, f"timed out after {timeout:g}s")


class LedgerInvariantError(PipelineError):
    """Raised when a mutation would break a ledger invariant.

    Indicates a programming defect (e.g. mutating a terminal run) and is
    never converted into run state.
    """
