"""State machine constants and transition logic for runs and step records.

Runs and step records share the same lifecycle:

    pending -> running -> success | error

success and error are terminal. Step records are independent of each other
and of their run.
"""

from vidcast.orchestrator.models import RunStatus, StepStatus

# Allowed forward transitions for a run
RUN_TRANSITIONS = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.ERROR},
    RunStatus.RUNNING: {RunStatus.SUCCESS, RunStatus.ERROR},
    RunStatus.SUCCESS: set(),
    RunStatus.ERROR: set(),
}

# Allowed forward transitions for a step record
STEP_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING},
    StepStatus.RUNNING: {StepStatus.SUCCESS, StepStatus.ERROR},
    StepStatus.SUCCESS: set(),
    StepStatus.ERROR: set(),
}

TERMINAL_RUN_STATES = {RunStatus.SUCCESS, RunStatus.ERROR}
IN_FLIGHT_RUN_STATES = {RunStatus.PENDING, RunStatus.RUNNING}
TERMINAL_STEP_STATES = {StepStatus.SUCCESS, StepStatus.ERROR}


def is_terminal(status: RunStatus) -> bool:
    """Return True if no further mutation of a run in this status is allowed."""
    return status in TERMINAL_RUN_STATES


def is_in_flight(status: RunStatus) -> bool:
    """Return True if a run in this status blocks new runs (single-flight)."""
    return status in IN_FLIGHT_RUN_STATES


def can_transition_run(current: RunStatus, target: RunStatus) -> bool:
    """Check whether a run may move from current to target status."""
    return target in RUN_TRANSITIONS[current]


def can_transition_step(current: StepStatus, target: StepStatus) -> bool:
    """Check whether a step record may move from current to target status."""
    return target in STEP_TRANSITIONS[current]
