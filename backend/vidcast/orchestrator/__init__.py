"""Pipeline orchestrator module.

Provides run tracking and coordination for the video pipeline:
- Run and step record models with their state machines
- In-memory run ledger queried by status endpoints while runs are in flight
- Error taxonomy shared by steps and trigger adapters

The orchestrator itself lives in vidcast.orchestrator.pipeline (it depends on
vidcast.steps, which depends on the models exported here).
"""

from vidcast.orchestrator.errors import (
    ConcurrentRunError,
    LedgerInvariantError,
    PipelineError,
    StepCancelled,
    StepError,
    StepTimeout,
)
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import Run, RunStatus, StepRecord, StepStatus, Trigger

__all__ = [
    "ConcurrentRunError",
    "LedgerInvariantError",
    "PipelineError",
    "Run",
    "RunLedger",
    "RunStatus",
    "StepCancelled",
    "StepError",
    "StepRecord",
    "StepStatus",
    "StepTimeout",
    "Trigger",
]
