"""In-memory run ledger (status store).

The ledger owns every run record created during the process lifetime and is
the only component allowed to mutate them. Records are frozen pydantic models
that are replaced wholesale (copy-on-write) under a lock, so concurrent
readers observe either the pre- or the post-update record, never a mix.
Readers hold the lock only long enough to grab references; copying happens
outside it.
"""

import logging
import threading
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Callable, Mapping, Optional

from vidcast.orchestrator.errors import ConcurrentRunError, LedgerInvariantError
from vidcast.orchestrator.models import (
    MetaValue,
    Run,
    RunStatus,
    StepRecord,
    StepStatus,
    Trigger,
    utcnow,
)
from vidcast.orchestrator.state import (
    TERMINAL_STEP_STATES,
    can_transition_run,
    can_transition_step,
    is_in_flight,
    is_terminal,
)

logger = logging.getLogger(__name__)

# Run fields a step result may populate
RESULT_FIELDS = {"video_title", "published_url"}


class RunLedger:
    """Process-wide registry of run records.

    Args:
        max_runs: Retention cap. After a run is finalized, the oldest terminal
            runs beyond this count are evicted. None keeps every run.
        clock: Callable returning the current timestamp (injectable for tests).
    """

    def __init__(
        self,
        max_runs: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_runs is not None and max_runs < 1:
            raise ValueError("max_runs must be at least 1")
        self.max_runs = max_runs
        self._clock = clock
        self._lock = threading.Lock()
        # Insertion order == creation order
        self._runs: "OrderedDict[str, Run]" = OrderedDict()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_runs(self) -> list[Run]:
        """Return snapshots of all runs, most recent first."""
        with self._lock:
            runs = list(self._runs.values())
        return [run.model_copy(deep=True) for run in reversed(runs)]

    def get_run(self, run_id: str) -> Optional[Run]:
        """Return a snapshot of the run, or None if unknown (or evicted)."""
        with self._lock:
            run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run is not None else None

    def active_run(self) -> Optional[Run]:
        """Return a snapshot of the in-flight run, if any."""
        with self._lock:
            run = self._find_active()
        return run.model_copy(deep=True) if run is not None else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs)

    # ------------------------------------------------------------------
    # Mutations (orchestrator only)
    # ------------------------------------------------------------------

    def create_run(self, trigger: Trigger, topic: Optional[str] = None) -> Run:
        """Register a new pending run.

        The single-flight check and the insert happen under one lock, so two
        racing triggers can never both create a run.

        Raises:
            ConcurrentRunError: If a pending or running run already exists.
        """
        with self._lock:
            active = self._find_active()
            if active is not None:
                raise ConcurrentRunError(active.id)
            run = Run(
                id=uuid.uuid4().hex,
                trigger=Trigger(trigger),
                topic=topic,
                status=RunStatus.PENDING,
                started_at=self._clock(),
            )
            self._runs[run.id] = run
        logger.info(f"Run {run.id} created (trigger={run.trigger.value}, topic={topic!r})")
        return run.model_copy(deep=True)

    def mark_running(self, run_id: str) -> Run:
        """Transition a pending run to running."""
        with self._lock:
            run = self._get_mutable(run_id)
            self._check_run_transition(run, RunStatus.RUNNING)
            run = run.model_copy(update={"status": RunStatus.RUNNING})
            self._runs[run_id] = run
        return run.model_copy(deep=True)

    def append_step(self, run_id: str, name: str) -> StepRecord:
        """Append a running step record to the end of the run's steps."""
        with self._lock:
            run = self._get_mutable(run_id)
            if run.status != RunStatus.RUNNING:
                raise LedgerInvariantError(
                    f"Run {run_id}: cannot append step '{name}' while {run.status.value}"
                )
            open_steps = [s.name for s in run.steps if s.status not in TERMINAL_STEP_STATES]
            if open_steps:
                raise LedgerInvariantError(
                    f"Run {run_id}: cannot append step '{name}' while {open_steps} still open"
                )
            record = StepRecord(name=name, status=StepStatus.RUNNING, started_at=self._clock())
            self._runs[run_id] = run.model_copy(update={"steps": run.steps + (record,)})
        return record.model_copy(deep=True)

    def update_step(
        self,
        run_id: str,
        name: str,
        status: StepStatus,
        *,
        error: Optional[str] = None,
        meta: Optional[Mapping[str, MetaValue]] = None,
        results: Optional[Mapping[str, Optional[str]]] = None,
    ) -> StepRecord:
        """Move the latest step record with this name to a new status.

        Terminal statuses stamp completed_at. results populate run-level result
        fields (video_title, published_url) in the same atomic write as the
        step update.
        """
        status = StepStatus(status)
        if error is not None and status != StepStatus.ERROR:
            raise LedgerInvariantError("error message is only allowed on failed steps")
        unknown = set(results or {}) - RESULT_FIELDS
        if unknown:
            raise LedgerInvariantError(f"Unknown run result fields: {sorted(unknown)}")

        with self._lock:
            run = self._get_mutable(run_id)
            index = self._step_index(run, name)
            record = run.steps[index]
            if not can_transition_step(record.status, status):
                raise LedgerInvariantError(
                    f"Run {run_id}: step '{name}' cannot go "
                    f"{record.status.value} -> {status.value}"
                )
            update: dict = {"status": status}
            if status in TERMINAL_STEP_STATES:
                update["completed_at"] = self._clock()
            if error is not None:
                update["error"] = error
            if meta is not None:
                update["meta"] = {**record.meta, **dict(meta)}
            record = StepRecord.model_validate(
                {**record.model_dump(), **update}
            )

            steps = run.steps[:index] + (record,) + run.steps[index + 1:]
            run_update: dict = {"steps": steps}
            for key, value in (results or {}).items():
                if value is not None:
                    run_update[key] = value
            self._runs[run_id] = run.model_copy(update=run_update)
        return record.model_copy(deep=True)

    def finalize_run(self, run_id: str, status: RunStatus) -> Run:
        """Move a run to its terminal status and stamp completed_at.

        Raises:
            LedgerInvariantError: If the status does not agree with the step
                outcomes, a step is still open, or the run is already terminal.
        """
        status = RunStatus(status)
        if not is_terminal(status):
            raise LedgerInvariantError(f"{status.value} is not a terminal run status")

        with self._lock:
            run = self._get_mutable(run_id)
            self._check_run_transition(run, status)
            open_steps = [s.name for s in run.steps if s.status not in TERMINAL_STEP_STATES]
            if open_steps:
                raise LedgerInvariantError(
                    f"Run {run_id}: cannot finalize with open steps {open_steps}"
                )
            failed = any(s.status == StepStatus.ERROR for s in run.steps)
            if failed != (status == RunStatus.ERROR):
                raise LedgerInvariantError(
                    f"Run {run_id}: status {status.value} disagrees with step outcomes"
                )
            run = run.model_copy(update={"status": status, "completed_at": self._clock()})
            self._runs[run_id] = run
            evicted = self._evict()

        if evicted:
            logger.debug(f"Evicted {len(evicted)} old runs: {evicted}")
        return run.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Internal helpers (caller holds the lock)
    # ------------------------------------------------------------------

    def _find_active(self) -> Optional[Run]:
        for run in self._runs.values():
            if is_in_flight(run.status):
                return run
        return None

    def _get_mutable(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(f"Run {run_id} not found")
        if is_terminal(run.status):
            raise LedgerInvariantError(
                f"Run {run_id} is {run.status.value}; terminal runs are immutable"
            )
        return run

    @staticmethod
    def _check_run_transition(run: Run, target: RunStatus) -> None:
        if not can_transition_run(run.status, target):
            raise LedgerInvariantError(
                f"Run {run.id}: cannot go {run.status.value} -> {target.value}"
            )

    @staticmethod
    def _step_index(run: Run, name: str) -> int:
        for index in range(len(run.steps) - 1, -1, -1):
            if run.steps[index].name == name:
                return index
        raise KeyError(f"Run {run.id} has no step '{name}'")

    def _evict(self) -> list[str]:
        if self.max_runs is None or len(self._runs) <= self.max_runs:
            return []
        excess = len(self._runs) - self.max_runs
        evicted = []
        for run_id, run in list(self._runs.items()):
            if excess == 0:
                break
            if is_terminal(run.status):
                del self._runs[run_id]
                evicted.append(run_id)
                excess -= 1
        return evicted
