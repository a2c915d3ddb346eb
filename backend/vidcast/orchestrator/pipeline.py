"""Main pipeline orchestrator with sequential step execution and run tracking.

Coordinates one run of the pipeline with:
- Single-flight admission (one in-flight run per ledger)
- Sequential execution of an injected, ordered list of steps
- Per-step timing and logging
- Conversion of any step failure into a terminal run outcome
- Optional cancellation signal, run deadline and per-step timeout
- Progress callback interface for CLI/API integration
"""

import asyncio
import logging
import time
from typing import Callable, Mapping, Optional, Sequence

from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator

from vidcast.orchestrator.errors import (
    ConcurrentRunError,
    StepCancelled,
    StepError,
    StepTimeout,
)
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import MetaValue, Run, RunStatus, StepStatus, Trigger
from vidcast.steps.base import PipelineStep, StepContext

logger = logging.getLogger(__name__)

# Step payload keys lifted onto the run record
RESULT_KEYS = {
    "videoTitle": "video_title",
    "publishedUrl": "published_url",
}

TOPIC_MIN_LENGTH = 3
TOPIC_MAX_LENGTH = 160

_meta_adapter = TypeAdapter(dict[str, MetaValue])


def normalize_topic(v):
    """Strip whitespace; blank topics mean "no topic"."""
    if isinstance(v, str):
        v = v.strip()
        return v or None
    return v


class RunRequest(BaseModel):
    """Validated trigger input. Invalid requests never reach the ledger."""

    trigger: Trigger
    topic: Optional[str] = None

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v):
        return normalize_topic(v)

    @field_validator("topic")
    @classmethod
    def check_topic_length(cls, v):
        if v is not None and not TOPIC_MIN_LENGTH <= len(v) <= TOPIC_MAX_LENGTH:
            raise ValueError(
                f"topic must be between {TOPIC_MIN_LENGTH} and {TOPIC_MAX_LENGTH} characters"
            )
        return v


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, StepError):
        return exc.message
    return f"{type(exc).__name__}: {exc}"


class PipelineOrchestrator:
    """Runs the configured steps for one run at a time.

    Args:
        ledger: Run ledger that owns all run records. Shared with readers.
        steps: Ordered steps executed for every run.
        step_timeout: Optional per-step time budget in seconds.
    """

    def __init__(
        self,
        ledger: RunLedger,
        steps: Sequence[PipelineStep],
        *,
        step_timeout: Optional[float] = None,
    ) -> None:
        names = [step.name for step in steps]
        if not all(names):
            raise ValueError("Every pipeline step needs a non-empty name")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate step names: {names}")
        self.ledger = ledger
        self.steps = list(steps)
        self.step_timeout = step_timeout

    async def start_run(
        self,
        trigger: Trigger | str,
        topic: Optional[str] = None,
        **kwargs,
    ) -> Run:
        """Validate trigger input and execute a run.

        Raises:
            pydantic.ValidationError: If trigger or topic is malformed.
            ConcurrentRunError: If another run is in flight.
        """
        request = RunRequest(trigger=trigger, topic=topic)
        return await self.start(request, **kwargs)

    async def start(
        self,
        request: RunRequest,
        *,
        cancel_event: Optional[asyncio.Event] = None,
        deadline: Optional[float] = None,
        progress_callback: Optional[Callable[[str], None]] = None,
    ) -> Run:
        """Execute every step for a new run and return its final snapshot.

        Step failures do not raise: they are recorded on the step and the run
        finishes with status error. The returned Run is a copy; mutating it
        does not affect the ledger.

        Args:
            request: Validated trigger input.
            cancel_event: Optional signal; when set, the current step is
                interrupted and recorded as cancelled.
            deadline: Optional time budget in seconds for the whole run.
            progress_callback: Optional callback for status updates (e.g. CLI
                spinner).

        Raises:
            ConcurrentRunError: If another run is pending or running.
            asyncio.CancelledError: If the caller cancels this coroutine; the
                run is recorded as error before the cancellation propagates.
        """
        try:
            run = self.ledger.create_run(request.trigger, request.topic)
        except ConcurrentRunError as e:
            logger.warning(
                f"Skipping {request.trigger.value} trigger: run {e.active_run_id} is still in flight"
            )
            raise

        run_id = run.id
        self.ledger.mark_running(run_id)
        logger.info(
            f"Starting pipeline run {run_id} ({len(self.steps)} steps, "
            f"trigger={request.trigger.value})"
        )

        loop = asyncio.get_running_loop()
        expires_at = loop.time() + deadline if deadline is not None else None
        pipeline_start = time.monotonic()
        outputs: dict[str, dict[str, MetaValue]] = {}
        video_title: Optional[str] = None
        final_status = RunStatus.SUCCESS

        for step in self.steps:
            if progress_callback:
                progress_callback(f"Running {step.name}...")

            self.ledger.append_step(run_id, step.name)
            step_start = time.monotonic()
            logger.info(f"Run {run_id}: starting {step.name} step")

            context = StepContext(
                run_id=run_id,
                trigger=request.trigger,
                topic=request.topic,
                outputs={name: dict(meta) for name, meta in outputs.items()},
                video_title=video_title,
                cancel_event=cancel_event,
            )

            try:
                timeout = self._step_budget(loop, expires_at)
                payload = await self._invoke(step, context, cancel_event, timeout)
                meta = _meta_adapter.validate_python(dict(payload or {}))
            except asyncio.CancelledError:
                self.ledger.update_step(run_id, step.name, StepStatus.ERROR, error="cancelled")
                self.ledger.finalize_run(run_id, RunStatus.ERROR)
                logger.warning(f"Run {run_id}: cancelled during {step.name} step")
                raise
            except ValidationError as e:
                message = f"invalid result payload: {e.error_count()} validation error(s)"
                self._record_failure(run_id, step.name, message, step_start)
                final_status = RunStatus.ERROR
                break
            except Exception as e:
                self._record_failure(run_id, step.name, _error_message(e), step_start)
                final_status = RunStatus.ERROR
                break

            results = {
                field: str(meta[key]) for key, field in RESULT_KEYS.items() if key in meta
            }
            self.ledger.update_step(
                run_id, step.name, StepStatus.SUCCESS, meta=meta, results=results
            )
            outputs[step.name] = meta
            video_title = results.get("video_title", video_title)
            logger.info(
                f"Run {run_id}: {step.name} step completed in "
                f"{time.monotonic() - step_start:.2f}s"
            )

        final = self.ledger.finalize_run(run_id, final_status)
        total = time.monotonic() - pipeline_start
        if final_status == RunStatus.SUCCESS:
            logger.info(f"Pipeline run {run_id} completed successfully in {total:.2f}s")
        else:
            logger.error(f"Pipeline run {run_id} failed after {total:.2f}s")
        if progress_callback:
            progress_callback(f"Run {final_status.value}")
        return final

    def _step_budget(self, loop: asyncio.AbstractEventLoop, expires_at: Optional[float]) -> Optional[float]:
        """Seconds the next step may run: the smaller of step timeout and run deadline."""
        budgets = []
        if self.step_timeout is not None:
            budgets.append(self.step_timeout)
        if expires_at is not None:
            budgets.append(max(0.0, expires_at - loop.time()))
        return min(budgets) if budgets else None

    def _record_failure(self, run_id: str, step_name: str, message: str, step_start: float) -> None:
        logger.error(
            f"Run {run_id}: {step_name} step failed after "
            f"{time.monotonic() - step_start:.2f}s: {message}"
        )
        self.ledger.update_step(run_id, step_name, StepStatus.ERROR, error=message)

    @staticmethod
    async def _invoke(
        step: PipelineStep,
        context: StepContext,
        cancel_event: Optional[asyncio.Event],
        timeout: Optional[float],
    ) -> Mapping[str, MetaValue]:
        """Run step.execute, racing it against the cancel signal and timeout.

        Raises:
            StepCancelled: If cancel_event fired first.
            StepTimeout: If the budget ran out first.
        """
        if cancel_event is not None and cancel_event.is_set():
            raise StepCancelled(step.name)

        task = asyncio.ensure_future(step.execute(context))
        waiters = {task}
        cancel_waiter = None
        if cancel_event is not None:
            cancel_waiter = asyncio.ensure_future(cancel_event.wait())
            waiters.add(cancel_waiter)

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not task.done():
                task.cancel()
                # Let the step clean up (e.g. kill subprocesses) before recording
                await asyncio.gather(task, return_exceptions=True)

        if task in done:
            # Cancelled from inside the step, not by our caller
            if task.cancelled():
                raise StepCancelled(step.name)
            return task.result()
        if cancel_event is not None and cancel_event.is_set():
            raise StepCancelled(step.name)
        raise StepTimeout(step.name, timeout)
