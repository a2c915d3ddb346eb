"""Abstract base class for pipeline steps.

Every stage of the pipeline (script, render, upload, or a fake in tests)
implements the same single async capability: given a read-only view of the
run so far, do the work and return a payload of scalar diagnostics, or raise.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from vidcast.orchestrator.models import MetaValue, Trigger


class StepContext(BaseModel):
    """Read-only view of the run handed to each step invocation.

    outputs holds the meta payload of every step that already succeeded in
    this run, keyed by step name. It is a copy; steps cannot reach ledger
    state through it.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    run_id: str
    trigger: Trigger
    topic: Optional[str] = None
    outputs: dict[str, dict[str, MetaValue]] = Field(default_factory=dict)
    video_title: Optional[str] = None
    cancel_event: Optional[asyncio.Event] = None

    def output(self, step: str, key: str, default: Optional[MetaValue] = None) -> Optional[MetaValue]:
        """Return one value produced by an upstream step."""
        return self.outputs.get(step, {}).get(key, default)

    @property
    def cancelled(self) -> bool:
        """True once the run's cancellation signal has fired."""
        return self.cancel_event is not None and self.cancel_event.is_set()


class PipelineStep(ABC):
    """Abstract base class for pipeline steps.

    Subclasses set ``name`` (the stable identifier recorded in the ledger)
    and implement execute(). The orchestrator never retries a step; a step
    that wants retries owns them internally.
    """

    name: str = ""

    @abstractmethod
    async def execute(self, context: StepContext) -> Mapping[str, MetaValue]:
        """Perform the step's work.

        Args:
            context: Topic hint and upstream outputs for this run.

        Returns:
            Mapping of scalar diagnostics stored as the step's meta. The keys
            "videoTitle" and "publishedUrl" are also lifted onto the run.

        Raises:
            StepError: With a descriptive message on failure. Any other
                exception is treated the same way.
        """
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
