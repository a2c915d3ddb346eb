"""Pydantic models for run records and step records.

Records are frozen: the ledger replaces them wholesale on every mutation, so
a reader holding a reference always sees a complete, consistent record.
Field names serialize to camelCase for the JSON wire format.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Closed set of scalar types allowed in step meta payloads
MetaValue = Union[bool, int, float, str, datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Trigger(str, Enum):
    """Origin of a run. Provenance only; no orchestration logic depends on it."""

    CRON = "cron"
    MANUAL = "manual"
    CLI = "cli"


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class _Record(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class StepRecord(_Record):
    """Execution record of one step within a run."""

    name: str
    status: StepStatus = StepStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    meta: dict[str, MetaValue] = Field(default_factory=dict)


class Run(_Record):
    """One end-to-end execution of the pipeline for a single trigger event."""

    id: str
    trigger: Trigger
    topic: Optional[str] = None
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    video_title: Optional[str] = None
    published_url: Optional[str] = None
    steps: tuple[StepRecord, ...] = ()

    def step(self, name: str) -> Optional[StepRecord]:
        """Return the most recent step record with the given name, if any."""
        for record in reversed(self.steps):
            if record.name == name:
                return record
        return None

    def to_wire(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict (camelCase keys, ISO-8601 timestamps)."""
        return self.model_dump(mode="json", by_alias=True)
