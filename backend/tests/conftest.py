"""Shared fixtures: fake steps, a deterministic clock and a fresh ledger."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Mapping, Optional

import pytest

from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import MetaValue
from vidcast.steps.base import PipelineStep, StepContext


class FakeStep(PipelineStep):
    """Scriptable step: optional gate to hold it running, then payload or error."""

    def __init__(
        self,
        name: str,
        payload: Optional[Mapping[str, MetaValue]] = None,
        error: Optional[BaseException] = None,
        gate: Optional[asyncio.Event] = None,
        delay: float = 0.0,
    ):
        self.name = name
        self.payload = payload or {}
        self.error = error
        self.gate = gate
        self.delay = delay
        self.started = asyncio.Event()
        self.cancelled = False
        self.contexts: list[StepContext] = []

    async def execute(self, context: StepContext) -> Mapping[str, MetaValue]:
        self.contexts.append(context)
        self.started.set()
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.error is not None:
            raise self.error
        return self.payload


class TickingClock:
    """Clock that advances one second per call."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def fake_step():
    """Factory for FakeStep instances."""
    return FakeStep


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ledger(clock):
    return RunLedger(clock=clock)


@pytest.fixture
def happy_steps():
    """script -> render -> upload fakes that all succeed."""
    return [
        FakeStep("script", {"videoTitle": "5 AI Habits", "scriptPath": "/tmp/script.json", "sceneCount": 5}),
        FakeStep("render", {"outputPath": "/tmp/video.mp4", "durationSeconds": 25.0, "fileSizeBytes": 1024}),
        FakeStep("upload", {"publishedUrl": "https://www.youtube.com/watch?v=abc123", "videoId": "abc123"}),
    ]
