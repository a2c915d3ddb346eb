"""API route handlers and Pydantic request schemas.

Endpoints:
- GET  /api/status         all runs, most recent first
- GET  /api/runs/{run_id}  one run
- POST /api/trigger        manual run (waits for the run to finish)
- GET  /api/cron/run       scheduled run; skips when a run is in flight
"""

import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from vidcast.orchestrator.errors import ConcurrentRunError
from vidcast.orchestrator.ledger import RunLedger
from vidcast.orchestrator.models import Trigger
from vidcast.orchestrator.pipeline import (
    TOPIC_MAX_LENGTH,
    TOPIC_MIN_LENGTH,
    PipelineOrchestrator,
    normalize_topic,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


class TriggerRequest(BaseModel):
    """Body of POST /api/trigger."""

    topic: Optional[str] = Field(
        default=None,
        min_length=TOPIC_MIN_LENGTH,
        max_length=TOPIC_MAX_LENGTH,
        description="Optional hint steering the video's subject",
    )

    @field_validator("topic", mode="before")
    @classmethod
    def strip_topic(cls, v):
        # Same trimming as the orchestrator so the length limits agree
        return normalize_topic(v)


def get_ledger(request: Request) -> RunLedger:
    return request.app.state.ledger


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def _run_timeout(request: Request) -> Optional[float]:
    return request.app.state.settings.pipeline.run_timeout_seconds


@router.get("/status")
async def get_status(ledger: RunLedger = Depends(get_ledger)):
    """List every run known to this process, most recent first."""
    return {"runs": [run.to_wire() for run in ledger.list_runs()]}


@router.get("/runs/{run_id}")
async def get_run(run_id: str, ledger: RunLedger = Depends(get_ledger)):
    """Return one run by ID."""
    run = ledger.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return run.to_wire()


@router.post("/trigger")
async def trigger_run(
    request: Request,
    body: Optional[TriggerRequest] = None,
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Start a manual run and wait for it to finish.

    Returns 409 if another run is in flight.
    """
    topic = body.topic if body else None
    try:
        run = await orchestrator.start_run(
            Trigger.MANUAL, topic, deadline=_run_timeout(request)
        )
    except ConcurrentRunError as e:
        raise HTTPException(
            status_code=409,
            detail={"error": str(e), "activeRunId": e.active_run_id},
        )
    return {"ok": True, "runId": run.id, "run": run.to_wire()}


@router.get("/cron/run")
async def cron_run(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Scheduled trigger. Skips (and logs) when a run is already in flight."""
    secret = request.app.state.settings.cron.secret
    if secret:
        expected = f"Bearer {secret}"
        if not authorization or not secrets.compare_digest(authorization, expected):
            raise HTTPException(status_code=401, detail="Invalid cron credentials")

    try:
        run = await orchestrator.start_run(Trigger.CRON, deadline=_run_timeout(request))
    except ConcurrentRunError as e:
        logger.info(f"Cron trigger skipped: run {e.active_run_id} in flight")
        return {"ok": False, "skipped": True, "activeRunId": e.active_run_id}
    return {"ok": True, "runId": run.id, "status": run.status.value}
