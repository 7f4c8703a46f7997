"""
Routes for running generation tasks.

Two ways of running a task are exposed.  ``POST /tasks/run`` executes the
request synchronously and returns every message it produced, which is
convenient for small meshes and for scripting.  ``POST /jobs`` schedules
the request in the background; clients then poll the job for progress
and its final message, and may export a finished toolpath job as
G‑code.
"""

from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, HTTPException, Response

from .models import (
    ErrorEvent,
    GcodeOptions,
    JobInfo,
    JobStatusResponse,
    RasterResult,
    TaskEvent,
    TaskRequest,
    TaskRunResponse,
    WaterlineResult,
)
from ..services.gcode import flatten_layers, paths_to_gcode
from ..services.jobs import (
    forget_job,
    get_job_events,
    get_terminal_event,
    latest_progress,
    submit_job,
)
from ..services.jobs_store import JobRecord, get_job_record, list_job_records
from ..services.tasks import execute

logger = logging.getLogger(__name__)

router = APIRouter()


def _job_info(record: JobRecord) -> JobInfo:
    return JobInfo(
        jobId=record.job_id,
        command=record.command,
        status=record.status,
        createdAt=record.created_at,
        finishedAt=record.finished_at,
        errorMessage=record.error_message,
    )


def _require_job(job_id: str) -> JobRecord:
    record = get_job_record(job_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return record


@router.post("/tasks/run", response_model=TaskRunResponse)
def run_task_sync(body: TaskRequest) -> TaskRunResponse:
    """Run a task to completion and return its progress and final message.

    Runs in FastAPI's thread pool.
    """
    events: List[TaskEvent] = []
    terminal = execute(body, events.append)
    events.append(terminal)
    return TaskRunResponse(events=events)


@router.post("/jobs", response_model=JobInfo, status_code=202)
async def create_job(body: TaskRequest) -> JobInfo:
    """Schedule a task as a background job."""
    record = submit_job(body)
    logger.info("queued job %s (%s)", record.job_id, record.command)
    return _job_info(record)


@router.get("/jobs", response_model=list[JobInfo])
async def list_jobs() -> list[JobInfo]:
    return [_job_info(r) for r in list_job_records()]


@router.get("/jobs/{job_id}", response_model=JobStatusResponse)
async def get_job(job_id: str) -> JobStatusResponse:
    """Return a job's status, its latest progress and its final message."""
    record = _require_job(job_id)
    info = _job_info(record)
    return JobStatusResponse(
        **info.model_dump(),
        progress=latest_progress(job_id),
        result=get_terminal_event(job_id),
    )


@router.get("/jobs/{job_id}/events", response_model=List[TaskEvent])
async def get_events(job_id: str) -> List[TaskEvent]:
    _require_job(job_id)
    events = get_job_events(job_id)
    if events is None:
        # Record survives a restart but buffered events do not.
        raise HTTPException(status_code=404, detail="Job events are no longer available")
    return events


@router.get("/jobs/{job_id}/gcode")
async def export_job_gcode(
    job_id: str,
    feed: float = 1000.0,
    plunge: float = 300.0,
    safeZ: float = 5.0,
) -> Response:
    """Export the toolpaths of a finished waterline or raster job as G‑code.

    Query Parameters:
        feed: Cutting feed rate.
        plunge: Plunge feed rate.
        safeZ: Retract height between paths.
    """
    _require_job(job_id)
    terminal = get_terminal_event(job_id)
    if terminal is None:
        raise HTTPException(status_code=409, detail="Job has not finished")
    if isinstance(terminal, ErrorEvent):
        raise HTTPException(status_code=409, detail=f"Job failed: {terminal.message}")
    if isinstance(terminal, WaterlineResult):
        paths = flatten_layers(layer.toolpath for layer in terminal.layers)
    elif isinstance(terminal, RasterResult):
        paths = terminal.paths
    else:
        raise HTTPException(status_code=409, detail="Job did not produce toolpaths")
    try:
        options = GcodeOptions(feed=feed, plunge=plunge, safeZ=safeZ)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return Response(content=paths_to_gcode(paths, options), media_type="text/plain")


@router.delete("/jobs/{job_id}", status_code=204)
async def delete_job(job_id: str) -> None:
    _require_job(job_id)
    forget_job(job_id)
