"""
Background execution of generation tasks.

Submitted requests run on a small thread pool; every job is a fully
independent :func:`~.tasks.execute` call with its own copy of the
request.  While a job runs, its progress events are buffered in memory
so clients can poll them; the terminal message is kept next to them once
the job finishes.  Job metadata (status, timestamps, error message) is
persisted through :mod:`.jobs_store`.

Only the ``MAX_RETAINED_JOBS`` most recently finished jobs keep their
events and result in memory.  Older finished jobs are evicted; their
database record stays and ``/jobs/{id}/events`` reports them as no
longer available.

The in‑memory registry is protected by a reentrant lock because worker
threads append events while request handlers read them.
"""

from __future__ import annotations

import logging
import os
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from threading import RLock
from typing import Dict, List, Optional

from ..api.models import ErrorEvent, ProgressEvent, TaskEvent, TaskRequest, TerminalEvent
from .jobs_store import (
    JobRecord,
    delete_job_record,
    get_job_record,
    insert_job_record,
    update_job_status,
)
from .tasks import execute

logger = logging.getLogger(__name__)

MAX_WORKERS: int = int(os.getenv("MILLPATH_MAX_WORKERS", "2"))
# Finished jobs whose events and result are kept in memory.
MAX_RETAINED_JOBS: int = int(os.getenv("MILLPATH_MAX_RETAINED_JOBS", "100"))


@dataclass
class JobState:
    """In‑memory state of one job."""

    command: str
    events: List[TaskEvent] = field(default_factory=list)
    terminal: Optional[TerminalEvent] = None
    future: Optional[Future] = None


_jobs: Dict[str, JobState] = {}
_lock = RLock()
_executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="millpath-job")


def _append_event(job_id: str, event: TaskEvent) -> None:
    with _lock:
        state = _jobs.get(job_id)
        if state is not None:
            state.events.append(event)


def _set_status(job_id: str, status: str, error_message: Optional[str] = None) -> None:
    try:
        update_job_status(job_id, status, error_message)
    except Exception:
        logger.exception("could not record status %r for job %s", status, job_id)


def _evict_finished() -> None:
    """Drop the oldest finished jobs beyond ``MAX_RETAINED_JOBS``."""
    with _lock:
        finished = [job_id for job_id, state in _jobs.items() if state.terminal is not None]
        for job_id in finished[: max(0, len(finished) - MAX_RETAINED_JOBS)]:
            del _jobs[job_id]
            logger.debug("evicted events of job %s", job_id)


def _run_job(job_id: str, request: TaskRequest) -> None:
    _set_status(job_id, "running")
    logger.info("job %s (%s) started", job_id, request.command)
    terminal = execute(request, lambda event: _append_event(job_id, event))
    if isinstance(terminal, ErrorEvent):
        _set_status(job_id, "failed", terminal.message)
        logger.info("job %s failed: %s", job_id, terminal.message)
    else:
        _set_status(job_id, "done")
        logger.info("job %s finished", job_id)
    with _lock:
        state = _jobs.get(job_id)
        if state is not None:
            state.events.append(terminal)
            state.terminal = terminal
        _evict_finished()


def submit_job(request: TaskRequest) -> JobRecord:
    """Register ``request`` as a new job and schedule it.

    Returns:
        The persisted :class:`JobRecord` in ``queued`` state.
    """
    job_id = uuid.uuid4().hex
    record = JobRecord(job_id=job_id, command=request.command)
    insert_job_record(record)
    with _lock:
        _jobs[job_id] = JobState(command=request.command)
    future = _executor.submit(_run_job, job_id, request.model_copy(deep=True))
    with _lock:
        state = _jobs.get(job_id)
        if state is not None:
            state.future = future
    return get_job_record(job_id) or record


def get_job_events(job_id: str) -> Optional[List[TaskEvent]]:
    """Snapshot of the buffered events of a job, or ``None`` if unknown."""
    with _lock:
        state = _jobs.get(job_id)
        if state is None:
            return None
        return list(state.events)


def get_terminal_event(job_id: str) -> Optional[TerminalEvent]:
    with _lock:
        state = _jobs.get(job_id)
        return state.terminal if state is not None else None


def latest_progress(job_id: str) -> Optional[ProgressEvent]:
    """Most recent progress event of a job, if any."""
    with _lock:
        state = _jobs.get(job_id)
        if state is None:
            return None
        for event in reversed(state.events):
            if isinstance(event, ProgressEvent):
                return event
        return None


def wait_for_job(job_id: str, timeout: Optional[float] = None) -> Optional[TerminalEvent]:
    """Block until a job finishes and return its terminal event."""
    with _lock:
        state = _jobs.get(job_id)
        future = state.future if state is not None else None
    if future is not None:
        future.result(timeout=timeout)
    return get_terminal_event(job_id)


def forget_job(job_id: str) -> None:
    """Drop a job's buffered state and its database record.

    A job that is still running is not interrupted; its result is simply
    discarded when it completes.
    """
    with _lock:
        _jobs.pop(job_id, None)
    delete_job_record(job_id)
