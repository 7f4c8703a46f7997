"""
Persistent job metadata.

``JobRecord`` stores one row per submitted task: its identifier, kind,
status and timestamps, plus the error message when it failed.  Results
and progress events are *not* persisted; they live in memory in
:mod:`.jobs` for as long as the job is kept.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, SQLModel, select

from .db import create_db_and_tables, get_session


class JobRecord(SQLModel, table=True):
    """Database model for a background generation job."""

    job_id: str = Field(primary_key=True)
    command: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    # Status of the job: queued, running, done, failed
    status: str = Field(default="queued", index=True)
    error_message: Optional[str] = None


def init_db() -> None:
    """Create the job table if needed.  Safe to call repeatedly."""
    create_db_and_tables()


def insert_job_record(record: JobRecord) -> None:
    with get_session() as session:
        session.add(record)
        session.commit()


def get_job_record(job_id: str) -> Optional[JobRecord]:
    with get_session() as session:
        return session.get(JobRecord, job_id)


def list_job_records() -> List[JobRecord]:
    """Return all job records, newest first."""
    with get_session() as session:
        statement = select(JobRecord).order_by(JobRecord.created_at.desc())
        return list(session.exec(statement))


def update_job_status(job_id: str, status: str, error_message: Optional[str] = None) -> None:
    """Set the status of a job; terminal states also stamp ``finished_at``."""
    with get_session() as session:
        record = session.get(JobRecord, job_id)
        if record is None:
            return
        record.status = status
        record.error_message = error_message
        if status in ("done", "failed"):
            record.finished_at = datetime.utcnow()
        session.add(record)
        session.commit()


def delete_job_record(job_id: str) -> None:
    with get_session() as session:
        record = session.get(JobRecord, job_id)
        if record is None:
            return
        session.delete(record)
        session.commit()
