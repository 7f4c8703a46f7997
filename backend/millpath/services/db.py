"""
Database configuration and session management for the millpath backend.

This module defines a SQLModel engine targeting a SQLite database that
records background job metadata.  The database lives in the directory
named by ``MILLPATH_STORAGE_DIR`` or, by default, in the project's
``storage`` directory.  Jobs are executed on worker threads, so the
SQLite connection is opened with ``check_same_thread=False``.
"""

from __future__ import annotations

import os
from pathlib import Path

from sqlmodel import SQLModel, Session, create_engine

STORAGE_DIR = Path(
    os.getenv("MILLPATH_STORAGE_DIR") or Path(__file__).resolve().parents[2] / "storage"
)
STORAGE_DIR.mkdir(parents=True, exist_ok=True)

engine = create_engine(
    f"sqlite:///{(STORAGE_DIR / 'millpath.db').as_posix()}",
    echo=False,
    connect_args={"check_same_thread": False},
)


def create_db_and_tables() -> None:
    """Create all tables in the database if they do not exist yet."""
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    """Return a new SQLModel session bound to the engine.

    Use it as a context manager (``with get_session() as session: ...``)
    so that connections are closed promptly.
    """
    return Session(engine)
