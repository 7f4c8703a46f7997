"""
Shared pytest configuration.

The job database is redirected to a throwaway directory before any
``millpath`` module is imported, so test runs never touch the real
storage directory.
"""

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

os.environ.setdefault("MILLPATH_STORAGE_DIR", tempfile.mkdtemp(prefix="millpath-tests-"))

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))
