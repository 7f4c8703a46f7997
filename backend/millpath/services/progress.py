"""
Phase‑scoped progress reporting.

Generation tasks report progress as ``{"event": "progress", "phase": n,
"percent": p}`` notifications through a caller supplied callback.  The
reporter rounds and clamps the percentage, suppresses repeated or
decreasing values within a phase and always finishes a phase at 100%.
Progress is telemetry only: a failing callback is logged and otherwise
ignored so it can never abort a generation run.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from ..api.models import ProgressEvent

logger = logging.getLogger(__name__)

EmitFn = Callable[[ProgressEvent], None]


class ProgressReporter:
    """Track completion of one phase and forward changes to ``emit``."""

    def __init__(self, emit: Optional[EmitFn], phase: int, total: int) -> None:
        self._emit = emit
        self.phase = phase
        self.total = max(1, int(total))
        self.done = 0
        self.last_percent: Optional[int] = None

    def advance(self, steps: int = 1) -> None:
        self.done += steps
        self.report(self.done / self.total * 100.0)

    def report(self, percent: float) -> None:
        value = min(100, max(0, int(round(percent))))
        if self.last_percent is not None and value <= self.last_percent:
            return
        self.last_percent = value
        if self._emit is None:
            return
        try:
            self._emit(ProgressEvent(phase=self.phase, percent=value))
        except Exception:
            logger.warning("progress callback failed for phase %d", self.phase, exc_info=True)

    def finish(self) -> None:
        """Make sure the phase ends with a 100% notification."""
        self.report(100.0)
