"""
Task boundary.

``run_task`` is the single entry point for a generation request.  It
validates the raw payload into one of the tagged request models,
dispatches to the matching generator and guarantees that exactly one
terminal message comes back: the generator's result, or an
:class:`~..api.models.ErrorEvent` carrying a readable message.  Errors are
never retried and partial results are never returned.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError

from ..api.models import (
    ErrorEvent,
    GcodeRequest,
    RasterRequest,
    TaskRequest,
    TerminalEvent,
    WaterlineRequest,
)
from .gcode import generate_gcode
from .progress import EmitFn
from .raster import generate_raster
from .waterline import generate_waterline

logger = logging.getLogger(__name__)

_request_adapter: TypeAdapter = TypeAdapter(TaskRequest)

# Command -> (generator, prefix used for error messages)
_HANDLERS: Dict[str, Tuple[Callable[..., Any], str]] = {
    "waterline": (generate_waterline, "Waterline error"),
    "raster": (generate_raster, "Raster error"),
    "gcode": (generate_gcode, "G-code generation failed"),
}


def parse_request(payload: Any) -> TaskRequest:
    """Validate a raw payload (dict or request model) into a request model.

    Raises:
        pydantic.ValidationError: If the payload matches no request kind.
    """
    if isinstance(payload, (WaterlineRequest, RasterRequest, GcodeRequest)):
        return payload
    return _request_adapter.validate_python(payload)


def _describe_validation_error(exc: ValidationError) -> str:
    parts: List[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "request"
        parts.append(f"{loc}: {err.get('msg')}")
    return "; ".join(parts)


def execute(request: TaskRequest, emit: Optional[EmitFn] = None) -> TerminalEvent:
    """Run an already validated request, converting failures to events."""
    handler, prefix = _HANDLERS[request.command]
    try:
        return handler(request, emit)
    except Exception as exc:
        logger.exception("%s task failed", request.command)
        return ErrorEvent(message=f"{prefix}: {exc}")


def run_task(payload: Any, emit: Optional[EmitFn] = None) -> TerminalEvent:
    """Validate ``payload`` and run it to completion.

    Args:
        payload: A request dict (as received from a client) or an already
            parsed request model.
        emit: Optional callback receiving progress events.

    Returns:
        The terminal message: a result model or an :class:`ErrorEvent`.
    """
    try:
        request = parse_request(payload)
    except ValidationError as exc:
        message = _describe_validation_error(exc)
        logger.warning("rejected task request: %s", message)
        return ErrorEvent(message=f"Invalid request: {message}")
    return execute(request, emit)
