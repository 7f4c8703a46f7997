"""
Waterline generation task.

``generate_waterline`` runs the three phases of a waterline request in
strict order and returns the terminal result message:

1. slice the mesh into layers (:func:`.layers.slice_layers`),
2. accumulate shadow masks (:func:`.layers.accumulate_shadows`),
3. compute the toolpaths for the requested mode
   (:func:`.strategies.generate_toolpaths`).

Each phase reports progress through the optional ``emit`` callback.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from ..api.models import LayerResult, SliceDiagnosticsInfo, WaterlineRequest, WaterlineResult
from .layers import accumulate_shadows, slice_layers
from .progress import EmitFn
from .slicing import mesh_from_flat
from .strategies import CutParameters, generate_toolpaths

logger = logging.getLogger(__name__)

DEFAULT_STEPOVER_RATIO: float = 0.45


def resolve_stepover(stepover: Optional[float], tool_diameter: float) -> float:
    """Return ``stepover`` or the default fraction of the tool diameter."""
    if stepover is not None and stepover > 0:
        return float(stepover)
    return DEFAULT_STEPOVER_RATIO * tool_diameter


def generate_waterline(request: WaterlineRequest, emit: Optional[EmitFn] = None) -> WaterlineResult:
    """Generate layered toolpaths for a validated waterline request.

    Args:
        request: The parsed request.  Its mesh is copied into a private
            array; the request itself is not modified.
        emit: Optional progress callback.

    Returns:
        WaterlineResult: Layers from top to bottom with their toolpaths and
        the slicing diagnostics.
    """
    started = time.perf_counter()
    mesh = mesh_from_flat(request.mesh, request.triangleCount)
    params = CutParameters(
        tool_diameter=request.toolDiameter,
        stepover=resolve_stepover(request.stepover, request.toolDiameter),
        stock_allowance=request.stockAllowance,
    )

    layers, diagnostics = slice_layers(
        mesh, request.boundingBox, request.toolDiameter, request.stepdown, emit
    )
    layers = accumulate_shadows(layers, emit)
    layers = generate_toolpaths(layers, request.mode, params, emit)

    elapsed = time.perf_counter() - started
    logger.info(
        "waterline: mode=%s triangles=%d layers=%d paths=%d in %.2f s",
        request.mode,
        request.triangleCount,
        len(layers),
        sum(len(layer.toolpath) for layer in layers),
        elapsed,
    )
    return WaterlineResult(
        layers=[LayerResult(z=layer.z, toolpath=layer.toolpath) for layer in layers],
        diagnostics=SliceDiagnosticsInfo(
            segments=diagnostics.segments,
            contours=diagnostics.contours,
            openContours=diagnostics.open_contours,
            discardedContours=diagnostics.discarded_contours,
        ),
    )
