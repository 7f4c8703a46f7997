"""
Toolpath strategies for waterline machining.

Every strategy consumes a layer whose ``vectors`` and ``shadow_mask`` are
known and produces closed rings at the layer's Z.  The area the tool must
respect on a layer is ``solid = vectors ∪ shadow_mask``: the part's own
cross‑section plus everything that overhangs it.

``waterline``
    A single finishing pass: the solid grown by the tool radius, i.e. the
    path of the cutter centre while its edge touches the wall.

``rough``
    Concentric pocketing of the stock left around the solid.  The pocket
    is ``stock_outline − (solid grown by the stock allowance)``; it is
    first inset by the tool radius and then repeatedly by the stepover
    until nothing is left.

``profile``
    The accumulated silhouette of the part from the top down to the
    current layer, inset by the tool radius.  Holes are ignored: only
    outer loops enter the running union.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from typing import List, Optional, Tuple

from .errors import GeometryError, InputError
from .kernel import (
    IntPaths,
    SCALE,
    dequantize,
    difference,
    extent,
    offset,
    outer_paths,
    to_scaled,
    union_oriented,
)
from .layers import Layer
from .progress import EmitFn, ProgressReporter

logger = logging.getLogger(__name__)

MODES = ("waterline", "rough", "profile")


@dataclass(frozen=True)
class CutParameters:
    """Tool and stepping parameters shared by all layers of a run."""

    tool_diameter: float
    stepover: float
    stock_allowance: float = 0.0

    @property
    def radius(self) -> float:
        return self.tool_diameter / 2.0


def rings_to_toolpaths(rings: IntPaths, z: float) -> List[List[float]]:
    """De‑quantize rings and flatten them into closed 3D polylines."""
    out: List[List[float]] = []
    for ring in rings:
        pts = dequantize(ring)
        pts.append(pts[0])
        flat: List[float] = []
        for u, v in pts:
            flat.extend((u, v, z))
        out.append(flat)
    return out


def finishing_rings(solid: IntPaths, params: CutParameters) -> IntPaths:
    """Tool‑centre boundary around ``solid`` (one contact pass)."""
    if not solid:
        return []
    return offset(solid, to_scaled(params.radius))


def roughing_rings(solid: IntPaths, stock_outline: List[List[int]], params: CutParameters) -> IntPaths:
    """Concentric rings clearing the stock around ``solid``.

    Rings are returned outermost pass first.  The inset loop is bounded
    by the pocket extent divided by the stepover; a kernel that keeps
    returning polygons past that bound is reported as a geometry error.
    """
    if params.stock_allowance > 0 and solid:
        area_to_machine = offset(solid, to_scaled(params.stock_allowance))
    else:
        area_to_machine = solid
    pocket = difference([stock_outline], area_to_machine)
    if not pocket:
        return []
    step = to_scaled(params.stepover)
    max_passes = math.ceil(extent(pocket) / step) + 1
    rings: IntPaths = []
    current = offset(pocket, -to_scaled(params.radius))
    passes = 0
    while current:
        passes += 1
        if passes > max_passes:
            raise GeometryError(
                f"roughing did not converge after {max_passes} passes (stepover={params.stepover})"
            )
        rings.extend(current)
        current = offset(current, -step)
    return rings


def profile_rings(running: IntPaths, vectors: IntPaths, params: CutParameters) -> Tuple[IntPaths, IntPaths]:
    """Advance the profile silhouette by one layer.

    Args:
        running: Silhouette accumulated over the layers above.
        vectors: Current layer contours.
        params: Cut parameters.

    Returns:
        ``(rings, running)``: this layer's rings and the updated
        silhouette to pass to the next layer.
    """
    outers = outer_paths(vectors)
    if outers:
        running = union_oriented(running, outers)
    if not running:
        return [], running
    return offset(running, -to_scaled(params.radius)), running


def generate_toolpaths(
    layers: List[Layer],
    mode: str,
    params: CutParameters,
    emit: Optional[EmitFn] = None,
) -> List[Layer]:
    """Phase 3: compute every layer's toolpath for ``mode``.

    Layers are processed top to bottom.  The profile silhouette is a
    local value threaded through the loop, so concurrent runs never share
    it.

    Returns:
        New layers with ``toolpath`` filled in.

    Raises:
        InputError: For an unknown mode or a non‑positive stepover in
            rough mode.
    """
    if mode not in MODES:
        raise InputError(f"Unknown machining mode '{mode}'")
    if mode == "rough" and params.stepover * SCALE < 1:
        raise InputError("stepover must be positive for roughing")
    progress = ProgressReporter(emit, phase=3, total=len(layers))
    running: IntPaths = []
    result: List[Layer] = []
    for layer in layers:
        if mode == "profile":
            rings, running = profile_rings(running, layer.vectors, params)
        else:
            solid = union_oriented(layer.vectors, layer.shadow_mask)
            if mode == "rough":
                rings = roughing_rings(solid, layer.stock_outline, params) if solid else []
            else:
                rings = finishing_rings(solid, params)
        result.append(replace(layer, toolpath=rings_to_toolpaths(rings, layer.z)))
        progress.advance()
    progress.finish()
    logger.debug(
        "generate_toolpaths: mode=%s layers=%d rings=%d",
        mode,
        len(result),
        sum(len(layer.toolpath) for layer in result),
    )
    return result
