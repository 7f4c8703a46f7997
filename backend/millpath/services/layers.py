"""
Layer model and shadow accumulation for waterline machining.

A waterline run works on a stack of horizontal layers created from the
top of the part (``maxZ``) down to its bottom (``minZ``).  Each layer is
filled in phase by phase:

1. :func:`slice_layers` cuts the mesh at every Z level and stores the
   oriented cross‑section polygons as the layer's ``vectors``.
2. :func:`accumulate_shadows` sweeps the stack top‑down and gives every
   layer a ``shadow_mask``: the union of the vectors of all layers above
   it.  Material in the shadow mask overhangs the current layer, so the
   tool may never be driven through it from below.
3. The toolpath strategies (see :mod:`.strategies`) fill ``toolpath``.

Phases never mutate the layers they receive; each returns new
:class:`Layer` values built with :func:`dataclasses.replace`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional, Tuple

import numpy as np

from ..api.models import BoundingBox
from .contours import link_segments_to_contours
from .kernel import IntPath, IntPaths, filter_paths, normalize, quantize, rectangle, union_oriented
from .progress import EmitFn, ProgressReporter
from .slicing import intersect_mesh_with_plane, make_slice_plane, plane_positions

logger = logging.getLogger(__name__)

# Stock outline margin around the part, as a multiple of the tool diameter.
STOCK_MARGIN_FACTOR: float = 2.0


@dataclass(frozen=True)
class Layer:
    """One Z level of a waterline run.

    Attributes:
        z: Height of the slicing plane.
        stock_outline: Quantized stock rectangle, shared by all layers.
        vectors: Oriented cross‑section of the mesh at ``z`` (outer loops
            counter‑clockwise, holes clockwise).
        shadow_mask: Oriented union of the vectors of all layers above.
        toolpath: Output polylines, each a flat closed
            ``[x, y, z, x, y, z, ...]`` list.
    """

    z: float
    stock_outline: IntPath
    vectors: IntPaths = field(default_factory=list)
    shadow_mask: IntPaths = field(default_factory=list)
    toolpath: List[List[float]] = field(default_factory=list)


@dataclass
class SliceDiagnostics:
    """Counters describing how much of the sliced geometry survived."""

    segments: int = 0
    contours: int = 0
    open_contours: int = 0
    discarded_contours: int = 0


def build_stock_outline(bbox: BoundingBox, tool_diameter: float) -> IntPath:
    """Quantized stock rectangle around the part's XY footprint.

    The rectangle is grown by ``STOCK_MARGIN_FACTOR * tool_diameter`` on
    every side, which always exceeds twice the tool radius.
    """
    margin = STOCK_MARGIN_FACTOR * tool_diameter
    return rectangle(
        bbox.minX - margin,
        bbox.minY - margin,
        bbox.maxX + margin,
        bbox.maxY + margin,
    )


def layer_heights(bbox: BoundingBox, stepdown: float) -> List[float]:
    """Z levels from ``maxZ`` down to ``minZ`` in ``stepdown`` increments."""
    return plane_positions(bbox.minZ, bbox.maxZ, stepdown, descending=True)


def slice_layers(
    mesh: np.ndarray,
    bbox: BoundingBox,
    tool_diameter: float,
    stepdown: float,
    emit: Optional[EmitFn] = None,
) -> Tuple[List[Layer], SliceDiagnostics]:
    """Phase 1: cut the mesh into layers of quantized contours.

    Args:
        mesh: Triangle array of shape ``(n, 3, 3)``.
        bbox: Bounding box of the mesh.
        tool_diameter: Cutter diameter, used for the stock outline.
        stepdown: Vertical distance between layers.
        emit: Optional progress callback (phase 1, one step per layer).

    Returns:
        The layers ordered top to bottom, and slicing diagnostics.
    """
    heights = layer_heights(bbox, stepdown)
    stock = build_stock_outline(bbox, tool_diameter)
    diagnostics = SliceDiagnostics()
    progress = ProgressReporter(emit, phase=1, total=len(heights))
    layers: List[Layer] = []
    for z in heights:
        segments = intersect_mesh_with_plane(mesh, make_slice_plane("xy", z))
        vectors: IntPaths = []
        if segments:
            assembled = link_segments_to_contours(segments)
            kept = filter_paths(quantize(assembled.contours))
            vectors = normalize(kept)
            diagnostics.segments += len(segments)
            diagnostics.contours += len(assembled.contours)
            diagnostics.open_contours += assembled.open_count
            diagnostics.discarded_contours += len(assembled.contours) - len(kept)
        layers.append(Layer(z=z, stock_outline=stock, vectors=vectors))
        progress.advance()
    progress.finish()
    if diagnostics.open_contours:
        logger.info(
            "slice_layers: %d open contour(s) across %d layers, mesh may have gaps",
            diagnostics.open_contours,
            len(layers),
        )
    return layers, diagnostics


def accumulate_shadows(layers: List[Layer], emit: Optional[EmitFn] = None) -> List[Layer]:
    """Phase 2: attach the shadow mask of every layer.

    Layers must be ordered top to bottom.  The running union starts
    empty, so the top layer has no shadow; each following layer receives
    the union of all vectors seen before it.

    Returns:
        New layers, in the same order, with ``shadow_mask`` filled in.
    """
    progress = ProgressReporter(emit, phase=2, total=len(layers))
    running: IntPaths = []
    result: List[Layer] = []
    for layer in layers:
        result.append(replace(layer, shadow_mask=running))
        if layer.vectors:
            running = union_oriented(running, layer.vectors)
        progress.advance()
    progress.finish()
    return result
