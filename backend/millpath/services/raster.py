"""
Directional raster scanning.

A raster run steps vertical slicing planes across the part, along X
(``direction="x"``, planes of constant x) or along Y (``direction="y"``,
planes of constant y).  In each plane the cross‑section is assembled
from the mesh, grown by the tool radius in the plane's own (u, v)
coordinates and lifted back onto the plane, giving the tool centre
profile for that scan line.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..api.models import RasterRequest, RasterResult
from .contours import link_segments_to_contours
from .kernel import dequantize, filter_paths, normalize, offset, quantize, to_scaled
from .progress import EmitFn, ProgressReporter
from .slicing import (
    intersect_mesh_with_plane,
    lift_uv_to_3d,
    make_slice_plane,
    mesh_from_flat,
    plane_positions,
    project_point_to_plane_uv,
)
from .waterline import resolve_stepover

logger = logging.getLogger(__name__)

# Scan direction -> plane type holding that coordinate constant.
_SCAN_PLANES = {"x": "yz", "y": "xz"}


def generate_raster(request: RasterRequest, emit: Optional[EmitFn] = None) -> RasterResult:
    """Generate raster scan profiles for a validated request.

    Returns:
        RasterResult: Closed flat 3D polylines, in scan order.
    """
    mesh = mesh_from_flat(request.mesh, request.triangleCount)
    bbox = request.boundingBox
    stepover = resolve_stepover(request.stepover, request.toolDiameter)
    radius_scaled = to_scaled(request.toolDiameter / 2.0)
    if request.direction == "x":
        positions = plane_positions(bbox.minX, bbox.maxX, stepover)
    else:
        positions = plane_positions(bbox.minY, bbox.maxY, stepover)

    progress = ProgressReporter(emit, phase=1, total=len(positions))
    paths: List[List[float]] = []
    for pos in positions:
        plane = make_slice_plane(_SCAN_PLANES[request.direction], pos)
        segments = intersect_mesh_with_plane(mesh, plane)
        if segments:
            contours = link_segments_to_contours(segments).contours
            uv_contours = [[project_point_to_plane_uv(p, plane) for p in c] for c in contours]
            section = normalize(filter_paths(quantize(uv_contours)))
            for ring in offset(section, radius_scaled):
                pts = lift_uv_to_3d(dequantize(ring), plane)
                pts.append(pts[0])
                paths.append([coord for p in pts for coord in p])
        progress.advance()
    progress.finish()
    logger.info(
        "raster: direction=%s planes=%d paths=%d",
        request.direction,
        len(positions),
        len(paths),
    )
    return RasterResult(paths=paths)
