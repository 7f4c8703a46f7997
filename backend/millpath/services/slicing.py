"""
Plane slicing primitives for toolpath generation.

This module holds the pure geometric pieces used by every slicing
strategy: a small ``SlicePlane`` description of an axis‑aligned cutting
plane, helpers to move points between 3D model space and the plane's 2D
(u, v) coordinates, and the triangle/plane intersection routines that
produce raw ``SliceSegment`` objects.

Waterline machining slices along Z (``"xy"`` planes); raster scanning
slices along X (``"yz"`` planes) or Y (``"xz"`` planes).  Meshes are
passed around as ``numpy`` arrays of shape ``(n, 3, 3)`` so that the
per‑plane candidate selection can be vectorised; the actual crossing
computation is done per triangle.

Debug logging can be enabled via the ``SLICE_DEBUG`` environment
variable.  When set, the mesh intersection routine emits one concise
line per plane with the number of candidate triangles and segments.
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass
from typing import Iterable, List, Literal, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Point3 = Tuple[float, float, float]

# Index of the coordinate held constant by each plane type.
_PLANE_AXIS = {"xy": 2, "xz": 1, "yz": 0}
# u × v of each plane's (u, v) frame.
_PLANE_NORMAL = {"xy": (0.0, 0.0, 1.0), "xz": (0.0, -1.0, 0.0), "yz": (1.0, 0.0, 0.0)}


@dataclass(frozen=True)
class SlicePlane:
    """Immutable representation of an axis‑aligned slice plane.

    Attributes:
        plane_type: One of ``"xy"``, ``"xz"`` or ``"yz"`` naming the two
            coordinate axes that remain free in the plane.
        offset: The constant value along the axis orthogonal to the
            plane.  An ``"xy"`` plane with ``offset=2.5`` contains all
            points with ``z = 2.5``.
    """

    plane_type: Literal["xy", "xz", "yz"]
    offset: float

    @property
    def axis(self) -> int:
        """Index (0, 1 or 2) of the coordinate fixed by this plane."""
        return _PLANE_AXIS[self.plane_type]


def make_slice_plane(plane: str, offset: float) -> SlicePlane:
    """Construct a :class:`SlicePlane` from a plane identifier and offset.

    The identifier is normalised to lowercase.  Unlike a UI‑facing
    helper, an unknown plane is a programming error here and raises
    ``ValueError`` rather than silently defaulting.

    Args:
        plane: ``"xy"``, ``"xz"`` or ``"yz"`` (case insensitive).
        offset: Constant coordinate along the axis orthogonal to the
            plane.

    Returns:
        SlicePlane: A new plane description.
    """
    plane_norm = (plane or "").strip().lower()
    if plane_norm not in _PLANE_AXIS:
        raise ValueError(f"Unknown slice plane '{plane}'")
    return SlicePlane(plane_type=plane_norm, offset=float(offset))  # type: ignore[arg-type]


def project_point_to_plane_uv(p: Sequence[float], plane: SlicePlane) -> Tuple[float, float]:
    """Project a 3D point onto the 2D coordinate system of a slice plane.

    Args:
        p: The 3D point to project.
        plane: The slice plane specifying the orientation.

    Returns:
        A tuple ``(u, v)``: ``(x, y)`` for ``"xy"``, ``(x, z)`` for
        ``"xz"`` and ``(y, z)`` for ``"yz"``.
    """
    if plane.plane_type == "xy":
        return (p[0], p[1])
    elif plane.plane_type == "xz":
        return (p[0], p[2])
    else:  # "yz"
        return (p[1], p[2])


def lift_uv_to_3d(
    points_uv: Iterable[Tuple[float, float]],
    plane: SlicePlane,
) -> List[Point3]:
    """Lift 2D (u, v) points back into 3D coordinates on ``plane``.

    Args:
        points_uv: Sequence of (u, v) points in the plane's UV space.
        plane: The slice plane used to define the mapping.  Its offset
            becomes the constant coordinate along the orthogonal axis.

    Returns:
        A list of (x, y, z) points lying on the slice plane.
    """
    result: List[Point3] = []
    for u, v in points_uv:
        if plane.plane_type == "xy":
            result.append((u, v, plane.offset))
        elif plane.plane_type == "xz":
            result.append((u, plane.offset, v))
        else:  # "yz"
            result.append((plane.offset, u, v))
    return result


@dataclass(frozen=True)
class SliceSegment:
    """A line segment resulting from intersecting a triangle with a plane.

    Both endpoints lie on the slice plane and are expressed as 3D tuples.
    """

    p1: Point3
    p2: Point3


def mesh_from_flat(triangles: Sequence[float], triangle_count: Optional[int] = None) -> np.ndarray:
    """Convert a flat triangle coordinate list into an ``(n, 3, 3)`` array.

    The flat layout stores nine floats per triangle
    (``x0, y0, z0, x1, y1, z1, x2, y2, z2``).  A copy is always made so
    that callers may keep mutating their own buffer.

    Args:
        triangles: Flat list of coordinates.
        triangle_count: Expected number of triangles.  When given, the
            list length must equal ``9 * triangle_count``.

    Returns:
        A read‑only float64 array of shape ``(n, 3, 3)``.

    Raises:
        ValueError: If the coordinate count is not a multiple of nine or
            disagrees with ``triangle_count``.
    """
    arr = np.array(triangles, dtype=float).reshape(-1)
    if arr.size % 9 != 0:
        raise ValueError(f"mesh length {arr.size} is not a multiple of 9")
    if triangle_count is not None and arr.size != 9 * triangle_count:
        raise ValueError(
            f"mesh holds {arr.size // 9} triangles but triangleCount is {triangle_count}"
        )
    mesh = arr.reshape(-1, 3, 3)
    mesh.setflags(write=False)
    return mesh


def intersect_triangle_with_plane(
    A: Sequence[float],
    B: Sequence[float],
    C: Sequence[float],
    plane: SlicePlane,
) -> Optional[Tuple[Point3, Point3]]:
    """Intersect a single triangle with an axis‑aligned plane.

    An edge crosses the plane when its endpoints lie strictly on opposite
    sides of the plane value.  Vertices lying exactly on the plane are not
    snapped, so a triangle that merely touches the plane produces no
    segment.  Crossing points are linearly interpolated on all three
    coordinates and the plane coordinate is then set exactly to the plane
    offset.

    Args:
        A: First vertex of the triangle.
        B: Second vertex of the triangle.
        C: Third vertex of the triangle.
        plane: The slice plane.

    The triangle winding (counter‑clockwise seen from outside) orients
    the segment, so segments from a consistently wound mesh thread into
    loops whose winding tells outer walls from hole walls.

    Returns:
        The two crossing points, or ``None`` when the triangle does not
        produce exactly two crossings.
    """
    axis = plane.axis
    level = plane.offset
    verts = (A, B, C)
    points: List[Point3] = []
    # Edges: AB, BC, CA
    for i in range(3):
        a = verts[i]
        b = verts[(i + 1) % 3]
        if (a[axis] < level < b[axis]) or (a[axis] > level > b[axis]):
            t = (level - a[axis]) / (b[axis] - a[axis])
            pt = [
                float(a[0] + t * (b[0] - a[0])),
                float(a[1] + t * (b[1] - a[1])),
                float(a[2] + t * (b[2] - a[2])),
            ]
            pt[axis] = level
            points.append((pt[0], pt[1], pt[2]))
    if len(points) != 2:
        return None
    p, q = points
    # Order the segment so that, seen in the plane's (u, v) frame, the
    # material lies on its left: outward facing triangles then thread
    # into counter‑clockwise loops and hole walls into clockwise ones.
    normal = _cross(_sub(B, A), _sub(C, A))
    direction = _cross(_PLANE_NORMAL[plane.plane_type], normal)
    if sum(d * (qi - pi) for d, pi, qi in zip(direction, p, q)) < 0:
        p, q = q, p
    return p, q


def _sub(a: Sequence[float], b: Sequence[float]) -> Point3:
    return (float(a[0] - b[0]), float(a[1] - b[1]), float(a[2] - b[2]))


def _cross(a: Sequence[float], b: Sequence[float]) -> Point3:
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def straddling_triangles(mesh: np.ndarray, plane: SlicePlane) -> np.ndarray:
    """Return the subset of ``mesh`` whose extent strictly spans the plane."""
    if mesh.size == 0:
        return mesh
    coords = mesh[:, :, plane.axis]
    lo = coords.min(axis=1)
    hi = coords.max(axis=1)
    return mesh[(lo < plane.offset) & (hi > plane.offset)]


def intersect_mesh_with_plane(mesh: np.ndarray, plane: SlicePlane) -> List[SliceSegment]:
    """Intersect an entire mesh with a plane and collect line segments.

    Triangles are first filtered with a vectorised extent test; every
    remaining triangle is passed to :func:`intersect_triangle_with_plane`
    and contributes a :class:`SliceSegment` when it yields two crossings.

    Args:
        mesh: Triangle array of shape ``(n, 3, 3)``.
        plane: The slice plane.

    Returns:
        The intersection segments, in mesh order.
    """
    candidates = straddling_triangles(mesh, plane)
    segs: List[SliceSegment] = []
    for tri in candidates:
        hit = intersect_triangle_with_plane(tri[0], tri[1], tri[2], plane)
        if hit is not None:
            segs.append(SliceSegment(p1=hit[0], p2=hit[1]))
    if os.getenv("SLICE_DEBUG"):
        logger.debug(
            "intersect_mesh_with_plane: plane=%s offset=%.6f candidates=%d segments=%d",
            plane.plane_type,
            plane.offset,
            len(candidates),
            len(segs),
        )
    return segs


def plane_positions(start: float, stop: float, step: float, descending: bool = False) -> List[float]:
    """Enumerate plane positions between ``start`` and ``stop`` inclusive.

    Positions are generated as ``start + k * step`` (or ``stop - k * step``
    when ``descending``) from an integer counter to avoid accumulating
    floating point error.  The far boundary is included when it lies
    within ``1e-9`` of a step, and at least one position is always
    returned.

    Raises:
        ValueError: If ``step`` is not positive.
    """
    if step <= 0:
        raise ValueError("step must be positive")
    span = max(0.0, stop - start)
    count = int(np.floor(span / step + 1e-9)) + 1
    if descending:
        return [stop - k * step for k in range(count)]
    return [start + k * step for k in range(count)]


__all__ = [
    "Point3",
    "SlicePlane",
    "make_slice_plane",
    "project_point_to_plane_uv",
    "lift_uv_to_3d",
    "SliceSegment",
    "mesh_from_flat",
    "intersect_triangle_with_plane",
    "straddling_triangles",
    "intersect_mesh_with_plane",
    "plane_positions",
]
