"""
Integer polygon kernel adapter.

All 2D boolean and offset work goes through ``pyclipper``.  Clipper works
on integer coordinates, so model‑space points are quantized by
multiplying with :data:`SCALE` and rounding before they enter the kernel
and divided by the same factor on the way out.  This keeps unions,
differences and offsets stable under the floating point noise produced
by mesh slicing.

Paths handled here are lists of ``[X, Y]`` integer pairs.  Path sets
returned by :func:`union_oriented` and :func:`difference` follow the
orientation convention "outer loops counter‑clockwise, holes clockwise"
so that they can be fed straight into :func:`offset`.  Every result is
filtered with :func:`filter_paths`; sliver polygons below
:data:`MIN_POLY_AREA` are treated as numerical noise and dropped.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

import pyclipper

from .errors import GeometryError

IntPath = List[List[int]]
IntPaths = List[IntPath]

# Model units -> kernel integer units.
SCALE: int = 10000
# Smallest polygon kept anywhere in the pipeline (model units squared).
MIN_POLY_AREA: float = 0.5
MIN_AREA_SCALED: float = MIN_POLY_AREA * SCALE * SCALE
# Maximum deviation of round joins from the true arc (model units).
ARC_TOLERANCE: float = 0.0025


def to_scaled(value: float) -> int:
    """Quantize a length, never returning less than one kernel unit."""
    return max(1, int(round(value * SCALE)))


def quantize(contours: Iterable[Sequence[Sequence[float]]]) -> IntPaths:
    """Quantize 2D contours, dropping those with fewer than three points.

    Only the first two coordinates of each point are used, so 3D points
    lying in an ``xy`` plane can be passed directly.
    """
    out: IntPaths = []
    for contour in contours:
        if len(contour) < 3:
            continue
        out.append([[int(round(p[0] * SCALE)), int(round(p[1] * SCALE))] for p in contour])
    return out


def dequantize(path: Sequence[Sequence[int]]) -> List[tuple]:
    """Convert one kernel path back to model‑space ``(u, v)`` tuples."""
    return [(pt[0] / SCALE, pt[1] / SCALE) for pt in path]


def polygon_area(path: Sequence[Sequence[int]]) -> float:
    """Absolute shoelace area of an integer path (kernel units squared)."""
    n = len(path)
    if n < 3:
        return 0.0
    area = 0
    for i in range(n):
        x0, y0 = path[i]
        x1, y1 = path[(i + 1) % n]
        area += x0 * y1 - x1 * y0
    return abs(area) / 2.0


def filter_paths(paths: Iterable[Sequence[Sequence[int]]], min_area: float = MIN_AREA_SCALED) -> IntPaths:
    """Keep paths with at least three points and area above ``min_area``."""
    return [
        [list(pt) for pt in p]
        for p in paths
        if len(p) >= 3 and polygon_area(p) > min_area
    ]


def total_area(paths: Iterable[Sequence[Sequence[int]]]) -> float:
    """Signed‑orientation aware area of an oriented path set.

    Outer loops (counter‑clockwise) count positive and holes (clockwise)
    negative, giving the filled area of a set produced by
    :func:`union_oriented`.
    """
    return float(sum(pyclipper.Area(p) for p in paths if len(p) >= 3))


def _polytree_to_oriented(tree: pyclipper.PyPolyNode) -> IntPaths:
    result: IntPaths = []

    def visit(node: pyclipper.PyPolyNode) -> None:
        for child in node.Childs:
            contour = [list(pt) for pt in child.Contour]
            should_be_ccw = not child.IsHole
            if contour and pyclipper.Orientation(contour) != should_be_ccw:
                contour.reverse()
            if len(contour) >= 3 and polygon_area(contour) > MIN_AREA_SCALED:
                result.append(contour)
            visit(child)

    visit(tree)
    return result


def _execute_tree(
    clip_type: int,
    subject: IntPaths,
    clip: IntPaths,
    fill_type: int = pyclipper.PFT_NONZERO,
) -> IntPaths:
    pc = pyclipper.Pyclipper()
    try:
        if subject:
            pc.AddPaths(subject, pyclipper.PT_SUBJECT, True)
        if clip:
            pc.AddPaths(clip, pyclipper.PT_CLIP, True)
        tree = pc.Execute2(clip_type, fill_type, fill_type)
    except pyclipper.ClipperException as exc:
        raise GeometryError(f"polygon clipping failed: {exc}") from exc
    return _polytree_to_oriented(tree)


def normalize(paths: Sequence[IntPath]) -> IntPaths:
    """Turn wound slice loops into an oriented set.

    Slice loops inherit their winding from the mesh: outer walls run one
    way and hole walls the other.  A non‑zero union keeps regions covered
    by overlapping shells solid while a hole wall cancels the loop around
    it.  Meshes wound inside out give the same result.
    """
    subject = [list(p) for p in paths if len(p) >= 3]
    if not subject:
        return []
    return _execute_tree(pyclipper.CT_UNION, subject, [])


def outer_paths(paths: Sequence[IntPath]) -> IntPaths:
    """Counter‑clockwise (outer) loops of an oriented set; holes dropped."""
    return [list(p) for p in paths if len(p) >= 3 and pyclipper.Orientation(p)]


def union_oriented(*path_sets: Sequence[IntPath]) -> IntPaths:
    """Union any number of path sets into one oriented set.

    Holes are preserved: the result lists every outer loop
    counter‑clockwise followed by its holes clockwise.
    """
    subject: IntPaths = [list(p) for paths in path_sets if paths for p in paths if len(p) >= 3]
    if not subject:
        return []
    return _execute_tree(pyclipper.CT_UNION, subject, [])


def difference(subject: Sequence[IntPath], clip: Sequence[IntPath]) -> IntPaths:
    """Return ``subject`` minus ``clip`` as an oriented path set."""
    subject_paths = [list(p) for p in subject if len(p) >= 3]
    if not subject_paths:
        return []
    clip_paths = [list(p) for p in clip if len(p) >= 3]
    return _execute_tree(pyclipper.CT_DIFFERENCE, subject_paths, clip_paths)


def offset(paths: Sequence[IntPath], delta: int) -> IntPaths:
    """Offset an oriented path set by ``delta`` kernel units.

    Positive values grow the filled area, negative values shrink it.
    Joins are rounded and paths are treated as closed polygons.
    """
    if not paths:
        return []
    co = pyclipper.PyclipperOffset()
    co.ArcTolerance = ARC_TOLERANCE * SCALE
    try:
        co.AddPaths([list(p) for p in paths], pyclipper.JT_ROUND, pyclipper.ET_CLOSEDPOLYGON)
        solution = co.Execute(delta)
    except pyclipper.ClipperException as exc:
        raise GeometryError(f"polygon offset failed: {exc}") from exc
    return filter_paths(solution)


def rectangle(min_x: float, min_y: float, max_x: float, max_y: float) -> IntPath:
    """Counter‑clockwise quantized rectangle."""
    return [
        [int(round(min_x * SCALE)), int(round(min_y * SCALE))],
        [int(round(max_x * SCALE)), int(round(min_y * SCALE))],
        [int(round(max_x * SCALE)), int(round(max_y * SCALE))],
        [int(round(min_x * SCALE)), int(round(max_y * SCALE))],
    ]


def extent(paths: Sequence[IntPath]) -> int:
    """Largest bounding box dimension of a path set, in kernel units."""
    xs = [pt[0] for p in paths for pt in p]
    ys = [pt[1] for p in paths for pt in p]
    if not xs:
        return 0
    return max(max(xs) - min(xs), max(ys) - min(ys))
