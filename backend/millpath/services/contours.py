"""
Segment threading for slice contours.

Segments produced by :func:`~.slicing.intersect_mesh_with_plane` arrive in
mesh order with no connectivity information.  ``link_segments_to_contours``
stitches them into chains by greedily matching endpoints within a small
tolerance.  Chains whose two ends meet are closed loops; anything else is
an *open* chain, which usually means the mesh has a gap at that height.
Open chains are kept in the output (they are filtered by area later) and
counted so that callers can detect degenerate input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence

from .slicing import Point3, SliceSegment

# Endpoint matching tolerance in model units.  Compared squared.
CHAIN_EPS: float = 1e-6


def distance_sq(a: Sequence[float], b: Sequence[float]) -> float:
    dx = a[0] - b[0]
    dy = a[1] - b[1]
    dz = a[2] - b[2]
    return dx * dx + dy * dy + dz * dz


@dataclass
class ContourSet:
    """Chains assembled from the segments of one plane.

    Attributes:
        contours: Point lists in traversal order.  Closed loops do not
            repeat their first point.
        open_count: Number of chains whose ends did not meet.
    """

    contours: List[List[Point3]] = field(default_factory=list)
    open_count: int = 0


def link_segments_to_contours(segments: Sequence[SliceSegment], eps: float = CHAIN_EPS) -> ContourSet:
    """Greedily thread unordered segments into contours.

    A segment is taken from the end of the pool as the seed of a new
    chain.  The pool is then scanned (back to front) for a segment with an
    endpoint within ``eps`` of the chain's tail or head; the matching
    segment's far point is appended or prepended and the segment removed.
    Scanning restarts after every match and stops when a full pass finds
    nothing.  If the finished chain has more than two points and its ends
    coincide, the duplicate last point is dropped.

    The algorithm is quadratic in the number of segments, which is fine
    for per‑plane segment counts.  It tolerates floating point noise from
    the triangle intersections but does not bridge real mesh gaps.

    Args:
        segments: Segments lying on one plane.
        eps: Endpoint matching distance.

    Returns:
        ContourSet: The chains and the number of open ones.
    """
    threshold = eps * eps
    pool = list(segments)
    result = ContourSet()
    while pool:
        seed = pool.pop()
        contour: List[Point3] = [seed.p1, seed.p2]
        changed = True
        while changed:
            changed = False
            for i in range(len(pool) - 1, -1, -1):
                s, e = pool[i].p1, pool[i].p2
                if distance_sq(contour[-1], s) < threshold:
                    contour.append(e)
                elif distance_sq(contour[-1], e) < threshold:
                    contour.append(s)
                elif distance_sq(contour[0], e) < threshold:
                    contour.insert(0, s)
                elif distance_sq(contour[0], s) < threshold:
                    contour.insert(0, e)
                else:
                    continue
                del pool[i]
                changed = True
                break
        if len(contour) > 2 and distance_sq(contour[0], contour[-1]) < threshold:
            contour.pop()
        else:
            result.open_count += 1
        result.contours.append(contour)
    return result
