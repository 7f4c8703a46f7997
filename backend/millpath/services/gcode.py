"""
G‑code serialisation of finished toolpaths.

Each polyline becomes: a rapid move to its first point, a plunge to the
cutting depth, linear moves through the remaining points and a retract
to the safe height.  The program is wrapped in a short metric/absolute
header and ends with ``M30``.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

from ..api.models import GcodeOptions, GcodeRequest, GcodeResult
from .progress import EmitFn, ProgressReporter

EMPTY_PROGRAM = "G21\nG90\nM30\n; No toolpaths to generate."
# Report progress every this many paths.
REPORT_INTERVAL = 250


def segment_to_gcode(path: Sequence[float], options: GcodeOptions) -> List[str]:
    """Motion lines for one flat ``[x, y, z, ...]`` polyline.

    Paths at a single height (waterline layers) feed in X and Y only.
    Paths whose height varies, such as raster profiles lying in vertical
    planes, carry Z on every feed move.
    """
    if len(path) < 3:
        return []
    x0, y0, z0 = path[0], path[1], path[2]
    planar = all(path[i] == z0 for i in range(5, len(path), 3))
    lines = [
        f"G0 X{x0:.4f} Y{y0:.4f}",
        f"G1 Z{z0:.4f} F{options.plunge:g}",
    ]
    for i in range(3, len(path) - 2, 3):
        if planar:
            lines.append(f"G1 X{path[i]:.4f} Y{path[i + 1]:.4f} F{options.feed:g}")
        else:
            lines.append(
                f"G1 X{path[i]:.4f} Y{path[i + 1]:.4f} Z{path[i + 2]:.4f} F{options.feed:g}"
            )
    lines.append(f"G0 Z{options.safeZ:.3f}")
    return lines


def paths_to_gcode(
    paths: Sequence[Sequence[float]],
    options: GcodeOptions,
    emit: Optional[EmitFn] = None,
) -> str:
    """Serialise ``paths`` into a complete G‑code program."""
    if not paths:
        return EMPTY_PROGRAM
    lines = [
        "G21 ; Use millimeters",
        "G90 ; Use absolute coordinates",
        "G94 ; Units per minute feed rate",
        f"G0 Z{options.safeZ:.3f} ; Rapid retract to safe Z",
    ]
    progress = ProgressReporter(emit, phase=1, total=len(paths))
    total = len(paths)
    for i, path in enumerate(paths):
        lines.extend(segment_to_gcode(path, options))
        if (i + 1) % REPORT_INTERVAL == 0 or (i + 1) == total:
            progress.report((i + 1) / total * 100.0)
    progress.finish()
    lines.append("M30 ; End of program")
    return "\n".join(lines)


def flatten_layers(layer_paths: Iterable[Iterable[Sequence[float]]]) -> List[Sequence[float]]:
    """Concatenate per‑layer toolpaths in layer order."""
    return [path for paths in layer_paths for path in paths]


def generate_gcode(request: GcodeRequest, emit: Optional[EmitFn] = None) -> GcodeResult:
    return GcodeResult(gcode=paths_to_gcode(request.paths, request.options, emit))
