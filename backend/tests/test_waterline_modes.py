"""
End‑to‑end tests for the waterline task and its three machining modes.

A 20×20×5 box is sliced between z=0.5 and z=4.5 with a 6 mm tool, so
every layer has the same square cross‑section and the expected rings
can be computed by hand:

* waterline: the square grown by the 3 mm radius, spanning −3..23;
* rough: the stock (square grown by 2×diameter, −12..32) minus the
  square, inset by the radius and then by the stepover;
* profile: the square inset by the radius, spanning 3..17.
"""

from __future__ import annotations

import sys
from pathlib import Path
import math

import pytest

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))

from millpath.api.models import BoundingBox, WaterlineRequest
from millpath.services import strategies
from millpath.services.errors import GeometryError, InputError
from millpath.services.kernel import (
    MIN_AREA_SCALED,
    SCALE,
    difference,
    extent,
    normalize,
    polygon_area,
    rectangle,
    to_scaled,
    total_area,
)
from millpath.services.kernel import offset as kernel_offset
from millpath.services.layers import Layer, accumulate_shadows, slice_layers
from millpath.services.slicing import mesh_from_flat
from millpath.services.strategies import CutParameters, generate_toolpaths, profile_rings
from millpath.services.waterline import generate_waterline, resolve_stepover
from mesh_helpers import bbox_dict, make_box_mesh, ring_points


def _square_request(**overrides) -> WaterlineRequest:
    fields = dict(
        mesh=make_box_mesh((0.0, 0.0, 0.0), (20.0, 20.0, 5.0)),
        triangleCount=12,
        boundingBox=bbox_dict((0.0, 0.0, 0.5), (20.0, 20.0, 4.5)),
        toolDiameter=6.0,
        stepdown=1.0,
    )
    fields.update(overrides)
    return WaterlineRequest(**fields)


def _bounds(flat):
    pts = ring_points(flat)
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    return min(xs), min(ys), max(xs), max(ys)


def test_waterline_ring_wraps_square_at_tool_radius() -> None:
    result = generate_waterline(_square_request())
    assert [layer.z for layer in result.layers] == [4.5, 3.5, 2.5, 1.5, 0.5]
    for layer in result.layers:
        assert len(layer.toolpath) == 1
        ring = layer.toolpath[0]
        pts = ring_points(ring)
        assert pts[0] == pts[-1]
        assert all(p[2] == layer.z for p in pts)
        min_x, min_y, max_x, max_y = _bounds(ring)
        assert min_x == pytest.approx(-3.0, abs=1e-3)
        assert min_y == pytest.approx(-3.0, abs=1e-3)
        assert max_x == pytest.approx(23.0, abs=1e-3)
        assert max_y == pytest.approx(23.0, abs=1e-3)
    assert result.diagnostics.contours == 5
    assert result.diagnostics.openContours == 0


def test_rough_rings_step_inwards_from_stock() -> None:
    result = generate_waterline(_square_request(mode="rough", stepover=2.0))
    for layer in result.layers:
        min_xs = sorted(round(_bounds(ring)[0], 3) for ring in layer.toolpath)
        # Two passes, each an outer loop against the stock and a loop
        # around the part.
        assert min_xs == pytest.approx([-9.0, -7.0, -5.0, -3.0], abs=1e-3)


def test_rough_stock_allowance_keeps_distance_from_walls() -> None:
    result = generate_waterline(
        _square_request(mode="rough", stepover=2.0, stockAllowance=1.0)
    )
    layer = result.layers[0]
    min_xs = sorted(round(_bounds(ring)[0], 3) for ring in layer.toolpath)
    assert min_xs == pytest.approx([-9.0, -7.0, -6.0, -4.0], abs=1e-3)


def test_profile_insets_silhouette_by_radius() -> None:
    result = generate_waterline(_square_request(mode="profile"))
    for layer in result.layers:
        assert len(layer.toolpath) == 1
        min_x, min_y, max_x, max_y = _bounds(layer.toolpath[0])
        assert (min_x, min_y) == pytest.approx((3.0, 3.0), abs=1e-3)
        assert (max_x, max_y) == pytest.approx((17.0, 17.0), abs=1e-3)


def test_profile_ignores_holes() -> None:
    frame = normalize([rectangle(0.0, 0.0, 20.0, 20.0), rectangle(5.0, 5.0, 15.0, 15.0)[::-1]])
    assert len(frame) == 2
    rings, running = profile_rings([], frame, CutParameters(tool_diameter=2.0, stepover=1.0))
    assert len(running) == 1
    assert len(rings) == 1
    xs = [p[0] / SCALE for p in rings[0]]
    assert min(xs) == pytest.approx(1.0, abs=1e-3)
    assert max(xs) == pytest.approx(19.0, abs=1e-3)


def test_overhang_is_protected_on_lower_layers() -> None:
    stem = make_box_mesh((8.0, 8.0, 0.0), (12.0, 12.0, 5.0))
    cap = make_box_mesh((0.0, 0.0, 5.0), (20.0, 20.0, 8.0))
    request = WaterlineRequest(
        mesh=stem + cap,
        triangleCount=24,
        boundingBox=bbox_dict((0.0, 0.0, 0.0), (20.0, 20.0, 8.0)),
        toolDiameter=2.0,
        stepdown=1.0,
    )
    result = generate_waterline(request)
    by_z = {layer.z: layer for layer in result.layers}
    # The stem layer at z=3 follows the cap outline, not the stem.
    (ring,) = by_z[3.0].toolpath
    min_x, _, max_x, _ = _bounds(ring)
    assert min_x == pytest.approx(-1.0, abs=1e-3)
    assert max_x == pytest.approx(21.0, abs=1e-3)


@pytest.mark.parametrize("mode", ["waterline", "rough", "profile"])
def test_empty_mesh_yields_empty_toolpaths(mode: str) -> None:
    request = WaterlineRequest(
        mesh=[],
        triangleCount=0,
        boundingBox=bbox_dict((0.0, 0.0, 0.0), (10.0, 10.0, 2.0)),
        toolDiameter=3.0,
        stepdown=1.0,
        mode=mode,
    )
    result = generate_waterline(request)
    assert [layer.z for layer in result.layers] == [2.0, 1.0, 0.0]
    assert all(layer.toolpath == [] for layer in result.layers)


def test_progress_phases_arrive_in_order() -> None:
    events = []
    generate_waterline(_square_request(), emit=events.append)
    phases = [e.phase for e in events]
    assert phases == sorted(phases)
    assert set(phases) == {1, 2, 3}
    for phase in (1, 2, 3):
        assert [e.percent for e in events if e.phase == phase][-1] == 100


def test_request_is_not_modified() -> None:
    request = _square_request(mode="rough", stepover=2.0)
    snapshot = request.model_dump()
    generate_waterline(request)
    assert request.model_dump() == snapshot


def test_resolve_stepover_defaults_to_fraction_of_diameter() -> None:
    assert resolve_stepover(None, 6.0) == pytest.approx(2.7)
    assert resolve_stepover(0.0, 6.0) == pytest.approx(2.7)
    assert resolve_stepover(1.5, 6.0) == 1.5


def test_generate_toolpaths_rejects_unknown_mode() -> None:
    layer = Layer(z=0.0, stock_outline=rectangle(0.0, 0.0, 1.0, 1.0))
    with pytest.raises(InputError):
        generate_toolpaths([layer], "spiral", CutParameters(tool_diameter=1.0, stepover=0.5))
    with pytest.raises(InputError):
        generate_toolpaths([layer], "rough", CutParameters(tool_diameter=1.0, stepover=0.0))


def test_overlapping_shells_are_machined_as_one_solid() -> None:
    left = make_box_mesh((0.0, 0.0, 0.0), (10.0, 10.0, 5.0))
    right = make_box_mesh((5.0, 0.0, 0.0), (15.0, 10.0, 5.0))
    request = WaterlineRequest(
        mesh=left + right,
        triangleCount=24,
        boundingBox=bbox_dict((0.0, 0.0, 0.0), (15.0, 10.0, 5.0)),
        toolDiameter=2.0,
        stepdown=1.0,
    )
    result = generate_waterline(request)
    by_z = {layer.z: layer for layer in result.layers}
    (ring,) = by_z[3.0].toolpath
    min_x, min_y, max_x, max_y = _bounds(ring)
    assert (min_x, max_x) == pytest.approx((-1.0, 16.0), abs=1e-3)
    assert (min_y, max_y) == pytest.approx((-1.0, 11.0), abs=1e-3)


def test_cavity_walls_become_holes_under_closed_top() -> None:
    solid = make_box_mesh((0.0, 0.0, 0.0), (20.0, 20.0, 5.0))
    cavity = make_box_mesh((5.0, 5.0, 1.0), (15.0, 15.0, 4.0), inward=True)
    mesh = mesh_from_flat(solid + cavity)
    bbox = BoundingBox(**bbox_dict((0.0, 0.0, 0.0), (20.0, 20.0, 5.0)))
    layers, _ = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0)
    by_z = {layer.z: layer for layer in layers}
    # Through the cavity the cross‑section is a frame: block minus cavity.
    assert len(by_z[2.0].vectors) == 2
    assert total_area(by_z[2.0].vectors) / (SCALE * SCALE) == pytest.approx(300.0)
    # The closed top shadows the cavity, so finishing stays outside.
    shadowed = accumulate_shadows(layers)
    finished = generate_toolpaths(shadowed, "waterline", CutParameters(tool_diameter=2.0, stepover=1.0))
    (ring,) = {layer.z: layer for layer in finished}[2.0].toolpath
    min_x, _, max_x, _ = _bounds(ring)
    assert (min_x, max_x) == pytest.approx((-1.0, 21.0), abs=1e-3)


def test_roughing_rings_clear_square_within_pass_bound(monkeypatch: pytest.MonkeyPatch) -> None:
    solid = [rectangle(0.0, 0.0, 20.0, 20.0)]
    stock = rectangle(-12.0, -12.0, 32.0, 32.0)
    params = CutParameters(tool_diameter=6.0, stepover=2.0)
    calls = []

    def counting_offset(paths, delta):
        calls.append(delta)
        return kernel_offset(paths, delta)

    monkeypatch.setattr(strategies, "offset", counting_offset)
    rings = strategies.roughing_rings(solid, stock, params)
    assert rings
    assert all(polygon_area(ring) > MIN_AREA_SCALED for ring in rings)
    # One inset by the radius, then one inset per pass.
    passes = len(calls) - 1
    pocket = difference([stock], solid)
    assert passes <= math.ceil(extent(pocket) / to_scaled(params.stepover)) + 1


def test_roughing_that_never_shrinks_is_a_geometry_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(strategies, "offset", lambda paths, delta: paths)
    with pytest.raises(GeometryError):
        strategies.roughing_rings(
            [rectangle(0.0, 0.0, 20.0, 20.0)],
            rectangle(-12.0, -12.0, 32.0, 32.0),
            CutParameters(tool_diameter=6.0, stepover=2.0),
        )
