"""
Tests for layer slicing and shadow accumulation in layers.py.

A "mushroom" mesh is used throughout: a narrow stem with a wide cap on
top.  The cap overhangs the stem, so the stem layers must inherit the
cap's outline as their shadow.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Make the backend package importable when running tests directly via pytest
sys.path.append(str(Path(__file__).resolve().parents[1]))

from millpath.api.models import BoundingBox
from millpath.services.kernel import SCALE, total_area
from millpath.services.layers import (
    STOCK_MARGIN_FACTOR,
    accumulate_shadows,
    build_stock_outline,
    layer_heights,
    slice_layers,
)
from millpath.services.slicing import mesh_from_flat
from mesh_helpers import bbox_dict, make_box_mesh


def _mushroom():
    stem = make_box_mesh((8.0, 8.0, 0.0), (12.0, 12.0, 5.0))
    cap = make_box_mesh((0.0, 0.0, 5.0), (20.0, 20.0, 8.0))
    mesh = mesh_from_flat(stem + cap)
    bbox = BoundingBox(**bbox_dict((0.0, 0.0, 0.0), (20.0, 20.0, 8.0)))
    return mesh, bbox


def _area(paths) -> float:
    return total_area(paths) / (SCALE * SCALE)


def test_layer_heights_run_top_to_bottom() -> None:
    bbox = BoundingBox(**bbox_dict((0.0, 0.0, 0.5), (1.0, 1.0, 4.5)))
    assert layer_heights(bbox, 1.0) == [4.5, 3.5, 2.5, 1.5, 0.5]


def test_stock_outline_surrounds_part_with_margin() -> None:
    bbox = BoundingBox(**bbox_dict((0.0, 0.0, 0.0), (20.0, 20.0, 5.0)))
    outline = build_stock_outline(bbox, 6.0)
    margin = STOCK_MARGIN_FACTOR * 6.0
    xs = [p[0] / SCALE for p in outline]
    ys = [p[1] / SCALE for p in outline]
    assert min(xs) == -margin and max(xs) == 20.0 + margin
    assert min(ys) == -margin and max(ys) == 20.0 + margin
    # Margin must leave room for the tool on both sides.
    assert margin > 6.0


def test_slice_layers_collects_cross_sections() -> None:
    mesh, bbox = _mushroom()
    layers, diagnostics = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0)
    assert [layer.z for layer in layers] == [8.0, 7.0, 6.0, 5.0, 4.0, 3.0, 2.0, 1.0, 0.0]
    areas = {layer.z: _area(layer.vectors) for layer in layers}
    # Planes through horizontal faces touch only vertices and edges.
    assert areas[8.0] == 0.0 and areas[5.0] == 0.0 and areas[0.0] == 0.0
    assert areas[7.0] == pytest.approx(400.0)
    assert areas[3.0] == pytest.approx(16.0)
    assert diagnostics.open_contours == 0
    assert diagnostics.contours == 6
    # All layers share the same stock outline.
    assert all(layer.stock_outline == layers[0].stock_outline for layer in layers)


def test_shadow_masks_grow_monotonically_downward() -> None:
    mesh, bbox = _mushroom()
    layers, _ = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0)
    shadowed = accumulate_shadows(layers)
    assert shadowed[0].shadow_mask == []
    shadow_areas = [_area(layer.shadow_mask) for layer in shadowed]
    assert shadow_areas == sorted(shadow_areas)
    # Every stem layer is covered by the overhanging cap.
    for layer in shadowed:
        if layer.z < 5.0:
            assert _area(layer.shadow_mask) == pytest.approx(400.0)


def test_shadow_of_first_solid_layer_is_empty() -> None:
    mesh, bbox = _mushroom()
    layers, _ = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0)
    shadowed = accumulate_shadows(layers)
    by_z = {layer.z: layer for layer in shadowed}
    # z=8 has no cross‑section, so the first cap layer has nothing above it.
    assert by_z[7.0].shadow_mask == []
    assert _area(by_z[6.0].shadow_mask) == pytest.approx(400.0)


def test_accumulate_shadows_does_not_modify_input() -> None:
    mesh, bbox = _mushroom()
    layers, _ = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0)
    before = [list(layer.shadow_mask) for layer in layers]
    shadowed = accumulate_shadows(layers)
    assert [list(layer.shadow_mask) for layer in layers] == before
    assert [layer.vectors for layer in shadowed] == [layer.vectors for layer in layers]


def test_slice_and_shadow_report_progress_per_phase() -> None:
    mesh, bbox = _mushroom()
    events = []
    layers, _ = slice_layers(mesh, bbox, tool_diameter=2.0, stepdown=1.0, emit=events.append)
    accumulate_shadows(layers, emit=events.append)
    phases = [e.phase for e in events]
    assert phases == sorted(phases)
    assert set(phases) == {1, 2}
    for phase in (1, 2):
        percents = [e.percent for e in events if e.phase == phase]
        assert percents == sorted(set(percents))
        assert percents[-1] == 100
