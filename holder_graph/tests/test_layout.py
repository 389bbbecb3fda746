"""
Tests for the force-directed layout engine.
"""
import math

import numpy as np
import pytest

from holder_graph.core.config import LayoutSettings, RenderSettings
from holder_graph.core.errors import ValidationError
from holder_graph.viz.graph import LayoutLink, LayoutNode
from holder_graph.viz.layout import ForceLayoutEngine
from holder_graph.viz.scaling import link_width, node_radius

RENDER = RenderSettings()


def _node(i: int, pct: float) -> LayoutNode:
    return LayoutNode(address=f"0x{i:040x}", percentage=pct, radius=node_radius(pct, RENDER))


def _ring(n: int):
    nodes = [_node(i, 40.0 / (i + 1)) for i in range(n)]
    links = [
        LayoutLink(source=i, target=(i + 1) % n, forward=100.0 * i, width=link_width(100.0 * i, 0, RENDER))
        for i in range(n)
    ]
    return nodes, links


def _distance(a: LayoutNode, b: LayoutNode) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def test_two_linked_nodes_do_not_overlap():
    nodes = [_node(0, 30.0), _node(1, 5.0)]
    links = [LayoutLink(source=0, target=1, forward=500.0, backward=0.0, width=link_width(500.0, 0.0, RENDER))]

    ForceLayoutEngine(LayoutSettings()).layout(nodes, links, 1200, 800)

    assert _distance(nodes[0], nodes[1]) >= nodes[0].radius + nodes[1].radius + 5
    # settles near the spring length, pushed out slightly by repulsion
    assert 95 <= _distance(nodes[0], nodes[1]) <= 130


def test_layout_is_deterministic():
    first, links = _ring(12)
    second, _ = _ring(12)
    engine = ForceLayoutEngine(LayoutSettings(seed=7))

    engine.layout(first, links, 1200, 800)
    engine.layout(second, links, 1200, 800)

    assert [(n.x, n.y) for n in first] == [(n.x, n.y) for n in second]


def test_positions_are_finite_and_centered():
    nodes, links = _ring(25)

    ForceLayoutEngine().layout(nodes, links, 1200, 800)

    xy = np.array([(n.x, n.y) for n in nodes])
    assert np.isfinite(xy).all()
    cx, cy = xy.mean(axis=0)
    assert abs(cx - 600) < 10 and abs(cy - 400) < 10


def test_single_node_lands_on_canvas_center():
    nodes = [_node(0, 10.0)]
    ForceLayoutEngine().layout(nodes, [], 1200, 800)
    assert (nodes[0].x, nodes[0].y) == pytest.approx((600.0, 400.0))


def test_coincident_preset_positions_are_separated():
    nodes = [_node(0, 10.0), _node(1, 10.0)]
    for n in nodes:
        n.x, n.y = 100.0, 100.0

    ForceLayoutEngine().layout(nodes, [], 1200, 800)

    assert _distance(nodes[0], nodes[1]) >= nodes[0].radius + nodes[1].radius + 5


def test_empty_graph_is_a_no_op():
    assert ForceLayoutEngine().layout([], [], 1200, 800) == []


def test_link_to_missing_node_is_rejected():
    nodes = [_node(0, 10.0)]
    with pytest.raises(ValidationError):
        ForceLayoutEngine().layout(nodes, [LayoutLink(source=0, target=3)], 1200, 800)
