"""Bubble map renderer.

Draws a positioned LayoutGraph back to front: edges, flow arrowheads, nodes
with their labels, the legend, then the header block. Colors and sizes come
only from node/edge attributes and RenderSettings.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import List, Tuple

from loguru import logger
from matplotlib.collections import LineCollection
from matplotlib.patches import Circle, Polygon, Rectangle

from holder_graph.core.config import RenderSettings
from holder_graph.core.custom_types import BURN_ADDRESSES
from holder_graph.core.errors import RenderError, ValidationError
from holder_graph.core.timeutils import format_timestamp

from .canvas import PixelCanvas
from .graph import Header, LayoutGraph, LayoutNode

# z-order of each layer
Z_EDGES, Z_ARROWS, Z_NODES, Z_LABELS, Z_LEGEND, Z_HEADER = range(1, 7)

ARROW_SHAPE: Tuple[Tuple[float, float], ...] = ((0.0, 0.0), (-10.0, 5.0), (-10.0, -5.0))
ARROW_GAP = 15.0
LABEL_GAP = 15.0
OUTLINE_PX = 2.0
LABEL_PX = 12.0
LEGEND_PX = 14.0
HEADER_PX = 16.0


def node_color(node: LayoutNode, settings: RenderSettings) -> str:
    if node.address.lower() in BURN_ADDRESSES:
        return settings.colors.burn
    if node.is_contract:
        return settings.colors.contract
    return settings.colors.wallet


def arrow_polygon(frm: LayoutNode, to: LayoutNode) -> List[Tuple[float, float]]:
    """Triangle pointing at `to`, tip `to.radius + 15` before its center, rotated to the edge."""
    angle = math.atan2(to.y - frm.y, to.x - frm.x)
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    tip_x = to.x - (to.radius + ARROW_GAP) * cos_a
    tip_y = to.y - (to.radius + ARROW_GAP) * sin_a
    return [(tip_x + px * cos_a - py * sin_a, tip_y + px * sin_a + py * cos_a) for px, py in ARROW_SHAPE]


def header_lines(header: Header) -> List[str]:
    if isinstance(header.updated_at, datetime):
        updated = format_timestamp(header.updated_at)
    else:
        updated = header.updated_at or "n/a"
    return [
        f"{header.name} ({header.symbol})",
        f"Chain: {header.chain.upper()}",
        f"Address: {header.address}",
        f"Updated: {updated}",
    ]


class BubbleMapRenderer:
    def __init__(self, settings: RenderSettings | None = None):
        self.settings = settings or RenderSettings()

    def render(self, graph: LayoutGraph, header: Header) -> bytes:
        """PNG bytes of exactly `width x height` pixels."""
        self._check(graph)
        try:
            return self._draw(graph, header)
        except Exception as e:
            raise RenderError(f"bubble map rendering failed: {e}") from e

    # ------------------------------------------------------------------
    def _check(self, graph: LayoutGraph) -> None:
        n = len(graph.nodes)
        for link in graph.links:
            if not (0 <= link.source < n and 0 <= link.target < n):
                raise ValidationError(f"link {link.source}->{link.target} references a node outside 0..{n - 1}")
        for i, node in enumerate(graph.nodes):
            if node.x is None or node.y is None:
                raise ValidationError(f"node {i} ({node.address}) has no position; run the layout first")

    def _draw(self, graph: LayoutGraph, header: Header) -> bytes:
        s = self.settings
        canvas = PixelCanvas(s.width, s.height, s.dpi, s.background_color)
        ax = canvas.ax
        nodes = graph.nodes

        if graph.links:
            segments = [[(nodes[l.source].x, nodes[l.source].y), (nodes[l.target].x, nodes[l.target].y)]
                        for l in graph.links]
            ax.add_collection(LineCollection(
                segments,
                colors=s.colors.link,
                linewidths=[canvas.points(l.width) for l in graph.links],
                capstyle="butt",
                zorder=Z_EDGES,
            ))
        for link in graph.links:
            src, dst = nodes[link.source], nodes[link.target]
            if link.forward > 0:
                ax.add_patch(Polygon(arrow_polygon(src, dst), closed=True, facecolor=s.colors.link,
                                     edgecolor="none", zorder=Z_ARROWS))
            if link.backward > 0:
                ax.add_patch(Polygon(arrow_polygon(dst, src), closed=True, facecolor=s.colors.link,
                                     edgecolor="none", zorder=Z_ARROWS))

        for node in nodes:
            ax.add_patch(Circle(
                (node.x, node.y),
                node.radius,
                facecolor=node_color(node, s),
                edgecolor=s.colors.outline,
                linewidth=canvas.points(OUTLINE_PX),
                zorder=Z_NODES,
            ))
            ax.text(node.x, node.y + node.radius + LABEL_GAP, node.label,
                    ha="center", va="baseline", color=s.colors.text,
                    fontsize=canvas.points(LABEL_PX), family=s.font_family, zorder=Z_LABELS)

        self._legend(canvas)
        for i, line in enumerate(header_lines(header)):
            ax.text(20, 30 + i * 25, line, ha="left", va="baseline", color=s.colors.text,
                    fontsize=canvas.points(HEADER_PX), fontweight="bold", family=s.font_family,
                    zorder=Z_HEADER)

        png = canvas.to_png()
        logger.debug(f"[Render] bubble map {len(nodes)} nodes / {len(graph.links)} links -> {len(png)} bytes")
        return png

    def _legend(self, canvas: PixelCanvas) -> None:
        s = self.settings
        items = [
            (s.colors.contract, "Contract"),
            (s.colors.wallet, "Wallet"),
            (s.colors.burn, "Burn Address"),
            (s.colors.cex, "CEX"),
        ]
        x0, y0 = 20, s.height - 100
        for i, (color, label) in enumerate(items):
            y = y0 + i * 25
            canvas.ax.add_patch(Rectangle((x0, y), 15, 15, facecolor=color, edgecolor="none", zorder=Z_LEGEND))
            canvas.ax.text(x0 + 25, y + 12, label, ha="left", va="baseline", color=s.colors.text,
                           fontsize=canvas.points(LEGEND_PX), family=s.font_family, zorder=Z_LEGEND)


__all__ = ["BubbleMapRenderer", "node_color", "arrow_polygon", "header_lines"]
