"""Force-directed layout of a holder graph.

A fixed-length velocity-Verlet style simulation over four forces, evaluated in
this order on every tick:

  link      springs toward `link_distance`, strength 1/min(degree) and the
            correction split between endpoints by relative degree
  charge    pairwise repulsion, inverse-distance, distances under 1 softened
  center    translate so the centroid sits on the canvas center
  collide   push apart any pair closer than (r_i + margin) + (r_j + margin)

Alpha starts at 1 and decays geometrically towards 0 over `iterations` ticks;
there is no early exit. Each force reads the state at the start of its pass
and its contributions are accumulated with `np.add.at`, so a pass does not
depend on link or node order.

The engine keeps no state between calls. Coincident points are separated
with a tiny jiggle from a generator seeded per call, so identical input
produces identical positions.
"""
from __future__ import annotations

import math
from typing import List, Sequence

import numpy as np

from holder_graph.core.config import LayoutSettings
from holder_graph.core.errors import ValidationError

from .graph import LayoutLink, LayoutNode

INITIAL_RADIUS = 10.0
INITIAL_ANGLE = math.pi * (3 - math.sqrt(5))
JIGGLE = 1e-6


class ForceLayoutEngine:
    def __init__(self, settings: LayoutSettings | None = None):
        self.settings = settings or LayoutSettings()

    def layout(
        self,
        nodes: List[LayoutNode],
        links: Sequence[LayoutLink],
        canvas_width: float,
        canvas_height: float,
    ) -> List[LayoutNode]:
        """Position `nodes` in place and return them."""
        n = len(nodes)
        _check_links(links, n)
        if n == 0:
            return nodes

        s = self.settings
        rng = np.random.default_rng(s.seed)
        pos = _initial_positions(nodes)
        vel = np.array([[node.vx, node.vy] for node in nodes], dtype=float)
        radii = np.array([node.radius + s.collision_margin for node in nodes], dtype=float)
        center = np.array([canvas_width / 2.0, canvas_height / 2.0])

        src = np.array([l.source for l in links], dtype=int)
        tgt = np.array([l.target for l in links], dtype=int)
        degree = np.bincount(np.concatenate([src, tgt]), minlength=n).astype(float)
        if len(links):
            strength = 1.0 / np.minimum(degree[src], degree[tgt])
            bias = degree[src] / (degree[src] + degree[tgt])
        else:
            strength = bias = np.zeros(0)

        alpha = 1.0
        for _ in range(s.iterations):
            alpha += (0.0 - alpha) * s.alpha_decay
            if len(links):
                self._link(pos, vel, src, tgt, strength, bias, alpha, rng)
            self._charge(pos, vel, alpha, rng)
            pos -= pos.mean(axis=0) - center
            self._collide(pos, vel, radii, rng)
            vel *= s.velocity_decay
            pos += vel

        for node, (x, y), (vx, vy) in zip(nodes, pos, vel):
            node.x, node.y = float(x), float(y)
            node.vx, node.vy = float(vx), float(vy)
        return nodes

    # ------------------------------------------------------------------
    def _link(self, pos, vel, src, tgt, strength, bias, alpha, rng) -> None:
        predicted = pos + vel
        delta = predicted[tgt] - predicted[src]
        delta = _jiggle_zeros(delta, rng)
        dist = np.hypot(delta[:, 0], delta[:, 1])
        k = (dist - self.settings.link_distance) / dist * alpha * strength
        delta *= k[:, None]
        np.add.at(vel, tgt, -delta * bias[:, None])
        np.add.at(vel, src, delta * (1.0 - bias)[:, None])

    def _charge(self, pos, vel, alpha, rng) -> None:
        n = len(pos)
        if n < 2:
            return
        # delta[i, j] points from node i to node j
        delta = pos[None, :, :] - pos[:, None, :]
        off_diagonal = ~np.eye(n, dtype=bool)
        coincident = off_diagonal & (delta == 0).all(axis=-1)
        if coincident.any():
            delta[coincident] = (rng.random((int(coincident.sum()), 2)) - 0.5) * JIGGLE
        dist2 = (delta ** 2).sum(axis=-1)
        dist2[~off_diagonal] = np.inf
        dist2 = np.where(dist2 < 1.0, np.sqrt(dist2), dist2)
        weight = self.settings.charge_strength * alpha / dist2
        vel += (delta * weight[..., None]).sum(axis=1)

    def _collide(self, pos, vel, radii, rng) -> None:
        n = len(pos)
        if n < 2:
            return
        predicted = pos + vel
        i, j = np.triu_indices(n, k=1)
        delta = predicted[i] - predicted[j]
        reach = radii[i] + radii[j]
        dist2 = (delta ** 2).sum(axis=-1)
        hit = dist2 < reach ** 2
        if not hit.any():
            return
        i, j, delta, reach = i[hit], j[hit], _jiggle_zeros(delta[hit], rng), reach[hit]
        dist = np.hypot(delta[:, 0], delta[:, 1])
        k = (reach - dist) / dist * self.settings.collision_strength
        delta *= k[:, None]
        ri2, rj2 = radii[i] ** 2, radii[j] ** 2
        share = rj2 / (ri2 + rj2)
        np.add.at(vel, i, delta * share[:, None])
        np.add.at(vel, j, -delta * (1.0 - share)[:, None])


def _check_links(links: Sequence[LayoutLink], n: int) -> None:
    for link in links:
        if not (0 <= link.source < n and 0 <= link.target < n):
            raise ValidationError(f"link {link.source}->{link.target} references a node outside 0..{n - 1}")


def _initial_positions(nodes: Sequence[LayoutNode]) -> np.ndarray:
    """Preset coordinates are kept; the rest go on a phyllotaxis spiral around the origin."""
    pos = np.empty((len(nodes), 2), dtype=float)
    for i, node in enumerate(nodes):
        if node.x is not None and node.y is not None:
            pos[i] = (node.x, node.y)
            continue
        r = INITIAL_RADIUS * math.sqrt(0.5 + i)
        a = i * INITIAL_ANGLE
        pos[i] = (r * math.cos(a), r * math.sin(a))
    return pos


def _jiggle_zeros(delta: np.ndarray, rng: np.random.Generator) -> np.ndarray:
    zero = delta == 0
    if zero.any():
        delta = delta.copy()
        delta[zero] = (rng.random(int(zero.sum())) - 0.5) * JIGGLE
    return delta


__all__ = ["ForceLayoutEngine"]
