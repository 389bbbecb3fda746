"""Linear mappings from holder metrics to visual sizes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from holder_graph.core.config import RenderSettings

PERCENT_DOMAIN = (0.0, 100.0)


@dataclass(frozen=True)
class LinearScale:
    """Affine map from `domain` onto `range`, clamped to the range by default."""
    domain: Tuple[float, float]
    range: Tuple[float, float]
    clamp: bool = True

    def __call__(self, value: float) -> float:
        d0, d1 = self.domain
        r0, r1 = self.range
        if d1 == d0:
            return r0
        t = (value - d0) / (d1 - d0)
        if self.clamp:
            t = min(max(t, 0.0), 1.0)
        return r0 + t * (r1 - r0)


def radius_scale(settings: RenderSettings) -> LinearScale:
    return LinearScale(PERCENT_DOMAIN, (settings.min_node_size, settings.max_node_size))


def width_scale(settings: RenderSettings) -> LinearScale:
    return LinearScale(tuple(settings.flow_domain), (settings.min_link_width, settings.max_link_width))


def node_radius(percentage: float, settings: RenderSettings) -> float:
    return radius_scale(settings)(percentage)


def link_width(forward: float, backward: float, settings: RenderSettings) -> float:
    return width_scale(settings)(forward + backward)


__all__ = ["LinearScale", "PERCENT_DOMAIN", "radius_scale", "width_scale", "node_radius", "link_width"]
