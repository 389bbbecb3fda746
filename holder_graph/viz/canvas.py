"""Pixel-space drawing surface on a private matplotlib Agg figure.

Each surface owns its own `Figure`, never touching pyplot's global state, so
renderers can run concurrently for different graphs. Axes span the whole
figure with y growing downwards, so data coordinates are canvas pixels.
"""
from __future__ import annotations

import io

from matplotlib.backends.backend_agg import FigureCanvasAgg
from matplotlib.figure import Figure

POINTS_PER_INCH = 72.0


class PixelCanvas:
    def __init__(self, width: int, height: int, dpi: int, background: str):
        self.width = width
        self.height = height
        self.dpi = dpi
        self.figure = Figure(figsize=(width / dpi, height / dpi), dpi=dpi, facecolor=background)
        FigureCanvasAgg(self.figure)
        self.ax = self.figure.add_axes((0.0, 0.0, 1.0, 1.0))
        self.ax.set_xlim(0, width)
        self.ax.set_ylim(height, 0)
        self.ax.set_axis_off()
        self.ax.set_facecolor(background)

    def points(self, px: float) -> float:
        """Convert a pixel length to points, the unit matplotlib uses for strokes and fonts."""
        return px * POINTS_PER_INCH / self.dpi

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        # No Software chunk: identical drawings give identical bytes
        self.figure.savefig(
            buf,
            format="png",
            dpi=self.dpi,
            facecolor=self.figure.get_facecolor(),
            metadata={"Software": None},
        )
        return buf.getvalue()


__all__ = ["PixelCanvas", "POINTS_PER_INCH"]
