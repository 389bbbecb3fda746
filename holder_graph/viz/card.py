"""Small summary card: decentralization score bar, supply split and token identity."""
from __future__ import annotations

from loguru import logger
from matplotlib.patches import Rectangle

from holder_graph.core.config import RenderSettings
from holder_graph.core.custom_types import TokenAnalysis
from holder_graph.core.errors import RenderError

from .canvas import PixelCanvas
from .graph import short_address

MUTED = "#666666"
BAR_TRACK = "#eeeeee"


class CardRenderer:
    def __init__(self, settings: RenderSettings | None = None):
        self.settings = settings or RenderSettings()

    def render(self, analysis: TokenAnalysis) -> bytes:
        try:
            return self._draw(analysis)
        except Exception as e:
            raise RenderError(f"card rendering failed: {e}") from e

    def _draw(self, analysis: TokenAnalysis) -> bytes:
        s = self.settings
        w, h = s.card_width, s.card_height
        canvas = PixelCanvas(w, h, s.dpi, s.background_color)
        ax = canvas.ax

        def text(x, y, value, px, color=s.colors.text, **kw):
            ax.text(x, y, value, ha="left", va="baseline", color=color,
                    fontsize=canvas.points(px), family=s.font_family, **kw)

        score = analysis.decentralization_score
        text(20, 40, "Decentralization Score", 24, fontweight="bold")
        text(20, 70, f"{score:.2f}%", 24, fontweight="bold")

        bar_width = w - 40
        ax.add_patch(Rectangle((20, 80), bar_width, 10, facecolor=BAR_TRACK, edgecolor="none"))
        filled = bar_width * min(max(score, 0.0), 100.0) / 100.0
        if filled > 0:
            ax.add_patch(Rectangle((20, 80), filled, 10, facecolor=s.card_accent_color, edgecolor="none"))

        supply = analysis.supply_distribution
        text(20, 130, f"{supply.percent_in_cex:.2f}% in CEX", 18)
        text(20, 160, f"{supply.percent_in_contracts:.2f}% in Contracts", 18)

        text(20, h - 30, f"{analysis.chain} • {short_address(analysis.address)}", 14, color=MUTED)
        text(w - 120, h - 20, "Powered by Bubblemaps", 12, color=MUTED)

        png = canvas.to_png()
        logger.debug(f"[Render] card {analysis.chain}:{analysis.address} -> {len(png)} bytes")
        return png


__all__ = ["CardRenderer"]
