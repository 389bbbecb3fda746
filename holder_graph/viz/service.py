"""Cache-aware rendering of bubble maps and summary cards.

A rendering failure is reported to the caller as RenderError and never
touches the analysis store; malformed graphs surface as ValidationError.
"""
from __future__ import annotations

from typing import Callable

from loguru import logger

from holder_graph.cache.artifact_cache import ArtifactCache
from holder_graph.cache.keys import analysis_artifact_key, card_key
from holder_graph.core.config import RenderSettings
from holder_graph.core.custom_types import GeneratedArtifact, TokenAnalysis
from holder_graph.core.errors import RenderError, ValidationError

from .card import CardRenderer
from .graph import build_layout_graph, header_for
from .layout import ForceLayoutEngine
from .renderer import BubbleMapRenderer

PNG = "image/png"


class VisualizationService:
    def __init__(
        self,
        cache: ArtifactCache,
        layout_engine: ForceLayoutEngine,
        renderer: BubbleMapRenderer,
        card_renderer: CardRenderer,
        settings: RenderSettings | None = None,
    ):
        self.cache = cache
        self.layout_engine = layout_engine
        self.renderer = renderer
        self.card_renderer = card_renderer
        self.settings = settings or renderer.settings

    def bubble_map(self, analysis: TokenAnalysis) -> GeneratedArtifact:
        key = analysis_artifact_key(analysis.address, analysis.chain, analysis.last_analysis)
        return self._cached(key, lambda: self._draw_map(analysis), f"bubble map {analysis.chain}:{analysis.address}")

    def card(self, analysis: TokenAnalysis) -> GeneratedArtifact:
        key = card_key(analysis.chain, analysis.address, analysis.last_analysis)
        return self._cached(key, lambda: self.card_renderer.render(analysis), f"card {analysis.chain}:{analysis.address}")

    def _draw_map(self, analysis: TokenAnalysis) -> bytes:
        graph = build_layout_graph(analysis, self.settings)
        self.layout_engine.layout(graph.nodes, graph.links, self.settings.width, self.settings.height)
        return self.renderer.render(graph, header_for(analysis))

    def _cached(self, key: str, draw: Callable[[], bytes], what: str) -> GeneratedArtifact:
        hit = self.cache.get(key)
        if hit is not None:
            logger.debug(f"[Render] cache hit for {what} ({key})")
            return hit.artifact
        try:
            buffer = draw()
        except ValidationError:
            raise
        except RenderError:
            logger.exception(f"[Render] {what} failed")
            raise
        except Exception as e:
            logger.exception(f"[Render] {what} failed")
            raise RenderError(f"{what} failed: {e}") from e
        artifact = GeneratedArtifact(buffer=buffer, mime_type=PNG, cache_key=key)
        self.cache.set(key, artifact)
        logger.info(f"[Render] {what} rendered, {len(buffer)} bytes cached under {key}")
        return artifact


__all__ = ["VisualizationService"]
