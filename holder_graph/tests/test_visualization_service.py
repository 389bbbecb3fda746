"""
Tests for cache-aware rendering.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from holder_graph.cache.artifact_cache import ArtifactCache
from holder_graph.cache.keys import analysis_artifact_key
from holder_graph.core.config import CacheSettings, LayoutSettings, RenderSettings
from holder_graph.core.custom_types import Holder, HolderLink, TokenAnalysis
from holder_graph.core.errors import RenderError, ValidationError
from holder_graph.viz.card import CardRenderer
from holder_graph.viz.layout import ForceLayoutEngine
from holder_graph.viz.renderer import BubbleMapRenderer
from holder_graph.viz.service import VisualizationService
from holder_graph.tests.conftest import ADDRESS, CHAIN, T0


def _analysis(last=T0) -> TokenAnalysis:
    holders = [Holder(address=f"0x{i:040x}", percentage=10.0 + i) for i in range(4)]
    links = [HolderLink(source_address=holders[0].address, target_address=holders[i].address, forward_amount=50.0)
             for i in range(1, 4)]
    return TokenAnalysis(
        address=ADDRESS, chain=CHAIN, name="Test Token", symbol="TST", decentralization_score=64.0,
        holders=holders, holder_links=links, last_analysis=last, next_update_due=last + timedelta(hours=24),
    )


@pytest.fixture
def service():
    render = RenderSettings()
    renderer = BubbleMapRenderer(render)
    card = CardRenderer(render)
    svc = VisualizationService(
        ArtifactCache(CacheSettings()),
        ForceLayoutEngine(LayoutSettings()),
        MagicMock(wraps=renderer, settings=render),
        MagicMock(wraps=card),
        render,
    )
    return svc


def test_bubble_map_is_rendered_once_then_cached(service):
    analysis = _analysis()

    first = service.bubble_map(analysis)
    second = service.bubble_map(analysis)

    assert first is second
    assert first.mime_type == "image/png"
    assert first.cache_key == analysis_artifact_key(ADDRESS, CHAIN, T0)
    assert first.buffer.startswith(b"\x89PNG")
    assert service.renderer.render.call_count == 1


def test_new_analysis_timestamp_renders_again(service):
    service.bubble_map(_analysis())
    later = service.bubble_map(_analysis(last=T0 + timedelta(hours=25)))

    assert later.cache_key == analysis_artifact_key(ADDRESS, CHAIN, T0 + timedelta(hours=25))
    assert service.renderer.render.call_count == 2


def test_card_is_cached_per_analysis_timestamp(service):
    card = service.card(_analysis())
    again = service.card(_analysis())

    assert card.cache_key == f"card:{CHAIN}:{ADDRESS}@2024-05-01T12:00:00+00:00"
    assert again is card
    assert service.card_renderer.render.call_count == 1


def test_refreshed_analysis_gets_a_new_card(service):
    before = service.card(_analysis())
    refreshed = _analysis(last=T0 + timedelta(hours=25))
    refreshed.decentralization_score = 10.0

    after = service.card(refreshed)

    assert after.cache_key != before.cache_key
    assert after.buffer != before.buffer
    assert service.card_renderer.render.call_count == 2


def test_render_failure_becomes_render_error(service):
    service.renderer.render.side_effect = RuntimeError("canvas exploded")

    with pytest.raises(RenderError, match="canvas exploded"):
        service.bubble_map(_analysis())

    assert len(service.cache) == 0


def test_validation_errors_pass_through(service):
    analysis = _analysis()
    analysis.holder_links = analysis.holder_links + [
        HolderLink(source_address="0xnowhere", target_address=analysis.holders[0].address)
    ]
    with pytest.raises(ValidationError):
        service.bubble_map(analysis)
