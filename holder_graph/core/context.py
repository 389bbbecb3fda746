"""Process context: every long-lived component, built once at startup.

Entry points call `build_context(settings)` and pass the result (or the
pieces they need) down; nothing in the package reaches for a global.

Long-running callers also call `start_housekeeping()` once the event loop is
running, which schedules the artifact cache sweeper; `aclose()` stops it.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from loguru import logger

from holder_graph.analysis.store import AnalysisStore
from holder_graph.cache.artifact_cache import ArtifactCache
from holder_graph.core.config import Settings
from holder_graph.core.timeutils import Clock, utc_now
from holder_graph.onchain.market import DexScreenerClient
from holder_graph.onchain.provider import BubblemapsClient, GraphProvider
from holder_graph.persist.analysis_repo import AnalysisRepository
from holder_graph.persist.db import Database
from holder_graph.persist.migrations import apply_migrations
from holder_graph.viz.card import CardRenderer
from holder_graph.viz.layout import ForceLayoutEngine
from holder_graph.viz.renderer import BubbleMapRenderer
from holder_graph.viz.service import VisualizationService


@dataclass
class AppContext:
    settings: Settings
    db: Database
    repository: AnalysisRepository
    provider: GraphProvider
    store: AnalysisStore
    cache: ArtifactCache
    visualizer: VisualizationService
    market: DexScreenerClient
    _stop: Optional[asyncio.Event] = field(default=None, repr=False)
    _sweeper: Optional[asyncio.Task] = field(default=None, repr=False)

    def start_housekeeping(self) -> asyncio.Task:
        """Schedule the cache sweeper on the running loop (idempotent)."""
        if self._sweeper is None or self._sweeper.done():
            self._stop = asyncio.Event()
            self._sweeper = asyncio.get_running_loop().create_task(self.cache.run_sweeper(self._stop))
        return self._sweeper

    async def aclose(self) -> None:
        if self._sweeper is not None:
            self._stop.set()
            await self._sweeper
            self._sweeper = None
        for client in (self.provider, self.market):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        self.db.close()


def build_context(
    settings: Settings,
    *,
    provider: Optional[GraphProvider] = None,
    market: Optional[DexScreenerClient] = None,
    clock: Optional[Clock] = None,
    db_path: Optional[str] = None,
) -> AppContext:
    clock = clock or utc_now
    db = Database(db_path or settings.persistence.db_path).open()
    apply_migrations(db)
    repository = AnalysisRepository(db, clock=clock)
    provider = provider or BubblemapsClient(settings.provider)
    store = AnalysisStore(repository, provider, settings.analysis, settings.provider, clock=clock)
    cache = ArtifactCache(settings.cache)
    visualizer = VisualizationService(
        cache,
        ForceLayoutEngine(settings.layout),
        BubbleMapRenderer(settings.render),
        CardRenderer(settings.render),
        settings.render,
    )
    market = market or DexScreenerClient(settings.market)
    logger.info(f"[Context] ready (db={db.path}, provider={type(provider).__name__})")
    return AppContext(
        settings=settings,
        db=db,
        repository=repository,
        provider=provider,
        store=store,
        cache=cache,
        visualizer=visualizer,
        market=market,
    )


__all__ = ["AppContext", "build_context"]
