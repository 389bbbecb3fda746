"""
Pytest Fixtures for the holder-graph Test Suite

Shared context for the store, persistence and rendering tests: validated
settings without touching the environment, an in-memory SQLite database with
the schema applied, a fake provider that counts its calls, and a manual clock
that tests move forward explicitly.
"""
import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

import pytest

from holder_graph.analysis.store import AnalysisStore
from holder_graph.core.config import Settings, settings_from_dict
from holder_graph.core.timeutils import ManualClock
from holder_graph.onchain.provider import (
    IdentifiedSupply,
    MapData,
    MapLink,
    MapMetadata,
    MapNode,
    MapTokenLink,
)
from holder_graph.persist.analysis_repo import AnalysisRepository
from holder_graph.persist.db import Database
from holder_graph.persist.migrations import apply_migrations

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
ADDRESS = "0x" + "ab" * 20
CHAIN = "eth"

LinkSpec = Tuple[int, int, float, float]


def make_graph(
    address: str = ADDRESS,
    chain: str = CHAIN,
    n_nodes: int = 3,
    links: Sequence[LinkSpec] = ((0, 1, 500.0, 0.0), (1, 2, 20.0, 5.0)),
) -> MapData:
    nodes = [
        MapNode(
            address=f"0x{i:040x}",
            amount=1000.0 - i,
            is_contract=(i == 0),
            name="Pool" if i == 0 else None,
            percentage=max(40.0 - i, 0.0),
            transaction_count=10 + i,
            transfer_count=5 + i,
        )
        for i in range(n_nodes)
    ]
    return MapData(
        version=5,
        chain=chain,
        token_address=address,
        dt_update="2024-05-01 11:00:00",
        full_name="Test Token",
        symbol="TST",
        nodes=nodes,
        links=[MapLink(source=s, target=t, forward=f, backward=b) for s, t, f, b in links],
        token_links=[MapTokenLink(address="0x" + "cd" * 20, name="Other", symbol="OTH", decimals=18)],
    )


class FakeProvider:
    """In-memory GraphProvider; set `fail` to make the next fetches raise."""

    def __init__(self, n_nodes: int = 3, links: Sequence[LinkSpec] = ((0, 1, 500.0, 0.0), (1, 2, 20.0, 5.0))):
        self.n_nodes = n_nodes
        self.links = list(links)
        self.score = 75.0
        self.cex = 12.5
        self.contracts = 30.0
        self.fail: Optional[Exception] = None
        self.delay = 0.0
        self.graph_calls = 0
        self.meta_calls = 0
        self.requested: List[Tuple[str, str]] = []

    async def fetch_graph(self, address: str, chain: str) -> MapData:
        self.graph_calls += 1
        self.requested.append((address, chain))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        return make_graph(address, chain, self.n_nodes, self.links)

    async def fetch_metadata(self, address: str, chain: str) -> MapMetadata:
        self.meta_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail is not None:
            raise self.fail
        return MapMetadata(
            decentralisation_score=self.score,
            identified_supply=IdentifiedSupply(percent_in_cexs=self.cex, percent_in_contracts=self.contracts),
            dt_update="2024-05-01 11:00:00",
            status="OK",
        )


@pytest.fixture
def settings() -> Settings:
    return settings_from_dict({}, use_env=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def db():
    database = Database(":memory:").open()
    apply_migrations(database)
    yield database
    database.close()


@pytest.fixture
def repo(db, clock) -> AnalysisRepository:
    return AnalysisRepository(db, clock=clock)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def store(repo, provider, settings, clock) -> AnalysisStore:
    return AnalysisStore(repo, provider, settings.analysis, settings.provider, clock=clock)
