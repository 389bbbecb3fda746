"""Turn raw provider payloads into the fields a TokenAnalysis is built from.

The graph and metadata calls are issued together and jointly awaited; a
report exists only once both have succeeded.

Holder selection keeps the first `top_holders` nodes in provider order (the
provider ranks by holding). Links are kept only when both endpoints survived
that cut, so every stored link can be resolved against the stored holders.

The payload is the provider's responsibility: a link pointing outside the node
list or a value outside the domain model's bounds (a percentage above 100, say)
means the provider sent bad data and is reported as ProviderUnavailable, the
same as a failed call, so a stored baseline keeps being served.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from holder_graph.core.custom_types import (
    MAX_HOLDER_LINKS,
    MAX_HOLDERS,
    Holder,
    HolderLink,
    SupplyDistribution,
    TokenLink,
)
from holder_graph.core.errors import ProviderUnavailable

from .provider import BAD_GATEWAY, GraphProvider, MapData, MapMetadata


@dataclass
class TokenReport:
    name: str
    symbol: str
    version: int
    is_nft: bool
    decentralization_score: float
    supply: SupplyDistribution
    holders: List[Holder] = field(default_factory=list)
    holder_links: List[HolderLink] = field(default_factory=list)
    related_tokens: List[TokenLink] = field(default_factory=list)
    provider_updated_at: Optional[str] = None


def build_report(
    graph: MapData,
    meta: MapMetadata,
    *,
    top_holders: int = MAX_HOLDERS,
    top_links: int = MAX_HOLDER_LINKS,
) -> TokenReport:
    nodes = graph.nodes
    for link in graph.links:
        if not (0 <= link.source < len(nodes) and 0 <= link.target < len(nodes)):
            raise ProviderUnavailable(
                f"link {link.source}->{link.target} references a node outside 0..{len(nodes) - 1}", BAD_GATEWAY
            )

    try:
        return _fold(graph, meta, min(top_holders, MAX_HOLDERS), min(top_links, MAX_HOLDER_LINKS))
    except PydanticValidationError as e:
        raise ProviderUnavailable(
            f"Provider data for {graph.chain}:{graph.token_address} rejected: {e.error_count()} invalid value(s)",
            BAD_GATEWAY,
        ) from e


def _fold(graph: MapData, meta: MapMetadata, top_holders: int, top_links: int) -> TokenReport:
    nodes = graph.nodes
    holders = [
        Holder(
            address=n.address,
            name=n.name or None,
            amount=n.amount,
            percentage=n.percentage,
            is_contract=n.is_contract,
            transaction_count=n.transaction_count,
            transfer_count=n.transfer_count,
        )
        for n in nodes[:top_holders]
    ]

    kept = len(holders)
    holder_links: List[HolderLink] = []
    dropped = 0
    for link in graph.links:
        if link.source >= kept or link.target >= kept:
            dropped += 1
            continue
        if len(holder_links) >= top_links:
            dropped += 1
            continue
        src, dst = nodes[link.source], nodes[link.target]
        holder_links.append(HolderLink(
            source_address=src.address,
            target_address=dst.address,
            source_name=src.name or None,
            target_name=dst.name or None,
            forward_amount=link.forward,
            backward_amount=link.backward,
        ))
    if dropped:
        logger.debug(f"[Provider] {graph.chain}:{graph.token_address} dropped {dropped} links outside the kept holders")

    return TokenReport(
        name=graph.full_name,
        symbol=graph.symbol,
        version=graph.version,
        is_nft=graph.is_X721,
        decentralization_score=meta.decentralisation_score,
        supply=SupplyDistribution(
            percent_in_cex=meta.identified_supply.percent_in_cexs,
            percent_in_contracts=meta.identified_supply.percent_in_contracts,
        ),
        holders=holders,
        holder_links=holder_links,
        related_tokens=[
            TokenLink(address=t.address, name=t.name, symbol=t.symbol, decimals=t.decimals)
            for t in graph.token_links
        ],
        provider_updated_at=graph.dt_update,
    )


async def fetch_report(
    provider: GraphProvider,
    address: str,
    chain: str,
    *,
    top_holders: int = MAX_HOLDERS,
    top_links: int = MAX_HOLDER_LINKS,
) -> TokenReport:
    """Fetch graph and metadata concurrently and fold them into one report."""
    graph, meta = await asyncio.gather(
        provider.fetch_graph(address, chain),
        provider.fetch_metadata(address, chain),
    )
    return build_report(graph, meta, top_holders=top_holders, top_links=top_links)


__all__ = ["TokenReport", "build_report", "fetch_report"]
