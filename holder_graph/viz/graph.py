"""Transient layout records built from a stored analysis.

A fresh LayoutGraph is created per rendering request. Link endpoints are
resolved from holder addresses to node indices once, here, so the layout
engine and the renderer only deal with integer indices.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Union

from holder_graph.core.config import RenderSettings
from holder_graph.core.custom_types import TokenAnalysis
from holder_graph.core.errors import ValidationError

from .scaling import link_width, node_radius


@dataclass
class LayoutNode:
    address: str
    name: Optional[str] = None
    amount: float = 0.0
    percentage: float = 0.0
    is_contract: bool = False
    transaction_count: int = 0
    transfer_count: int = 0
    radius: float = 0.0
    x: Optional[float] = None
    y: Optional[float] = None
    vx: float = 0.0
    vy: float = 0.0

    @property
    def label(self) -> str:
        return self.name or short_address(self.address)


@dataclass
class LayoutLink:
    source: int
    target: int
    forward: float = 0.0
    backward: float = 0.0
    width: float = 1.0


@dataclass
class LayoutGraph:
    nodes: List[LayoutNode] = field(default_factory=list)
    links: List[LayoutLink] = field(default_factory=list)


@dataclass
class Header:
    name: str
    symbol: str
    chain: str
    address: str
    updated_at: Union[datetime, str, None] = None


def short_address(address: str) -> str:
    """'0x1234...abcd' form used for unnamed holders."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def header_for(analysis: TokenAnalysis) -> Header:
    return Header(
        name=analysis.name,
        symbol=analysis.symbol,
        chain=analysis.chain,
        address=analysis.address,
        updated_at=analysis.last_analysis,
    )


def build_layout_graph(analysis: TokenAnalysis, settings: RenderSettings) -> LayoutGraph:
    """Nodes in holder order, links with endpoints resolved to node indices."""
    nodes: List[LayoutNode] = []
    index: Dict[str, int] = {}
    for holder in analysis.holders:
        index.setdefault(holder.address, len(nodes))
        nodes.append(LayoutNode(
            address=holder.address,
            name=holder.name,
            amount=holder.amount,
            percentage=holder.percentage,
            is_contract=holder.is_contract,
            transaction_count=holder.transaction_count,
            transfer_count=holder.transfer_count,
            radius=node_radius(holder.percentage, settings),
        ))

    links: List[LayoutLink] = []
    for link in analysis.holder_links:
        try:
            source = index[link.source_address]
            target = index[link.target_address]
        except KeyError as e:
            raise ValidationError(
                f"link {link.source_address}->{link.target_address} references unknown holder {e.args[0]}"
            ) from e
        links.append(LayoutLink(
            source=source,
            target=target,
            forward=link.forward_amount,
            backward=link.backward_amount,
            width=link_width(link.forward_amount, link.backward_amount, settings),
        ))
    return LayoutGraph(nodes=nodes, links=links)


__all__ = [
    "LayoutNode", "LayoutLink", "LayoutGraph", "Header",
    "short_address", "header_for", "build_layout_graph",
]
