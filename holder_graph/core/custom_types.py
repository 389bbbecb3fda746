"""
Custom Type Definitions
-----------------------

Centralized domain models shared by the store, the persistence layer and the
renderers.

- Holder / HolderLink / TokenLink: the holder graph as kept per token.
- TokenAnalysis: the one persisted record per (address, chain), with its
  freshness metadata and bounded history of prior states.
- GeneratedArtifact: a rendered image plus the key it is cached under.

Persisted models are Pydantic models so every write goes through validation;
the holder/link caps are enforced here rather than by truncating after the fact.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

Chain = str
Address = str

SUPPORTED_CHAINS = ("eth", "bsc", "ftm", "avax", "cro", "arbi", "poly", "base", "sol", "sonic")
# Chains whose addresses are base58 and therefore case-sensitive
CASE_SENSITIVE_CHAINS = frozenset({"sol"})

BURN_ADDRESSES = frozenset({
    "0x000000000000000000000000000000000000dead",
})

MAX_HOLDERS = 150
MAX_HOLDER_LINKS = 1000
MAX_HISTORY = 30


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Holder(BaseModel):
    """A single tracked holder of a token."""
    address: Address
    name: Optional[str] = None
    amount: float = Field(0.0, ge=0)
    percentage: float = Field(0.0, ge=0, le=100)
    is_contract: bool = False
    transaction_count: int = Field(0, ge=0)
    transfer_count: int = Field(0, ge=0)


class HolderLink(BaseModel):
    """Token flow between two holders, both directions folded into one record."""
    source_address: Address
    target_address: Address
    source_name: Optional[str] = None
    target_name: Optional[str] = None
    forward_amount: float = Field(0.0, ge=0)
    backward_amount: float = Field(0.0, ge=0)

    @property
    def total_flow(self) -> float:
        return self.forward_amount + self.backward_amount


class TokenLink(BaseModel):
    address: Address
    name: str = ""
    symbol: str = ""
    decimals: Optional[int] = None


class SupplyDistribution(BaseModel):
    percent_in_cex: float = Field(0.0, ge=0, le=100)
    percent_in_contracts: float = Field(0.0, ge=0, le=100)


class AnalysisSnapshot(BaseModel):
    """State of an analysis just before it was overwritten by a refresh."""
    timestamp: datetime
    decentralization_score: float
    supply_distribution: SupplyDistribution
    top_holders_count: int

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class LastError(BaseModel):
    message: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def timestamp_is_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class TokenAnalysis(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    # Token identification
    address: Address
    chain: Chain
    name: str = ""
    symbol: str = ""
    version: int = Field(0, ge=0)
    is_nft: bool = False

    # Current analysis state
    decentralization_score: float = Field(0.0, ge=0, le=100)
    supply_distribution: SupplyDistribution = Field(default_factory=SupplyDistribution)
    holders: List[Holder] = Field(default_factory=list)
    holder_links: List[HolderLink] = Field(default_factory=list)
    related_tokens: List[TokenLink] = Field(default_factory=list)

    # Freshness
    last_analysis: datetime
    next_update_due: datetime
    analysis_history: List[AnalysisSnapshot] = Field(default_factory=list)
    provider_updated_at: Optional[str] = None

    # Rendered artifact reference
    screenshot_url: Optional[str] = None
    screenshot_last_update: Optional[datetime] = None

    last_error: Optional[LastError] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "last_analysis", "next_update_due", "screenshot_last_update", "created_at", "updated_at"
    )
    @classmethod
    def timestamps_are_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @field_validator("holders")
    @classmethod
    def holders_within_cap(cls, v: List[Holder]) -> List[Holder]:
        if len(v) > MAX_HOLDERS:
            raise ValueError(f"holders cannot exceed {MAX_HOLDERS} entries (got {len(v)})")
        return v

    @field_validator("holder_links")
    @classmethod
    def links_within_cap(cls, v: List[HolderLink]) -> List[HolderLink]:
        if len(v) > MAX_HOLDER_LINKS:
            raise ValueError(f"holder links cannot exceed {MAX_HOLDER_LINKS} entries (got {len(v)})")
        return v

    @field_validator("analysis_history")
    @classmethod
    def history_within_cap(cls, v: List[AnalysisSnapshot]) -> List[AnalysisSnapshot]:
        if len(v) > MAX_HISTORY:
            raise ValueError(f"analysis history cannot exceed {MAX_HISTORY} entries (got {len(v)})")
        return v

    # ------------------------------------------------------------------
    def is_fresh(self, now: datetime) -> bool:
        return now < self.next_update_due

    def needs_update(self, now: datetime) -> bool:
        return not self.is_fresh(now)

    def snapshot(self) -> AnalysisSnapshot:
        return AnalysisSnapshot(
            timestamp=self.last_analysis,
            decentralization_score=self.decentralization_score,
            supply_distribution=self.supply_distribution.model_copy(),
            top_holders_count=len(self.holders),
        )

    def record_history(self, cap: int = MAX_HISTORY) -> None:
        """Push the current state to the front of the history, evicting the oldest past `cap`."""
        cap = min(cap, MAX_HISTORY)
        history = deque(self.analysis_history[:cap], maxlen=cap)
        history.appendleft(self.snapshot())
        self.analysis_history = list(history)


@dataclass
class GeneratedArtifact:
    """A rendered image ready for any delivery channel."""
    buffer: bytes
    mime_type: str
    cache_key: str


__all__ = [
    "Chain", "Address", "SUPPORTED_CHAINS", "CASE_SENSITIVE_CHAINS", "BURN_ADDRESSES",
    "MAX_HOLDERS", "MAX_HOLDER_LINKS", "MAX_HISTORY",
    "Holder", "HolderLink", "TokenLink", "SupplyDistribution", "AnalysisSnapshot",
    "LastError", "TokenAnalysis", "GeneratedArtifact",
]
