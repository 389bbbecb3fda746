"""DEX market data for a token (price, volume, liquidity) from DexScreener.

A token usually trades in several pairs; the summary is taken from the pair
with the deepest USD liquidity. A token with no pairs has no market data
(`None`), which is distinct from the request failing (ProviderUnavailable).

Results are kept for `market.cache_ttl_sec` seconds per address.
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from holder_graph.analysis.store import BASE58_ADDRESS, EVM_ADDRESS
from holder_graph.core.config import MarketSettings
from holder_graph.core.errors import ProviderError, ProviderUnavailable, ValidationError

from .provider import BAD_GATEWAY


class DexToken(BaseModel):
    address: str = ""
    name: str = ""
    symbol: str = ""


class DexWindow(BaseModel):
    h24: Optional[float] = None


class DexTxnCount(BaseModel):
    buys: int = 0
    sells: int = 0


class DexTxns(BaseModel):
    h24: DexTxnCount = Field(default_factory=DexTxnCount)


class DexLiquidity(BaseModel):
    usd: Optional[float] = None


class DexPair(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chain_id: str = Field("", alias="chainId")
    dex_id: str = Field("", alias="dexId")
    pair_address: str = Field("", alias="pairAddress")
    base_token: DexToken = Field(default_factory=DexToken, alias="baseToken")
    price_usd: Optional[float] = Field(None, alias="priceUsd")
    price_change: DexWindow = Field(default_factory=DexWindow, alias="priceChange")
    volume: DexWindow = Field(default_factory=DexWindow)
    liquidity: DexLiquidity = Field(default_factory=DexLiquidity)
    txns: DexTxns = Field(default_factory=DexTxns)
    market_cap: Optional[float] = Field(None, alias="marketCap")
    pair_created_at: Optional[int] = Field(None, alias="pairCreatedAt")


class DexTokensResponse(BaseModel):
    pairs: Optional[List[DexPair]] = None


class MarketData(BaseModel):
    name: str
    symbol: str
    address: str
    chain: str
    dex: str
    price_usd: float = 0.0
    price_change_24h: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    liquidity_usd: float = 0.0
    buys_24h: int = 0
    sells_24h: int = 0
    pair_created_at: Optional[datetime] = None

    @property
    def transactions_24h(self) -> int:
        return self.buys_24h + self.sells_24h


def best_pair(pairs: Sequence[DexPair]) -> Optional[DexPair]:
    """Deepest USD liquidity wins; the first pair wins ties."""
    best: Optional[DexPair] = None
    for pair in pairs:
        if best is None or (pair.liquidity.usd or 0.0) > (best.liquidity.usd or 0.0):
            best = pair
    return best


def market_data_from_pair(pair: DexPair) -> MarketData:
    created = None
    if pair.pair_created_at:
        created = datetime.fromtimestamp(pair.pair_created_at / 1000, tz=timezone.utc)
    return MarketData(
        name=pair.base_token.name,
        symbol=pair.base_token.symbol,
        address=pair.base_token.address,
        chain=pair.chain_id,
        dex=pair.dex_id,
        price_usd=pair.price_usd or 0.0,
        price_change_24h=pair.price_change.h24 or 0.0,
        market_cap=pair.market_cap or 0.0,
        volume_24h=pair.volume.h24 or 0.0,
        liquidity_usd=pair.liquidity.usd or 0.0,
        buys_24h=pair.txns.h24.buys,
        sells_24h=pair.txns.h24.sells,
        pair_created_at=created,
    )


def _market_key(address: str) -> str:
    address = (address or "").strip()
    if EVM_ADDRESS.match(address):
        return address.lower()
    if BASE58_ADDRESS.match(address):
        return address
    raise ValidationError(f"Invalid token address: {address}")


class DexScreenerClient:
    def __init__(
        self,
        settings: MarketSettings,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=settings.base_url, timeout=settings.timeout_sec)
        self._clock = clock
        self._cache: Dict[str, Tuple[Optional[MarketData], float]] = {}

    async def get_market_data(self, address: str) -> Optional[MarketData]:
        key = _market_key(address)
        now = self._clock()
        entry = self._cache.get(key)
        if entry and now - entry[1] < self.settings.cache_ttl_sec:
            return entry[0]

        payload = await self._fetch(key)
        pair = best_pair(payload.pairs or [])
        data = market_data_from_pair(pair) if pair is not None else None
        if data is None:
            logger.info(f"[Market] no DEX pairs listed for {key}")
        self._cache[key] = (data, now)
        return data

    async def get_many(self, addresses: Sequence[str]) -> Dict[str, Optional[MarketData]]:
        """Market data per address; a failed lookup maps to None instead of failing the batch."""
        keys = [_market_key(a) for a in addresses]

        async def one(key: str) -> Optional[MarketData]:
            try:
                return await self.get_market_data(key)
            except ProviderError as e:
                logger.warning(f"[Market] lookup failed for {key}: {e}")
                return None

        results = await asyncio.gather(*(one(k) for k in keys))
        return dict(zip(keys, results))

    async def _fetch(self, address: str) -> DexTokensResponse:
        try:
            response = await self._client.get(f"/dex/tokens/{address}")
        except httpx.RequestError as e:
            logger.warning(f"[Market] request failed for {address}: {e}")
            raise ProviderUnavailable(f"Failed to fetch market data: {e}", 500) from e
        if response.status_code >= 400:
            logger.warning(f"[Market] HTTP {response.status_code} for {address}")
            raise ProviderUnavailable("Failed to fetch market data", response.status_code)
        try:
            return DexTokensResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ProviderUnavailable("Malformed market data", BAD_GATEWAY) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "DexPair", "DexTokensResponse", "MarketData", "best_pair", "market_data_from_pair", "DexScreenerClient",
]
