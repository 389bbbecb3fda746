"""Client for the holder-graph provider (Bubblemaps legacy API).

Two read calls are consumed:
 - `/map-data`: the holder graph (nodes, index-based links, related tokens).
 - `/map-metadata`: decentralisation score and identified supply split.

Failures are translated into the package error taxonomy:
 - HTTP 401 on map data means "no data for this token" -> ProviderDataUnavailable
 - metadata `status == 'KO'` (even on HTTP 200) -> ProviderDataUnavailable
 - any other HTTP/transport failure -> ProviderUnavailable (status kept, 500 if none)
 - a body that does not parse into the payload models -> ProviderUnavailable (502)
"""
from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from holder_graph.core.config import ProviderSettings
from holder_graph.core.errors import ProviderDataUnavailable, ProviderUnavailable

BAD_GATEWAY = 502


class MapNode(BaseModel):
    address: str
    amount: float = 0.0
    is_contract: bool = False
    name: Optional[str] = None
    percentage: float = 0.0
    transaction_count: int = 0
    transfer_X721_count: Optional[int] = None
    transfer_count: int = 0


class MapLink(BaseModel):
    source: int
    target: int
    forward: float = 0.0
    backward: float = 0.0


class MapTokenLink(BaseModel):
    address: str
    decimals: Optional[int] = None
    name: str = ""
    symbol: str = ""
    links: List[Any] = Field(default_factory=list)


class MapData(BaseModel):
    version: int = 0
    chain: str
    token_address: str
    dt_update: Optional[str] = None
    full_name: str = ""
    symbol: str = ""
    is_X721: bool = False
    metadata: Dict[str, Any] = Field(default_factory=dict)
    nodes: List[MapNode] = Field(default_factory=list)
    links: List[MapLink] = Field(default_factory=list)
    token_links: List[MapTokenLink] = Field(default_factory=list)


class IdentifiedSupply(BaseModel):
    percent_in_cexs: float = 0.0
    percent_in_contracts: float = 0.0


class MapMetadata(BaseModel):
    decentralisation_score: float = 0.0
    identified_supply: IdentifiedSupply = Field(default_factory=IdentifiedSupply)
    dt_update: Optional[str] = None
    ts_update: Optional[int] = None
    status: Literal['OK', 'KO'] = 'OK'
    message: Optional[str] = None


class GraphProvider(Protocol):
    """What the analysis store needs from a provider."""

    async def fetch_graph(self, address: str, chain: str) -> MapData: ...

    async def fetch_metadata(self, address: str, chain: str) -> MapMetadata: ...


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        body = response.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get('message'):
        return str(body['message'])
    return default


class BubblemapsClient:
    def __init__(self, settings: ProviderSettings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_sec,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.settings.api_key:
            headers['Authorization'] = f"Bearer {self.settings.api_key}"
        return headers

    async def _get(self, path: str, address: str, chain: str, default_error: str) -> Dict[str, Any]:
        try:
            response = await self._client.get(
                path, params={'token': address, 'chain': chain}, headers=self._headers()
            )
        except httpx.RequestError as e:
            logger.warning(f"[Provider] {path} request failed for {chain}:{address}: {e}")
            raise ProviderUnavailable(f"{default_error}: {e}", 500) from e

        if response.status_code == 401 and path == self.settings.map_data_path:
            raise ProviderDataUnavailable("Data not available for this token", 401)
        if response.status_code >= 400:
            message = _error_message(response, default_error)
            logger.warning(f"[Provider] {path} HTTP {response.status_code} for {chain}:{address}: {message}")
            raise ProviderUnavailable(message, response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailable(f"{default_error}: invalid JSON body", response.status_code) from e

    async def fetch_graph(self, address: str, chain: str) -> MapData:
        body = await self._get(self.settings.map_data_path, address, chain, "Failed to fetch map data")
        try:
            return MapData.model_validate(body)
        except PydanticValidationError as e:
            raise ProviderUnavailable(
                f"Malformed map data for {chain}:{address}: {e.error_count()} error(s)", BAD_GATEWAY
            ) from e

    async def fetch_metadata(self, address: str, chain: str) -> MapMetadata:
        body = await self._get(self.settings.map_metadata_path, address, chain, "Failed to fetch map metadata")
        try:
            meta = MapMetadata.model_validate(body)
        except PydanticValidationError as e:
            raise ProviderUnavailable(
                f"Malformed map metadata for {chain}:{address}: {e.error_count()} error(s)", BAD_GATEWAY
            ) from e
        if meta.status == 'KO':
            raise ProviderDataUnavailable(meta.message or "Failed to fetch map metadata", 400)
        return meta

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "MapNode", "MapLink", "MapTokenLink", "MapData", "IdentifiedSupply", "MapMetadata",
    "GraphProvider", "BubblemapsClient",
]
