"""Analysis store: freshness, refresh orchestration and stale-on-error fallback.

Lifecycle of one (address, chain) record:

    miss / stale --fetch ok--> history gets the prior snapshot, fields overwritten,
                               last_analysis = now, next_update_due = now + window
    miss         --fetch err-> error propagates (nothing to degrade to)
    stale        --fetch err-> last_error recorded, freshness untouched,
                               the last good record is returned
    fresh        -----------> returned as stored, no provider call

Concurrent `get_analysis` calls for the same stale key each trigger their own
refresh unless `AnalysisSettings.single_flight` is enabled, in which case they
share one in-flight task.
"""
from __future__ import annotations

import asyncio
import re
from datetime import timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from holder_graph.core.config import AnalysisSettings, ProviderSettings
from holder_graph.core.custom_types import (
    CASE_SENSITIVE_CHAINS,
    LastError,
    TokenAnalysis,
)
from holder_graph.core.errors import (
    HolderGraphError,
    NotFoundError,
    ProviderError,
    ProviderUnavailable,
    ValidationError,
)
from holder_graph.core.timeutils import EPOCH, Clock, utc_now, window
from holder_graph.onchain.provider import BAD_GATEWAY, GraphProvider
from holder_graph.onchain.report import TokenReport, fetch_report
from holder_graph.persist.analysis_repo import AnalysisRepository

EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
BASE58_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

Key = Tuple[str, str]


def normalize_target(address: str, chain: str, supported_chains: Sequence[str]) -> Key:
    """Validate and canonicalize an (address, chain) pair.

    EVM addresses are lower-cased; base58 addresses keep their case.
    """
    chain = (chain or "").strip().lower()
    if chain not in supported_chains:
        raise ValidationError(f"Chain must be one of: {', '.join(supported_chains)}")
    address = (address or "").strip()
    if not address:
        raise ValidationError("Token address is required")
    if chain in CASE_SENSITIVE_CHAINS:
        if not BASE58_ADDRESS.match(address):
            raise ValidationError(f"Invalid {chain} address: {address}")
        return address, chain
    if not EVM_ADDRESS.match(address):
        raise ValidationError(f"Invalid {chain} address: {address}")
    return address.lower(), chain


class AnalysisStore:
    def __init__(
        self,
        repository: AnalysisRepository,
        provider: GraphProvider,
        settings: AnalysisSettings,
        provider_settings: Optional[ProviderSettings] = None,
        clock: Clock = utc_now,
    ):
        self.repository = repository
        self.provider = provider
        self.settings = settings
        self.provider_settings = provider_settings or ProviderSettings()
        self.clock = clock
        self._inflight: Dict[Key, asyncio.Future] = {}

    # ------------------------------------------------------------------
    def normalize(self, address: str, chain: str) -> Key:
        return normalize_target(address, chain, self.settings.supported_chains)

    @property
    def freshness(self) -> timedelta:
        return window(self.settings.freshness_hours)

    # ------------------------------------------------------------------
    async def get_analysis(self, address: str, chain: str) -> TokenAnalysis:
        """Return a current record for (address, chain), refreshing it when stale."""
        address, chain = self.normalize(address, chain)
        existing = await self.repository.get(address, chain)
        if existing is not None and existing.is_fresh(self.clock()):
            logger.debug(f"[Store] {chain}:{address} fresh until {existing.next_update_due.isoformat()}")
            return existing
        if self.settings.single_flight:
            return await self._shared_refresh(address, chain, existing)
        return await self._refresh(address, chain, existing)

    async def force_update(self, address: str, chain: str) -> TokenAnalysis:
        """Expire an existing record and refresh it now."""
        address, chain = self.normalize(address, chain)
        existing = await self.repository.get(address, chain)
        if existing is None:
            raise NotFoundError(f"Analysis not found for {chain}:{address}")
        existing.next_update_due = EPOCH
        await self.repository.save(existing)
        logger.info(f"[Store] forced refresh of {chain}:{address}")
        return await self.get_analysis(address, chain)

    async def find(self, address: str, chain: str) -> Optional[TokenAnalysis]:
        """Stored record, without any freshness check or provider call."""
        address, chain = self.normalize(address, chain)
        return await self.repository.get(address, chain)

    async def recent(self, limit: int = 10) -> List[TokenAnalysis]:
        return await self.repository.recent(limit)

    async def attach_screenshot(self, address: str, chain: str, url: str) -> TokenAnalysis:
        address, chain = self.normalize(address, chain)
        updated = await self.repository.update_screenshot(address, chain, url)
        if updated is None:
            raise NotFoundError(f"Analysis not found for {chain}:{address}")
        return updated

    async def refresh_due(self, limit: Optional[int] = None) -> List[TokenAnalysis]:
        """Refresh the records whose freshness window has lapsed, oldest due first."""
        due = await self.repository.find_needing_update(self.clock(), limit or self.settings.refresh_batch_limit)
        refreshed: List[TokenAnalysis] = []
        for analysis in due:
            try:
                refreshed.append(await self.get_analysis(analysis.address, analysis.chain))
            except HolderGraphError as e:
                logger.error(f"[Store] scheduled refresh failed for {analysis.chain}:{analysis.address}: {e}")
        logger.info(f"[Store] refreshed {len(refreshed)}/{len(due)} due analyses")
        return refreshed

    async def prune(self, days_old: Optional[int] = None) -> int:
        days = days_old or self.settings.prune_after_days
        return await self.repository.delete_older_than(self.clock() - timedelta(days=days))

    # ------------------------------------------------------------------
    async def _shared_refresh(self, address: str, chain: str, existing: Optional[TokenAnalysis]) -> TokenAnalysis:
        key = (address, chain)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(address, chain, existing))
            self._inflight[key] = task

            def _release(done: asyncio.Future) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_release)
        else:
            logger.debug(f"[Store] joining in-flight refresh of {chain}:{address}")
        return await asyncio.shield(task)

    async def _refresh(self, address: str, chain: str, existing: Optional[TokenAnalysis]) -> TokenAnalysis:
        try:
            report = await fetch_report(
                self.provider,
                address,
                chain,
                top_holders=self.provider_settings.top_holders,
                top_links=self.provider_settings.top_links,
            )
            analysis = self._apply_report(address, chain, existing, report)
        except ProviderError as e:
            if existing is None:
                logger.warning(f"[Store] no baseline for {chain}:{address}, refresh failed: {e}")
                raise
            existing.last_error = LastError(message=e.message, timestamp=self.clock())
            logger.warning(f"[Store] serving stale analysis for {chain}:{address}: {e}")
            return await self.repository.save(existing)

        saved = await self.repository.save(analysis)
        logger.info(
            f"[Store] refreshed {chain}:{address} score={saved.decentralization_score:.2f} "
            f"holders={len(saved.holders)} links={len(saved.holder_links)} history={len(saved.analysis_history)}"
        )
        return saved

    def _apply_report(
        self, address: str, chain: str, existing: Optional[TokenAnalysis], report: TokenReport
    ) -> TokenAnalysis:
        now = self.clock()
        carried = {}
        history = []
        if existing is not None:
            prior = existing.model_copy(deep=True)
            prior.record_history(self.settings.history_cap)
            history = prior.analysis_history
            carried = {
                'screenshot_url': existing.screenshot_url,
                'screenshot_last_update': existing.screenshot_last_update,
                'created_at': existing.created_at,
            }
        try:
            return TokenAnalysis(
                address=address,
                chain=chain,
                name=report.name,
                symbol=report.symbol,
                version=report.version,
                is_nft=report.is_nft,
                decentralization_score=report.decentralization_score,
                supply_distribution=report.supply,
                holders=report.holders,
                holder_links=report.holder_links,
                related_tokens=report.related_tokens,
                last_analysis=now,
                next_update_due=now + self.freshness,
                analysis_history=history,
                provider_updated_at=report.provider_updated_at,
                last_error=None,
                **carried,
            )
        except PydanticValidationError as e:
            raise ProviderUnavailable(
                f"Provider data for {chain}:{address} rejected: {e.error_count()} invalid value(s)", BAD_GATEWAY
            ) from e


__all__ = ["AnalysisStore", "normalize_target", "EVM_ADDRESS", "BASE58_ADDRESS"]
