"""TokenAnalysis persistence.

One row per (address, chain). The full record is stored as JSON in `payload`;
the timestamp columns exist only for the ordering scans (records due for a
refresh, most recent analyses, pruning).

All public methods are coroutines that hand the blocking SQLite work to a
worker thread, so a slow disk suspends only the calling task.
"""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import List, Optional

from loguru import logger

from holder_graph.core.custom_types import (
    MAX_HISTORY,
    MAX_HOLDER_LINKS,
    MAX_HOLDERS,
    TokenAnalysis,
)
from holder_graph.core.errors import ValidationError
from holder_graph.core.timeutils import Clock, to_utc, utc_now

from .db import Database

_UPSERT = """
    INSERT INTO token_analyses(
        address, chain, payload, last_analysis_ms, next_update_due_ms, created_ms, updated_ms
    ) VALUES(?,?,?,?,?,?,?)
    ON CONFLICT(address, chain) DO UPDATE SET
        payload=excluded.payload,
        last_analysis_ms=excluded.last_analysis_ms,
        next_update_due_ms=excluded.next_update_due_ms,
        updated_ms=excluded.updated_ms
"""


def _ms(dt: datetime) -> int:
    return int(to_utc(dt).timestamp() * 1000)


def check_caps(analysis: TokenAnalysis) -> None:
    """Reject records whose bounded collections are over their caps."""
    if len(analysis.holders) > MAX_HOLDERS:
        raise ValidationError(f"holders exceed cap {MAX_HOLDERS}: {len(analysis.holders)}")
    if len(analysis.holder_links) > MAX_HOLDER_LINKS:
        raise ValidationError(f"holder links exceed cap {MAX_HOLDER_LINKS}: {len(analysis.holder_links)}")
    if len(analysis.analysis_history) > MAX_HISTORY:
        raise ValidationError(f"history exceeds cap {MAX_HISTORY}: {len(analysis.analysis_history)}")


class AnalysisRepository:
    def __init__(self, db: Database, clock: Clock = utc_now):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    def _row_to_analysis(self, row) -> TokenAnalysis:
        return TokenAnalysis.model_validate_json(row['payload'])

    def _get_sync(self, address: str, chain: str) -> Optional[TokenAnalysis]:
        row = self.db.fetchone(
            "SELECT payload FROM token_analyses WHERE address=? AND chain=?", (address, chain)
        )
        return self._row_to_analysis(row) if row else None

    def _save_sync(self, analysis: TokenAnalysis) -> TokenAnalysis:
        check_caps(analysis)
        now = self.clock()
        stored = analysis.model_copy(
            update={'created_at': analysis.created_at or now, 'updated_at': now}, deep=True
        )
        with self.db.tx(immediate=True) as cur:
            cur.execute(_UPSERT, (
                stored.address, stored.chain, stored.model_dump_json(),
                _ms(stored.last_analysis), _ms(stored.next_update_due),
                _ms(stored.created_at), _ms(stored.updated_at),
            ))
        logger.debug(f"[DB] saved analysis {stored.chain}:{stored.address}")
        return stored

    def _find_due_sync(self, now: datetime, limit: int) -> List[TokenAnalysis]:
        rows = self.db.fetchall(
            "SELECT payload FROM token_analyses WHERE next_update_due_ms <= ? "
            "ORDER BY next_update_due_ms ASC LIMIT ?",
            (_ms(now), limit),
        )
        return [self._row_to_analysis(r) for r in rows]

    def _recent_sync(self, limit: int) -> List[TokenAnalysis]:
        rows = self.db.fetchall(
            "SELECT payload FROM token_analyses ORDER BY last_analysis_ms DESC LIMIT ?", (limit,)
        )
        return [self._row_to_analysis(r) for r in rows]

    def _update_screenshot_sync(self, address: str, chain: str, url: str, when: datetime) -> Optional[TokenAnalysis]:
        with self.db.tx(immediate=True) as cur:
            cur.execute(
                "SELECT payload FROM token_analyses WHERE address=? AND chain=?", (address, chain)
            )
            row = cur.fetchone()
            if row is None:
                return None
            analysis = self._row_to_analysis(row)
            analysis.screenshot_url = url
            analysis.screenshot_last_update = when
            analysis.updated_at = when
            cur.execute(
                "UPDATE token_analyses SET payload=?, updated_ms=? WHERE address=? AND chain=?",
                (analysis.model_dump_json(), _ms(when), address, chain),
            )
        return analysis

    # ------------------------------------------------------------------
    async def get(self, address: str, chain: str) -> Optional[TokenAnalysis]:
        return await asyncio.to_thread(self._get_sync, address, chain)

    async def save(self, analysis: TokenAnalysis) -> TokenAnalysis:
        return await asyncio.to_thread(self._save_sync, analysis)

    async def find_needing_update(self, now: datetime, limit: int = 10) -> List[TokenAnalysis]:
        return await asyncio.to_thread(self._find_due_sync, now, limit)

    async def recent(self, limit: int = 10) -> List[TokenAnalysis]:
        return await asyncio.to_thread(self._recent_sync, limit)

    async def update_screenshot(self, address: str, chain: str, url: str) -> Optional[TokenAnalysis]:
        return await asyncio.to_thread(self._update_screenshot_sync, address, chain, url, self.clock())

    async def delete_older_than(self, cutoff: datetime) -> int:
        """Delete records not written since `cutoff`; returns how many went."""
        deleted = await asyncio.to_thread(
            self.db.execute, "DELETE FROM token_analyses WHERE updated_ms < ?", (_ms(cutoff),)
        )
        if deleted:
            logger.info(f"[DB] pruned {deleted} analyses older than {cutoff.isoformat()}")
        return deleted

    async def count(self) -> int:
        row = await asyncio.to_thread(self.db.fetchone, "SELECT COUNT(*) AS n FROM token_analyses")
        return int(row['n']) if row else 0


__all__ = ["AnalysisRepository", "check_caps"]
