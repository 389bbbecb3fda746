"""SQLite persistence layer.

A `Database` owns one connection in WAL mode and serializes access through a
re-entrant lock, so it can be shared by the asyncio loop and the worker
threads that `asyncio.to_thread` uses for blocking calls. Schema versions are
tracked in the `migrations` table (see `migrations.py`).

Constructed once at startup and passed to whoever needs it; there is no
module-level connection.
"""
from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from loguru import logger

MEMORY = ":memory:"

PRAGMAS = [
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
    "PRAGMA foreign_keys=ON;",
]


class Database:
    def __init__(self, path: str = MEMORY):
        self.path = path
        self._lock = threading.RLock()
        self._conn: Optional[sqlite3.Connection] = None

    def open(self) -> "Database":
        """Open the connection and apply pragmas (idempotent)."""
        with self._lock:
            if self._conn is not None:
                return self
            if self.path != MEMORY:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            # isolation_level=None: transactions are opened explicitly by tx()
            conn = sqlite3.connect(self.path, check_same_thread=False, timeout=30, isolation_level=None)
            conn.row_factory = sqlite3.Row
            for p in PRAGMAS:
                try:
                    conn.execute(p)
                except sqlite3.Error as e:  # pragma: no cover
                    logger.warning(f"[DB] pragma failed {p} :: {e}")
            self._conn = conn
            logger.info(f"[DB] Opened {self.path} (WAL mode)")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
                logger.info(f"[DB] Closed {self.path}")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("DB not initialised; call open() first")
        return self._conn

    @contextmanager
    def tx(self, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        """Context manager for a DB transaction.

        The lock is held for the whole transaction, so at most one write is in
        flight at a time.

        Args:
            immediate: If True issues BEGIN IMMEDIATE to take the write lock
                       up front (read-modify-write paths).
        """
        with self._lock:
            conn = self.conn
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            cur = conn.cursor()
            try:
                yield cur
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                cur.close()

    def fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> List[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.execute(sql, params)
            rows = [dict(r) for r in cur.fetchall()]
            cur.close()
        return rows

    def fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self.conn.execute(sql, params)
            row = cur.fetchone()
            cur.close()
        return dict(row) if row else None

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Run one statement in its own transaction; returns the affected row count."""
        with self.tx() as cur:
            cur.execute(sql, params)
            return cur.rowcount


__all__ = ["Database", "MEMORY", "PRAGMAS"]
