"""Schema migrations for the analysis store."""
from __future__ import annotations

from typing import List

from loguru import logger

from .db import Database

MIGRATIONS: List[tuple[str, str]] = [
    (
        '0001_token_analyses',
        """
        CREATE TABLE IF NOT EXISTS token_analyses(
            address TEXT NOT NULL,
            chain TEXT NOT NULL,
            payload TEXT NOT NULL,
            last_analysis_ms INTEGER NOT NULL,
            next_update_due_ms INTEGER NOT NULL,
            created_ms INTEGER NOT NULL,
            updated_ms INTEGER NOT NULL,
            PRIMARY KEY(address, chain)
        );
        CREATE INDEX IF NOT EXISTS ix_analyses_next_update ON token_analyses(next_update_due_ms);
        CREATE INDEX IF NOT EXISTS ix_analyses_last_analysis ON token_analyses(last_analysis_ms);
        CREATE INDEX IF NOT EXISTS ix_analyses_updated ON token_analyses(updated_ms);
        """
    ),
]


def applied_versions(db: Database) -> set[str]:
    rows = db.fetchall("SELECT version FROM migrations")
    return {r['version'] for r in rows}


def apply_migrations(db: Database) -> None:
    with db.tx() as cur:
        cur.execute("CREATE TABLE IF NOT EXISTS migrations(version TEXT PRIMARY KEY, applied_ts INTEGER)")
    done = applied_versions(db)
    for version, ddl in MIGRATIONS:
        if version in done:
            continue
        logger.info(f"[DB] Applying migration {version}")
        with db.tx() as cur:
            for stmt in filter(None, map(str.strip, ddl.split(';'))):
                cur.execute(stmt)
            cur.execute(
                "INSERT INTO migrations(version, applied_ts) VALUES(?, strftime('%s','now')*1000)",
                (version,),
            )
    logger.info("[DB] Migrations complete")


__all__ = ["MIGRATIONS", "apply_migrations", "applied_versions"]
