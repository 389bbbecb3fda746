"""Deterministic identities for rendered artifacts."""
from __future__ import annotations

import hashlib
from datetime import datetime

from holder_graph.core.timeutils import iso_utc


def analysis_artifact_key(address: str, chain: str, last_update: datetime) -> str:
    """md5 hex digest of `address-chain-<ISO-8601 UTC timestamp>`.

    Equal instants give equal keys whatever timezone they were expressed in;
    a new analysis timestamp gives a new key.
    """
    raw = f"{address}-{chain}-{iso_utc(last_update)}".encode()
    return hashlib.md5(raw).hexdigest()


def token_key(chain: str, address: str, prefix: str = "card") -> str:
    return f"{prefix}:{chain}:{address.lower()}"


def card_key(chain: str, address: str, last_update: datetime) -> str:
    """Readable per-token key, versioned by the analysis timestamp so a refresh retires the old card."""
    return f"{token_key(chain, address)}@{iso_utc(last_update)}"


__all__ = ["analysis_artifact_key", "token_key", "card_key"]
