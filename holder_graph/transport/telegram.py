"""
Telegram Transport for Token Analyses

Formats stored analyses as chat messages and delivers them, optionally with
a rendered bubble map or card, through the Telegram Bot HTTP API.

Design Principles:
- Decoupling: this module only knows how to format and send a TokenAnalysis
  and a GeneratedArtifact. It never fetches or refreshes anything.
- Resilience: sends retry with exponential backoff on rate limits (429) and
  transport errors; a failed delivery is logged and reported as `False`,
  never raised into the caller.
- Testability: `dry_run` logs instead of sending, and every sender accepts an
  injected `httpx.AsyncClient`.
"""

import asyncio
import re
from typing import List, Optional, Sequence

import httpx
from loguru import logger

from holder_graph.core.config import TransportSettings
from holder_graph.core.custom_types import GeneratedArtifact, TokenAnalysis
from holder_graph.core.timeutils import format_timestamp
from holder_graph.onchain.market import MarketData

API_BASE = "https://api.telegram.org"
MESSAGE_LIMIT = 4096
CAPTION_LIMIT = 1024


# --- helpers -----------------------------------------------------------------

def _escape_markdown(text: str) -> str:
    """Escape the characters legacy Telegram Markdown treats as markup."""
    return re.sub(r"([_*`\[])", r"\\\1", text)


def _chunk_for_telegram(text: str, limit: int = MESSAGE_LIMIT) -> List[str]:
    """
    Telegram messages have a 4096 char limit. Split cleanly on newlines where possible.
    """
    if len(text) <= limit:
        return [text]
    parts: List[str] = []
    start = 0
    while start < len(text):
        end = min(start + limit, len(text))
        nl = text.rfind("\n", start, end) if end < len(text) else end
        if nl == -1 or nl <= start:
            nl = end
        parts.append(text[start:nl])
        start = nl + 1 if nl < len(text) and text[nl] == "\n" else nl
    return parts


def format_usd(value: float) -> str:
    """Compact dollar amount: $1.23B, $4.56M, $7.89K or $0.12."""
    for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
        if value >= threshold:
            return f"${value / threshold:.2f}{suffix}"
    return f"${value:.2f}"


def _token_header(analysis: TokenAnalysis) -> List[str]:
    return [
        f"*{_escape_markdown(analysis.name)} ({_escape_markdown(analysis.symbol)})*",
        f"Chain: {analysis.chain}",
        f"Address: `{analysis.address}`",
    ]


# --- formatting ----------------------------------------------------------------

def format_analysis_message(analysis: TokenAnalysis, top_n: int = 10) -> str:
    """Score, supply split and the top holders of one analysis."""
    supply = analysis.supply_distribution
    lines = _token_header(analysis) + [
        "",
        f"*Decentralization Score:* {analysis.decentralization_score:.2f}",
        "",
        "*Supply Distribution:*",
        f"- In CEX: {supply.percent_in_cex:.2f}%",
        f"- In Contracts: {supply.percent_in_contracts:.2f}%",
    ]
    if analysis.holders:
        lines += ["", "*Top Holders:*"]
        for i, holder in enumerate(analysis.holders[:top_n], start=1):
            label = _escape_markdown(holder.name or holder.address)
            lines.append(f"{i}. {label} ({holder.percentage:.2f}%)")
    lines += ["", f"Last Updated: {format_timestamp(analysis.last_analysis)}"]
    if analysis.last_error is not None:
        lines.append(f"Last refresh failed: {_escape_markdown(analysis.last_error.message)}")
    return "\n".join(lines)


def format_links_message(analysis: TokenAnalysis, top_n: int = 10) -> str:
    lines = _token_header(analysis) + ["", "*Top Relationships:*"]
    if not analysis.holder_links:
        lines.append("No significant holder relationships found.")
    for i, link in enumerate(analysis.holder_links[:top_n], start=1):
        src = _escape_markdown(link.source_name or link.source_address)
        dst = _escape_markdown(link.target_name or link.target_address)
        lines.append(f"{i}. {src} <-> {dst}")
        lines.append(f"   Forward: {link.forward_amount:.2f}, Backward: {link.backward_amount:.2f}")
    lines += ["", f"Last Updated: {format_timestamp(analysis.last_analysis)}"]
    return "\n".join(lines)


def format_related_message(analysis: TokenAnalysis) -> str:
    lines = _token_header(analysis) + ["", "*Related Tokens:*"]
    if not analysis.related_tokens:
        lines.append("No related tokens found.")
    for i, token in enumerate(analysis.related_tokens, start=1):
        lines.append(f"{i}. {_escape_markdown(token.name)} ({_escape_markdown(token.symbol)})")
        lines.append(f"   Address: `{token.address}`")
    return "\n".join(lines)


def format_recent_message(analyses: Sequence[TokenAnalysis]) -> str:
    if not analyses:
        return "No recent analyses found."
    lines = ["*Recent Token Analyses:*", ""]
    for a in analyses:
        lines += [
            f"{_escape_markdown(a.name)} ({_escape_markdown(a.symbol)})",
            f"Chain: {a.chain}",
            f"Score: {a.decentralization_score:.2f}",
            f"Updated: {format_timestamp(a.last_analysis)}",
            "",
        ]
    return "\n".join(lines).rstrip()


def format_market_message(data: MarketData) -> str:
    change = f"{data.price_change_24h:+.2f}"
    lines = [
        f"*{_escape_markdown(data.name)} ({_escape_markdown(data.symbol)})*",
        f"Price: {format_usd(data.price_usd)}",
        f"24h Change: {change}%",
        f"Market Cap: {format_usd(data.market_cap)}",
        f"24h Volume: {format_usd(data.volume_24h)}",
        f"Liquidity: {format_usd(data.liquidity_usd)}",
        "24h Transactions:",
        f"- Buys: {data.buys_24h}",
        f"- Sells: {data.sells_24h}",
        f"- Total: {data.transactions_24h}",
        f"Chain: {_escape_markdown(data.chain)}",
        f"DEX: {_escape_markdown(data.dex)}",
    ]
    if data.pair_created_at is not None:
        lines.append(f"Pair Created: {format_timestamp(data.pair_created_at)}")
    return "\n".join(lines)


# --- delivery ------------------------------------------------------------------

def _ready(settings: TransportSettings, what: str, preview: str) -> bool:
    if settings.dry_run:
        logger.info(f"[Telegram dry-run] {what} not sent:\n{preview}")
        return False
    tg = settings.telegram
    if not tg.enabled:
        logger.debug("Telegram transport is disabled in settings.")
        return False
    if not tg.bot_token or not tg.chat_id:
        logger.warning("Telegram bot_token or chat_id not configured.")
        return False
    return True


async def _post_with_retries(
    client: httpx.AsyncClient,
    url: str,
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    **request,
) -> bool:
    retry_delay = base_delay
    for attempt in range(max_retries):
        try:
            response = await client.post(url, **request)
        except httpx.TransportError as e:
            logger.error(f"Telegram send error (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            continue

        if response.status_code == 200:
            result = response.json()
            if result.get('ok'):
                return True
            logger.error(f"Telegram API error: {result.get('description', 'Unknown error')}")
            return False
        if response.status_code == 429:
            try:
                retry_after = response.json().get('parameters', {}).get('retry_after', retry_delay)
            except ValueError:
                retry_after = retry_delay
            logger.warning(f"Telegram rate limited, waiting {retry_after}s")
            await asyncio.sleep(max(float(retry_after), retry_delay))
            retry_delay *= 2
            continue
        logger.error(f"Telegram HTTP error {response.status_code}: {response.text}")
        return False

    logger.error("Failed to send Telegram request after all retries")
    return False


async def send_message(
    text: str,
    settings: TransportSettings,
    client: Optional[httpx.AsyncClient] = None,
    base_delay: float = 1.0,
) -> bool:
    """
    Sends a message to the configured Telegram chat with bounded retries.

    Long texts are split into several messages. Returns True only when every
    chunk was accepted.
    """
    if not _ready(settings, "Message", text):
        return False
    tg = settings.telegram
    url = f"{API_BASE}/bot{tg.bot_token}/sendMessage"
    chunks = _chunk_for_telegram(text)

    owns = client is None
    client = client or httpx.AsyncClient(timeout=10.0)
    try:
        for i, chunk in enumerate(chunks):
            payload = {
                "chat_id": tg.chat_id,
                "text": chunk,
                "parse_mode": "Markdown",
                "disable_web_page_preview": True,
            }
            if not await _post_with_retries(client, url, json=payload, base_delay=base_delay):
                return False
            logger.info(f"Telegram message sent successfully (chunk {i + 1}/{len(chunks)})")
        return True
    finally:
        if owns:
            await client.aclose()


async def send_photo(
    artifact: GeneratedArtifact,
    caption: str,
    settings: TransportSettings,
    client: Optional[httpx.AsyncClient] = None,
    base_delay: float = 1.0,
) -> bool:
    """Upload a rendered artifact as a photo; captions beyond 1024 chars are cut."""
    if not _ready(settings, f"Photo {artifact.cache_key} ({len(artifact.buffer)} bytes)", caption):
        return False
    tg = settings.telegram
    url = f"{API_BASE}/bot{tg.bot_token}/sendPhoto"
    data = {"chat_id": str(tg.chat_id), "caption": caption[:CAPTION_LIMIT], "parse_mode": "Markdown"}
    files = {"photo": (f"{artifact.cache_key.replace(':', '_')}.png", artifact.buffer, artifact.mime_type)}

    owns = client is None
    client = client or httpx.AsyncClient(timeout=30.0)
    try:
        sent = await _post_with_retries(client, url, data=data, files=files, base_delay=base_delay)
        if sent:
            logger.info(f"Telegram photo sent ({artifact.cache_key})")
        return sent
    finally:
        if owns:
            await client.aclose()


__all__ = [
    "format_analysis_message", "format_links_message", "format_related_message",
    "format_recent_message", "format_market_message", "format_usd", "send_message", "send_photo",
]
