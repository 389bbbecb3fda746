"""Holder-graph command line.

Usage:
  python -m holder_graph.apps.analyze_cli analyze eth 0x1234... --map map.png --card card.png
  python -m holder_graph.apps.analyze_cli analyze eth 0x1234... --links --related --send
  python -m holder_graph.apps.analyze_cli update eth 0x1234...
  python -m holder_graph.apps.analyze_cli recent --limit 5
  python -m holder_graph.apps.analyze_cli refresh-due --limit 20
  python -m holder_graph.apps.analyze_cli prune --days 30
  python -m holder_graph.apps.analyze_cli price 0x1234... --send
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Callable, List, Optional

from dotenv import load_dotenv
from loguru import logger

from holder_graph.core.config import ConfigError, Settings, load_settings, settings_from_dict
from holder_graph.core.context import AppContext, build_context
from holder_graph.core.custom_types import GeneratedArtifact, TokenAnalysis
from holder_graph.core.errors import HolderGraphError, RenderError
from holder_graph.core.logging_setup import setup_logging
from holder_graph.transport.telegram import (
    format_analysis_message,
    format_links_message,
    format_market_message,
    format_recent_message,
    format_related_message,
    send_message,
    send_photo,
)


def _write(artifact: GeneratedArtifact, path: str) -> Path:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(artifact.buffer)
    logger.info(f"Wrote {len(artifact.buffer)} bytes to {out}")
    return out


def _render(what: str, draw: Callable[[TokenAnalysis], GeneratedArtifact],
            analysis: TokenAnalysis) -> Optional[GeneratedArtifact]:
    try:
        return draw(analysis)
    except RenderError as e:
        logger.error(f"{what} for {analysis.chain}:{analysis.address} could not be rendered: {e}")
        return None


async def _deliver(ctx: AppContext, analysis: TokenAnalysis, args: argparse.Namespace) -> None:
    texts = [format_analysis_message(analysis)]
    if args.links:
        texts.append(format_links_message(analysis))
    if args.related:
        texts.append(format_related_message(analysis))
    for text in texts:
        print(text)
        print()

    transport = ctx.settings.transport
    if args.send:
        for text in texts:
            await send_message(text, transport)

    card = map_ = None
    if args.card or args.send:
        card = _render("Card", ctx.visualizer.card, analysis)
        if card is not None and args.card:
            path = _write(card, args.card)
            await ctx.store.attach_screenshot(analysis.address, analysis.chain, path.resolve().as_uri())
    if args.map or (args.send and args.links):
        map_ = _render("Bubble map", ctx.visualizer.bubble_map, analysis)
        if map_ is not None and args.map:
            _write(map_, args.map)

    if args.send:
        if card is not None:
            await send_photo(card, f"{analysis.name} ({analysis.symbol})", transport)
        if map_ is not None:
            await send_photo(map_, f"Holder map: {analysis.name} ({analysis.symbol})", transport)


async def handle_analyze(args: argparse.Namespace, ctx: AppContext) -> None:
    if args.force and await ctx.store.find(args.address, args.chain) is not None:
        analysis = await ctx.store.force_update(args.address, args.chain)
    else:
        analysis = await ctx.store.get_analysis(args.address, args.chain)
    await _deliver(ctx, analysis, args)


async def handle_update(args: argparse.Namespace, ctx: AppContext) -> None:
    analysis = await ctx.store.force_update(args.address, args.chain)
    print(format_analysis_message(analysis))


async def handle_recent(args: argparse.Namespace, ctx: AppContext) -> None:
    print(format_recent_message(await ctx.store.recent(args.limit)))


async def handle_refresh_due(args: argparse.Namespace, ctx: AppContext) -> None:
    refreshed = await ctx.store.refresh_due(args.limit)
    for analysis in refreshed:
        print(f"{analysis.chain}:{analysis.address} score={analysis.decentralization_score:.2f} "
              f"next={analysis.next_update_due.isoformat()}")


async def handle_prune(args: argparse.Namespace, ctx: AppContext) -> None:
    deleted = await ctx.store.prune(args.days)
    print(f"Deleted {deleted} analyses")


async def handle_price(args: argparse.Namespace, ctx: AppContext) -> None:
    data = await ctx.market.get_market_data(args.address)
    if data is None:
        print(f"No DEX market data found for {args.address}.")
        return
    text = format_market_message(data)
    print(text)
    if args.send:
        await send_message(text, ctx.settings.transport)


def create_parser() -> argparse.ArgumentParser:
    """Creates the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Token holder-graph analysis and bubble maps",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Available sub-commands")

    common_parser = argparse.ArgumentParser(add_help=False)
    common_parser.add_argument(
        "--config", type=str, default="settings.yaml", help="Path to the root configuration file."
    )
    common_parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )
    common_parser.add_argument("--db", type=str, default=None, help="SQLite path; overrides persistence.db_path.")

    p = subparsers.add_parser("analyze", help="Fetch (or reuse) an analysis and print it.", parents=[common_parser])
    p.add_argument("chain")
    p.add_argument("address")
    p.add_argument("--force", action="store_true", help="Refresh even when the stored analysis is fresh.")
    p.add_argument("--map", type=str, help="Write the bubble map PNG to this path.")
    p.add_argument("--card", type=str, help="Write the summary card PNG to this path.")
    p.add_argument("--links", action="store_true", help="Also print the top holder relationships.")
    p.add_argument("--related", action="store_true", help="Also print related tokens.")
    p.add_argument("--send", action="store_true", help="Deliver text and images through Telegram.")
    p.set_defaults(func=handle_analyze)

    p = subparsers.add_parser("update", help="Force a refresh of a stored analysis.", parents=[common_parser])
    p.add_argument("chain")
    p.add_argument("address")
    p.set_defaults(func=handle_update)

    p = subparsers.add_parser("recent", help="List the most recently analysed tokens.", parents=[common_parser])
    p.add_argument("--limit", type=int, default=10)
    p.set_defaults(func=handle_recent)

    p = subparsers.add_parser("refresh-due", help="Refresh analyses past their freshness window.",
                              parents=[common_parser])
    p.add_argument("--limit", type=int, default=None)
    p.set_defaults(func=handle_refresh_due)

    p = subparsers.add_parser("prune", help="Delete analyses not updated for N days.", parents=[common_parser])
    p.add_argument("--days", type=int, default=None)
    p.set_defaults(func=handle_prune)

    p = subparsers.add_parser("price", help="Show DEX price, volume and liquidity for a token.",
                              parents=[common_parser])
    p.add_argument("address")
    p.add_argument("--send", action="store_true", help="Deliver the summary through Telegram.")
    p.set_defaults(func=handle_price)

    return parser


def _settings(path: str) -> Settings:
    if Path(path).is_file():
        return load_settings(path)
    logger.warning(f"No configuration at '{path}', using defaults and environment overrides")
    return settings_from_dict()


async def _run(args: argparse.Namespace, settings: Settings) -> None:
    ctx = build_context(settings, db_path=args.db)
    try:
        ctx.start_housekeeping()
        await args.func(args, ctx)
    finally:
        await ctx.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entrypoint."""
    load_dotenv()
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings(args.config)
    except ConfigError as e:
        logger.error(f"{e}")
        return 2
    if args.log_level:
        settings.logging.level = args.log_level
    setup_logging(settings.logging)

    try:
        asyncio.run(_run(args, settings))
    except HolderGraphError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
