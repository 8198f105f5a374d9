"""Command-line entry point.

Usage:
    python -m whale_watcher run            # poll every interval until interrupted
    python -m whale_watcher poll           # one cycle, feed printed as JSON
    python -m whale_watcher diag           # adapter health report as JSON
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import sys
from decimal import Decimal

from whale_watcher.adapters import build_adapters
from whale_watcher.config import Settings, get_settings
from whale_watcher.diagnostics import diagnose
from whale_watcher.pipeline import Pipeline

logger = logging.getLogger("whale_watcher")


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="whale-watcher",
        description="Multi-chain whale transfer feed with webhook alerts",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override LOG_LEVEL",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Poll continuously and dispatch alerts")
    run.add_argument("--dry-run", action="store_true", help="Log alerts instead of posting them")

    poll = sub.add_parser("poll", help="Run a single poll cycle and print the feed")
    poll.add_argument("--dry-run", action="store_true", help="Log alerts instead of posting them")

    diag = sub.add_parser("diag", help="Probe every adapter once")
    diag.add_argument(
        "--min-usd",
        type=Decimal,
        default=Decimal(0),
        help="Probe threshold in USD (default: 0)",
    )
    diag.add_argument("--timeout", type=float, default=30.0, metavar="SECONDS")
    return parser


def configure_logging(settings: Settings, override: str | None = None) -> None:
    level = getattr(logging, override) if override else settings.get_logging_level()
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _run(settings: Settings, *, dry_run: bool) -> int:
    pipeline = Pipeline(settings, dry_run=dry_run or None)
    await pipeline.run()
    return 0


async def _poll(settings: Settings, *, dry_run: bool) -> int:
    pipeline = Pipeline(settings, dry_run=dry_run or None)
    await pipeline.start(background=False)
    try:
        feed = await pipeline.poll_once()
    finally:
        await pipeline.stop()
    output = feed.to_dict()
    if feed.notes:
        output["notes"] = feed.notes
    if feed.errors:
        output["errors"] = feed.errors
    print(json.dumps(output, indent=2))
    return 0


async def _diag(settings: Settings, *, min_usd: Decimal, timeout: float) -> int:
    adapter_set = build_adapters(settings)
    try:
        report = await diagnose(adapter_set, min_usd=min_usd, timeout=timeout)
    finally:
        await adapter_set.aclose()
    print(json.dumps(report, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = create_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings, args.log_level)
    logger.debug("Settings: %s", settings.redacted_summary())

    if args.command == "run":
        coro = _run(settings, dry_run=args.dry_run)
    elif args.command == "poll":
        coro = _poll(settings, dry_run=args.dry_run)
    else:
        coro = _diag(settings, min_usd=args.min_usd, timeout=args.timeout)

    with contextlib.suppress(KeyboardInterrupt):
        return asyncio.run(coro)
    return 130


if __name__ == "__main__":
    sys.exit(main())
