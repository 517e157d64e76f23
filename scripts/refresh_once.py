#!/usr/bin/env python3
"""Run a single glucose refresh and print the published series.

Configuration comes from ``GLUCOSYNC_*`` environment variables
(see :meth:`glucosync.SyncConfig.from_env`), for example:

- GLUCOSYNC_OFFICIAL_ACCESS_TOKEN
- GLUCOSYNC_SHARE_USERNAME / GLUCOSYNC_SHARE_PASSWORD
- GLUCOSYNC_SHARE_SERVER (``us``, ``international`` or a URL)
- GLUCOSYNC_STORE_PATH
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from glucosync import GlucoseSyncClient, GlucoseSyncError, SyncConfig  # noqa: E402
from glucosync.models import RefreshResult  # noqa: E402


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--hours", type=float, default=None, help="Window length in hours (default: config)")
    parser.add_argument("--store", default=None, help="SQLite store path (default: config)")
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _print_table(result: RefreshResult) -> None:
    print(f"source: {result.data_source}  points: {len(result.points)}")
    if result.window is not None:
        print(f"window: {result.window.start.isoformat()} .. {result.window.end.isoformat()}")
    if result.error_message:
        print(f"error: {result.error_message}")
    for point in result.points:
        marker = "~" if point.has_gap_before else " "
        print(f"{marker} {point.time.isoformat()}  {point.value:6.1f}")
    for meal in result.meal_times:
        print(f"meal {meal.isoformat()}")


async def _main(args: argparse.Namespace) -> int:
    overrides: dict[str, object] = {}
    if args.hours is not None:
        overrides["window_hours"] = args.hours
    if args.store is not None:
        overrides["store_path"] = args.store
    try:
        config = SyncConfig.from_env(**overrides)
    except GlucoseSyncError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    async with GlucoseSyncClient(config) as client:
        result = await client.refresh(force=True)

    if args.json:
        print(json.dumps(result.model_dump(mode="json"), indent=2))
    else:
        _print_table(result)
    return 0 if result.points else 1


def main() -> None:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    raise SystemExit(asyncio.run(_main(args)))


if __name__ == "__main__":
    main()
