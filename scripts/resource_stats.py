#!/usr/bin/env python3
"""Load media files into a headless canvas and print resource statistics.

Useful to check the frame limit, the texture budget and lazy unloading
against real files without a user interface.

Usage:
    python scripts/resource_stats.py cat.gif dog.webp

    # With a smaller budget (in MB) and a session file:
    python scripts/resource_stats.py --budget 64 --session saved.json
"""

import argparse
import logging
import sys
from pathlib import Path

from mablocks import CanvasEngine, CanvasSession, Settings

MB = 1024 * 1024


def print_stats(engine: CanvasEngine) -> None:
    """Print the resource statistics of an engine.

    :param engine: The canvas engine
    """
    stats = engine.stats
    print("=== Resource Stats ===")
    print(f"Blocks: {stats['block_count']} ({stats['image_count']} images)")
    print(f"Animation records: {stats['record_count']} ({stats['lazy_count']} lazy, {stats['crashed_count']} crashed)")
    print(f"Frames: {stats['frame_count']}")
    print(f"Playing: {stats['playing']} / {stats['max_playing']}")
    print(
        f"Texture memory: {stats['total_bytes'] / MB:.2f} / {stats['max_bytes'] / MB:.0f} MB "
        f"({stats['usage_percent']:.1f}%)"
    )
    print(f"Failed decodes: {stats['failed_count']}")
    print("======================")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Print texture memory statistics for a set of media files"
    )
    parser.add_argument("files", nargs="*", type=Path, help="Image or animation files")
    parser.add_argument(
        "--session",
        "-s",
        type=Path,
        default=None,
        help="Session JSON file to restore before loading files",
    )
    parser.add_argument(
        "--budget",
        "-b",
        type=int,
        default=None,
        help="Texture budget in MB (default: MABLOCKS_TEXTURE_BUDGET_BYTES)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds to wait for decoding (default: 60)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log engine activity")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    overrides = {}
    if args.budget is not None:
        overrides["TEXTURE_BUDGET_BYTES"] = args.budget * MB
    settings = Settings(**overrides)

    with CanvasEngine(settings) as engine:
        if args.session is not None:
            session = CanvasSession.from_json(args.session.read_text(encoding="utf-8"))
            engine.restore(session)
        for path in args.files:
            if not path.exists():
                print(f"Skipping {path} (not found)")
                continue
            engine.add_image_block(str(path))

        if not engine.pipeline.wait_for_pending(timeout=args.timeout):
            print(f"Decoding did not finish within {args.timeout:.0f}s")
        engine.tick(0.0)
        print_stats(engine)

    return 0


if __name__ == "__main__":
    sys.exit(main())
