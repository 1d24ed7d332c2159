#!/usr/bin/env python3
"""
timelapse.py - export one day of captured screenshots as a timelapse video.

Usage example:
  python timelapse.py --list
  python timelapse.py --day 2025-10-05 --show-timestamp --output day.mp4
  python timelapse.py --source /path/to/screenshots --frame-duration 0.1

Ctrl-C cancels the running export cleanly (the partial file is removed).
"""
import argparse
import logging
import math
import os
import sys
from datetime import date, datetime, timedelta
from shutil import which

from pclapse import config
from pclapse.catalog import ScreenshotCatalog, default_export_name, group_title
from pclapse.core import run_export
from pclapse.feeder import FailurePolicy
from pclapse.io_utils import install_cleanup_handlers
from pclapse.models import CanvasSpec, ExportRequest, ExportStatus
from pclapse.progress import TqdmProgress
from pclapse.scheduler import DispatcherThrottle, ExportController
from pclapse.settings import Settings
from pclapse.utils import get_logger, setup_logging

logger = get_logger()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def parse_day(value):
    v = value.strip().lower()
    if v == "today":
        return date.today()
    if v == "yesterday":
        return date.today() - timedelta(days=1)
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"day must be YYYY-MM-DD, 'today' or 'yesterday', got {value!r}")


def positive_seconds(value):
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected seconds, got {value!r}")
    if not math.isfinite(seconds) or seconds <= 0:
        raise argparse.ArgumentTypeError(f"must be a positive number of seconds, got {value!r}")
    return seconds


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Export captured screenshots of one day as a timelapse video.")
    parser.add_argument("--source", "-s", default=None, help="Screenshot folder (default from settings).")
    parser.add_argument("--list", action="store_true", help="List day groups and exit.")
    parser.add_argument("--day", "-d", type=parse_day, default=None,
                        help="Day to export: YYYY-MM-DD, today or yesterday (default: newest day).")
    parser.add_argument("--output", "-o", default=None, help="Output .mp4 path (default: Timelapse-<day>.mp4 in cwd).")
    parser.add_argument("--frame-duration", type=positive_seconds, default=None,
                        help="Seconds each screenshot stays on screen (default from settings).")
    stamp = parser.add_mutually_exclusive_group()
    stamp.add_argument("--show-timestamp", dest="show_timestamp", action="store_true", default=None,
                       help="Burn the capture time into the top-right corner.")
    stamp.add_argument("--no-timestamp", dest="show_timestamp", action="store_false")
    parser.add_argument("--width", type=int, default=config.CANVAS_WIDTH, help="Output width (default 1920).")
    parser.add_argument("--height", type=int, default=config.CANVAS_HEIGHT, help="Output height (default 1080).")
    parser.add_argument("--max-cpu", type=float, default=None,
                        help="Hold composition while CPU usage is above this percent.")
    parser.add_argument("--skip-failed", action="store_true",
                        help="Leave out unreadable screenshots instead of failing the export.")
    parser.add_argument("--settings", default=config.SETTINGS_FILE, help="Settings file path.")
    parser.add_argument("--log-file", default=config.LOG_FILE, help="Log file path (default from config).")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging.")
    return parser.parse_args(argv)


def _list_groups(catalog):
    groups = catalog.groups()
    if not groups:
        print("No screenshots found in", catalog.directory)
        return
    for g in groups:
        print(f"{g.key.isoformat()}  {group_title(g.key):<20} {len(g):>6} screenshots")


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_file, logging.DEBUG if (args.verbose or config.VERBOSE) else logging.INFO)
    settings = Settings.load(args.settings)
    catalog = ScreenshotCatalog(args.source or settings.screenshot_dir)
    logger.info("timelapse.py started. Source=%s", catalog.directory)

    if args.list:
        _list_groups(catalog)
        return EXIT_OK

    if which(config.FFMPEG_BIN) is None:
        print("ffmpeg not found in PATH. Please install ffmpeg and add to PATH.")
        return EXIT_FAILED

    groups = catalog.groups()
    if args.day is not None:
        group = catalog.group_for(args.day)
    else:
        group = groups[0] if groups else None
    if group is None:
        print("No screenshots found for", args.day.isoformat() if args.day else catalog.directory)
        return EXIT_FAILED

    output = args.output or os.path.join(os.getcwd(), default_export_name(group))
    request = ExportRequest(
        frames=group,
        destination=output,
        show_timestamp=settings.show_timestamp if args.show_timestamp is None else args.show_timestamp,
        frame_duration=settings.frame_duration if args.frame_duration is None else args.frame_duration,
    )
    try:
        canvas = CanvasSpec(args.width, args.height)
    except ValueError as e:
        print("Invalid canvas:", e)
        return EXIT_FAILED

    controller = ExportController()
    install_cleanup_handlers(on_interrupt=controller.cancel)
    throttle = DispatcherThrottle(max_cpu_percent=args.max_cpu) if args.max_cpu else None
    policy = FailurePolicy.SKIP if args.skip_failed else FailurePolicy.ABORT

    print(f"Exporting {len(group)} screenshots from {group_title(group.key)} -> {output}")
    with TqdmProgress(desc="Export", unit="frame") as progress:
        outcome = run_export(request, canvas=canvas, progress=progress, controller=controller,
                             policy=policy, throttle=throttle)

    if outcome.status is ExportStatus.COMPLETED:
        print(f"Created: {outcome.destination} ({outcome.frames_appended} frames, {outcome.duration:.1f}s)")
        return EXIT_OK
    if outcome.status is ExportStatus.CANCELLED:
        print("Export cancelled.")
        return EXIT_CANCELLED
    print("Export failed:", outcome.reason)
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
