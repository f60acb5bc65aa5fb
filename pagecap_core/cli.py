#!/usr/bin/env python3
"""pagecap command line: full-page and viewport captures of a URL."""

import argparse
import asyncio
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

from .browser_setup import ensure_scheme, open_page
from .config import config
from .error_handler import create_error_response, format_error_for_cli
from .exceptions import NotConnectedError, PagecapError, RelayRemoteError
from .handoff import DirectorySink, StaticIdentityStore, cleanup_old_screenshots, hand_off, site_name
from .pipeline import build_pipeline

logger = logging.getLogger(__name__)


def parse_viewport(value: Optional[str]) -> Tuple[Optional[int], Optional[int]]:
    """Parse 'WIDTHxHEIGHT' into a tuple; None yields configured defaults."""
    if not value:
        return None, None
    try:
        width, height = (int(part) for part in value.lower().split("x", 1))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid viewport '{value}', expected WIDTHxHEIGHT")
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"Invalid viewport '{value}', sizes must be positive")
    return width, height


def _report_error(args: argparse.Namespace, error, action: str = "capture full page") -> None:
    if getattr(args, "json", False):
        print(json.dumps(create_error_response(error), indent=2))
    else:
        print(format_error_for_cli(error, action=action), file=sys.stderr)


def _report_saved(args: argparse.Namespace, path: str, extra: dict) -> None:
    if getattr(args, "json", False):
        print(json.dumps({"success": True, "path": path, **extra}, indent=2))
    else:
        print(path)


def deliver(image: bytes, url: str, output: Optional[str], name: str) -> str:
    """
    Write the image to ``output`` or hand it to the screenshot store.

    Raises:
        NotConnectedError: no output path and no connected credential
    """
    if output:
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(image)
        return str(path)
    sink = DirectorySink(config.screenshot_dir, site_name(url))
    return hand_off(image, name, StaticIdentityStore(config.connected_credential), sink)


async def _capture(args: argparse.Namespace) -> int:
    url = ensure_scheme(args.url)
    width, height = args.viewport
    run_log = None
    if args.log_dir:
        from pagecap_logs import create_run_logger
        run_log = create_run_logger(url=url, command_line=" ".join(sys.argv), log_dir=args.log_dir)

    def on_snapshot(snapshot, geometry):
        if run_log is None:
            return
        if snapshot.vertical_offset == 0:
            run_log.log_geometry(geometry)
        run_log.log_snapshot(snapshot, geometry)

    started = time.monotonic()
    error: Optional[Exception] = None
    image = None
    try:
        async with open_page(url, config, width, height) as page:
            pipeline = build_pipeline(
                page,
                config,
                capture_width=args.width,
                repaint_delay=args.repaint_delay,
                relay_timeout=args.timeout,
                on_snapshot=on_snapshot,
            )
            image = await pipeline.capture_full_page()
    except Exception as e:
        logger.debug("Capture failed", exc_info=True)
        error = e

    duration_ms = int((time.monotonic() - started) * 1000)
    if error is not None:
        if run_log:
            run_log.finalize(success=False, duration_ms=duration_ms, error=str(error))
        # Terminal strings from the page agent are matched by content
        _report_error(args, str(error) if isinstance(error, RelayRemoteError) else error)
        return 1

    try:
        path = deliver(image, url, args.output, "fullpage")
    except (NotConnectedError, OSError) as e:
        if run_log:
            run_log.finalize(success=False, duration_ms=duration_ms, error=str(e))
        _report_error(args, e, action="save screenshot")
        return 2

    if run_log:
        run_log.log_heading("Result")
        run_log.log_image(path, "Full page")
        run_log.finalize(success=True, duration_ms=duration_ms)
    _report_saved(args, path, {"duration_ms": duration_ms})
    return 0


async def _viewport(args: argparse.Namespace) -> int:
    url = ensure_scheme(args.url)
    width, height = args.viewport
    try:
        async with open_page(url, config, width, height) as page:
            image = await build_pipeline(page, config).capture_viewport()
    except Exception as e:
        logger.debug("Viewport capture failed", exc_info=True)
        _report_error(args, str(e) if isinstance(e, RelayRemoteError) else e, action="capture viewport")
        return 1

    try:
        path = deliver(image, url, args.output, "viewport")
    except (NotConnectedError, OSError) as e:
        _report_error(args, e, action="save screenshot")
        return 2
    _report_saved(args, path, {})
    return 0


def cmd_capture(args: argparse.Namespace) -> int:
    return asyncio.run(_capture(args))


def cmd_viewport(args: argparse.Namespace) -> int:
    return asyncio.run(_viewport(args))


def cmd_cleanup(args: argparse.Namespace) -> int:
    removed = cleanup_old_screenshots(config.screenshot_dir, max_age_days=args.days)
    print(f"Removed {removed} run director{'y' if removed == 1 else 'ies'}")
    return 0


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("url", help="Page to capture")
    p.add_argument("-o", "--output", help="Write the PNG here instead of the screenshot store")
    p.add_argument("--viewport", type=parse_viewport, default=(None, None), metavar="WxH",
                   help="Browser viewport size, e.g. 1280x800")
    p.add_argument("--json", action="store_true", help="Print the result as JSON")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="pagecap", description="pagecap - full-page screenshots by scroll-and-stitch")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = p.add_subparsers(dest="sub")

    p_cap = sub.add_parser("capture", help="Capture the whole scrollable page")
    _add_common(p_cap)
    p_cap.add_argument("--repaint-delay", type=float, help="Seconds to wait after each scroll")
    p_cap.add_argument("--timeout", type=float, help="Deadline in seconds for each relay call")
    p_cap.add_argument("--width", type=int, help="Composite surface width (default: page width)")
    p_cap.add_argument("--log-dir", help="Write a Markdown run log into this directory")
    p_cap.set_defaults(func=cmd_capture)

    p_vp = sub.add_parser("viewport", help="Capture only the visible viewport")
    _add_common(p_vp)
    p_vp.set_defaults(func=cmd_viewport)

    p_clean = sub.add_parser("cleanup", help="Remove old run directories from the screenshot store")
    p_clean.add_argument("--days", type=int, default=7, help="Maximum age in days (default: 7)")
    p_clean.set_defaults(func=cmd_cleanup)

    return p


def main(argv: List[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    if not hasattr(args, "func"):
        parser.print_help()
        return 0
    try:
        return int(args.func(args) or 0)
    except PagecapError as e:
        _report_error(args, e, action=f"run '{args.sub}'")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
