"""CLI 入口。"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Sequence

from timeline_viewer.config import ConfigError
from timeline_viewer.db.state_store import StateStoreError
from timeline_viewer.domain.timeline_types import TimelineView
from timeline_viewer.formatters.timeline_json import render_timeline_json
from timeline_viewer.formatters.timeline_pretty import (
    DurationUnitStyle,
    render_timeline_pretty,
    resolve_duration_unit_style,
)
from timeline_viewer.map.engine import FoliumMapEngine, MapEngineError
from timeline_viewer.services.timeline_service import get_timeline_view


def build_parser() -> argparse.ArgumentParser:
    """构建命令行参数解析器。"""

    parser = argparse.ArgumentParser(prog="timeline-viewer", description="Timeline viewer CLI")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    timeline_parser = subparsers.add_parser(
        "timeline",
        help="Load the timeline of a device for a date.",
    )
    timeline_parser.add_argument(
        "--device-id",
        help="Device identifier. Defaults to the last used device.",
    )
    timeline_parser.add_argument(
        "--date",
        help="Date expression: today | yesterday | YYYY-MM-DD. Defaults to the last used date.",
    )
    step_group = timeline_parser.add_mutually_exclusive_group()
    step_group.add_argument(
        "--prev",
        dest="day_offset",
        action="store_const",
        const=-1,
        help="Load the day before the resolved date.",
    )
    step_group.add_argument(
        "--next",
        dest="day_offset",
        action="store_const",
        const=1,
        help="Load the day after the resolved date.",
    )
    timeline_parser.set_defaults(day_offset=0)
    timeline_parser.add_argument(
        "--api-base",
        help="Timeline API base URL (or TIMELINE_API_BASE).",
    )
    timeline_parser.add_argument(
        "--api-key",
        help="Value for the x-api-key header (or TIMELINE_API_KEY).",
    )
    timeline_parser.add_argument(
        "--output",
        choices=["pretty", "json", "both"],
        default="pretty",
        help="Output format.",
    )
    timeline_parser.add_argument(
        "--map-html",
        help="Write an interactive map to this HTML file.",
    )
    timeline_parser.add_argument(
        "--geodesic",
        choices=["pyproj", "haversine"],
        help="Distance method (or TIMELINE_GEODESIC).",
    )
    timeline_parser.add_argument(
        "--trip-endpoints",
        action="store_true",
        help="Add start/end markers for every trip to the output geometry (not drawn on the map).",
    )
    timeline_parser.add_argument(
        "--no-emoji",
        action="store_true",
        help="Disable emoji in pretty output.",
    )
    timeline_parser.add_argument(
        "--duration-units",
        help="Duration style in pretty output: compact | cn | en. Defaults to TIMELINE_DURATION_UNITS.",
    )

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """CLI 主入口。"""

    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    if args.command == "timeline":
        return _run_timeline(args)

    parser.print_help()
    return 1


def _setup_logging(verbose: bool) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.WARNING,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _run_timeline(args: argparse.Namespace) -> int:
    map_engine = FoliumMapEngine() if args.map_html else None

    try:
        view = get_timeline_view(
            device_id=args.device_id,
            date_expr=args.date,
            day_offset=args.day_offset,
            api_base=args.api_base,
            api_key=args.api_key,
            geodesic=args.geodesic,
            with_trip_endpoints=args.trip_endpoints,
            map_engine=map_engine,
        )
    except (ConfigError, StateStoreError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    _render_output(
        view=view,
        output=args.output,
        emoji=not args.no_emoji,
        duration_unit_style=resolve_duration_unit_style(
            args.duration_units or os.getenv("TIMELINE_DURATION_UNITS")
        ),
    )
    if not view.ok:
        return 1

    if map_engine is not None and not view.is_stale:
        try:
            saved_path = map_engine.save(args.map_html)
        except MapEngineError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 1
        print(f"Map: {saved_path}", file=sys.stderr)
    return 0


def _render_output(
    view: TimelineView,
    output: str,
    emoji: bool,
    duration_unit_style: DurationUnitStyle,
) -> None:
    if output in ("pretty", "both"):
        print(
            render_timeline_pretty(
                view,
                emoji=emoji,
                duration_unit_style=duration_unit_style,
            )
        )
    if output == "both":
        print()
    if output in ("json", "both"):
        print(render_timeline_json(view))


if __name__ == "__main__":
    raise SystemExit(main())
