"""
Command line entry point: run one date-of-loss inference and print it.
"""
import argparse
import asyncio
import json
import sys
from datetime import date, datetime, timezone
from typing import List, Optional

from .config import Settings, get_settings
from .dependencies import build_engine, build_fixture_engine
from .exceptions import ConfigurationError, InvalidLocationError, InvalidWindowError
from .logging_config import setup_logging
from .models.results import DateWindow, DOLResult, PropertyContext


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dol-infer",
        description="Infer the most probable date of loss for a property from storm reports",
    )
    parser.add_argument("--lat", type=float, required=True, help="Property latitude (WGS84)")
    parser.add_argument("--lon", type=float, required=True, help="Property longitude (WGS84)")
    parser.add_argument("--address", help="Display address, not used in computation")
    parser.add_argument("--start", type=date.fromisoformat, help="Window start (YYYY-MM-DD)")
    parser.add_argument("--end", type=date.fromisoformat, help="Window end (YYYY-MM-DD), defaults to today")
    parser.add_argument("--days-back", type=int, help="Look-back window in days when --start is omitted")
    parser.add_argument("--fixture", help="JSON file of events to use instead of live feeds")
    parser.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    return parser


def format_result(result: DOLResult) -> str:
    if not result.has_signal:
        lines = [f"❌ No storm signal found ({result.total_events_scanned} events scanned)"]
    else:
        lines = [
            f"✅ Recommended date of loss: {result.recommended_date.isoformat()}",
            f"   Confidence: {result.confidence:.0%}  ({result.total_events_scanned} events scanned)",
        ]
        if result.max_hail_inches is not None:
            lines.append(f"   Max hail: {result.max_hail_inches:.2f} in")
        if result.max_wind_mph is not None:
            lines.append(f"   Max wind: {result.max_wind_mph:.0f} mph")
        for event in result.top_events:
            magnitude = "" if event.magnitude is None else f" {event.magnitude:g}"
            lines.append(
                f"   - {event.occurred_at:%Y-%m-%d %H:%M}Z {event.type}{magnitude} "
                f"{event.distance_miles:.1f} mi {event.direction} [{event.source}] score={event.score:.3f}"
            )
    if result.degraded_sources:
        lines.append(f"⚠️ Degraded sources: {', '.join(result.degraded_sources)}")
    return "\n".join(lines)


async def run(args: argparse.Namespace, settings: Settings) -> DOLResult:
    engine = build_fixture_engine(args.fixture, settings) if args.fixture else build_engine(settings)
    prop = PropertyContext(lat=args.lat, lon=args.lon, address=args.address)
    async with engine:
        if args.start is not None:
            window = DateWindow(start=args.start, end=args.end or datetime.now(timezone.utc).date())
            return await engine.infer_date_of_loss(prop, window)
        return await engine.infer_recent(prop, days_back=args.days_back, today=args.end)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    setup_logging(settings.LOG_LEVEL, use_json=settings.LOG_FORMAT == "json")

    try:
        result = asyncio.run(run(args, settings))
    except (InvalidLocationError, InvalidWindowError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(format_result(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
