"""
Command-line entry point: photo of a shift table -> calendar entries.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from shiftcal.calendar_connector import EventKitCalendarBackend, materialize
from shiftcal.calendar_link import build_quick_add_url, open_quick_add
from shiftcal.errors import EmptyBatch, ShiftCalError
from shiftcal.ics_generator import write_ics
from shiftcal.image_llm_client import extract_shifts, get_llm_client, load_image
from shiftcal.logging_helper import Log
from shiftcal.settings_manager import load_settings, resolve_timezone
from shiftcal.shift_store import ShiftStore


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="shiftcal",
        description="Extract shifts from a photo of a shift table and add them to a calendar.",
    )
    ap.add_argument("image", help="Path to the shift table photo (PNG or JPEG)")
    ap.add_argument("--mime-type", default=None, help="image/png or image/jpeg (default: detected)")
    ap.add_argument("--year", type=int, default=None, help="Year for dates without one (default: current year)")
    ap.add_argument("--timezone", default=None, help="IANA time zone for all shifts (default: settings, Asia/Tokyo)")
    ap.add_argument(
        "--edit",
        nargs=3,
        action="append",
        default=[],
        metavar=("ID", "FIELD", "VALUE"),
        help="Replace one field of a shift before output (fields: date, startTime, endTime, title)",
    )
    ap.add_argument("--delete", type=int, action="append", default=[], metavar="ID", help="Drop a shift before output")
    ap.add_argument("--ics", metavar="DIR", default=None, help="Write shifts.ics into DIR")
    ap.add_argument("--links", action="store_true", help="Print a Google Calendar quick-add link per shift")
    ap.add_argument("--open-links", action="store_true", help="Open each quick-add link in the browser")
    ap.add_argument("--native", action="store_true", help="Write the shifts into the native (macOS) calendar")
    return ap


def run(args: argparse.Namespace, store: ShiftStore, calendar_backend=None) -> int:
    settings = load_settings()
    timezone, _ = resolve_timezone(args.timezone or settings["timezone"])

    client = get_llm_client(settings)
    image_bytes = load_image(args.image)
    store.load(extract_shifts(
        image_bytes,
        mime_type=args.mime_type,
        year=args.year,
        client=client,
        default_title=settings["default_title"],
    ))

    for shift_id, field, value in args.edit:
        store.update(int(shift_id), field, value)
    for shift_id in args.delete:
        store.delete(shift_id)

    print(json.dumps([record.to_dict() for record in store], ensure_ascii=False, indent=2))

    if len(store) == 0 and (args.ics or args.links or args.open_links or args.native):
        Log.kv({"stage": "output", "result": "skipped", "reason": "empty_batch"})
        raise EmptyBatch()

    if args.ics:
        ics_path = write_ics(store.records, Path(args.ics), timezone=timezone, product_id=settings["product_id"])
        print(f"Wrote {ics_path}")

    if args.links or args.open_links:
        for record in store:
            if args.open_links:
                url = open_quick_add(record, timezone)
            else:
                url = build_quick_add_url(record, timezone)
            print(url)

    if args.native:
        backend = calendar_backend or EventKitCalendarBackend()
        report = materialize(
            store.records,
            backend,
            timezone=timezone,
            reminder_minutes=settings["reminder_minutes"],
        )
        print(f"Added {report.success_count} of {report.attempted} shift(s) to the calendar")
        for failure in report.failures:
            print(f"  failed: {failure}")
        if not report.all_succeeded:
            return 2
        store.reset()

    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    for shift_id, _, _ in args.edit:
        if not shift_id.isdigit():
            parser.error(f"--edit ID must be a shift id, got {shift_id!r}")

    Log.section("ShiftCal")
    Log.info(f"Log file: {Log.get_log_path()}")

    try:
        return run(args, ShiftStore())
    except ShiftCalError as e:
        Log.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
