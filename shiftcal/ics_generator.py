"""
ICS Generator for creating iCalendar (.ics) documents from a shift batch.
Every event carries wall-clock start/end times qualified with a single TZID.
"""

from pathlib import Path
from typing import Optional, Sequence

from shiftcal.logging_helper import Log
from shiftcal.shift_models import ShiftRecord, ValidShift, require_valid

ICS_FILENAME = "shifts.ics"
ICS_MIME_TYPE = "text/calendar;charset=utf-8"

DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_PRODUCT_ID = "Shift Calendar App"

# RFC5545 limits content lines to 75 octets
MAX_LINE_OCTETS = 75


def _escape_ical_text(text: str) -> str:
    """
    Escape text for iCalendar format (RFC5545).
    Escapes commas, semicolons, backslashes, and newlines.
    """
    if text is None:
        return ""

    # Replace backslashes first (before other replacements)
    text = text.replace('\\', '\\\\')
    text = text.replace(';', '\\;')
    text = text.replace(',', '\\,')
    text = text.replace('\r\n', '\\n')
    text = text.replace('\n', '\\n')
    text = text.replace('\r', '')
    return text


def _fold_line(line: str) -> str:
    """
    Fold a content line at 75 octets; continuation lines start with a space.
    """
    if len(line.encode('utf-8')) <= MAX_LINE_OCTETS:
        return line

    lines = []
    current_line = ""
    for char in line:
        test_line = current_line + char
        if len(test_line.encode('utf-8')) <= MAX_LINE_OCTETS:
            current_line = test_line
        else:
            lines.append(current_line)
            current_line = " " + char
    if current_line:
        lines.append(current_line)
    return '\r\n'.join(lines)


def _event_lines(shift: ValidShift, timezone: str) -> list:
    return [
        "BEGIN:VEVENT",
        f"SUMMARY:{_escape_ical_text(shift.title)}",
        f"DTSTART;TZID={timezone}:{shift.compact_start()}",
        f"DTEND;TZID={timezone}:{shift.compact_end()}",
        "END:VEVENT",
    ]


def encode_ics(
    records: Sequence[ShiftRecord],
    timezone: Optional[str] = None,
    product_id: Optional[str] = None,
) -> str:
    """
    Build one calendar document holding an event per record, in batch order.

    Args:
        records: Current shift batch
        timezone: IANA zone used for every TZID (default Asia/Tokyo)
        product_id: Text placed inside PRODID:-//...//EN

    Returns:
        ICS document text with CRLF line endings

    Raises:
        ShiftValidationError: if any record has an unparseable date or time
    """
    timezone = timezone or DEFAULT_TIMEZONE
    product_id = product_id or DEFAULT_PRODUCT_ID
    shifts = require_valid(records)

    ics_lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:-//{product_id}//EN",
    ]
    for shift in shifts:
        ics_lines.extend(_event_lines(shift, timezone))
    ics_lines.append("END:VCALENDAR")

    return '\r\n'.join(_fold_line(line) for line in ics_lines) + '\r\n'


def write_ics(
    records: Sequence[ShiftRecord],
    directory: Path,
    timezone: Optional[str] = None,
    product_id: Optional[str] = None,
) -> Path:
    """
    Encode the batch and save it as shifts.ics in the given directory.

    Returns:
        Path to the written file
    """
    Log.section("ICS Generator")
    Log.info(f"Generating ICS file for {len(records)} shift(s)")

    content = encode_ics(records, timezone=timezone, product_id=product_id)

    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    ics_path = directory / ICS_FILENAME
    # newline='' keeps the CRLF endings intact on every platform
    with open(ics_path, 'w', encoding='utf-8', newline='') as ics_file:
        ics_file.write(content)

    Log.info(f"ICS file generated: {ics_path}")
    Log.kv({
        "stage": "ics",
        "result": "success",
        "ics_path": str(ics_path),
        "events": len(records),
        "mime_type": ICS_MIME_TYPE,
    })
    return ics_path
