"""
Google Calendar quick-add links for single shifts.
"""

import webbrowser
from typing import Optional
from urllib.parse import quote

from shiftcal.logging_helper import Log
from shiftcal.shift_models import ShiftRecord, require_valid

QUICK_ADD_URL = "https://www.google.com/calendar/render"
DEFAULT_TIMEZONE = "Asia/Tokyo"


def build_quick_add_url(record: ShiftRecord, timezone: Optional[str] = None) -> str:
    """
    Generate a Google Calendar URL with the shift pre-filled.

    Args:
        record: Shift to add
        timezone: IANA zone sent as ctz (default Asia/Tokyo)

    Returns:
        Google Calendar URL string

    Raises:
        ShiftValidationError: if the record's date or times do not parse
    """
    timezone = timezone or DEFAULT_TIMEZONE
    shift = require_valid([record])[0]

    title_encoded = quote(shift.title, safe='')
    dates = f"{shift.compact_start()}/{shift.compact_end()}"

    return (
        f"{QUICK_ADD_URL}?action=TEMPLATE"
        f"&text={title_encoded}"
        f"&dates={dates}"
        f"&ctz={timezone}"
    )


def open_quick_add(record: ShiftRecord, timezone: Optional[str] = None) -> str:
    """
    Open the quick-add URL for one shift in the default browser.

    Returns:
        The URL that was opened
    """
    url = build_quick_add_url(record, timezone)
    opened = webbrowser.open(url)
    if opened:
        Log.info(f"Opened Google Calendar URL in browser: {url[:100]}...")
    else:
        Log.warn(f"No browser available to open Google Calendar URL: {url[:100]}...")
    Log.kv({"stage": "link", "result": "opened" if opened else "not_opened", "id": record.id})
    return url
