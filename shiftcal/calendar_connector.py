"""
Calendar Connector for writing a shift batch into a native calendar.
Picks a writable calendar, then creates one event per shift, one at a time.
A failed shift is logged and counted; the remaining shifts are still written.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence

from shiftcal.errors import CalendarUnavailable, PermissionDenied, WriteFailure
from shiftcal.logging_helper import Log
from shiftcal.settings_manager import resolve_timezone
from shiftcal.shift_models import ShiftRecord, ValidShift, validate_shift

# Try to import EventKit
try:
    from EventKit import EKAlarm, EKEvent, EKEventStore  # type: ignore
    from Foundation import NSDate, NSTimeZone  # type: ignore
    EVENTKIT_AVAILABLE = True
except ImportError:
    EVENTKIT_AVAILABLE = False

DEFAULT_REMINDER_MINUTES = 60
REMINDER_METHOD_ALERT = "alert"

EK_ENTITY_TYPE_EVENT = 0
EK_SPAN_THIS_EVENT = 0
ACCESS_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class CalendarInfo:
    id: str
    is_primary: bool
    allows_modifications: bool
    title: str = ""


@dataclass(frozen=True)
class Reminder:
    offset_minutes: int  # minutes before start
    method: str = REMINDER_METHOD_ALERT


@dataclass
class EventRequest:
    title: str
    start: datetime
    end: datetime
    timezone: str
    reminders: List[Reminder] = field(default_factory=list)


@dataclass
class MaterializationReport:
    calendar_id: str
    attempted: int = 0
    succeeded: int = 0
    failures: List[WriteFailure] = field(default_factory=list)
    event_ids: List[str] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return self.succeeded

    @property
    def all_succeeded(self) -> bool:
        return not self.failures and self.succeeded == self.attempted


class CalendarBackend(ABC):
    """Abstract base class for native calendar stores."""

    @abstractmethod
    def list_calendars(self) -> List[CalendarInfo]:
        """Return the event calendars visible to the app."""

    @abstractmethod
    def create_event(self, calendar_id: str, event: EventRequest) -> str:
        """
        Create one event.

        Returns:
            Identifier of the new event

        Raises:
            Exception: any failure to save the event
        """


def select_calendar(calendars: Sequence[CalendarInfo]) -> CalendarInfo:
    """
    Pick the first primary calendar, else the first that accepts modifications.

    Raises:
        CalendarUnavailable: if neither exists
    """
    for calendar in calendars:
        if calendar.is_primary:
            return calendar
    for calendar in calendars:
        if calendar.allows_modifications:
            return calendar
    raise CalendarUnavailable("No writable calendar found")


def _event_request(shift: ValidShift, timezone: str, tzinfo, reminder_minutes: int) -> EventRequest:
    return EventRequest(
        title=shift.title,
        start=shift.start_at(tzinfo),
        end=shift.end_at(tzinfo),
        timezone=timezone,
        reminders=[Reminder(offset_minutes=reminder_minutes)],
    )


def materialize(
    records: Sequence[ShiftRecord],
    backend: CalendarBackend,
    timezone: Optional[str] = None,
    reminder_minutes: Optional[int] = None,
) -> MaterializationReport:
    """
    Write every shift into the selected native calendar, sequentially.

    Args:
        records: Current shift batch
        backend: Calendar store to write to
        timezone: IANA zone the wall-clock times belong to (default: configured zone)
        reminder_minutes: Reminder offset before each start (default 60)

    Returns:
        MaterializationReport with per-shift failures

    Raises:
        CalendarUnavailable: no writable calendar, nothing is written
    """
    Log.section("Calendar Connector")
    timezone, tzinfo = resolve_timezone(timezone)
    if reminder_minutes is None:
        reminder_minutes = DEFAULT_REMINDER_MINUTES

    calendars = backend.list_calendars()
    Log.info(f"Found {len(calendars)} calendar(s)")
    try:
        target = select_calendar(calendars)
    except CalendarUnavailable:
        Log.error("No writable calendar found")
        Log.kv({"stage": "calendar", "result": "failed", "reason": "no_writable_calendar"})
        raise

    Log.info(f"Writing {len(records)} shift(s) to calendar {target.id} ({target.title or 'untitled'})")
    report = MaterializationReport(calendar_id=target.id)

    for record in records:
        report.attempted += 1
        try:
            shift = validate_shift(record)
            if not isinstance(shift, ValidShift):
                raise ValueError("; ".join(str(issue) for issue in shift))
            event_id = backend.create_event(
                target.id,
                _event_request(shift, timezone, tzinfo, reminder_minutes),
            )
        except Exception as e:
            Log.error(f"Failed to create event for shift {record.id}: {e}")
            report.failures.append(WriteFailure(record, e))
            continue
        report.succeeded += 1
        report.event_ids.append(event_id)

    Log.kv({
        "stage": "calendar",
        "result": "success" if report.all_succeeded else "partial",
        "calendar_id": target.id,
        "attempted": report.attempted,
        "succeeded": report.succeeded,
        "failed": len(report.failures),
    })
    return report


class EventKitCalendarBackend(CalendarBackend):
    """
    macOS Calendar store via PyObjC EventKit.
    The default calendar for new events is reported as the primary one.
    """

    def __init__(self, event_store=None):
        if not EVENTKIT_AVAILABLE:
            raise PermissionDenied("EventKit is not available on this platform")
        self.event_store = event_store or EKEventStore.alloc().init()
        self._access_granted = False

    def _ensure_access(self) -> None:
        if self._access_granted:
            return

        done = threading.Event()
        result = {"granted": False, "error": None}

        def access_callback(granted, error):
            result["granted"] = bool(granted)
            result["error"] = error
            done.set()

        # macOS 14 split calendar access into full/write-only
        if hasattr(self.event_store, "requestFullAccessToEventsWithCompletion_"):
            self.event_store.requestFullAccessToEventsWithCompletion_(access_callback)
        else:
            self.event_store.requestAccessToEntityType_completion_(
                EK_ENTITY_TYPE_EVENT,
                access_callback,
            )

        if not done.wait(ACCESS_TIMEOUT_SECONDS) or not result["granted"]:
            Log.warn(f"Calendar access not granted: {result['error']}")
            Log.kv({"stage": "calendar", "result": "failed", "reason": "permission_denied"})
            raise PermissionDenied("Calendar access was not granted")
        self._access_granted = True

    def list_calendars(self) -> List[CalendarInfo]:
        self._ensure_access()
        default_calendar = self.event_store.defaultCalendarForNewEvents()
        default_id = default_calendar.calendarIdentifier() if default_calendar is not None else None

        calendars = []
        for calendar in self.event_store.calendarsForEntityType_(EK_ENTITY_TYPE_EVENT) or []:
            identifier = str(calendar.calendarIdentifier())
            calendars.append(CalendarInfo(
                id=identifier,
                is_primary=identifier == default_id,
                allows_modifications=bool(calendar.allowsContentModifications()),
                title=str(calendar.title()),
            ))
        return calendars

    def create_event(self, calendar_id: str, event: EventRequest) -> str:
        self._ensure_access()
        calendar = self.event_store.calendarWithIdentifier_(calendar_id)
        if calendar is None:
            raise LookupError(f"Calendar {calendar_id} not found")

        ek_event = EKEvent.eventWithEventStore_(self.event_store)
        ek_event.setCalendar_(calendar)
        ek_event.setTitle_(event.title)
        ek_event.setStartDate_(NSDate.dateWithTimeIntervalSince1970_(event.start.timestamp()))
        ek_event.setEndDate_(NSDate.dateWithTimeIntervalSince1970_(event.end.timestamp()))
        ek_event.setTimeZone_(NSTimeZone.timeZoneWithName_(event.timezone))
        for reminder in event.reminders:
            ek_event.addAlarm_(EKAlarm.alarmWithRelativeOffset_(-60 * reminder.offset_minutes))

        ok, error = self.event_store.saveEvent_span_error_(ek_event, EK_SPAN_THIS_EVENT, None)
        if not ok:
            raise RuntimeError(f"EventKit save failed: {error}")
        return str(ek_event.eventIdentifier())
