"""
Shift data models.
Defines ShiftRecord (raw, editable, from the model response) and
ValidShift (parsed dates and times, ready for calendar output).
"""

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import List, Optional, Sequence, Tuple, Union

from shiftcal.errors import ShiftValidationError

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
COMPACT_FORMAT = "%Y%m%dT%H%M%S"

# JSON key -> attribute name
FIELD_NAMES = {
    "date": "date",
    "startTime": "start_time",
    "endTime": "end_time",
    "title": "title",
}


@dataclass
class ShiftRecord:
    """
    Raw shift extracted from the image by the LLM.
    Every field is a string and may be edited freely; nothing is validated
    until a calendar output consumes the record.
    """
    id: int
    date: str
    start_time: str
    end_time: str
    title: str

    def to_dict(self) -> dict:
        """Serialize using the same keys as the model response."""
        return {
            "id": self.id,
            "date": self.date,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "title": self.title,
        }


@dataclass(frozen=True)
class ShiftValidationIssue:
    """One field of one record that failed to parse."""
    shift_id: int
    field: str
    value: str
    expected: str

    def __str__(self) -> str:
        return f"shift {self.shift_id}: {self.field}={self.value!r} (expected {self.expected})"


@dataclass(frozen=True)
class ValidShift:
    """Shift with parsed date and times."""
    id: int
    title: str
    date: date
    start_time: time
    end_time: time

    def start_at(self, tzinfo) -> datetime:
        return datetime.combine(self.date, self.start_time, tzinfo=tzinfo)

    def end_at(self, tzinfo) -> datetime:
        # No ordering check against start_time
        return datetime.combine(self.date, self.end_time, tzinfo=tzinfo)

    def compact_start(self) -> str:
        """Start as YYYYMMDDTHHMMSS (wall clock, no zone)."""
        return datetime.combine(self.date, self.start_time).strftime(COMPACT_FORMAT)

    def compact_end(self) -> str:
        """End as YYYYMMDDTHHMMSS (wall clock, no zone)."""
        return datetime.combine(self.date, self.end_time).strftime(COMPACT_FORMAT)


ValidationResult = Union[ValidShift, List[ShiftValidationIssue]]


def _parse(value: str, fmt: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value.strip(), fmt)
    except (AttributeError, ValueError):
        return None


def validate_shift(record: ShiftRecord) -> ValidationResult:
    """
    Parse the date and time fields of a record.

    Returns:
        ValidShift on success, otherwise the list of field issues
    """
    issues: List[ShiftValidationIssue] = []

    parsed_date = _parse(record.date, DATE_FORMAT)
    if parsed_date is None:
        issues.append(ShiftValidationIssue(record.id, "date", record.date, "YYYY-MM-DD"))

    parsed_times = {}
    for field in ("start_time", "end_time"):
        value = getattr(record, field)
        parsed = _parse(value, TIME_FORMAT)
        if parsed is None:
            issues.append(ShiftValidationIssue(record.id, field, value, "HH:MM"))
        else:
            parsed_times[field] = parsed.time()

    if issues:
        return issues

    return ValidShift(
        id=record.id,
        title=record.title,
        date=parsed_date.date(),
        start_time=parsed_times["start_time"],
        end_time=parsed_times["end_time"],
    )


def validate_batch(records: Sequence[ShiftRecord]) -> Tuple[List[ValidShift], List[ShiftValidationIssue]]:
    """Validate every record; returns (valid shifts, issues of the invalid ones)."""
    valid: List[ValidShift] = []
    issues: List[ShiftValidationIssue] = []
    for record in records:
        result = validate_shift(record)
        if isinstance(result, ValidShift):
            valid.append(result)
        else:
            issues.extend(result)
    return valid, issues


def require_valid(records: Sequence[ShiftRecord]) -> List[ValidShift]:
    """
    Validate a batch for an all-or-nothing output (ICS file, deep link).

    Raises:
        ShiftValidationError: if any record has an unparseable field
    """
    valid, issues = validate_batch(records)
    if issues:
        raise ShiftValidationError(issues)
    return valid
