"""
Error types raised by the shift extraction and calendar pipeline.
"""

from typing import List, Optional


class ShiftCalError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ShiftCalError):
    """Credential missing or placeholder, or an invalid setting."""


class PermissionDenied(ShiftCalError):
    """Image or calendar access was refused by the platform."""


class ImageError(ShiftCalError):
    """Image bytes are empty, unreadable, too large or in an unsupported format."""


class RequestFailure(ShiftCalError):
    """The model request failed or returned no text."""


class ParseFailure(ShiftCalError):
    """The model response could not be turned into shift records."""

    kind = "parse_failure"


class MalformedResponse(ParseFailure):
    """The response text is not valid JSON."""

    kind = "malformed_response"


class UnexpectedShape(ParseFailure):
    """The response is JSON but does not carry a shift list of the expected shape."""

    kind = "unexpected_shape"


class ShiftValidationError(ShiftCalError):
    """One or more records have fields that do not parse as dates or times."""

    def __init__(self, issues: List):
        self.issues = list(issues)
        detail = "; ".join(str(issue) for issue in self.issues)
        super().__init__(f"Invalid shift records: {detail}")


class EmptyBatch(ShiftCalError):
    """There are no shift records left to send to a calendar output."""

    def __init__(self, message: str = "No shifts to add"):
        super().__init__(message)


class CalendarUnavailable(ShiftCalError):
    """No calendar is primary or accepts modifications."""


class WriteFailure(ShiftCalError):
    """Creating the event for a single record failed."""

    def __init__(self, record, cause: Optional[BaseException] = None):
        self.record = record
        self.cause = cause
        record_id = getattr(record, "id", None)
        super().__init__(f"Failed to create event for shift {record_id}: {cause}")
