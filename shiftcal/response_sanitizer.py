"""
Response sanitizer for converting raw LLM text into ShiftRecords.
Strips markdown code fences, parses JSON and checks it against the shift schema.
"""

import json
import re
from dataclasses import dataclass, field
from typing import List, Union

from shiftcal.errors import MalformedResponse, UnexpectedShape
from shiftcal.logging_helper import Log
from shiftcal.shift_models import ShiftRecord

DEFAULT_TITLE = "Shift"

MALFORMED = "malformed_response"
UNEXPECTED_SHAPE = "unexpected_shape"

# Embedded in the extraction prompt and used for the required-field check
SHIFT_RESPONSE_SCHEMA = {
    "type": "object",
    "properties": {
        "shifts": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                    "startTime": {"type": "string", "description": "HH:MM"},
                    "endTime": {"type": "string", "description": "HH:MM"},
                    "title": {"type": "string"},
                },
                "required": ["date", "startTime", "endTime"],
            },
        },
    },
    "required": ["shifts"],
}

SHIFTS_KEY = "shifts"
REQUIRED_FIELDS = tuple(SHIFT_RESPONSE_SCHEMA["properties"][SHIFTS_KEY]["items"]["required"])

_LEADING_FENCE = re.compile(r"\A```[\w+-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\Z")


@dataclass
class Parsed:
    records: List[ShiftRecord] = field(default_factory=list)


@dataclass
class ParseError:
    kind: str
    message: str

    def to_exception(self):
        if self.kind == MALFORMED:
            return MalformedResponse(self.message)
        return UnexpectedShape(self.message)


DecodeResult = Union[Parsed, ParseError]


def strip_fences(text: str) -> str:
    """Remove a leading ```/```json fence and a trailing ``` fence, then trim."""
    text = text.strip()
    text = _LEADING_FENCE.sub("", text)
    text = _TRAILING_FENCE.sub("", text)
    return text.strip()


def _to_record(index: int, item, default_title: str) -> ShiftRecord:
    if not isinstance(item, dict):
        raise ValueError(f"shift {index} is not an object")

    for key in REQUIRED_FIELDS:
        if not isinstance(item.get(key), str):
            raise ValueError(f"shift {index} is missing string field '{key}'")

    title = item.get("title")
    if title is None or title == "":
        title = default_title
    elif not isinstance(title, str):
        title = str(title)

    return ShiftRecord(
        id=index,
        date=item["date"],
        start_time=item["startTime"],
        end_time=item["endTime"],
        title=title,
    )


def decode_response(text: str, default_title: str = DEFAULT_TITLE) -> DecodeResult:
    """
    Decode raw model text into shift records. Never raises.

    Args:
        text: Raw response text, fenced or bare
        default_title: Title used when a shift has none

    Returns:
        Parsed with records numbered from 0, or ParseError with the failure kind
    """
    Log.section("Response Sanitizer")

    if not isinstance(text, str):
        Log.kv({"stage": "sanitize", "result": "failed", "reason": MALFORMED})
        return ParseError(MALFORMED, "Response is not text")

    body = strip_fences(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        Log.warn(f"Could not parse JSON from response: {body[:100]}")
        Log.kv({"stage": "sanitize", "result": "failed", "reason": MALFORMED, "error": str(e)})
        return ParseError(MALFORMED, f"Response is not valid JSON: {e}")

    if not isinstance(data, dict) or not isinstance(data.get(SHIFTS_KEY), list):
        Log.warn(f"Response has no '{SHIFTS_KEY}' list: {str(data)[:100]}")
        Log.kv({"stage": "sanitize", "result": "failed", "reason": UNEXPECTED_SHAPE})
        return ParseError(UNEXPECTED_SHAPE, f"Response has no '{SHIFTS_KEY}' list")

    try:
        records = [
            _to_record(index, item, default_title)
            for index, item in enumerate(data[SHIFTS_KEY])
        ]
    except ValueError as e:
        Log.warn(f"Unexpected shift entry: {e}")
        Log.kv({"stage": "sanitize", "result": "failed", "reason": UNEXPECTED_SHAPE, "error": str(e)})
        return ParseError(UNEXPECTED_SHAPE, str(e))

    Log.info(f"Decoded {len(records)} shift(s)")
    Log.kv({"stage": "sanitize", "result": "success", "count": len(records)})
    return Parsed(records)


def parse_shifts(text: str, default_title: str = DEFAULT_TITLE) -> List[ShiftRecord]:
    """
    Raising counterpart of decode_response.

    Raises:
        MalformedResponse: text is not JSON
        UnexpectedShape: JSON without a well-formed shift list
    """
    result = decode_response(text, default_title)
    if isinstance(result, ParseError):
        raise result.to_exception()
    return result.records
