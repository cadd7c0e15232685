"""
Image LLM Client interface for extracting shifts from a photographed shift table.
Supports GeminiShiftClient, OpenAIShiftClient (real providers) and StubShiftClient (offline).
"""

import base64
import io
import json
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

import requests
from PIL import Image, UnidentifiedImageError

from shiftcal.errors import ImageError, PermissionDenied, RequestFailure
from shiftcal.logging_helper import Log
from shiftcal.response_sanitizer import SHIFT_RESPONSE_SCHEMA, parse_shifts
from shiftcal.settings_manager import SettingsSchema, get_credential, get_model, load_settings
from shiftcal.shift_models import ShiftRecord

# Maximum image size in bytes (20MB - inline image limit of both providers)
MAX_IMAGE_SIZE = 20 * 1024 * 1024

SUPPORTED_MIME_TYPES = {"PNG": "image/png", "JPEG": "image/jpeg"}

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"


def build_prompt(year: int) -> str:
    """Instruction text sent with the image. The year fills in dates that omit one."""
    return (
        "Extract every shift from this image of a work-shift table.\n\n"
        "Return JSON only, with no explanation and no markdown code block, in this shape:\n"
        '{"shifts": [{"date": "YYYY-MM-DD", "startTime": "HH:MM", "endTime": "HH:MM", "title": "shift title"}]}\n\n'
        f"JSON schema:\n{json.dumps(SHIFT_RESPONSE_SCHEMA)}\n\n"
        "Rules:\n"
        f"- date must be YYYY-MM-DD (for example {year}-02-10)\n"
        "- startTime and endTime must be HH:MM (for example 09:00, 17:30)\n"
        f"- if the table does not show a year, use {year}\n"
        "- include every shift in the array"
    )


def load_image(path) -> bytes:
    """
    Read an image file.

    Raises:
        PermissionDenied: the file cannot be read because access is refused
        ImageError: the file does not exist or cannot be read
    """
    path = Path(path)
    try:
        return path.read_bytes()
    except PermissionError as e:
        Log.error(f"Permission denied reading image: {path}")
        raise PermissionDenied(f"Cannot read {path}: {e}") from e
    except OSError as e:
        Log.error(f"Failed to read image {path}: {e}")
        raise ImageError(f"Cannot read {path}: {e}") from e


def prepare_image(image_bytes: bytes, mime_type: Optional[str] = None) -> Tuple[bytes, str]:
    """
    Validate image bytes and settle on a MIME type the providers accept.
    PNG and JPEG pass through unchanged; other formats are re-encoded to JPEG.

    Returns:
        (image bytes, mime type)

    Raises:
        ImageError: empty, unreadable or oversized image
    """
    if not image_bytes:
        raise ImageError("Image is empty")

    if mime_type in SUPPORTED_MIME_TYPES.values() and len(image_bytes) <= MAX_IMAGE_SIZE:
        return image_bytes, mime_type

    try:
        image = Image.open(io.BytesIO(image_bytes))
        image_format = image.format
    except (UnidentifiedImageError, OSError) as e:
        Log.error(f"Image appears corrupted: {e}")
        Log.kv({"stage": "llm", "error": "image_validation_failed", "details": str(e)})
        raise ImageError(f"Unreadable image: {e}") from e

    if image_format in SUPPORTED_MIME_TYPES and len(image_bytes) <= MAX_IMAGE_SIZE:
        return image_bytes, SUPPORTED_MIME_TYPES[image_format]

    Log.info(f"Re-encoding {image_format} image ({len(image_bytes)} bytes) as JPEG")
    # Convert to RGB if necessary (removes transparency)
    if image.mode != 'RGB':
        image = image.convert('RGB')
    buffer = io.BytesIO()
    image.save(buffer, format='JPEG', quality=85, optimize=True)
    converted = buffer.getvalue()
    if len(converted) > MAX_IMAGE_SIZE:
        Log.error(f"Image too large even after compression: {len(converted)} bytes")
        raise ImageError(f"Image exceeds {MAX_IMAGE_SIZE} bytes")
    return converted, "image/jpeg"


class ShiftExtractionClient(ABC):
    """Abstract base class for vision model clients."""

    provider = "abstract"

    @abstractmethod
    def request_shifts(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """
        Send the image and prompt in one request.

        Returns:
            Raw response text

        Raises:
            RequestFailure: the request failed or the response had no text
        """


class StubShiftClient(ShiftExtractionClient):
    """
    Stub LLM client for offline testing.
    Returns a fenced response in the same shape a real model produces.
    """

    provider = "stub"

    def __init__(self, response_text: Optional[str] = None):
        self.response_text = response_text

    def request_shifts(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        Log.info("Using stub LLM client (offline mode)")
        if self.response_text is not None:
            return self.response_text

        year = datetime.now().year
        body = json.dumps({
            "shifts": [
                {"date": f"{year}-02-10", "startTime": "09:00", "endTime": "17:30", "title": "Early shift"},
                {"date": f"{year}-02-11", "startTime": "13:00", "endTime": "22:00", "title": "Late shift"},
            ]
        }, indent=2)
        return f"```json\n{body}\n```"


def _object(value) -> dict:
    return value if isinstance(value, dict) else {}


def _object_at(items, index: int = 0) -> dict:
    if isinstance(items, list) and len(items) > index:
        return _object(items[index])
    return {}


def _text(value) -> str:
    return value if isinstance(value, str) else ""


class _HTTPShiftClient(ShiftExtractionClient):
    """Shared request/response handling for REST providers."""

    def __init__(self, api_key: str, model: str, timeout: float = 30):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def _post(self, url: str, headers: dict, payload: dict) -> dict:
        Log.info(f"Calling {self.provider} API ({self.model})...")
        Log.kv({"stage": "llm", "provider": self.provider, "model": self.model, "status": "requesting"})
        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
            Log.info(f"API response status: {response.status_code}")
            if response.status_code != 200:
                Log.error(f"{self.provider} API error: {response.text[:500]}")
            response.raise_for_status()
            body = response.json()
            if not isinstance(body, dict):
                raise ValueError(f"expected a JSON object, got {type(body).__name__}")
            return body
        except requests.exceptions.RequestException as e:
            Log.error(f"{self.provider} API request failed: {e}")
            Log.kv({"stage": "llm", "provider": self.provider, "result": "failed", "reason": "api_error", "error": str(e)})
            raise RequestFailure(str(e)) from e
        except ValueError as e:
            Log.error(f"{self.provider} API returned non-JSON body: {e}")
            Log.kv({"stage": "llm", "provider": self.provider, "result": "failed", "reason": "invalid_body"})
            raise RequestFailure(f"Invalid response body: {e}") from e

    def _require_text(self, content: Optional[str]) -> str:
        if not isinstance(content, str) or not content.strip():
            Log.warn(f"Empty response from {self.provider}")
            Log.kv({"stage": "llm", "provider": self.provider, "result": "failed", "reason": "empty_response"})
            raise RequestFailure(f"Empty response from {self.provider}")
        Log.kv({"stage": "llm", "provider": self.provider, "result": "success", "chars": len(content)})
        return content


class GeminiShiftClient(_HTTPShiftClient):
    """
    Google Gemini client via the Generative Language REST API.
    """

    provider = "gemini"

    def request_shifts(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": mime_type,
                                "data": base64.b64encode(image_bytes).decode('utf-8'),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": 0.1,
            },
        }
        result = self._post(GEMINI_API_URL.format(model=self.model), headers, payload)

        # Any level of the candidate may be null, e.g. when blocked for safety
        candidate = _object_at(result.get('candidates'))
        parts = _object(candidate.get('content')).get('parts')
        if not isinstance(parts, list):
            parts = []
        content = "".join(_text(_object(part).get('text')) for part in parts)
        return self._require_text(content)


class OpenAIShiftClient(_HTTPShiftClient):
    """
    OpenAI Vision API client.
    """

    provider = "openai"

    def request_shifts(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        base64_image = base64.b64encode(image_bytes).decode('utf-8')
        payload = {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{base64_image}"}},
                    ],
                }
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.1,
        }
        result = self._post(OPENAI_API_URL, headers, payload)

        message = _object(_object_at(result.get('choices')).get('message'))
        content = message.get('content')
        return self._require_text(content)


def get_llm_client(settings: Optional[SettingsSchema] = None) -> ShiftExtractionClient:
    """
    Factory function to get the configured LLM client.
    SHIFTCAL_USE_STUB forces the offline stub.

    Raises:
        ConfigurationError: the provider's API key is missing or a placeholder
    """
    if os.getenv("SHIFTCAL_USE_STUB"):
        Log.info("SHIFTCAL_USE_STUB flag set - using stub client")
        return StubShiftClient()

    settings = settings or load_settings()
    provider = settings.get("provider", "gemini")
    if provider == "stub":
        return StubShiftClient()

    api_key = get_credential(provider)
    model = get_model(settings)
    timeout = settings.get("request_timeout", 30)
    Log.info(f"API key found - using {provider} client ({model})")
    if provider == "openai":
        return OpenAIShiftClient(api_key, model, timeout)
    return GeminiShiftClient(api_key, model, timeout)


def extract_shifts(
    image_bytes: bytes,
    mime_type: Optional[str] = None,
    year: Optional[int] = None,
    client: Optional[ShiftExtractionClient] = None,
    default_title: Optional[str] = None,
) -> List[ShiftRecord]:
    """
    Run one extraction: a single model request, then sanitizing.

    Args:
        image_bytes: Photo of the shift table
        mime_type: image/png or image/jpeg; detected when omitted
        year: Year assumed for dates without one (default: current year)
        client: Model client (default: get_llm_client())
        default_title: Title for shifts without one

    Returns:
        ShiftRecords numbered from 0

    Raises:
        ConfigurationError, ImageError, RequestFailure, MalformedResponse, UnexpectedShape
    """
    Log.section("Shift Extraction")
    settings = None
    if client is None or default_title is None:
        settings = load_settings()
    client = client or get_llm_client(settings)
    default_title = default_title or settings["default_title"]
    year = year or datetime.now().year

    image_bytes, mime_type = prepare_image(image_bytes, mime_type)
    Log.kv({"stage": "llm", "provider": client.provider, "mime_type": mime_type, "image_bytes": len(image_bytes), "year": year})

    raw_text = client.request_shifts(image_bytes, mime_type, build_prompt(year))
    Log.info(f"Model response: {raw_text[:200]}")
    return parse_shifts(raw_text, default_title)
