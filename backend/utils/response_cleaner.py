"""
Cleaning and decoding of raw model output that is expected to hold a single
JSON object.

Decoding runs in tiers and each tier only runs when the previous one failed:

1. strip a leading byte-order mark and code fences, slice from the first ``{``
   to the last ``}`` and parse; string values pass through untouched;
2. additionally drop zero-width characters, characters outside printable ASCII,
   plain whitespace and multi-byte code points, remove trailing commas, and
   parse again;
3. give up with a ``ParseError`` that keeps only a bounded prefix of the text.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from core.errors import ParseError

_FENCE_OPEN_RE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*\r?\n?")
_FENCE_CLOSE_RE = re.compile(r"\r?\n?```\s*$")
_ZERO_WIDTH_RE = re.compile("[\u200b\u200c\u200d\ufeff]")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")

_ALLOWED_WHITESPACE = {"\n", "\r", "\t", " "}


def strip_fences(text: str) -> str:
    """
    Remove surrounding whitespace and a leading/trailing Markdown code fence.

    Works with or without a language tag (```` ```json ````, ```` ``` ````).
    Text without fences is only trimmed.
    """
    payload = (text or "").strip()
    payload = _FENCE_OPEN_RE.sub("", payload, count=1)
    payload = _FENCE_CLOSE_RE.sub("", payload, count=1)
    return payload.strip()


def slice_object(text: str) -> str:
    """Return the span from the first ``{`` to the last ``}``, or the text unchanged."""
    start = text.find("{")
    end = text.rfind("}")
    if start >= 0 and end > start:
        return text[start : end + 1]
    return text


def clean_response(text: str) -> str:
    payload = strip_fences((text or "").lstrip("\ufeff"))
    return slice_object(payload)


def filter_printable(text: str) -> str:
    """Keep plain whitespace, printable ASCII and anything at or above U+0080."""
    kept = []
    for ch in text:
        code = ord(ch)
        if ch in _ALLOWED_WHITESPACE or 32 <= code <= 126 or code >= 128:
            kept.append(ch)
    return "".join(kept)


def clean_response_aggressive(text: str) -> str:
    payload = filter_printable(_ZERO_WIDTH_RE.sub("", clean_response(text)))
    return _TRAILING_COMMA_RE.sub(r"\1", payload)


def _loads_object(payload: str) -> Optional[Dict[str, Any]]:
    try:
        parsed = json.loads(payload)
    except ValueError:
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def parse_json_object(text: str) -> Dict[str, Any]:
    """
    Decode the first JSON object found in raw model output.

    Args:
        text: Raw model text. May be fenced or surrounded by prose.

    Returns:
        The decoded object.

    Raises:
        ParseError: when neither tier yields a JSON object. The error keeps at
            most 500 characters of the cleaned text.
    """
    cleaned = clean_response(text)
    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    parsed = _loads_object(clean_response_aggressive(text))
    if parsed is not None:
        return parsed

    raise ParseError("model response is not a valid JSON object", raw=cleaned)


def try_parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        return parse_json_object(text)
    except ParseError:
        return None


@dataclass(frozen=True)
class PlainWorldSetting:
    text: str

    def flatten(self) -> str:
        return self.text


@dataclass(frozen=True)
class StructuredWorldSetting:
    background: str = ""
    power_system: str = ""
    social_structure: str = ""

    def flatten(self) -> str:
        sections = []
        if self.background:
            sections.append(f"**World Background**\n{self.background}")
        if self.power_system:
            sections.append(f"**Power System**\n{self.power_system}")
        if self.social_structure:
            sections.append(f"**Social Structure**\n{self.social_structure}")
        return "\n\n".join(sections)


WorldSetting = Union[PlainWorldSetting, StructuredWorldSetting]


def decode_world_setting(value: Any) -> WorldSetting:
    if value is None:
        return PlainWorldSetting("")
    if isinstance(value, str):
        return PlainWorldSetting(value)
    if isinstance(value, dict):
        return StructuredWorldSetting(
            background=_as_text(value.get("background")),
            power_system=_as_text(value.get("powerSystem")),
            social_structure=_as_text(value.get("socialStructure")),
        )
    return PlainWorldSetting(json.dumps(value, ensure_ascii=False, separators=(",", ":")))


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
