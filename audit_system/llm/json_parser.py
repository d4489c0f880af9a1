"""Lenient JSON extraction from inference responses.

The model is asked for strict JSON but may wrap it in markdown fences,
surround it with prose, leave trailing commas, or stop mid-document when it
hits the output token limit. parse_llm_json tries, in order:

1. Direct parse of the fence-stripped text
2. Repair (trailing commas removed, unclosed brackets and strings closed)
3. The outermost {...} span, then the outermost [...] span
"""

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)(?:```|$)", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


class JsonParseError(ValueError):
    """No JSON value could be recovered from the response."""


def strip_fences(text: str) -> str:
    """Return the contents of the first markdown code block, or the text itself."""
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


def _try_load(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def repair_json(text: str) -> str:
    """Best-effort repair of truncated or sloppy JSON.

    Removes trailing commas and appends the closers for any string, array or
    object left open at the end of the text.
    """
    repaired = _TRAILING_COMMA_RE.sub(r"\1", text.strip())

    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in repaired:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    if in_string:
        repaired += '"'
    repaired = repaired.rstrip().rstrip(",")
    repaired += "".join(reversed(stack))
    return _TRAILING_COMMA_RE.sub(r"\1", repaired)


def _outermost(text: str, opener: str, closer: str) -> Optional[str]:
    start = text.find(opener)
    end = text.rfind(closer)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def parse_llm_json(text: Optional[str]) -> Any:
    """Parse a JSON value out of an inference response.

    Args:
        text: Raw response text.

    Returns:
        The parsed JSON value (usually a dict).

    Raises:
        JsonParseError: If nothing parseable is found.
    """
    if not text or not text.strip():
        raise JsonParseError("empty response")

    body = strip_fences(text)

    parsed = _try_load(body)
    if parsed is not None:
        return parsed

    parsed = _try_load(repair_json(body))
    if parsed is not None:
        return parsed

    for opener, closer in (("{", "}"), ("[", "]")):
        span = _outermost(body, opener, closer)
        if span is None:
            continue
        parsed = _try_load(span)
        if parsed is None:
            parsed = _try_load(repair_json(span))
        if parsed is not None:
            return parsed

    raise JsonParseError(f"no JSON value found in response ({len(text)} chars)")
