"""Parsing of loosely structured provider output.

Chat models are asked for JSON but answer with prose, fenced blocks, or
both. ``parse_structured_response`` never trusts the shape: it returns a
``ParsedResponse`` when a JSON value can be recovered and a ``FallbackText``
otherwise, and callers branch on the tag.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?\s*\n(.*?)\n?```", re.DOTALL)


@dataclass(frozen=True)
class ParsedResponse:
    data: Any
    raw: str


@dataclass(frozen=True)
class FallbackText:
    text: str
    reason: str


StructuredResult = ParsedResponse | FallbackText


def _balanced_span(text: str, open_char: str, close_char: str) -> str | None:
    """Outermost balanced ``open_char ... close_char`` span, skipping strings."""
    start = text.find(open_char)
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
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
        elif ch == open_char:
            depth += 1
        elif ch == close_char:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _candidates(text: str) -> list[str]:
    found = [m.group(1).strip() for m in _FENCED_BLOCK.finditer(text)]
    stripped = text.strip()
    if stripped:
        found.append(stripped)
    # Whichever bracket opens first is the outer value.
    spans = [
        (text.find(o), span)
        for o, c in (("{", "}"), ("[", "]"))
        if (span := _balanced_span(text, o, c)) is not None
    ]
    found.extend(span for _, span in sorted(spans, key=lambda x: x[0]))
    return found


def parse_structured_response(text: str) -> StructuredResult:
    """Recover a JSON value from provider output.

    Tries, in order: fenced ```json blocks, the whole text, then the first
    balanced object or array embedded in prose.
    """
    if not text or not text.strip():
        return FallbackText(text=text, reason="empty response")
    for candidate in _candidates(text):
        try:
            return ParsedResponse(data=json.loads(candidate), raw=text)
        except json.JSONDecodeError:
            continue
    return FallbackText(text=text, reason="no JSON value found")


def expect_object(result: StructuredResult, *required: str) -> StructuredResult:
    """Downgrade a parsed value to FallbackText unless it is an object with ``required`` keys."""
    if isinstance(result, FallbackText):
        return result
    if not isinstance(result.data, dict):
        return FallbackText(text=result.raw, reason="JSON value is not an object")
    missing = [key for key in required if key not in result.data]
    if missing:
        return FallbackText(text=result.raw, reason=f"missing keys: {', '.join(missing)}")
    return result
