"""
Response parser for structured JSON answers from the completion service.

Models are asked for a bare JSON object but regularly wrap it anyway.
Parsing tries, in order:

1. Clean JSON → parse directly
2. JSON inside markdown code fences → extract and parse
3. JSON object embedded in surrounding text → brace-matched extract

There is no fallback beyond that: a response that yields no JSON object is
reported with ``parse_ok=False`` and callers decide what that means.

Usage::

    from workers.llm.response_parser import parse_json_object

    parsed = parse_json_object('```json\\n{"steps": ["make"]}\\n```')
    assert parsed.parse_ok is True
    assert parsed.data == {"steps": ["make"]}
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class ParsedObject:
    """Result of parsing a completion for a single JSON object."""
    data: Optional[Dict[str, Any]]      # parsed object, None if parse_ok is False
    parse_ok: bool
    parse_error: Optional[str] = None   # empty_response | not_an_object | json_parse_failed
    raw_text: str = ""


# ── Extraction helpers ────────────────────────────────────────────────────────

_FENCE_PATTERNS = [
    re.compile(r"```json\s*\n?(.*?)\n?\s*```", re.DOTALL | re.IGNORECASE),
    re.compile(r"```[a-zA-Z]*\s*\n?(.*?)\n?\s*```", re.DOTALL),
]


def strip_code_fences(text: str) -> str:
    """Return the body of the first markdown code fence, or *text* unchanged."""
    for pat in _FENCE_PATTERNS:
        m = pat.search(text)
        if m:
            return m.group(1).strip()
    return text.strip()


def _extract_json_object(text: str) -> Optional[str]:
    """Extract the first JSON object {...} from text using brace matching."""
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape_next = False

    for i in range(start, len(text)):
        ch = text[i]
        if escape_next:
            escape_next = False
            continue
        if ch == "\\":
            escape_next = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    return None


def _loads(json_str: str) -> Any:
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        return None


def parse_json_object(response_text: str) -> ParsedObject:
    """Parse a completion into a JSON object.

    Parameters
    ----------
    response_text : str
        Raw completion text.

    Returns
    -------
    ParsedObject
        ``parse_ok`` is True only when a JSON *object* was found.  A
        well-formed JSON value of another type (list, string) reports
        ``not_an_object``.
    """
    raw = (response_text or "").strip()

    if not raw:
        return ParsedObject(data=None, parse_ok=False, parse_error="empty_response", raw_text=raw)

    candidates = [raw]
    unfenced = strip_code_fences(raw)
    if unfenced != raw:
        candidates.append(unfenced)
    embedded = _extract_json_object(unfenced)
    if embedded:
        candidates.append(embedded)

    saw_non_object = False
    for candidate in candidates:
        value = _loads(candidate)
        if isinstance(value, dict):
            return ParsedObject(data=value, parse_ok=True, raw_text=raw)
        if value is not None:
            saw_non_object = True

    return ParsedObject(
        data=None,
        parse_ok=False,
        parse_error="not_an_object" if saw_non_object else "json_parse_failed",
        raw_text=raw,
    )
