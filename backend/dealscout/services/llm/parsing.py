from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_FENCE_OPEN = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


def strip_code_fences(text: str) -> str:
    cleaned = _FENCE_OPEN.sub("", str(text or ""))
    return _FENCE_CLOSE.sub("", cleaned).strip()


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` block, ignoring braces inside strings."""
    source = strip_code_fences(text)
    start = source.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(source)):
            ch = source[idx]
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
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return source[start : idx + 1]
        start = source.find("{", start + 1)
    return None


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    block = extract_json_object(text)
    if block is None:
        return None
    try:
        value = json.loads(block)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None
