from __future__ import annotations

import json
import re
from typing import Any, Dict, List

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_INT_RE = re.compile(r"-?\d+")


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Extract the first JSON object from a model reply.

    Models sometimes wrap JSON in prose or code fences; the outermost
    ``{...}`` span is parsed.
    """
    if not raw or not raw.strip():
        raise ValueError("Empty AI response")
    match = _JSON_OBJECT_RE.search(raw)
    if not match:
        raise ValueError("No JSON object found in AI response")
    obj = json.loads(match.group(0))
    if not isinstance(obj, dict):
        raise ValueError("AI response JSON is not an object")
    return obj


def string_list(value: Any, *, limit: int = 20) -> List[str]:
    if isinstance(value, str):
        value = re.split(r"[,\n]", value)
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for item in value:
        if isinstance(item, str) and item.strip() and item.strip() not in out:
            out.append(item.strip())
    return out[:limit]


def parse_index(raw: str, *, upper: int) -> int:
    """Parse a zero-based index in ``[0, upper)`` from a reply.

    Accepts ``{"index": n}`` JSON or a bare number.
    """
    value: Any = None
    try:
        value = parse_json_object(raw).get("index")
    except ValueError:
        match = _INT_RE.search(raw or "")
        value = match.group(0) if match else None
    try:
        index = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid image index '{value}'") from exc
    if not 0 <= index < upper:
        raise ValueError(f"Image index out of range: {index}")
    return index
