from __future__ import annotations

import json
import re
from typing import Any

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


def strip_code_fences(raw: str) -> str:
    match = CODE_FENCE_PATTERN.search(raw)
    return match.group(1) if match else raw


def _slice_between(text: str, opening: str, closing: str) -> str:
    start = text.find(opening)
    end = text.rfind(closing)
    if start != -1 and end > start:
        return text[start : end + 1]
    return text


def extract_json_object(raw: str) -> dict[str, Any]:
    """
    Parse the first JSON object embedded in free model text.

    Raises ValueError when nothing parseable is found or the payload is not an object.
    """
    text = _slice_between(strip_code_fences(raw.strip()), "{", "}")
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("expected a JSON object")
    return parsed


def extract_json_array(raw: str) -> list[Any]:
    text = _slice_between(strip_code_fences(raw.strip()), "[", "]")
    parsed = json.loads(text)
    if not isinstance(parsed, list):
        raise ValueError("expected a JSON array")
    return parsed


def as_string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]
