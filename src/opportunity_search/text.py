from __future__ import annotations

import math
import re
from typing import Any

MAX_LIST_ITEMS = 12

_LIST_SPLIT_RE = re.compile(r"\n|;|\||•|,")
_NON_NUMERIC_RE = re.compile(r"[^\d.\-]")


def as_text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return str(value)
    return ""


def normalize_token(value: Any) -> str:
    return as_text(value).lower()


def as_string_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        items = [as_text(item) for item in value]
        return [item for item in items if item][:MAX_LIST_ITEMS]

    text = as_text(value)
    if not text:
        return []
    parts = [part.strip() for part in _LIST_SPLIT_RE.split(text)]
    return [part for part in parts if part][:MAX_LIST_ITEMS]


def dedupe_strings(items: list[str]) -> list[str]:
    seen: set[str] = set()
    deduped: list[str] = []
    for item in items:
        key = item.lower()
        if key in seen:
            continue
        seen.add(key)
        deduped.append(item)
    return deduped


def _parse_float(text: str) -> float | None:
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def to_number_or_none(value: Any) -> float | None:
    """Loose numeric coercion for scores like ``87``, ``"87"`` or ``"87%"``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None

    direct = _parse_float(value.strip())
    if direct is not None:
        return direct
    stripped = _NON_NUMERIC_RE.sub("", value)
    if not stripped:
        return None
    return _parse_float(stripped)


def pick_value(record: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = record.get(key)
        if value:
            return value
    return None


def pick_text(record: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = as_text(record.get(key))
        if value:
            return value
    return ""
