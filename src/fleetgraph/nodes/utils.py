"""Shared coercion helpers for node definitions."""

from __future__ import annotations

import json
import math
import re
from typing import Any

PREVIEW_MAX_LEN = 160

_TRUE_WORDS = {"true", "1", "yes", "y"}
_FALSE_WORDS = {"false", "0", "no", "n"}


def _to_float(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    if isinstance(value, (int, float)):
        return float(value)
    return math.nan


def coerce_number(value: Any, fallback: float) -> float:
    number = _to_float(value) if value is not None else math.nan
    return number if math.isfinite(number) else fallback


def clamp_number(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def clamp_int(value: Any, fallback: int, low: int, high: int) -> int:
    number = _to_float(value) if value is not None else math.nan
    if not math.isfinite(number):
        return fallback
    return max(low, min(high, math.floor(number)))


def coerce_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return math.isfinite(value) and value >= 0.5
    if isinstance(value, str):
        text = value.strip().lower()
        if not text:
            return False
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
        return True
    return False


def coerce_boolean_or(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    return coerce_boolean(value)


def format_any_preview(value: Any) -> str:
    """Single-line, length-bounded preview of an arbitrary port value."""

    def clamp(raw: str) -> str:
        single_line = re.sub(r"\s+", " ", raw).strip()
        if not single_line:
            return "--"
        if len(single_line) <= PREVIEW_MAX_LEN:
            return single_line
        return f"{single_line[: PREVIEW_MAX_LEN - 1]}…"

    if value is None:
        return "--"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return "--"
        rounded = round(value * 1000) / 1000
        if float(rounded).is_integer():
            return clamp(str(int(rounded)))
        return clamp(str(rounded))
    if isinstance(value, str):
        return clamp(value)
    try:
        return clamp(json.dumps(value, separators=(",", ":"), default=str))
    except (TypeError, ValueError):
        return clamp(str(value))
