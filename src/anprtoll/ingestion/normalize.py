"""Normalization helpers.

Centralizes plate canonicalization and lenient parsing of stored values.
"""

from __future__ import annotations

import math
import re
from typing import Any

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def normalize_plate(value: Any) -> str:
    """Canonicalize a plate string: strip non-alphanumerics and uppercase.

    ``"ka-01 ab.1234"`` becomes ``"KA01AB1234"``.  ``None`` and non-string
    values normalize to ``""``.
    """
    if not isinstance(value, str):
        return ""
    return _NON_ALNUM.sub("", value).upper()


def safe_float(value: Any) -> float | None:
    if value is None or value == "" or value == "--":
        return None
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
