from __future__ import annotations

import datetime as dt
import re
from typing import Any, Mapping

import pandas as pd


def parse_int_date(value: Any) -> dt.date | None:
    """Parse a yyyymmdd integer (e.g. ``20130612``) into a date.

    Zero, negative values, anything that is not exactly 8 digits, and 8-digit
    values that are not calendar dates all become ``None``.
    """
    if value is None:
        return None
    if isinstance(value, float):
        if pd.isna(value) or not value.is_integer():
            return None
        value = int(value)
    text = str(value).strip()
    if not text.isdigit() or len(text) != 8 or int(text) == 0:
        return None
    try:
        return dt.datetime.strptime(text, "%Y%m%d").date()
    except ValueError:
        return None


def clean_string(value: Any) -> str | None:
    """Trim surrounding whitespace; ``None`` stays ``None``."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    return str(value).strip()


def map_code(value: Any, mapping: Mapping[str, str], default: str = "n/a") -> str:
    """Look up a trimmed, upper-cased code in ``mapping``; unknown codes map to ``default``."""
    key = clean_string(value)
    if not key:
        return default
    return mapping.get(key.upper(), default)


_DIGITS_RE = re.compile(r"^-?\d+$")


def parse_int(value: Any) -> int | None:
    """Parse integer-like raw values ("12", 12.0, " 7 "); anything else becomes ``None``."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if pd.isna(value) or not value.is_integer():
            return None
        return int(value)
    text = str(value).strip()
    if text.endswith(".0"):
        text = text[:-2]
    if not _DIGITS_RE.match(text):
        return None
    return int(text)


def parse_date(value: Any) -> dt.date | None:
    """Parse ISO-like raw dates ("2024-01-31", "2024-01-31 00:00:00") to a date, ``None`` on failure."""
    ts = parse_datetime(value)
    return ts.date() if ts is not None else None


def parse_datetime(value: Any) -> dt.datetime | None:
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day)
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%m/%d/%Y", "%Y/%m/%d"):
        try:
            return dt.datetime.strptime(text, fmt)
        except ValueError:
            pass
    ts = pd.to_datetime(text, errors="coerce")
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()
