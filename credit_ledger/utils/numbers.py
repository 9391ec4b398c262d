"""Lenient coercion helpers for Ledger Store payloads."""
import math
from datetime import date, datetime
from typing import Any, Optional


def safe_number(value: Any) -> float:
    """Coerce to a finite float; anything missing or non-numeric becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, str):
        value = value.strip().replace(",", "")
        if not value:
            return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def money(value: Any) -> float:
    return round(safe_number(value), 2)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a Ledger Store date into a naive local datetime.

    Accepts datetimes, dates, date-only strings and ISO-8601 strings with a
    "Z" or numeric offset. Returns None for anything unparsable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def clean_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
