"""Utility helpers for Graph responses."""

from __future__ import annotations

import re
from datetime import datetime, timezone

_FRACTION = re.compile(r"\.(\d+)")


def parse_datetime(value: str | None) -> datetime | None:
    """Parse ISO-8601 timestamps returned by Graph as aware UTC datetimes.

    Graph emits up to seven fractional digits (``2015-01-29T09:21:55.5230000Z``),
    which are truncated to microseconds.
    """

    if not value:
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["parse_datetime", "utc_now"]
