"""Duration strings such as "1h30m", "500ms" or "1.5s"."""

from __future__ import annotations

import re
from datetime import timedelta

_DURATION_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# Largest duration representable as int64 nanoseconds (about 2562047h).
MAX_DURATION_SECONDS = (2**63 - 1) / 1e9

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> timedelta:
    """Parse a duration string into a timedelta.

    Accepts a sequence of decimal numbers, each with an optional fraction and
    a unit suffix (ns, us, ms, s, m, h). "0" on its own is zero.

    Raises:
        ValueError: if the string is empty, malformed or out of range.
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if text == "0":
        return timedelta(0)

    pos = 0
    total = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration '{value}'")
        total += float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration '{value}'")
    if total > MAX_DURATION_SECONDS:
        raise ValueError(f"duration '{value}' out of range")
    return timedelta(seconds=total)


def format_duration(delta: timedelta) -> str:
    """Render a timedelta truncated to whole seconds, e.g. "1h2m3s"."""
    seconds = int(delta.total_seconds())
    if seconds <= 0:
        return "0s"
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    out = ""
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{secs}s"
