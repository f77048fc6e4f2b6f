"""
core/cron_schedule.py — Cron expression validation and next-fire computation.

Schedules are standard 5-field expressions (minute, hour, day-of-month,
month, day-of-week) and are always evaluated in UTC.
"""

import re
from datetime import datetime, timezone
from typing import Any

from croniter import croniter

# (name, min, max) per field position
CRON_FIELDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 6),
)

_TERM_RE = re.compile(r"^(\*|\d+(?:-\d+)?)(?:/(\d+))?$")


def _valid_field(field: str, low: int, high: int) -> bool:
    for term in field.split(","):
        match = _TERM_RE.match(term)
        if not match:
            return False
        base, step = match.groups()
        if step is not None and int(step) == 0:
            return False
        if base == "*":
            continue
        bounds = [int(part) for part in base.split("-")]
        if any(b < low or b > high for b in bounds):
            return False
        if len(bounds) == 2 and bounds[0] > bounds[1]:
            return False
    return True


def validate_cron_expression(expr: Any) -> bool:
    """Return True if `expr` is a well-formed 5-field cron expression."""
    if not isinstance(expr, str):
        return False
    fields = expr.split()
    if len(fields) != len(CRON_FIELDS):
        return False
    for field, (_, low, high) in zip(fields, CRON_FIELDS):
        if not _valid_field(field, low, high):
            return False
    return croniter.is_valid(expr)


def next_fire_time(expr: str, after: datetime) -> datetime:
    """Next occurrence of `expr` strictly after `after`, in UTC."""
    if after.tzinfo is None:
        after = after.replace(tzinfo=timezone.utc)
    else:
        after = after.astimezone(timezone.utc)
    return croniter(expr, after).get_next(datetime)
