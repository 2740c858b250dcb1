"""Date and time helper functions."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

SECONDS_PER_HOUR = Decimal("3600")
HOURS_PER_YEAR = Decimal("8760")


def timedelta_to_hours(delta: timedelta) -> Decimal:
    """Converts a timedelta to hours without going through floats."""
    seconds = Decimal(delta.days * 86400 + delta.seconds)
    seconds += Decimal(delta.microseconds) / Decimal("1000000")
    return seconds / SECONDS_PER_HOUR


def hours_between(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours from ``start`` to ``end``, floored at zero."""
    hours = timedelta_to_hours(end - start)
    return hours if hours > 0 else Decimal("0")


def format_running_hours(hours: Decimal) -> str:
    """Formats running hours as e.g. '10 d 4.5 h' for logs and messages."""
    days, rest = divmod(hours, 24)
    if days:
        return f"{int(days)} d {rest:.1f} h"
    return f"{rest:.1f} h"
