"""Canonical daily slot grid shared by customer and admin views.

Slots are 30-minute buckets in two windows, morning (09:00-11:30) and
afternoon (15:00-16:30), labelled by their wall-clock start time in a single
reference time zone. Every actor must map instants to labels through this
module so that counts agree across views.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

SLOT_MINUTES = 30

WINDOWS: Tuple[Tuple[str, time, time], ...] = (
    ("morning", time(9, 0), time(12, 0)),
    ("afternoon", time(15, 0), time(17, 0)),
)


def _build_grid() -> Dict[str, str]:
    grid: Dict[str, str] = {}
    for window, start, end in WINDOWS:
        cursor = datetime.combine(date.min, start)
        stop = datetime.combine(date.min, end)
        while cursor < stop:
            grid[cursor.strftime("%H:%M")] = window
            cursor += timedelta(minutes=SLOT_MINUTES)
    return grid


_GRID = _build_grid()

SLOT_LABELS: List[str] = list(_GRID)


def is_valid_label(label: str) -> bool:
    return label in _GRID


def window_for(label: str) -> str:
    try:
        return _GRID[label]
    except KeyError:
        raise ValueError(f"'{label}' is not a slot on the booking grid") from None


def to_utc(instant: datetime, tz: ZoneInfo) -> datetime:
    """Normalize an instant to UTC; naive values are read as wall clock in ``tz``."""

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=tz)
    return instant.astimezone(timezone.utc)


def label_for(instant: datetime, tz: ZoneInfo) -> Optional[str]:
    """Return the slot label of ``instant`` or ``None`` when it is off the grid."""

    local = to_utc(instant, tz).astimezone(tz)
    if local.second or local.microsecond:
        return None
    label = local.strftime("%H:%M")
    return label if label in _GRID else None


def local_date(instant: datetime, tz: ZoneInfo) -> date:
    return to_utc(instant, tz).astimezone(tz).date()


def instant_for(day: date, label: str, tz: ZoneInfo) -> datetime:
    """Return the UTC instant at which ``label`` starts on ``day``."""

    window_for(label)
    hour, minute = (int(part) for part in label.split(":"))
    local = datetime.combine(day, time(hour, minute), tzinfo=tz)
    return local.astimezone(timezone.utc)


def day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    """Return the UTC half-open interval covering ``day`` in ``tz``."""

    start = datetime.combine(day, time(0, 0), tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
