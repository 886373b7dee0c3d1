"""Time zone aware reminder arithmetic.

All functions are pure: they never read the clock. Instants are returned as
aware datetimes in UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from reminder_engine.core.errors import InvalidTimeZone

_LEAD_PART_RE = re.compile(r"(\d+)\s*([dhm])")
_LEAD_FULL_RE = re.compile(r"^(?:\s*\d+\s*[dhm])+\s*$")
_OFFSET_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")


@dataclass(frozen=True)
class OffsetKind:
    name: str
    lead: timedelta

    def __post_init__(self) -> None:
        if not _OFFSET_NAME_RE.match(self.name):
            raise ValueError(f"invalid offset kind name: {self.name!r}")
        if self.lead <= timedelta(0):
            raise ValueError(f"offset kind {self.name!r} must have a positive lead")


DAY_BEFORE = OffsetKind("day_before", timedelta(days=1))
HOUR_BEFORE = OffsetKind("hour_before", timedelta(hours=1))
DEFAULT_OFFSETS: tuple[OffsetKind, ...] = (DAY_BEFORE, HOUR_BEFORE)


def resolve_zone(name: object) -> ZoneInfo:
    if not isinstance(name, str) or not name.strip():
        raise InvalidTimeZone(name)
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
        raise InvalidTimeZone(name) from exc


def to_absolute(start_time: datetime, zone: ZoneInfo) -> datetime:
    """Absolute UTC instant of ``start_time``; naive values are wall time in ``zone``."""
    if start_time.tzinfo is None:
        return start_time.replace(tzinfo=zone).astimezone(timezone.utc)
    return start_time.astimezone(timezone.utc)


def due_instant(start_time: datetime, time_zone: str, offset: OffsetKind) -> datetime:
    """Firing instant for ``offset`` before an event starting at ``start_time``.

    Whole days are subtracted on the event's local wall clock, so a
    "day before" reminder keeps the local time of day across a DST change.
    The sub-day remainder is subtracted as an absolute duration. The result
    is always strictly before the start.
    """
    zone = resolve_zone(time_zone)
    start_utc = to_absolute(start_time, zone)
    whole_days = timedelta(days=offset.lead.days)
    remainder = offset.lead - whole_days
    due = start_utc
    if whole_days:
        local_wall = start_utc.astimezone(zone).replace(tzinfo=None)
        due = (local_wall - whole_days).replace(tzinfo=zone).astimezone(timezone.utc)
    due = due - remainder
    if due >= start_utc:
        # the wall day before fell in a skipped calendar day (Pacific/Apia 2011-12-30)
        # and resolved to the start instant itself; use the absolute lead
        due = start_utc - offset.lead
    return due


def parse_lead(value: str) -> timedelta:
    """Parse a lead such as ``1d``, ``24h``, ``90m`` or ``1d12h``."""
    raw = value.strip().lower()
    if not raw or not _LEAD_FULL_RE.match(raw):
        raise ValueError(f"invalid reminder lead: {value!r}")
    total = timedelta(0)
    for amount, unit in _LEAD_PART_RE.findall(raw):
        count = int(amount)
        if unit == "d":
            total += timedelta(days=count)
        elif unit == "h":
            total += timedelta(hours=count)
        else:
            total += timedelta(minutes=count)
    if total <= timedelta(0):
        raise ValueError(f"reminder lead must be positive: {value!r}")
    return total


def parse_offsets(value: str) -> tuple[OffsetKind, ...]:
    """Parse ``name:lead`` pairs separated by commas."""
    offsets: list[OffsetKind] = []
    seen: set[str] = set()
    for chunk in value.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        name, sep, lead = chunk.partition(":")
        if not sep:
            raise ValueError(f"offset must look like name:lead, got {chunk!r}")
        name = name.strip().lower()
        if name in seen:
            raise ValueError(f"duplicate offset kind: {name!r}")
        seen.add(name)
        offsets.append(OffsetKind(name, parse_lead(lead)))
    if not offsets:
        raise ValueError("at least one reminder offset is required")
    return tuple(offsets)
