from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable


def parse_iso_datetime(value: object, *, field: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} must be an ISO-8601 string")
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"{field} is not a valid ISO-8601 datetime: {value!r}") from exc


def normalize_participants(values: Iterable[object] | None) -> frozenset[str]:
    if values is None:
        return frozenset()
    participants: set[str] = set()
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text:
            participants.add(text)
    return frozenset(participants)


@dataclass(frozen=True)
class EventSnapshot:
    """Value snapshot of an event handed over by the CRUD layer."""

    event_id: str
    start_time: datetime
    time_zone: str
    participants: frozenset[str]
    end_time: datetime | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> EventSnapshot:
        event_id = payload.get("id", payload.get("event_id"))
        if event_id is None or not str(event_id).strip():
            raise ValueError("event id is required")
        start_raw = payload.get("startTime", payload.get("start_time"))
        end_raw = payload.get("endTime", payload.get("end_time"))
        time_zone = payload.get("timeZone", payload.get("time_zone"))
        participants = payload.get("participants")
        if participants is not None and not isinstance(participants, (list, tuple, set, frozenset)):
            raise ValueError("participants must be a list of ids")
        return cls(
            event_id=str(event_id).strip(),
            start_time=parse_iso_datetime(start_raw, field="startTime"),
            time_zone=time_zone if isinstance(time_zone, str) else "",
            participants=normalize_participants(participants),
            end_time=parse_iso_datetime(end_raw, field="endTime") if end_raw is not None else None,
        )


@dataclass(frozen=True)
class ReminderRecord:
    event_id: str
    offset_kind: str
    firing_at: datetime
    recipients: frozenset[str]
    start_at: datetime
    time_zone: str
    sent: bool = False
    sent_at: datetime | None = None
    attempts: int = 0
    last_attempt_at: datetime | None = None
    # assigned by the store on every replace; identifies one stored version of the record
    generation: str = field(default="", compare=False)

    @property
    def key(self) -> tuple[str, str]:
        return (self.event_id, self.offset_kind)

    def describe(self) -> str:
        return f"event_id={self.event_id} offset_kind={self.offset_kind} firing_at={self.firing_at.isoformat()}"
