from __future__ import annotations

import logging
from typing import Iterable, Protocol

from reminder_engine.core.clock import Clock
from reminder_engine.core.models import EventSnapshot, ReminderRecord
from reminder_engine.core.time_math import DEFAULT_OFFSETS, OffsetKind, due_instant, resolve_zone, to_absolute

LOGGER = logging.getLogger(__name__)


class ReminderWriter(Protocol):
    def replace_event_reminders(self, event_id: str, records: Iterable[ReminderRecord]) -> str: ...

    def delete_event_reminders(self, event_id: str) -> int: ...


class ReminderScheduler:
    """Turns event lifecycle changes into reminder store mutations.

    Every call recomputes the full reminder set for the event and replaces
    whatever was stored before. Mutations of one event must be serialized by
    the caller; concurrent calls for the same event are last-write-wins.
    """

    def __init__(
        self,
        store: ReminderWriter,
        clock: Clock,
        offsets: Iterable[OffsetKind] = DEFAULT_OFFSETS,
    ) -> None:
        self._store = store
        self._clock = clock
        self._offsets = tuple(offsets)
        names = [offset.name for offset in self._offsets]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate offset kinds: {names}")

    @property
    def offsets(self) -> tuple[OffsetKind, ...]:
        return self._offsets

    def compute(self, event: EventSnapshot) -> list[ReminderRecord]:
        zone = resolve_zone(event.time_zone)
        start_at = to_absolute(event.start_time, zone)
        now = self._clock.now()
        records: list[ReminderRecord] = []
        for offset in self._offsets:
            firing_at = due_instant(event.start_time, event.time_zone, offset)
            if firing_at <= now:
                LOGGER.debug(
                    "Reminder window elapsed: event_id=%s offset_kind=%s firing_at=%s",
                    event.event_id,
                    offset.name,
                    firing_at.isoformat(),
                )
                continue
            records.append(
                ReminderRecord(
                    event_id=event.event_id,
                    offset_kind=offset.name,
                    firing_at=firing_at,
                    recipients=event.participants,
                    start_at=start_at,
                    time_zone=event.time_zone,
                )
            )
        return records

    def schedule(self, event: EventSnapshot) -> list[ReminderRecord]:
        records = self.compute(event)
        self._store.replace_event_reminders(event.event_id, records)
        LOGGER.info(
            "Reminders scheduled: event_id=%s offsets=%s recipients=%s",
            event.event_id,
            ",".join(record.offset_kind for record in records) or "-",
            len(event.participants),
        )
        return records

    def reschedule(self, event: EventSnapshot) -> list[ReminderRecord]:
        return self.schedule(event)

    def cancel(self, event_id: str) -> None:
        removed = self._store.delete_event_reminders(event_id)
        LOGGER.info("Reminders canceled: event_id=%s removed=%s", event_id, removed)
