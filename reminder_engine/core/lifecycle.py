from __future__ import annotations

import logging
from typing import Protocol

from reminder_engine.core.models import EventSnapshot, ReminderRecord
from reminder_engine.core.scheduler import ReminderScheduler
from reminder_engine.core.time_math import resolve_zone

LOGGER = logging.getLogger(__name__)


class EventSnapshots(Protocol):
    def upsert(self, event: EventSnapshot) -> None: ...

    def delete(self, event_id: str) -> bool: ...


class EventLifecycle:
    """Entry point for the event CRUD layer, called after its own commit.

    The time zone is validated before anything is written, so an event with
    an unknown zone is rejected instead of being stored unschedulable.
    """

    def __init__(self, scheduler: ReminderScheduler, events: EventSnapshots) -> None:
        self._scheduler = scheduler
        self._events = events

    def created(self, event: EventSnapshot) -> list[ReminderRecord]:
        resolve_zone(event.time_zone)
        self._events.upsert(event)
        return self._scheduler.schedule(event)

    def updated(self, event: EventSnapshot) -> list[ReminderRecord]:
        resolve_zone(event.time_zone)
        self._events.upsert(event)
        return self._scheduler.reschedule(event)

    def deleted(self, event_id: str) -> None:
        self._scheduler.cancel(event_id)
        if not self._events.delete(event_id):
            LOGGER.debug("Event snapshot already absent: event_id=%s", event_id)
